"""One assistant turn for a phone caller, run from the transcription queue."""
import logging

from detective.agents.report_agent import get_agent
from detective.services.session_store import get_session_store
from detective.services.transcription import transcription_service
from detective.services.transcription_queue import TranscriptionJob
from detective.services.translation_service import translation_service

logger = logging.getLogger(__name__)

NO_SPEECH_REPLY = "I'm sorry, I didn't catch that. Could you please repeat what happened?"
TURN_FAILED_REPLY = "I'm sorry, I had trouble with that. Could you please say it again?"


def conversation_for_call(call_sid: str) -> str:
    return f"call-{call_sid}"


async def _agent_reply(call_sid: str, text: str) -> str:
    """Run the agent once for the caller's statement; failures become an apology."""
    store = get_session_store()
    conversation_id = await store.get_call_conversation(call_sid)
    if not conversation_id:
        conversation_id = conversation_for_call(call_sid)
        await store.set_call_conversation(call_sid, conversation_id)

    language, _ = await translation_service.detect_language(text)
    try:
        reply, _ = await get_agent(conversation_id).process_message(text)
    except Exception as e:
        logger.error(f"Agent turn failed for call {call_sid}: {e}", exc_info=True)
        reply = TURN_FAILED_REPLY
    return await translation_service.translate_for_caller(reply, language)


async def handle_recording(job: TranscriptionJob):
    """Transcribe a recording, run the agent and store the spoken reply.

    Download and transcription failures raise so the queue retries; steps a
    previous attempt finished are not repeated, so the agent sees each
    statement once.
    """
    if job.transcript is None:
        job.transcript = await transcription_service.transcribe_recording(job.recording_url)

    if job.reply is None:
        if not job.transcript:
            logger.info(f"Empty transcription for call {job.call_sid}")
            job.reply = NO_SPEECH_REPLY
        else:
            job.reply = await _agent_reply(job.call_sid, job.transcript)

    await get_session_store().set_reply(job.call_sid, job.reply)
    logger.info(f"Reply ready for call {job.call_sid}: {job.reply[:80]}")
