"""Twilio voice webhooks answered with TwiML."""
import logging

from fastapi import APIRouter, Request, Response
from twilio.twiml.voice_response import VoiceResponse

from detective.agents.prompts import PHONE_GREETING
from detective.config import settings
from detective.services.session_store import get_session_store
from detective.services.storage import storage_service
from detective.services.transcription_queue import transcription_queue
from detective.services.tts_service import tts_service

logger = logging.getLogger(__name__)

router = APIRouter()

VOICE_PATH = "/twilio/voice"
AFTER_RECORD_PATH = "/twilio/voice-assistant/after-record"
RECORDING_CALLBACK_PATH = "/twilio/voice-assistant/recording-callback"

MENU_PROMPT = "Welcome to Detective Desk. Press 1 to record a statement. Press 2 to talk to an agent."
WAITING_MESSAGE = "One moment while we process your statement."


def _twiml(twiml: VoiceResponse, status_code: int = 200) -> Response:
    return Response(content=str(twiml), media_type="application/xml", status_code=status_code)


def _error_twiml(message: str = "Sorry, there was an error. Please try again later.") -> Response:
    twiml = VoiceResponse()
    twiml.say(message, voice=settings.twilio_voice)
    twiml.hangup()
    return _twiml(twiml, status_code=500)


def _record_statement(twiml: VoiceResponse):
    twiml.record(
        action=AFTER_RECORD_PATH,
        method="POST",
        max_length=60,
        finish_on_key="#",
        play_beep=True,
        recording_status_callback=RECORDING_CALLBACK_PATH,
        recording_status_callback_method="POST",
    )


def _enqueue_recording(call_sid: str, recording_url: str):
    if not call_sid:
        raise ValueError("Missing CallSid, cannot enqueue transcription")
    job = transcription_queue.enqueue(call_sid, recording_url)
    if job is None:
        logger.error(f"Recording for call {call_sid} was not queued")


@router.post("/voice")
async def voice_menu(request: Request):
    """Keypad menu: record a statement or reach a human agent."""
    try:
        form = await request.form()
        digits = form.get("Digits")
        recording_url = form.get("RecordingUrl")
        call_sid = form.get("CallSid", "")
        logger.info(f"Voice webhook: call={call_sid} digits={digits} recording={bool(recording_url)}")

        twiml = VoiceResponse()
        if recording_url:
            _enqueue_recording(call_sid, recording_url)
            twiml.say("Thanks for your recording. We are processing it now. Goodbye.")
            twiml.hangup()
        elif not digits:
            twiml.say(MENU_PROMPT)
            twiml.gather(action=VOICE_PATH, method="POST", timeout=5, num_digits=1)
        elif digits == "1":
            twiml.say("Please leave your statement after the tone. Press pound when done, or wait for the time limit.")
            twiml.record(action=VOICE_PATH, method="POST", max_length=60, finish_on_key="#", play_beep=True)
        elif digits == "2" and settings.agent_phone_number:
            twiml.say("Connecting you to an agent now.")
            twiml.dial(settings.agent_phone_number)
        elif digits == "2":
            twiml.say("No agent is available right now. Please record a statement instead.")
            twiml.redirect(VOICE_PATH, method="POST")
        else:
            twiml.say("Invalid input. Please try again.")
            twiml.redirect(VOICE_PATH, method="POST")
        return _twiml(twiml)
    except Exception as e:
        logger.error(f"Error in voice webhook: {e}", exc_info=True)
        return _error_twiml()


@router.post("/voice-assistant")
async def voice_assistant(request: Request):
    """Greets an inbound caller and records the first statement."""
    try:
        form = await request.form()
        logger.info(f"Voice assistant call started: {form.get('CallSid', '')}")
        twiml = VoiceResponse()
        twiml.say(PHONE_GREETING, voice=settings.twilio_voice)
        _record_statement(twiml)
        return _twiml(twiml)
    except Exception as e:
        logger.error(f"Error greeting caller: {e}", exc_info=True)
        return _error_twiml("Sorry, an error occurred. Goodbye.")


@router.post("/voice-assistant/recording-callback")
async def recording_callback(request: Request):
    """Queues a finished recording for transcription and returns at once."""
    try:
        form = await request.form()
        recording_url = form.get("RecordingUrl")
        call_sid = form.get("CallSid", "")
        if not recording_url:
            logger.warning(f"Recording callback without RecordingUrl for call {call_sid}")
            return {"success": False}
        _enqueue_recording(call_sid, recording_url)
        return {"success": True}
    except Exception as e:
        logger.error(f"Error in recording callback: {e}", exc_info=True)
        return _error_twiml()


@router.post("/voice-assistant/after-record")
async def after_record(request: Request):
    """Speaks the waiting reply, if any, then records the caller again."""
    try:
        form = await request.form()
        call_sid = form.get("CallSid", "")
        reply = await get_session_store().pop_reply(call_sid) if call_sid else None

        twiml = VoiceResponse()
        if reply:
            audio_url = None
            audio = await tts_service.generate_speech(reply)
            if audio:
                audio_url = await storage_service.upload_audio(audio, call_sid)
            if audio_url:
                twiml.play(audio_url)
            else:
                twiml.say(reply, voice=settings.twilio_voice)
        else:
            twiml.say(WAITING_MESSAGE, voice=settings.twilio_voice)
        twiml.pause(length=1)
        _record_statement(twiml)
        return _twiml(twiml)
    except Exception as e:
        logger.error(f"Error continuing call: {e}", exc_info=True)
        return _error_twiml("Sorry, an error occurred. Goodbye.")
