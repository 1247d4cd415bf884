"""Text-to-speech for the phone channel, using the Gemini TTS model."""
import asyncio
import io
import logging
import re
import wave
from typing import Optional, Tuple

from google import genai
from google.genai import types

from detective.config import settings

logger = logging.getLogger(__name__)

DEFAULT_VOICE = "Kore"
MAX_TTS_CHARS = 3000
FALLBACK_RATE = 24000


def wrap_pcm(pcm: bytes, rate: int = FALLBACK_RATE) -> bytes:
    """Package raw 16-bit mono samples as a WAV file Twilio can <Play>."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as out:
        out.setnchannels(1)
        out.setsampwidth(2)
        out.setframerate(rate)
        out.writeframes(pcm)
    return buffer.getvalue()


def _audio_part(response) -> Tuple[Optional[bytes], str]:
    for candidate in getattr(response, "candidates", None) or []:
        parts = getattr(getattr(candidate, "content", None), "parts", None) or []
        for part in parts:
            blob = getattr(part, "inline_data", None)
            mime = str(getattr(blob, "mime_type", "") or "")
            if blob is not None and blob.data and mime.startswith("audio/"):
                return blob.data, mime
    return None, ""


class TTSService:
    """Speaks the detective's replies back to phone callers."""

    def __init__(self):
        self.client = None
        if not settings.google_api_key:
            logger.warning("Speech synthesis disabled: GOOGLE_API_KEY is not set")
            return
        self.client = genai.Client(api_key=settings.google_api_key)

    @staticmethod
    def _pcm_sample_rate(mime_type: Optional[str]) -> int:
        """Read the rate from a mime type like 'audio/L16;rate=24000'."""
        found = re.search(r"rate=(\d+)", mime_type or "")
        return max(8000, int(found.group(1))) if found else FALLBACK_RATE

    def _speech_config(self, voice: str) -> types.GenerateContentConfig:
        prebuilt = types.PrebuiltVoiceConfig(voice_name=voice)
        return types.GenerateContentConfig(
            response_modalities=["AUDIO"],
            speech_config=types.SpeechConfig(voice_config=types.VoiceConfig(prebuilt_voice_config=prebuilt)),
        )

    async def generate_speech(self, text: str, voice: str = DEFAULT_VOICE) -> Optional[bytes]:
        """Return WAV bytes for the reply, or None so callers can fall back to <Say>."""
        if self.client is None or not (text or "").strip():
            return None
        spoken = text if len(text) <= MAX_TTS_CHARS else text[:MAX_TTS_CHARS] + "..."

        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=settings.tts_model,
                contents=spoken,
                config=self._speech_config(voice),
            )
        except Exception as e:
            logger.error(f"Speech synthesis failed: {e}")
            return None

        audio, mime = _audio_part(response)
        if audio is None:
            logger.warning("Speech synthesis returned no audio")
            return None
        if "wav" not in mime:
            audio = wrap_pcm(audio, self._pcm_sample_rate(mime))
        logger.debug(f"Synthesized {len(audio)} bytes of speech with voice {voice}")
        return audio

    def health_check(self) -> bool:
        return self.client is not None


tts_service = TTSService()
