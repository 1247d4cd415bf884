"""
Speech to text for phone recordings.

Recordings are downloaded from Twilio with the account credentials and
transcribed with Gemini.
"""
import asyncio
import logging
from typing import Optional

import httpx
from google import genai
from google.genai import types

from detective.config import settings

logger = logging.getLogger(__name__)

TRANSCRIBE_PROMPT = "Transcribe this audio exactly. Return ONLY the transcribed text, nothing else."


class TranscriptionError(Exception):
    """Raised when a recording cannot be downloaded or transcribed."""


class TranscriptionService:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport
        self.client = None
        if settings.google_api_key:
            self.client = genai.Client(api_key=settings.google_api_key)
            logger.info("Transcription service initialized")
        else:
            logger.warning("GOOGLE_API_KEY not set, phone recordings cannot be transcribed")

    async def download_recording(self, recording_url: str) -> bytes:
        """Fetch a Twilio recording as WAV using basic auth."""
        url = recording_url if recording_url.endswith(".wav") else f"{recording_url}.wav"
        auth = None
        if settings.twilio_account_sid and settings.twilio_auth_token:
            auth = (settings.twilio_account_sid, settings.twilio_auth_token)
        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport, follow_redirects=True) as client:
                response = await client.get(url, auth=auth)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            raise TranscriptionError(f"Failed to download recording {url}: {e}") from e

    async def transcribe_audio(self, audio: bytes, mime_type: str = "audio/wav") -> str:
        if not self.client:
            raise TranscriptionError("Transcription is not configured")
        if not audio:
            raise TranscriptionError("Recording is empty")
        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=settings.gemini_model,
                contents=[
                    types.Content(parts=[
                        types.Part.from_bytes(data=audio, mime_type=mime_type),
                        types.Part.from_text(text=TRANSCRIBE_PROMPT),
                    ])
                ],
            )
        except Exception as e:
            raise TranscriptionError(f"Transcription request failed: {e}") from e
        return (response.text or "").strip()

    async def transcribe_recording(self, recording_url: str) -> str:
        audio = await self.download_recording(recording_url)
        logger.info(f"Downloaded recording ({len(audio) / 1024:.1f}KB) from {recording_url}")
        text = await self.transcribe_audio(audio)
        logger.info(f"Transcribed recording: {text[:100]}")
        return text


# Global instance
transcription_service = TranscriptionService()
