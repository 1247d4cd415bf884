"""
Normalize free-form incident times ("last Saturday around 9pm") to ISO-8601.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from google import genai
from google.genai import types

from detective.config import settings

logger = logging.getLogger(__name__)

UNKNOWN = "UNKNOWN"


def parse_iso(text: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, accepting a trailing ``Z``."""
    candidate = text.strip()
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(candidate)
    except ValueError:
        return None


class DateNormalizer:
    def __init__(self):
        self.client = None
        if settings.google_api_key:
            self.client = genai.Client(api_key=settings.google_api_key)
        else:
            logger.warning("GOOGLE_API_KEY not set, relative dates will not be normalized")

    async def normalize_datetime(self, text: Optional[str], reference: Optional[datetime] = None) -> Optional[str]:
        """Resolve ``text`` against ``reference`` (default: now, UTC).

        Returns an ISO-8601 string, or None when the time cannot be determined.
        """
        if not text or not text.strip():
            return None

        parsed = parse_iso(text)
        if parsed is not None:
            return parsed.isoformat()

        if not self.client:
            return None

        reference = reference or datetime.now(timezone.utc)
        prompt = f"""The current date and time is {reference.isoformat()} ({reference.strftime('%A')}).
A crime reporter described when an incident happened as: "{text}"

Respond with ONLY the ISO-8601 date and time of the incident (for example 2024-05-04T21:00:00).
Use 12:00 when only a day is known. Respond with {UNKNOWN} if no date can be determined."""

        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=settings.gemini_lite_model,
                contents=prompt,
                config=types.GenerateContentConfig(temperature=0.0, max_output_tokens=50),
            )
        except Exception as e:
            logger.warning(f"Date normalization failed for '{text}': {e}")
            return None

        answer = (response.text or "").strip().strip("`").strip()
        if not answer or answer.upper() == UNKNOWN:
            return None
        resolved = parse_iso(answer)
        if resolved is None:
            logger.warning(f"Date normalization returned an unreadable value: {answer!r}")
            return None
        logger.debug(f"Normalized '{text}' -> {resolved.isoformat()}")
        return resolved.isoformat()


# Global instance
date_normalizer = DateNormalizer()
