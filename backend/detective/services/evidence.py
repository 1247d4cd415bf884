"""
Evidence intake.

Uploaded files are stored through the storage service; images additionally
get a short factual observation from Gemini vision that is added to the
report's evidence observations.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from google import genai
from google.genai import types

from detective.config import settings
from detective.services.storage import StorageService, safe_filename, storage_service

logger = logging.getLogger(__name__)

NOT_AN_IMAGE = "No observation (not an image)."
OBSERVATION_FAILED = "No observation (analysis unavailable)."

OBSERVATION_PROMPT = (
    "You are assisting a police detective. Describe what this evidence photo shows "
    "in at most four short, factual sentences. Mention people, vehicles, license plates, "
    "damage, weapons and anything else relevant to a crime report. Do not speculate."
)


class EvidenceValidationError(ValueError):
    """Raised for uploads that are empty or too large."""


@dataclass
class EvidenceItem:
    filename: str
    url: str
    observation: str


class EvidenceService:
    """Stores evidence files and describes images."""

    def __init__(self, storage: Optional[StorageService] = None, max_upload_size_mb: Optional[int] = None):
        self.storage = storage or storage_service
        self.max_upload_bytes = (max_upload_size_mb or settings.max_upload_size_mb) * 1024 * 1024
        self.client = None
        if settings.google_api_key:
            self.client = genai.Client(api_key=settings.google_api_key)
            logger.info("Evidence service initialized")
        else:
            logger.warning("GOOGLE_API_KEY not set, evidence photos will not be described")

    def validate(self, filename: str, data: bytes):
        if not data:
            raise EvidenceValidationError(f"File {filename} is empty")
        if len(data) > self.max_upload_bytes:
            raise EvidenceValidationError(
                f"File {filename} exceeds the {self.max_upload_bytes // (1024 * 1024)} MB limit"
            )

    async def describe_image(self, data: bytes, content_type: str) -> str:
        """Short Gemini vision observation; a fixed placeholder on failure."""
        if not self.client:
            return OBSERVATION_FAILED
        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=settings.gemini_model,
                contents=[
                    types.Content(parts=[
                        types.Part.from_bytes(data=data, mime_type=content_type),
                        types.Part.from_text(text=OBSERVATION_PROMPT),
                    ])
                ],
                config=types.GenerateContentConfig(temperature=0.2, max_output_tokens=300),
            )
            observation = (response.text or "").strip()
            return observation or OBSERVATION_FAILED
        except Exception as e:
            logger.error(f"Evidence image analysis failed: {e}")
            return OBSERVATION_FAILED

    async def process_upload(self, filename: str, data: bytes, content_type: Optional[str]) -> Optional[EvidenceItem]:
        """Validate, store and describe one file. Returns None when storage fails."""
        self.validate(filename, data)
        content_type = content_type or "application/octet-stream"

        url = await self.storage.upload_file(data, safe_filename(filename), content_type=content_type, folder="evidence")
        if not url:
            return None

        if content_type.startswith("image/"):
            observation = await self.describe_image(data, content_type)
        else:
            observation = NOT_AN_IMAGE
        logger.info(f"Processed evidence {filename} -> {url}")
        return EvidenceItem(filename=filename, url=url, observation=observation)


def observations_text(items: List[EvidenceItem]) -> str:
    """Combine per-file observations into one report paragraph."""
    lines = [
        f"{item.filename}: {item.observation}"
        for item in items
        if item.observation not in (NOT_AN_IMAGE, OBSERVATION_FAILED)
    ]
    return "\n".join(lines)


# Global instance
evidence_service = EvidenceService()
