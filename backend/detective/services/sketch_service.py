import asyncio
import logging
from typing import Optional

from google import genai
from google.genai import types

from detective.config import settings
from detective.models.schemas import SketchRequest, is_blank
from detective.services.storage import StorageService, safe_filename, storage_service

logger = logging.getLogger(__name__)


class SketchService:
    """Generates a photorealistic suspect portrait with Imagen."""

    def __init__(self, storage: Optional[StorageService] = None):
        self.storage = storage or storage_service
        self.client = None
        if settings.google_api_key:
            self.client = genai.Client(api_key=settings.google_api_key)
            logger.info("SketchService initialized with Google API key")
        else:
            logger.warning("SketchService: no Google API key, sketches disabled")

    @staticmethod
    def build_prompt(request: SketchRequest) -> str:
        parts = []
        for label, value in (
            ("Gender", request.gender),
            ("Age", request.age),
            ("Hair", request.hair),
            ("Clothing", request.clothing),
            ("Distinctive features", request.features),
            ("Additional notes", request.refinements),
        ):
            if not is_blank(value):
                parts.append(f"{label}: {value.strip()}")

        return (
            "Create an extremely photorealistic, full-color portrait of a single person from the shoulders up. "
            "Lifelike skin texture, soft even studio lighting, sharp focus on facial details. "
            "The subject faces the camera against a neutral, softly blurred background. "
            "No text or watermarks in the image.\n"
            f"Subject details: {'. '.join(parts) or 'No details provided'}."
        )

    async def generate(self, request: SketchRequest) -> Optional[str]:
        """Generate the portrait and return its stored URL, or None."""
        if not self.client:
            return None

        try:
            result = await asyncio.to_thread(
                self.client.models.generate_images,
                model=settings.imagen_model,
                prompt=self.build_prompt(request),
                config=types.GenerateImagesConfig(
                    number_of_images=1,
                    aspect_ratio="1:1",
                    person_generation="ALLOW_ADULT",
                ),
            )
        except Exception as e:
            logger.error(f"Imagen error: {e}")
            return None

        if not result.generated_images:
            logger.warning("Imagen returned no images")
            return None
        image_bytes = result.generated_images[0].image.image_bytes
        if not image_bytes:
            return None

        return await self.storage.upload_file(
            image_bytes, safe_filename("suspect.png"), content_type="image/png", folder="sketches"
        )


# Global singleton
sketch_service = SketchService()
