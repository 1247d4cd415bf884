"""
Translation Service using Gemini.

Reporters may speak any language; stored reports are always in English.
Callers on the phone hear the assistant in their own language.
"""

import asyncio
import json
import logging
from typing import Any, List, Optional, Tuple

from google import genai
from google.genai import types

from detective.config import settings
from detective.models.schemas import SUSPECT_ATTRIBUTES, CrimeReportUpdate, Witness, is_blank

logger = logging.getLogger(__name__)

# Supported languages with their codes
SUPPORTED_LANGUAGES = {
    "en": "English",
    "es": "Spanish",
    "zh": "Chinese (Simplified)",
    "vi": "Vietnamese",
    "ko": "Korean",
    "tl": "Tagalog",
    "ar": "Arabic",
    "fr": "French",
    "de": "German",
    "pt": "Portuguese",
    "ru": "Russian",
    "ja": "Japanese",
    "hi": "Hindi",
}

_SCALAR_MEMBERS = (
    "crime_type",
    "when_text",
    "location_text",
    "weapon",
    "injuries",
    "property_damage",
    "weather",
    "evidence_observations",
    "incident_description",
)


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("```")[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    return text


class TranslationService:
    """Language detection and translation backed by the Gemini lite model."""

    def __init__(self):
        self.client = None
        self._initialize_client()

    def _initialize_client(self):
        try:
            if settings.google_api_key:
                self.client = genai.Client(api_key=settings.google_api_key)
                logger.info("Translation service initialized")
            else:
                logger.warning("GOOGLE_API_KEY not set, translation service not initialized")
        except Exception as e:
            logger.error(f"Failed to initialize translation service: {e}")
            self.client = None

    async def _generate(self, prompt: str, max_output_tokens: int, json_output: bool = False) -> str:
        config = types.GenerateContentConfig(
            temperature=0.1,
            max_output_tokens=max_output_tokens,
            response_mime_type="application/json" if json_output else None,
        )
        response = await asyncio.to_thread(
            self.client.models.generate_content,
            model=settings.gemini_lite_model,
            contents=prompt,
            config=config,
        )
        return (response.text or "").strip()

    async def detect_language(self, text: str) -> Tuple[str, float]:
        """
        Detect the language of the given text.

        Returns:
            Tuple of (ISO 639-1 language code, confidence)
        """
        if not self.client or not text.strip():
            return ("en", 1.0)

        try:
            prompt = f"""Detect the language of this text and respond with ONLY a JSON object.

Text: "{text}"

Response format:
{{"language_code": "xx", "confidence": 0.95}}

Use ISO 639-1 language codes (en, es, zh, vi, ko, etc.)."""

            result = json.loads(_strip_code_fence(await self._generate(prompt, 100, json_output=True)))
            lang_code = result.get("language_code") or "en"
            confidence = float(result.get("confidence", 0.5))
            logger.debug(f"Detected language: {lang_code} (confidence: {confidence})")
            return (lang_code, confidence)

        except Exception as e:
            logger.warning(f"Language detection failed: {e}")
            return ("en", 0.5)

    async def translate(
        self,
        text: str,
        target_language: str,
        source_language: Optional[str] = None,
    ) -> Tuple[str, str]:
        """
        Translate text to the target language.

        Returns:
            Tuple of (translated_text, source_language). On any failure the
            original text is returned unchanged.
        """
        if not self.client or not text.strip():
            return (text, source_language or "en")

        if not source_language:
            source_language, _ = await self.detect_language(text)

        if source_language == target_language:
            return (text, source_language)

        try:
            target_name = SUPPORTED_LANGUAGES.get(target_language, target_language)
            source_name = SUPPORTED_LANGUAGES.get(source_language, source_language)

            prompt = f"""Translate the following text from {source_name} to {target_name}.
Preserve the meaning and any names, addresses, phone numbers and license plates.
Return ONLY the translated text, nothing else.

Text to translate:
{text}"""

            translated = await self._generate(prompt, 2000)
            if not translated:
                return (text, source_language)
            logger.debug(f"Translated from {source_language} to {target_language}: {text[:50]}... -> {translated[:50]}...")
            return (translated, source_language)

        except Exception as e:
            logger.error(f"Translation failed: {e}")
            return (text, source_language)

    async def translate_many_to_english(self, texts: List[str]) -> List[str]:
        """Translate a batch of short texts in one request.

        Texts already in English come back unchanged. If the model answer
        cannot be matched item for item, the originals are returned.
        """
        if not self.client or not texts:
            return list(texts)

        try:
            prompt = f"""You receive a JSON array of short statements from a crime report.
Translate every item into English. Items already in English must be returned unchanged.
Keep names, addresses, phone numbers and license plates exactly as written.
Respond with ONLY a JSON array of strings with the same length and order.

{json.dumps(texts, ensure_ascii=False)}"""

            result = json.loads(_strip_code_fence(await self._generate(prompt, 4000, json_output=True)))
            if not isinstance(result, list) or len(result) != len(texts):
                logger.warning("Batch translation returned a mismatched result, keeping original text")
                return list(texts)
            return [
                translated if isinstance(translated, str) and translated.strip() else original
                for original, translated in zip(texts, result)
            ]

        except Exception as e:
            logger.error(f"Batch translation failed: {e}")
            return list(texts)

    async def translate_update_to_english(self, update: CrimeReportUpdate) -> CrimeReportUpdate:
        """Return a copy of ``update`` with every text member in English.

        Clear markers ("" / "N/A") are left alone so they keep their meaning.
        """
        slots: List[Tuple[Any, ...]] = []
        texts: List[str] = []

        def collect(slot: Tuple[Any, ...], value: Optional[str]):
            if value is not None and not is_blank(value):
                slots.append(slot)
                texts.append(value)

        for member in _SCALAR_MEMBERS:
            collect(("scalar", member), getattr(update, member))
        if update.suspect is not None:
            for attr in SUSPECT_ATTRIBUTES:
                collect(("suspect", attr), getattr(update.suspect, attr))
        for member in ("vehicles", "cameras"):
            for index, item in enumerate(getattr(update, member) or []):
                collect(("list", member, index), item)
        # Contacts are phone numbers or emails and stay verbatim
        for index, witness in enumerate(update.witnesses or []):
            collect(("witness", index), witness.name)

        if not texts:
            return update

        translated = await self.translate_many_to_english(texts)
        result = update.model_copy(deep=True)
        for slot, text in zip(slots, translated):
            kind = slot[0]
            if kind == "scalar":
                setattr(result, slot[1], text)
            elif kind == "suspect":
                setattr(result.suspect, slot[1], text)
            elif kind == "list":
                getattr(result, slot[1])[slot[2]] = text
            else:
                witness = result.witnesses[slot[1]]
                result.witnesses[slot[1]] = Witness(name=text, contact=witness.contact)
        return result

    async def translate_for_caller(self, reply: str, caller_language: Optional[str]) -> str:
        """Translate an English assistant reply into the caller's language."""
        if not caller_language or caller_language == "en":
            return reply
        translated, _ = await self.translate(
            text=reply,
            target_language=caller_language,
            source_language="en",
        )
        return translated


# Global singleton instance
translation_service = TranslationService()
