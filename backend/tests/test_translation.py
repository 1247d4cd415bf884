"""
Tests for translation of report updates and caller replies.
"""

import json
from unittest.mock import AsyncMock

import pytest

from detective.models.schemas import CrimeReportUpdate
from detective.services.translation_service import TranslationService


@pytest.fixture
def service():
    translator = TranslationService()
    translator.client = object()
    return translator


class TestTranslateMany:
    """Tests for batch translation."""

    async def test_batch(self, service, monkeypatch):
        monkeypatch.setattr(service, "_generate", AsyncMock(return_value='```json\n["red car", "knife"]\n```'))
        assert await service.translate_many_to_english(["carro rojo", "cuchillo"]) == ["red car", "knife"]

    async def test_mismatched_length_keeps_originals(self, service, monkeypatch):
        monkeypatch.setattr(service, "_generate", AsyncMock(return_value='["red car"]'))
        assert await service.translate_many_to_english(["carro rojo", "cuchillo"]) == ["carro rojo", "cuchillo"]

    async def test_failure_keeps_originals(self, service, monkeypatch):
        monkeypatch.setattr(service, "_generate", AsyncMock(side_effect=RuntimeError("quota")))
        assert await service.translate_many_to_english(["hola"]) == ["hola"]

    async def test_without_client(self):
        translator = TranslationService()
        translator.client = None
        assert await translator.translate_many_to_english(["hola"]) == ["hola"]


class TestTranslateUpdate:
    """Tests for translate_update_to_english."""

    async def test_every_text_member_is_translated(self, service, monkeypatch):
        async def upper(texts):
            return [text.upper() for text in texts]

        monkeypatch.setattr(service, "translate_many_to_english", upper)
        update = CrimeReportUpdate.model_validate({
            "crimeType": "robo",
            "weapon": "N/A",
            "suspect": {"hair": "negro"},
            "vehicles": ["carro rojo"],
            "witnesses": ["Juan (juan.perez@correo.mx)", "Ana (555-0142)"],
            "mystery": "x",
        })

        translated = await service.translate_update_to_english(update)

        assert translated.crime_type == "ROBO"
        assert translated.weapon == "N/A"
        assert translated.suspect.hair == "NEGRO"
        assert translated.vehicles == ["CARRO ROJO"]
        assert [w.key() for w in translated.witnesses] == [("JUAN", "juan.perez@correo.mx"), ("ANA", "555-0142")]
        assert translated.unknown_fields == {"mystery": "x"}
        assert update.crime_type == "robo"

    async def test_nothing_to_translate(self, service, monkeypatch):
        batch = AsyncMock()
        monkeypatch.setattr(service, "translate_many_to_english", batch)
        update = CrimeReportUpdate.model_validate({"coordinates": {"lat": 1, "lng": 2}})
        assert await service.translate_update_to_english(update) is update
        batch.assert_not_awaited()


class TestCallerReplies:
    """Tests for detection and reply translation."""

    async def test_detect_language(self, service, monkeypatch):
        monkeypatch.setattr(
            service, "_generate", AsyncMock(return_value=json.dumps({"language_code": "es", "confidence": 0.9}))
        )
        assert await service.detect_language("me robaron") == ("es", 0.9)

    async def test_english_caller_is_not_translated(self, service, monkeypatch):
        translate = AsyncMock()
        monkeypatch.setattr(service, "translate", translate)
        assert await service.translate_for_caller("Where?", "en") == "Where?"
        translate.assert_not_awaited()

    async def test_reply_translated_for_caller(self, service, monkeypatch):
        monkeypatch.setattr(service, "translate", AsyncMock(return_value=("¿Dónde?", "en")))
        assert await service.translate_for_caller("Where?", "es") == "¿Dónde?"
