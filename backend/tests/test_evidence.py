"""
Tests for evidence intake and local file storage.
"""

from unittest.mock import AsyncMock

import pytest

from detective.services.evidence import (
    NOT_AN_IMAGE,
    EvidenceItem,
    EvidenceService,
    EvidenceValidationError,
    observations_text,
)
from detective.services.storage import StorageService, safe_filename


@pytest.fixture
def storage(tmp_path):
    return StorageService(upload_dir=str(tmp_path), public_base_url="http://test/")


@pytest.fixture
def service(storage):
    evidence = EvidenceService(storage=storage, max_upload_size_mb=1)
    evidence.client = None
    return evidence


class TestSafeFilename:
    def test_strips_path_and_unsafe_characters(self):
        name = safe_filename("../../etc/pass wd?.jpg")
        assert "/" not in name
        assert name.endswith("pass_wd_.jpg")

    def test_default_for_missing_name(self):
        assert safe_filename(None).endswith("upload")


class TestEvidenceService:
    """Tests for EvidenceService.process_upload."""

    async def test_non_image_is_stored_without_observation(self, service, tmp_path):
        item = await service.process_upload("notes.txt", b"statement", "text/plain")

        assert item.observation == NOT_AN_IMAGE
        assert item.url.startswith("http://test/uploads/evidence/")
        stored = list((tmp_path / "evidence").iterdir())
        assert stored[0].read_bytes() == b"statement"

    async def test_image_is_described(self, service, monkeypatch):
        monkeypatch.setattr(service, "describe_image", AsyncMock(return_value="A red sedan with a broken window."))
        item = await service.process_upload("car.jpg", b"\xff\xd8\xff", "image/jpeg")
        assert item.observation == "A red sedan with a broken window."

    async def test_empty_file_rejected(self, service):
        with pytest.raises(EvidenceValidationError):
            await service.process_upload("empty.jpg", b"", "image/jpeg")

    async def test_oversized_file_rejected(self, service):
        with pytest.raises(EvidenceValidationError):
            await service.process_upload("big.bin", b"x" * (1024 * 1024 + 1), None)

    async def test_storage_failure_returns_none(self, service, monkeypatch):
        monkeypatch.setattr(service.storage, "upload_file", AsyncMock(return_value=None))
        assert await service.process_upload("a.txt", b"a", "text/plain") is None


class TestObservationsText:
    def test_skips_placeholder_observations(self):
        items = [
            EvidenceItem(filename="a.jpg", url="u1", observation="A knife on the ground."),
            EvidenceItem(filename="b.txt", url="u2", observation=NOT_AN_IMAGE),
        ]
        assert observations_text(items) == "a.jpg: A knife on the ground."
