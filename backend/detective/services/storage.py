import asyncio
import logging
import os
import re
import uuid
from typing import Optional

from google.cloud import storage

from detective.config import settings

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: Optional[str], default: str = "upload") -> str:
    """Strip directories and unsafe characters, prefix with a unique id."""
    base = os.path.basename(filename or "") or default
    base = _UNSAFE_FILENAME_CHARS.sub("_", base).strip("._") or default
    return f"{uuid.uuid4().hex[:12]}_{base}"


class StorageService:
    """Stores evidence, sketches and spoken replies.

    Files go to Google Cloud Storage when a project is configured; otherwise
    they are written under the local upload directory, which the app serves
    at ``/uploads``.
    """

    def __init__(self, upload_dir: Optional[str] = None, public_base_url: Optional[str] = None):
        self.client = None
        self.bucket_name = settings.gcs_bucket
        self.bucket = None
        self.upload_dir = upload_dir or settings.upload_dir
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")
        self._initialize_client()

    def _initialize_client(self):
        try:
            if settings.gcp_project_id:
                self.client = storage.Client(project=settings.gcp_project_id)
                self.bucket = self.client.bucket(self.bucket_name)
                logger.info(f"GCS client initialized for bucket: {self.bucket_name}")
            else:
                logger.warning("GCP_PROJECT_ID not set, files are stored locally")
        except Exception as e:
            logger.error(f"Failed to initialize GCS client: {e}")
            self.client = None
            self.bucket = None

    def _upload_to_gcs(self, data: bytes, blob_name: str, content_type: str) -> str:
        blob = self.bucket.blob(blob_name)
        blob.upload_from_string(data, content_type=content_type)
        blob.make_public()
        return blob.public_url

    def _write_local(self, data: bytes, blob_name: str) -> str:
        path = os.path.join(self.upload_dir, blob_name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        return f"{self.public_base_url}/uploads/{blob_name}"

    async def upload_file(
        self,
        data: bytes,
        filename: str,
        content_type: str = "application/octet-stream",
        folder: str = "evidence",
    ) -> Optional[str]:
        """
        Store a file and return its public URL.

        Args:
            data: File bytes
            filename: Already sanitized file name
            content_type: MIME type of the file
            folder: Top-level folder (evidence, sketches, audio)

        Returns:
            Public URL of the stored file, or None on failure
        """
        blob_name = f"{folder}/{filename}"
        try:
            if self.bucket is not None:
                url = await asyncio.to_thread(self._upload_to_gcs, data, blob_name, content_type)
                logger.info(f"Uploaded {blob_name} to GCS: {url}")
            else:
                url = await asyncio.to_thread(self._write_local, data, blob_name)
                logger.info(f"Stored {blob_name} locally: {url}")
            return url
        except Exception as e:
            logger.error(f"Failed to store {blob_name}: {e}")
            return None

    async def upload_audio(self, audio_data: bytes, call_sid: str, content_type: str = "audio/wav") -> Optional[str]:
        """Store a spoken reply so the phone provider can fetch and play it."""
        filename = f"{call_sid}_{uuid.uuid4().hex[:8]}.wav"
        return await self.upload_file(audio_data, filename, content_type=content_type, folder="audio")

    def health_check(self) -> bool:
        if not self.bucket:
            return os.path.isdir(self.upload_dir) or not os.path.exists(self.upload_dir)
        try:
            self.bucket.exists()
            return True
        except Exception as e:
            logger.error(f"GCS health check failed: {e}")
            return False


# Global instance
storage_service = StorageService()
