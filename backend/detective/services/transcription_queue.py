"""
Background queue for phone recording transcription.

Webhooks enqueue a job and return immediately. Worker tasks run each job
through the registered handler, retrying a fixed number of times with a
fixed delay. Jobs that fail every attempt are logged and dropped.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from detective.config import settings

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TranscriptionJob:
    call_sid: str
    recording_url: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    attempts: int = 0
    status: JobStatus = JobStatus.PENDING
    error: Optional[str] = None
    # Results of finished steps, kept so a retry resumes after them
    transcript: Optional[str] = None
    reply: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "call_sid": self.call_sid,
            "recording_url": self.recording_url,
            "created_at": self.created_at.isoformat(),
            "attempts": self.attempts,
            "status": self.status.value,
            "error": self.error,
        }


JobHandler = Callable[[TranscriptionJob], Awaitable[None]]


class TranscriptionQueue:
    """In-process worker queue with bounded retry."""

    DEFAULT_MAX_QUEUE_SIZE = 100
    DEFAULT_WORKERS = 2

    def __init__(
        self,
        handler: Optional[JobHandler] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE,
        workers: int = DEFAULT_WORKERS,
    ):
        self._handler = handler
        self.max_attempts = max(1, max_attempts or settings.transcription_max_attempts)
        self.backoff_seconds = settings.transcription_backoff_seconds if backoff_seconds is None else backoff_seconds
        self._queue: "asyncio.Queue[TranscriptionJob]" = asyncio.Queue(maxsize=max_queue_size)
        self._worker_count = workers
        self._workers: List[asyncio.Task] = []
        self._is_running = False
        self._stats = {
            "total_queued": 0,
            "total_completed": 0,
            "total_failed": 0,
            "total_retries": 0,
            "total_rejected": 0,
        }

    def set_handler(self, handler: JobHandler):
        self._handler = handler

    async def start(self):
        """Start the worker tasks."""
        if self._is_running:
            return
        self._is_running = True
        self._workers = [
            asyncio.create_task(self._worker_loop(i)) for i in range(self._worker_count)
        ]
        logger.info(f"Transcription queue started with {self._worker_count} workers")

    async def stop(self):
        self._is_running = False
        for task in self._workers:
            task.cancel()
        for task in self._workers:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._workers = []
        logger.info("Transcription queue stopped")

    def enqueue(self, call_sid: str, recording_url: str) -> Optional[TranscriptionJob]:
        """Queue a recording for transcription. Returns None if the queue is full."""
        job = TranscriptionJob(call_sid=call_sid, recording_url=recording_url)
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            self._stats["total_rejected"] += 1
            logger.warning(f"Transcription queue full, dropping recording for call {call_sid}")
            return None
        self._stats["total_queued"] += 1
        logger.info(f"Queued transcription job {job.id} for call {call_sid} (queue size: {self._queue.qsize()})")
        return job

    async def join(self):
        """Wait until every queued job has finished."""
        await self._queue.join()

    async def _worker_loop(self, worker_id: int):
        while self._is_running:
            try:
                job = await self._queue.get()
            except asyncio.CancelledError:
                break
            try:
                await self.run_job(job)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Worker {worker_id} crashed on job {job.id}: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    async def run_job(self, job: TranscriptionJob) -> TranscriptionJob:
        """Run one job through the handler with retries."""
        if self._handler is None:
            job.status = JobStatus.FAILED
            job.error = "No transcription handler registered"
            logger.error(f"Transcription job {job.id} dropped: {job.error}")
            self._stats["total_failed"] += 1
            return job

        job.status = JobStatus.PROCESSING
        while job.attempts < self.max_attempts:
            job.attempts += 1
            try:
                await self._handler(job)
            except Exception as e:
                job.error = str(e)
                if job.attempts >= self.max_attempts:
                    break
                self._stats["total_retries"] += 1
                logger.warning(
                    f"Transcription job {job.id} attempt {job.attempts}/{self.max_attempts} failed: {e}; "
                    f"retrying in {self.backoff_seconds}s"
                )
                await asyncio.sleep(self.backoff_seconds)
            else:
                job.status = JobStatus.COMPLETED
                job.error = None
                self._stats["total_completed"] += 1
                logger.info(f"Transcription job {job.id} completed after {job.attempts} attempt(s)")
                return job

        job.status = JobStatus.FAILED
        self._stats["total_failed"] += 1
        logger.error(f"Transcription job {job.id} for call {job.call_sid} failed after {job.attempts} attempts: {job.error}")
        return job

    def get_status(self) -> Dict:
        return {
            "is_running": self._is_running,
            "queue_size": self._queue.qsize(),
            "max_attempts": self.max_attempts,
            "backoff_seconds": self.backoff_seconds,
            "statistics": dict(self._stats),
        }


# Global instance
transcription_queue = TranscriptionQueue()
