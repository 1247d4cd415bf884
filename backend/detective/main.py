import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from detective.agents.phone_turn import handle_recording
from detective.agents.report_agent import evict_idle_agents
from detective.api.routes import router as api_router
from detective.api.telephony import router as telephony_router
from detective.config import settings
from detective.middleware.request_logging import RequestLoggingMiddleware
from detective.services.session_store import get_session_store
from detective.services.transcription_queue import transcription_queue

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Detective Desk application")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.debug}")

    settings.validate_config()

    store = get_session_store()
    await store.initialize()
    logger.info("Session store initialized")

    transcription_queue.set_handler(handle_recording)
    await transcription_queue.start()
    logger.info("Started transcription queue")

    async def _purge_sessions_periodically():
        while True:
            await asyncio.sleep(settings.session_purge_interval_seconds)
            try:
                await store.purge_expired()
            except Exception as e:
                logger.error(f"Session purge failed: {e}")
            evict_idle_agents(settings.agent_idle_minutes * 60)

    purge_task = asyncio.create_task(_purge_sessions_periodically())
    logger.info("Started session purge background task")

    yield

    purge_task.cancel()
    await transcription_queue.stop()
    await store.close()
    logger.info("Shutting down Detective Desk application")


app = FastAPI(
    title="Detective Desk API",
    description="Conversational crime reporting assistant",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Consistent 500 responses carrying the request ID. Debug mode adds the
    error type and message.
    """
    request_id = getattr(request.state, 'request_id', 'unknown')

    logger.error(
        f"Unhandled exception in {request.method} {request.url.path} | "
        f"ID: {request_id} | Error: {str(exc)}",
        exc_info=True
    )

    error_detail = {
        "detail": "Internal server error",
        "request_id": request_id,
        "path": str(request.url.path)
    }
    if settings.debug:
        error_detail["error_type"] = exc.__class__.__name__
        error_detail["error_message"] = str(exc)

    return JSONResponse(
        status_code=500,
        content=error_detail,
        headers={"X-Request-ID": request_id}
    )


# CORS middleware
is_wildcard = settings.allowed_origins == ["*"]
if is_wildcard and settings.environment == "production":
    logger.warning(
        "CORS is set to allow ALL origins (*) in production. "
        "Set ALLOWED_ORIGINS to specific domains for security."
    )
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=not is_wildcard,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router, prefix="/api", tags=["api"])
app.include_router(telephony_router, prefix="/twilio", tags=["telephony"])

# Locally stored evidence, sketches and spoken replies
os.makedirs(settings.upload_dir, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "detective.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
