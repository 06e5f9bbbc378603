"""
Mail Parse Service - Email Parsing and Attachment Delivery API
==============================================================

Accepts raw email messages, returns their structured content and serves the
extracted attachments for a limited time behind bearer or temporary-token
authentication.

Features:
- MIME parsing with inline image resolution (cid: to data URI)
- Size policy with readable skip reasons
- TTL-bound attachment storage with background eviction
- Temporary download tokens independent of the attachment lifetime
"""

import logging
import time
from typing import Callable, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import ORJSONResponse

from attachments_router import router as attachments_router
from config import Config, config
from models import HealthResponse
from services.attachment_manager import AttachmentManager
from services.eviction_sweeper import EvictionSweeper

from .parse_routes import router as parse_router

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
    ]
)

# Silence noisy third-party loggers to avoid cluttering output
_noisy_loggers = [
    'httpcore',
    'httpx',
    'multipart',
    'python_multipart',
    'uvicorn.access',
]
for _logger_name in _noisy_loggers:
    logging.getLogger(_logger_name).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"

health_router = APIRouter(tags=["health"])


@health_router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness probe, no authentication"""
    return HealthResponse()


def create_app(app_config: Optional[Config] = None, *, clock: Callable[[], float] = time.time) -> FastAPI:
    """
    Build a FastAPI application with its own attachment state.

    The AttachmentManager is created here and kept on ``app.state`` together
    with the eviction sweeper, which is started and stopped with the
    application's lifecycle events.
    """
    app_config = app_config or config
    level = logging.getLevelName(app_config.LOG_LEVEL)
    if isinstance(level, int):
        logging.getLogger().setLevel(level)

    app = FastAPI(
        title="Mail Parse Service",
        description="Email parsing with time-limited attachment delivery",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        default_response_class=ORJSONResponse,
    )

    settings = app_config.ATTACHMENTS
    manager = AttachmentManager(settings=settings, clock=clock)
    sweeper = EvictionSweeper(
        manager,
        interval_seconds=settings.cleanup_interval_seconds,
        stop_timeout=settings.cleanup_stop_timeout_seconds,
        purge_orphans_on_start=settings.purge_orphans_on_startup,
    )
    app.state.config = app_config
    app.state.attachment_manager = manager
    app.state.eviction_sweeper = sweeper

    # Routers
    app.include_router(health_router)
    app.include_router(parse_router)
    app.include_router(attachments_router)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return ORJSONResponse(status_code=500, content={"detail": INTERNAL_ERROR_MESSAGE})

    @app.on_event("startup")
    async def startup_event():
        """Validate configuration and start the eviction sweeper"""
        app_config.validate_required()
        logger.info(
            "Attachment storage at %s (ttl=%ss, max size=%d bytes, download mode=%s)",
            settings.base_path,
            settings.ttl_seconds,
            settings.max_size_bytes,
            settings.download_mode,
        )
        await sweeper.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop background work on shutdown"""
        logger.info("Shutting down Mail Parse Service...")
        await sweeper.stop()
        logger.info("Shutdown complete")

    return app


app = create_app()
