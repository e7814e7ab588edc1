"""FastAPI application for Idea Bank."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import text

from ideabank.alerts_api import router as alerts_router
from ideabank.config import settings
from ideabank.content_api import router as content_router
from ideabank.db.connection import close_db, get_session_factory, init_db
from ideabank.dependencies import get_coordinator, get_publisher, set_publisher
from ideabank.exceptions import (
    AllocationError,
    ChannelPublishError,
    CrossReferenceError,
    DuplicateChannelPublishError,
    IdeaBankError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ideabank.ideas_api import router as ideas_router
from ideabank.reports import router as reports_router
from ideabank.services.publisher import PublishScheduler
from ideabank.telegram.notifications import create_notifier, start_scheduler, stop_scheduler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Idea Bank",
    description="Idea lifecycle and multi-channel publishing pipeline",
    version="1.0.0"
)

app.include_router(ideas_router)
app.include_router(content_router)
app.include_router(alerts_router)
app.include_router(reports_router)

Instrumentator().instrument(app).expose(app, endpoint="/metrics")

ERROR_STATUS: list[tuple[type[IdeaBankError], int]] = [
    (NotFoundError, 404),
    (ValidationError, 400),
    (InvalidTransitionError, 409),
    (DuplicateChannelPublishError, 409),
    (CrossReferenceError, 409),
    (AllocationError, 503),
    (ChannelPublishError, 502),
]


@app.exception_handler(IdeaBankError)
async def idea_bank_error_handler(request: Request, exc: IdeaBankError) -> JSONResponse:
    """Map domain errors to HTTP responses; state is unchanged on all of them."""
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


@app.on_event("startup")
async def startup_event():
    """Initialize directories and database, start the publisher and scheduler."""
    settings.ensure_directories()
    await init_db()
    logger.info("Database connection initialized")

    coordinator = get_coordinator()
    notifier = create_notifier()

    if settings.PUBLISHER_ENABLED:
        publisher = PublishScheduler(coordinator, notifier=notifier)
        await publisher.start(settings.PUBLISH_POLL_SECONDS)
        set_publisher(publisher)

    start_scheduler(coordinator, notifier)

    logger.info("Idea Bank started")
    logger.info(f"Vault: {settings.VAULT_DIR}")
    logger.info(f"Channels: {', '.join(sorted(coordinator.channels))}")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop workers and scheduler, close database and HTTP clients."""
    stop_scheduler()

    publisher = get_publisher()
    if publisher is not None:
        await publisher.stop()
        set_publisher(None)

    await close_db()
    logger.info("Database connection closed")


@app.get("/health")
async def health_check():
    """Database reachability, publisher state and id watermark."""
    database = False
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        database = True
    except Exception as e:
        logger.warning(f"Health check failed: {e}")

    publisher = get_publisher()
    return {
        "status": "healthy" if database else "degraded",
        "database": database,
        "publisher_running": publisher is not None,
        "channels": sorted(get_coordinator().channels),
    }
