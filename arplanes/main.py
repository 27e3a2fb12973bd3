from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any

from fastapi import FastAPI, Request

from arplanes.api import api_router
from arplanes.config import settings
from arplanes.ingestors import FeedClient, FixtureFeed, OpenSkyFeed
from arplanes.models import GeoPosition
from arplanes.services import TrackingSession

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger("arplanes")


def build_feed(source: str | None = None) -> Any:
    """Create the configured telemetry source."""

    source = (source or settings.feed_source).lower()
    if source == "fixture":
        return FixtureFeed()
    if source == "opensky":
        return OpenSkyFeed()
    if source != "websocket":
        logger.warning("Unknown feed source %r; using the live WebSocket feed", source)
    return FeedClient(on_error=lambda exc: logger.debug("Feed error: %s", exc))


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the tracking session and its feed for the lifetime of the app."""

    session = TrackingSession()
    feed = build_feed()
    session.attach_feed(feed)
    app.state.session = session

    app.state.session_task = asyncio.create_task(session.run())
    if settings.viewer_location:
        await session.submit_location(_viewer_from_settings(settings.viewer_location))
    app.state.feed_task = asyncio.create_task(feed.run())
    logger.info("Tracking session started with %s feed", settings.feed_source)

    try:
        yield
    finally:
        await feed.stop()
        for name in ("feed_task", "session_task"):
            task = getattr(app.state, name, None)
            if task:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        logger.info("Tracking session stopped")


def _viewer_from_settings(values: tuple[float, ...]) -> GeoPosition:
    altitude = values[2] if len(values) > 2 else 0.0
    return GeoPosition(latitude=values[0], longitude=values[1], altitude=altitude)


app = FastAPI(title="AR Planes tracking core", lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log basic request information for observability."""

    start_time = time.time()
    response = await call_next(request)
    duration_ms = (time.time() - start_time) * 1000
    logger.info(
        "HTTP %s %s -> %s (%.2f ms)",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


app.include_router(api_router)


@app.get("/", summary="Root")
def read_root() -> dict[str, str]:
    """Basic root endpoint for quick verification."""

    return {"message": "AR Planes tracking core is running"}
