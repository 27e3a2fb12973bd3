"""Offline feed that replays a bundled telemetry snapshot."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from arplanes.config import settings
from arplanes.ingestors.feed import BatchHandler, ConnectionState, FeedBatch, StateHandler, parse_feed_message
from arplanes.models.flight import GeoPosition

logger = logging.getLogger("arplanes.ingestors.fixtures")

FIXTURE_DIR = Path(__file__).resolve().parent.parent / "fixtures"


def available_fixtures() -> list[str]:
    return sorted(path.stem for path in FIXTURE_DIR.glob("*.json"))


def load_fixture(name: str) -> FeedBatch:
    """Parse a bundled fixture written in the live feed's wire format."""

    path = FIXTURE_DIR / f"{name}.json"
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("Failed to read feed fixture %s: %s", path, exc)
        return FeedBatch(error=f"fixture {name!r} unavailable")
    return parse_feed_message(text)


class FixtureFeed:
    """Serve the same fixture batch on start and after every location update."""

    def __init__(
        self,
        *,
        fixture: str | None = None,
        location: GeoPosition | None = None,
        on_batch: BatchHandler | None = None,
        on_state_change: StateHandler | None = None,
    ) -> None:
        self.fixture = fixture or settings.feed_fixture
        self.location = location
        self.on_batch = on_batch
        self.on_state_change = on_state_change
        self._state = ConnectionState.DISCONNECTED
        self._stopped = asyncio.Event()

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def run(self) -> None:
        self._stopped.clear()
        self._set_state(ConnectionState.CONNECTED)
        logger.info("Serving flights from fixture %r", self.fixture)
        try:
            await self._emit()
            await self._stopped.wait()
        finally:
            self._set_state(ConnectionState.DISCONNECTED)

    async def update_location(self, location: GeoPosition) -> None:
        self.location = location
        if self._state == ConnectionState.CONNECTED:
            await self._emit()

    async def stop(self) -> None:
        self._stopped.set()

    async def _emit(self) -> None:
        batch = load_fixture(self.fixture)
        if self.on_batch is not None:
            await self.on_batch(batch)

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        if self.on_state_change is not None:
            self.on_state_change(state)


__all__ = ["FIXTURE_DIR", "FixtureFeed", "available_fixtures", "load_fixture"]
