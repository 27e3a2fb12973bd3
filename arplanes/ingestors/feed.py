"""Live WebSocket feed that trades the viewer's location for nearby flights."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import functools
import json
import logging
import math
import random
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException
from pydantic import ValidationError

from arplanes.config import settings
from arplanes.models.flight import UNKNOWN_ICAO, FlightRecord, GeoPosition

logger = logging.getLogger("arplanes.ingestors.feed")

_REQUIRED_FIELDS = ("lat", "lng", "alt")


class FeedError(RuntimeError):
    """Base error for feed problems reported to the host."""


class FeedParseError(FeedError):
    """Raised (as a signal, never thrown out of the client) for malformed messages."""


class ConnectionState(str, Enum):
    """Lifecycle of the feed connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class FeedBatch:
    """One inbound feed message turned into flight records."""

    records: list[FlightRecord] = field(default_factory=list)
    error: str | None = None
    dropped: int = 0
    received_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))

    @property
    def ok(self) -> bool:
        return self.error is None


def _finite_number(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or None for anything else."""

    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _optional_number(value: Any) -> float:
    number = _finite_number(value)
    return 0.0 if number is None else number


def parse_feed_entry(entry: Any) -> Optional[FlightRecord]:
    """Convert one aircraft object from the feed, or None if it is unusable.

    Required coordinates must be finite numbers; NaN, infinities and integers
    too large for a float count as missing.
    """

    if not isinstance(entry, dict):
        return None

    lat, lng, alt = (_finite_number(entry.get(name)) for name in _REQUIRED_FIELDS)
    if lat is None or lng is None or alt is None:
        return None

    icao = entry.get("icao")
    callsign = entry.get("call")

    try:
        return FlightRecord(
            icao=icao if isinstance(icao, str) else UNKNOWN_ICAO,
            callsign=callsign if isinstance(callsign, str) else "",
            latitude=lat,
            longitude=lng,
            altitude=alt,
            heading=_optional_number(entry.get("hdg")),
            ground_velocity=_optional_number(entry.get("gvel")),
            vertical_velocity=_optional_number(entry.get("vvel")),
        )
    except ValidationError as exc:  # pragma: no cover - guarded by the checks above
        logger.debug("Rejected feed entry %r: %s", entry, exc)
        return None


def parse_feed_message(text: str) -> FeedBatch:
    """Parse a JSON array of aircraft objects into a FeedBatch.

    Entries missing ``lat``, ``lng`` or ``alt`` are dropped individually. A
    message that is not a JSON array yields an empty batch with ``error`` set.
    """

    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as exc:
        return FeedBatch(error=f"invalid JSON: {exc}")

    if not isinstance(payload, list):
        return FeedBatch(error=f"expected a JSON array, got {type(payload).__name__}")

    records: list[FlightRecord] = []
    dropped = 0
    for entry in payload:
        record = parse_feed_entry(entry)
        if record is None:
            dropped += 1
            continue
        records.append(record)

    if dropped:
        logger.debug("Dropped %s malformed feed entries", dropped)
    return FeedBatch(records=records, dropped=dropped)


def format_location_message(location: GeoPosition) -> str:
    """Outbound message announcing the viewer's position."""

    return f"{location.latitude},{location.longitude}"


@dataclass
class ReconnectPolicy:
    """Exponential backoff with jitter between reconnect attempts.

    The jitter adds up to ``jitter * delay`` on top of the capped delay.
    ``max_retries`` bounds consecutive failed attempts; None retries forever.
    """

    enabled: bool = True
    initial_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: float = 0.5
    max_retries: int | None = None

    @classmethod
    def from_settings(cls) -> "ReconnectPolicy":
        return cls(
            enabled=settings.feed_reconnect,
            initial_delay=settings.feed_reconnect_initial_delay,
            max_delay=settings.feed_reconnect_max_delay,
            multiplier=settings.feed_reconnect_multiplier,
            jitter=settings.feed_reconnect_jitter,
            max_retries=settings.feed_reconnect_max_retries,
        )

    def delay_for(self, attempt: int, rand: Callable[[], float] = random.random) -> float:
        base = min(self.initial_delay * self.multiplier ** max(attempt - 1, 0), self.max_delay)
        return base + base * self.jitter * rand()

    def allows(self, attempt: int) -> bool:
        if not self.enabled:
            return False
        return self.max_retries is None or attempt <= self.max_retries


BatchHandler = Callable[[FeedBatch], Awaitable[None]]
StateHandler = Callable[[ConnectionState], None]
ErrorHandler = Callable[[Exception], None]


class FeedClient:
    """Maintain a long-running WebSocket connection to the flight feed."""

    def __init__(
        self,
        *,
        url: str | None = None,
        location: GeoPosition | None = None,
        on_batch: BatchHandler | None = None,
        on_state_change: StateHandler | None = None,
        on_error: ErrorHandler | None = None,
        reconnect: ReconnectPolicy | None = None,
        connect: Callable[[str], Any] | None = None,
        open_timeout: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.url = url or settings.feed_url
        self.location = location
        self.on_batch = on_batch
        self.on_state_change = on_state_change
        self.on_error = on_error
        self.reconnect = reconnect or ReconnectPolicy.from_settings()
        self._connect = connect or functools.partial(
            websockets.connect,
            open_timeout=open_timeout or settings.feed_open_timeout,
        )
        self._sleep = sleep
        self._socket: Any = None
        self._state = ConnectionState.DISCONNECTED
        self._stopping = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def run(self) -> None:
        """Connect and stream until stopped, cancelled or out of retries."""

        self._stopping = False
        attempt = 0
        while not self._stopping:
            self._set_state(ConnectionState.CONNECTING)
            try:
                async with self._connect(self.url) as socket:
                    self._socket = socket
                    self._set_state(ConnectionState.CONNECTED)
                    logger.info("Connected to flight feed at %s", self.url)
                    attempt = 0
                    await self._send_location()
                    async for message in socket:
                        await self._handle_message(message)
                logger.info("Flight feed closed the connection")
            except asyncio.CancelledError:
                logger.info("Feed client cancelled")
                raise
            except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
                logger.warning("Flight feed connection error: %s", exc)
                self._report_error(exc)
            except Exception as exc:  # pragma: no cover - defensive logging
                logger.warning("Flight feed error: %s", exc, exc_info=True)
                self._report_error(exc)
            finally:
                self._socket = None
                self._set_state(ConnectionState.DISCONNECTED)

            if self._stopping:
                break

            attempt += 1
            if not self.reconnect.allows(attempt):
                logger.warning("Flight feed not reconnecting after %s attempt(s)", attempt)
                break

            delay = self.reconnect.delay_for(attempt)
            logger.info("Reconnecting to flight feed in %.1f seconds", delay)
            await self._sleep(delay)

    async def update_location(self, location: GeoPosition) -> None:
        """Record a new viewer location and push it upstream when connected."""

        self.location = location
        await self._send_location()

    async def stop(self) -> None:
        self._stopping = True
        socket = self._socket
        if socket is not None:
            with contextlib.suppress(Exception):  # pragma: no cover - best effort close
                await socket.close()

    async def _send_location(self) -> None:
        socket = self._socket
        if socket is None or self.location is None:
            return

        message = format_location_message(self.location)
        try:
            await socket.send(message)
        except ConnectionClosed as exc:
            logger.warning("Could not send viewer location: %s", exc)
            self._report_error(exc)
            return
        logger.debug("Sent viewer location %s", message)

    async def _handle_message(self, message: str | bytes) -> None:
        if not isinstance(message, str):
            logger.debug("Ignoring binary feed frame of %s bytes", len(message))
            return

        batch = parse_feed_message(message)
        if not batch.ok:
            logger.warning("Malformed feed message: %s", batch.error)
            self._report_error(FeedParseError(batch.error))

        if self.on_batch is not None:
            await self.on_batch(batch)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        if self.on_state_change is not None:
            self.on_state_change(state)

    def _report_error(self, exc: Exception) -> None:
        if self.on_error is not None:
            self.on_error(exc)


__all__ = [
    "ConnectionState",
    "FeedBatch",
    "FeedClient",
    "FeedError",
    "FeedParseError",
    "ReconnectPolicy",
    "format_location_message",
    "parse_feed_entry",
    "parse_feed_message",
]
