"""Polling feed backed by the OpenSky Network REST API."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from typing import Any, Optional

import httpx

from arplanes.config import settings
from arplanes.ingestors.feed import BatchHandler, ConnectionState, FeedBatch, StateHandler
from arplanes.models.flight import UNKNOWN_ICAO, FlightRecord, GeoPosition

logger = logging.getLogger("arplanes.ingestors.opensky")

_KM_PER_DEGREE = 111.32


def _number(value: Any) -> float | None:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def parse_state_vector(entry: Any) -> Optional[FlightRecord]:
    """Convert one OpenSky state vector, or None if it has no usable position."""

    if not isinstance(entry, (list, tuple)) or len(entry) < 8:
        return None

    icao = entry[0].strip().upper() if isinstance(entry[0], str) and entry[0].strip() else UNKNOWN_ICAO
    callsign = entry[1] if isinstance(entry[1], str) else ""
    lon = _number(entry[5])
    lat = _number(entry[6])
    geo_altitude = _number(entry[13]) if len(entry) > 13 else None
    altitude = geo_altitude if geo_altitude is not None else _number(entry[7])

    if lat is None or lon is None or altitude is None:
        return None

    velocity = _number(entry[9]) if len(entry) > 9 else None
    heading = _number(entry[10]) if len(entry) > 10 else None
    vertical_rate = _number(entry[11]) if len(entry) > 11 else None

    return FlightRecord(
        icao=icao,
        callsign=callsign,
        latitude=lat,
        longitude=lon,
        altitude=altitude,
        heading=heading or 0.0,
        ground_velocity=velocity or 0.0,
        vertical_velocity=vertical_rate or 0.0,
    )


class OpenSkyFeed:
    """Poll nearby state vectors around the viewer on a fixed interval."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        radius_km: float | None = None,
        poll_interval: float | None = None,
        location: GeoPosition | None = None,
        on_batch: BatchHandler | None = None,
        on_state_change: StateHandler | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or settings.opensky_base_url
        self.timeout = timeout or settings.opensky_timeout
        self.radius_km = radius_km or settings.opensky_radius_km
        self.poll_interval = poll_interval or settings.opensky_poll_interval
        self.location = location
        self.on_batch = on_batch
        self.on_state_change = on_state_change
        self.transport = transport
        self._state = ConnectionState.DISCONNECTED
        self._wake = asyncio.Event()
        self._stopping = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def fetch_states(self, location: GeoPosition) -> FeedBatch:
        lat_delta = self.radius_km / _KM_PER_DEGREE
        lon_delta = self.radius_km / max(
            _KM_PER_DEGREE * math.cos(math.radians(location.latitude)), 0.0001
        )
        params = {
            "lamin": location.latitude - lat_delta,
            "lomin": location.longitude - lon_delta,
            "lamax": location.latitude + lat_delta,
            "lomax": location.longitude + lon_delta,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.get(self.base_url, params=params)
        except httpx.TimeoutException as exc:
            logger.warning("OpenSky request timed out: %s", exc)
            return FeedBatch(error="request timed out")
        except httpx.RequestError as exc:
            logger.warning("OpenSky request failed: %s", exc)
            return FeedBatch(error="request failed")

        if response.status_code == 429:
            logger.warning("OpenSky rate limit encountered: %s", response.text)
            return FeedBatch(error="rate limited")
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "OpenSky returned HTTP %s: %s", exc.response.status_code, exc
            )
            return FeedBatch(error=f"HTTP {exc.response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            logger.warning("Failed to parse OpenSky JSON response: %s", exc)
            return FeedBatch(error="invalid JSON")

        if not isinstance(payload, dict):
            return FeedBatch(error="unexpected payload")

        records: list[FlightRecord] = []
        dropped = 0
        for entry in payload.get("states") or []:
            record = parse_state_vector(entry)
            if record is None:
                dropped += 1
                continue
            records.append(record)

        logger.debug("Polled %s aircraft from OpenSky", len(records))
        return FeedBatch(records=records, dropped=dropped)

    async def run(self) -> None:
        self._stopping = False
        self._set_state(ConnectionState.CONNECTED)
        try:
            while not self._stopping:
                self._wake.clear()
                if self.location is not None:
                    batch = await self.fetch_states(self.location)
                    if self.on_batch is not None:
                        await self.on_batch(batch)
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(self._wake.wait(), timeout=self.poll_interval)
        finally:
            self._set_state(ConnectionState.DISCONNECTED)

    async def update_location(self, location: GeoPosition) -> None:
        self.location = location
        self._wake.set()

    async def stop(self) -> None:
        self._stopping = True
        self._wake.set()

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        if self.on_state_change is not None:
            self.on_state_change(state)


__all__ = ["OpenSkyFeed", "parse_state_vector"]
