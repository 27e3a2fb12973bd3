"""Itinerary and airline enrichment for selected aircraft.

Lookups are keyed by callsign against the flight tracking site, while the
results are cached by aircraft ICAO for the rest of the session. Only a
lookup that positively shows no itinerary is cached as private; transport
and parsing failures stay retryable.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone, tzinfo
import json
import logging
import re
import threading
from typing import Any, Optional
from urllib.parse import quote

import httpx

from arplanes.config import settings
from arplanes.domain.projection import format_distance, haversine_distance
from arplanes.models.flight import UNKNOWN_ICAO, FlightRecord, GeoPosition
from arplanes.models.flight_info import PRIVATE_FLIGHT, FlightInformation, FlightStatus

logger = logging.getLogger("arplanes.enrichment")

_BOOTSTRAP_RE = re.compile(
    r"var\s+trackpollBootstrap\s*=\s*(?P<json>.*?);?\s*</script>", re.DOTALL
)


class EnrichmentError(RuntimeError):
    """Base error for itinerary lookups."""


class NoItineraryError(EnrichmentError):
    """The source answered, and it has no flight plan for this callsign."""


class EnrichmentUnavailableError(EnrichmentError):
    """The lookup failed for a reason that may not repeat."""


def format_short_time(epoch_seconds: float, tz: tzinfo | None = None) -> str:
    """Format an epoch timestamp as a short clock time such as ``9:05 PM``."""

    moment = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).astimezone(tz)
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"


def extract_bootstrap(text: str) -> dict[str, Any]:
    """Pull the embedded tracking JSON out of a flight page.

    A body that is already a JSON object is accepted as-is.
    """

    stripped = text.strip()
    if stripped.startswith("{"):
        raw = stripped
    else:
        match = _BOOTSTRAP_RE.search(text)
        if match is None:
            raise EnrichmentUnavailableError("flight page has no tracking data")
        raw = match.group("json").strip()

    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise EnrichmentUnavailableError(f"tracking data is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise EnrichmentUnavailableError("tracking data is not a JSON object")
    return payload


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _as_epoch(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def parse_flight_information(
    payload: dict[str, Any],
    *,
    logo_base_url: str | None = None,
    tz: tzinfo | None = None,
) -> FlightInformation:
    """Build FlightInformation from a tracking payload.

    An empty ``flights`` table means no itinerary. A missing or mistyped one
    means the page layout is not what we expect.
    """

    if "flights" not in payload:
        raise EnrichmentUnavailableError("tracking data has no flights table")

    flights = payload["flights"]
    if not flights:
        raise NoItineraryError("no flight plan found")
    if not isinstance(flights, dict):
        raise EnrichmentUnavailableError("flights table is not an object")

    master = next(iter(flights.values()))
    if not isinstance(master, dict):
        raise EnrichmentUnavailableError("flight entry is not an object")

    activity = _as_dict(master.get("activityLog")).get("flights")
    body = _as_dict(activity[0]) if isinstance(activity, list) and activity else {}

    origin = _as_dict(body.get("origin"))
    destination = _as_dict(body.get("destination"))
    takeoff = _as_epoch(_as_dict(body.get("takeoffTimes")).get("estimated"))
    landing = _as_epoch(_as_dict(body.get("landingTimes")).get("estimated"))
    airline = _as_dict(master.get("airline"))
    airline_code = _as_str(airline.get("icao"))

    logo_base = (logo_base_url or settings.enrichment_logo_base_url).rstrip("/")

    return FlightInformation(
        origin_airport_code=_as_str(origin.get("iata")),
        origin_airport=_as_str(origin.get("friendlyName")),
        destination_airport_code=_as_str(destination.get("iata")),
        destination_airport=_as_str(destination.get("friendlyName")),
        departure_time=format_short_time(takeoff, tz) if takeoff is not None else None,
        arrival_time=format_short_time(landing, tz) if landing is not None else None,
        aircraft_type=_as_str(body.get("aircraftTypeFriendly")),
        airline_name=_as_str(airline.get("shortName")),
        airline_code=airline_code,
        airline_logo_url=f"{logo_base}/{airline_code or '--'}.png",
    )


class FlightInfoCache:
    """Thread-safe, session-lifetime cache of flight information by ICAO."""

    def __init__(self) -> None:
        self._entries: dict[str, FlightInformation] = {}
        self._lock = threading.RLock()

    def get(self, icao: str) -> Optional[FlightInformation]:
        with self._lock:
            return self._entries.get(icao)

    def set(self, icao: str, info: FlightInformation) -> None:
        # Last writer wins.
        with self._lock:
            self._entries[icao] = info

    def mark_private(self, icao: str) -> None:
        self.set(icao, PRIVATE_FLIGHT)

    def is_private(self, icao: str) -> bool:
        info = self.get(icao)
        return info is not None and info.is_private

    def invalidate(self, icao: str) -> None:
        with self._lock:
            self._entries.pop(icao, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, icao: object) -> bool:
        with self._lock:
            return icao in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class EnrichmentService:
    """Fetch flight information asynchronously with caching and de-duplication."""

    def __init__(
        self,
        *,
        cache: FlightInfoCache | None = None,
        base_url: str | None = None,
        logo_base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        self.cache = cache if cache is not None else FlightInfoCache()
        self.base_url = (base_url or settings.enrichment_base_url).rstrip("/")
        self.logo_base_url = logo_base_url or settings.enrichment_logo_base_url
        self.timeout = timeout or settings.enrichment_timeout
        self.transport = transport
        self.tz = tz
        self._inflight: dict[str, asyncio.Task] = {}
        self.requests_made = 0

    def lookup_url(self, callsign: str) -> str:
        return f"{self.base_url}/live/flight/{quote(callsign.strip(), safe='')}"

    @staticmethod
    def cache_key(icao: str, callsign: str) -> str:
        """Cache key for an aircraft; unidentified aircraft fall back to the callsign."""
        if icao and icao != UNKNOWN_ICAO:
            return icao
        return f"{UNKNOWN_ICAO}:{callsign.strip()}"

    async def fetch(self, icao: str, callsign: str | None) -> Optional[FlightInformation]:
        """Return flight information, or None for private or unavailable flights."""

        callsign = (callsign or "").strip()
        if not callsign:
            return None

        key = self.cache_key(icao, callsign)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Flight info cache hit for %s", key)
            return None if cached.is_private else cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._lookup(key, callsign))
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                logger.debug("Flight info lookup for %s was cancelled", key)
                return None
            raise

    def cancel(self, icao: str) -> bool:
        """Abandon an in-flight lookup; its result is neither cached nor delivered."""

        task = self._inflight.pop(icao, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug("Cancelled flight info lookup for %s", icao)
        return True

    def cancel_for(self, record: FlightRecord) -> bool:
        """Abandon the in-flight lookup, if any, for a tracked aircraft."""

        return self.cancel(self.cache_key(record.icao, record.callsign))

    def in_flight(self, icao: str) -> bool:
        task = self._inflight.get(icao)
        return task is not None and not task.done()

    async def fetch_status(
        self, record: FlightRecord, viewer: GeoPosition | None = None
    ) -> FlightStatus:
        """Resolve the status card for a selected aircraft."""

        if record.is_private:
            return self._status("private", record, viewer)

        info = await self.fetch(record.icao, record.callsign)
        if info is not None:
            # Without both airports the card has nothing to show but the callsign.
            state = "ready" if info.has_route else "private"
            return self._status(state, record, viewer, info)
        if self.cache.is_private(self.cache_key(record.icao, record.callsign)):
            return self._status("private", record, viewer)
        return self._status("unavailable", record, viewer)

    def peek_status(
        self, record: FlightRecord, viewer: GeoPosition | None = None
    ) -> FlightStatus:
        """Status from the cache alone; ``loading`` when nothing is known yet."""

        if record.is_private:
            return self._status("private", record, viewer)
        cached = self.cache.get(self.cache_key(record.icao, record.callsign))
        if cached is None:
            return self._status("loading", record, viewer)
        if cached.is_private:
            return self._status("private", record, viewer)
        state = "ready" if cached.has_route else "private"
        return self._status(state, record, viewer, cached)

    async def _lookup(self, icao: str, callsign: str) -> Optional[FlightInformation]:
        try:
            payload = await self._fetch_payload(callsign)
            info = parse_flight_information(
                payload, logo_base_url=self.logo_base_url, tz=self.tz
            )
        except NoItineraryError as exc:
            logger.info("No itinerary for %s (%s): %s", callsign, icao, exc)
            self.cache.mark_private(icao)
            return None
        except EnrichmentUnavailableError as exc:
            logger.warning("Flight info lookup for %s failed: %s", callsign, exc)
            return None

        self.cache.set(icao, info)
        logger.info(
            "Fetched flight info for %s: %s -> %s",
            callsign,
            info.origin_airport_code,
            info.destination_airport_code,
        )
        return info

    async def _fetch_payload(self, callsign: str) -> dict[str, Any]:
        url = self.lookup_url(callsign)
        self.requests_made += 1
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport, follow_redirects=True
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException as exc:
            raise EnrichmentUnavailableError("flight info request timed out") from exc
        except httpx.RequestError as exc:
            raise EnrichmentUnavailableError(f"flight info request failed: {exc}") from exc

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise EnrichmentUnavailableError(
                f"flight info service returned HTTP {exc.response.status_code}"
            ) from exc

        return extract_bootstrap(response.text)

    def _forget(self, icao: str, task: asyncio.Task) -> None:
        if self._inflight.get(icao) is task:
            del self._inflight[icao]

    def _status(
        self,
        state: str,
        record: FlightRecord,
        viewer: GeoPosition | None,
        info: FlightInformation | None = None,
    ) -> FlightStatus:
        distance = haversine_distance(viewer, record.position) if viewer else None
        return FlightStatus(
            state=state,
            record=record,
            distance_m=distance,
            distance_display=format_distance(distance) if distance is not None else None,
            info=info,
        )

    @property
    def stats(self) -> dict[str, int]:
        return {
            "cache_size": len(self.cache),
            "in_flight": sum(1 for task in self._inflight.values() if not task.done()),
            "requests_made": self.requests_made,
        }


__all__ = [
    "EnrichmentError",
    "EnrichmentService",
    "EnrichmentUnavailableError",
    "FlightInfoCache",
    "NoItineraryError",
    "extract_bootstrap",
    "format_short_time",
    "parse_flight_information",
]
