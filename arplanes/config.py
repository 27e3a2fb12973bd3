"""Configuration settings for the AR Planes tracking core."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger("arplanes.config")


def _get_bool(env_var: str, default: bool = False) -> bool:
    """Parse an environment variable into a boolean with a default."""

    value = os.getenv(env_var)
    if value is None:
        return default

    return value.lower() in {"1", "true", "yes", "on"}


def _get_ratio(env_var: str, default: float) -> float:
    """Parse a scale that may be written as a fraction such as ``1/140``."""

    value = os.getenv(env_var)
    if not value:
        return default

    try:
        if "/" in value:
            numerator, denominator = value.split("/", 1)
            return float(numerator) / float(denominator)
        return float(value)
    except (ValueError, ZeroDivisionError):
        logger.warning("Ignoring invalid value for %s: %r", env_var, value)
        return default


def _get_optional_int(env_var: str) -> int | None:
    value = os.getenv(env_var)
    return int(value) if value else None


def _parse_location(value: str | None) -> tuple[float, ...] | None:
    """Parse 'lat,lon' or 'lat,lon,alt' into a tuple, or None if empty/invalid."""

    if not value:
        return None
    try:
        parts = tuple(float(part.strip()) for part in value.split(","))
    except ValueError:
        logger.warning("Ignoring invalid viewer location %r", value)
        return None
    if len(parts) not in (2, 3):
        logger.warning("Ignoring invalid viewer location %r", value)
        return None
    return parts


@dataclass
class Settings:
    """Application configuration loaded from environment variables."""

    arplanes_env: str = os.getenv("ARPLANES_ENV", "local")
    log_level: str = os.getenv("ARPLANES_LOG_LEVEL", "INFO")

    # Starting viewer location for headless runs (None = wait for the host)
    viewer_location: tuple[float, ...] | None = _parse_location(
        os.getenv("ARPLANES_VIEWER_LOCATION")
    )

    # Feed source: "websocket", "fixture" or "opensky"
    feed_source: str = os.getenv("ARPLANES_FEED_SOURCE", "websocket")
    feed_url: str = os.getenv("ARPLANES_FEED_URL", "ws://server.calstephens.tech:777")
    feed_fixture: str = os.getenv("ARPLANES_FEED_FIXTURE", "waterloo")
    feed_open_timeout: float = float(os.getenv("ARPLANES_FEED_OPEN_TIMEOUT", "10.0"))

    # Reconnect policy for the live feed
    feed_reconnect: bool = _get_bool("ARPLANES_FEED_RECONNECT", default=True)
    feed_reconnect_initial_delay: float = float(
        os.getenv("ARPLANES_FEED_RECONNECT_INITIAL_DELAY", "1.0")
    )
    feed_reconnect_max_delay: float = float(
        os.getenv("ARPLANES_FEED_RECONNECT_MAX_DELAY", "60.0")
    )
    feed_reconnect_multiplier: float = float(
        os.getenv("ARPLANES_FEED_RECONNECT_MULTIPLIER", "2.0")
    )
    feed_reconnect_jitter: float = float(os.getenv("ARPLANES_FEED_RECONNECT_JITTER", "0.5"))
    feed_reconnect_max_retries: int | None = _get_optional_int(
        "ARPLANES_FEED_RECONNECT_MAX_RETRIES"
    )

    # OpenSky polling feed
    opensky_base_url: str = os.getenv(
        "ARPLANES_OPENSKY_URL", "https://opensky-network.org/api/states/all"
    )
    opensky_timeout: float = float(os.getenv("ARPLANES_OPENSKY_TIMEOUT", "10.0"))
    opensky_radius_km: float = float(os.getenv("ARPLANES_OPENSKY_RADIUS_KM", "50.0"))
    opensky_poll_interval: float = float(os.getenv("ARPLANES_OPENSKY_POLL_INTERVAL", "5.0"))

    # Projection into scene units. The vertical scale was 1/20 in earlier
    # builds and 1/140 now; both stay tunable.
    horizontal_scale: float = _get_ratio("ARPLANES_HORIZONTAL_SCALE", 1 / 140)
    vertical_scale: float = _get_ratio("ARPLANES_VERTICAL_SCALE", 1 / 140)

    # Reconciliation
    removal_grace_seconds: float = float(os.getenv("ARPLANES_REMOVAL_GRACE_SECONDS", "0"))
    move_duration_seconds: float = float(os.getenv("ARPLANES_MOVE_DURATION_SECONDS", "1.0"))

    # Enrichment (flight itinerary lookups)
    enrichment_enabled: bool = _get_bool("ARPLANES_ENRICHMENT_ENABLED", default=True)
    enrichment_base_url: str = os.getenv(
        "ARPLANES_ENRICHMENT_BASE_URL", "https://flightaware.com"
    )
    enrichment_logo_base_url: str = os.getenv(
        "ARPLANES_ENRICHMENT_LOGO_BASE_URL",
        "https://flightaware.com/images/airline_logos/90p",
    )
    enrichment_timeout: float = float(os.getenv("ARPLANES_ENRICHMENT_TIMEOUT", "10.0"))


settings = Settings()

__all__ = ["settings", "Settings"]
