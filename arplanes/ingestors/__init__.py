"""Telemetry sources for the AR Planes tracking core."""

from .feed import (
    ConnectionState,
    FeedBatch,
    FeedClient,
    FeedError,
    FeedParseError,
    ReconnectPolicy,
    format_location_message,
    parse_feed_message,
)
from .fixtures import FixtureFeed, available_fixtures, load_fixture
from .opensky import OpenSkyFeed, parse_state_vector

__all__ = [
    "ConnectionState",
    "FeedBatch",
    "FeedClient",
    "FeedError",
    "FeedParseError",
    "FixtureFeed",
    "OpenSkyFeed",
    "ReconnectPolicy",
    "available_fixtures",
    "format_location_message",
    "load_fixture",
    "parse_feed_message",
    "parse_state_vector",
]
