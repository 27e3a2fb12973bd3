import asyncio

import anyio
import httpx
import pytest

from arplanes.ingestors.feed import ConnectionState, FeedBatch
from arplanes.ingestors.fixtures import FixtureFeed, available_fixtures, load_fixture
from arplanes.ingestors.opensky import OpenSkyFeed, parse_state_vector
from arplanes.models.flight import GeoPosition

WATERLOO = GeoPosition(latitude=43.4729, longitude=-80.5402)

STATE_VECTOR = [
    "c0583b",  # icao24
    "ACA871  ",  # callsign with trailing spaces
    "Canada",
    1714765198,  # time_position
    1714765200,  # last_contact
    -80.1243,  # longitude
    43.6217,  # latitude
    3048.0,  # baro_altitude meters
    False,  # on_ground
    151.3,  # velocity m/s
    68.2,  # true_track
    7.8,  # vertical_rate m/s
    None,  # sensors
    3063.24,  # geo_altitude meters
    "7000",  # squawk
    False,  # spi
    0,  # position_source
]


def test_bundled_fixtures_parse():
    assert {"atlanta", "waterloo"} <= set(available_fixtures())

    waterloo = load_fixture("waterloo")
    assert waterloo.ok
    assert "A1" in {record.icao for record in waterloo.records}

    atlanta = load_fixture("atlanta")
    assert any(not record.has_stable_identity for record in atlanta.records)


def test_missing_fixture_is_an_error_batch():
    batch = load_fixture("nowhere")

    assert not batch.ok
    assert batch.records == []


@pytest.mark.anyio
async def test_fixture_feed_replays_on_start_and_location_update():
    batches: list[FeedBatch] = []

    async def on_batch(batch):
        batches.append(batch)

    feed = FixtureFeed(fixture="waterloo", on_batch=on_batch)

    async with anyio.create_task_group() as tg:
        tg.start_soon(feed.run)
        with anyio.fail_after(5):
            while not batches:
                await asyncio.sleep(0)
        assert feed.state == ConnectionState.CONNECTED
        await feed.update_location(WATERLOO)
        await feed.stop()

    assert len(batches) == 2
    assert feed.state == ConnectionState.DISCONNECTED


def test_parse_state_vector_prefers_geometric_altitude():
    record = parse_state_vector(STATE_VECTOR)

    assert record is not None
    assert record.icao == "C0583B"
    assert record.callsign == "ACA871"
    assert record.latitude == pytest.approx(43.6217)
    assert record.longitude == pytest.approx(-80.1243)
    assert record.altitude == pytest.approx(3063.24)
    assert record.heading == pytest.approx(68.2)
    assert record.ground_velocity == pytest.approx(151.3)
    assert record.vertical_velocity == pytest.approx(7.8)


def test_parse_state_vector_rejects_missing_position():
    vector = list(STATE_VECTOR)
    vector[6] = None

    assert parse_state_vector(vector) is None
    assert parse_state_vector(["short"]) is None


def test_parse_state_vector_rejects_non_finite_position():
    vector = list(STATE_VECTOR)
    vector[6] = float("nan")
    assert parse_state_vector(vector) is None

    vector = list(STATE_VECTOR)
    vector[5] = 10 ** 400
    assert parse_state_vector(vector) is None


@pytest.mark.anyio
async def test_opensky_feed_fetches_states_around_viewer():
    def handler(request: httpx.Request):
        assert float(request.url.params["lamin"]) < WATERLOO.latitude
        assert float(request.url.params["lomax"]) > WATERLOO.longitude
        return httpx.Response(200, json={"time": 1714765200, "states": [STATE_VECTOR, ["bad"]]})

    feed = OpenSkyFeed(base_url="https://opensky.test", transport=httpx.MockTransport(handler))

    batch = await feed.fetch_states(WATERLOO)

    assert batch.ok
    assert [record.icao for record in batch.records] == ["C0583B"]
    assert batch.dropped == 1


@pytest.mark.anyio
@pytest.mark.parametrize("status_code", [429, 503])
async def test_opensky_feed_reports_http_errors(status_code):
    transport = httpx.MockTransport(lambda request: httpx.Response(status_code, text="nope"))
    feed = OpenSkyFeed(base_url="https://opensky.test", transport=transport)

    batch = await feed.fetch_states(WATERLOO)

    assert not batch.ok
    assert batch.records == []


@pytest.mark.anyio
async def test_opensky_feed_reports_transport_errors():
    def handler(request: httpx.Request):
        raise httpx.ConnectError("refused", request=request)

    feed = OpenSkyFeed(base_url="https://opensky.test", transport=httpx.MockTransport(handler))

    batch = await feed.fetch_states(WATERLOO)

    assert not batch.ok
