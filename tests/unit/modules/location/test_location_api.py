"""Tests for the Location REST API.

Routes run against a real in-memory store behind the production
middleware chain, using aiohttp's test client.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager

import pytest
from aiohttp.test_utils import TestClient, TestServer

from moodmap.core.api.server import APIServer
from moodmap.modules.Location.api import LocationApiController, setup_location_routes
from moodmap.modules.Location.location_core.ingestion import IngestionPipeline
from moodmap.modules.Location.location_core.query import QueryFacade
from moodmap.modules.Location.location_core.sample import Sample
from moodmap.modules.Location.location_core.sample_store import MEMORY_DB, SampleStore
from moodmap.modules.Location.location_core.sources import PushLocationSource, SubscriptionOptions

from tests.unit.conftest import BrokenStore


@asynccontextmanager
async def api_client(store=None, *, with_push=True, subscribe=False):
    """Yield ``(client, controller)`` for a fully wired API."""
    store = store or SampleStore(MEMORY_DB)
    await store.open()
    facade = QueryFacade(store)
    pipeline = IngestionPipeline(store)
    push_source = PushLocationSource() if with_push else None
    if subscribe and push_source is not None:
        await pipeline.start(push_source, SubscriptionOptions(min_time_interval_ms=0))

    controller = LocationApiController(store, facade, pipeline, push_source=push_source)
    server = APIServer(controller, port=0, route_setups=(setup_location_routes,))
    try:
        async with TestClient(TestServer(server.create_app())) as client:
            yield client, controller
    finally:
        await pipeline.stop()
        await store.close()


class TestSystemRoutes:

    @pytest.mark.asyncio
    async def test_health(self):
        async with api_client() as (client, _):
            resp = await client.get("/api/v1/health")
            assert resp.status == 200
            data = await resp.json()
            assert data["healthy"] is True
            assert data["service"] == "moodmap"
            assert "version" in data

    @pytest.mark.asyncio
    async def test_status_reports_store_and_ingestion(self):
        async with api_client() as (client, controller):
            await controller.store.insert(Sample(1000, 1.0, 2.0))
            resp = await client.get("/api/v1/status")
            assert resp.status == 200
            data = await resp.json()
            assert data["store"]["samples"] == 1
            assert data["store"]["open"] is True
            assert data["ingestion"]["source"] == "push"
            assert data["ingestion"]["stats"]["stored"] == 0
            assert data["ingestion"]["filtered"] == 0

    @pytest.mark.asyncio
    async def test_unknown_route_is_json_404(self):
        async with api_client() as (client, _):
            resp = await client.get("/api/v1/nope")
            assert resp.status == 404
            data = await resp.json()
            assert data["status"] == 404


class TestSampleRoutes:

    @pytest.mark.asyncio
    async def test_insert_then_query_by_epoch_and_iso(self):
        async with api_client() as (client, _):
            resp = await client.post(
                "/api/v1/location/samples", json={"timestamp": 1001, "latitude": 48.1, "longitude": 11.5}
            )
            assert resp.status == 201
            assert (await resp.json())["timestamp"] == 1001

            resp = await client.get("/api/v1/location/samples", params={"at": "1001"})
            assert resp.status == 200
            data = await resp.json()
            assert data["count"] == 1
            assert data["samples"][0]["latitude"] == 48.1

            resp = await client.get("/api/v1/location/samples", params={"at": "1970-01-01T00:16:41.600Z"})
            data = await resp.json()
            assert data["timestamp"] == 1001
            assert data["count"] == 1

            resp = await client.get("/api/v1/location/samples", params={"at": "9999"})
            assert (await resp.json())["samples"] == []

    @pytest.mark.asyncio
    async def test_query_requires_valid_at(self):
        async with api_client() as (client, _):
            resp = await client.get("/api/v1/location/samples")
            assert resp.status == 400
            assert (await resp.json())["error"]["code"] == "MISSING_PARAMETER"

            resp = await client.get("/api/v1/location/samples", params={"at": "whenever"})
            assert resp.status == 400
            assert (await resp.json())["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body, code",
        [
            ({"timestamp": 1000, "latitude": 95.0, "longitude": 0.0}, "VALIDATION_ERROR"),
            ({"timestamp": -1, "latitude": 0.0, "longitude": 0.0}, "VALIDATION_ERROR"),
            ({"timestamp": "later", "latitude": 0.0, "longitude": 0.0}, "VALIDATION_ERROR"),
            ({"timestamp": 2**63, "latitude": 0.0, "longitude": 0.0}, "VALIDATION_ERROR"),
            ({"timestamp": str(10**20), "latitude": 0.0, "longitude": 0.0}, "VALIDATION_ERROR"),
            ({"timestamp": 1000, "latitude": 0.0}, "MISSING_FIELD"),
        ],
    )
    async def test_insert_rejects_bad_samples(self, body, code):
        async with api_client() as (client, controller):
            resp = await client.post("/api/v1/location/samples", json=body)
            assert resp.status == 400
            assert (await resp.json())["error"]["code"] == code
            assert await controller.store.count() == 0

    @pytest.mark.asyncio
    async def test_insert_rejects_non_json_body(self):
        async with api_client() as (client, _):
            resp = await client.post("/api/v1/location/samples", data="not json")
            assert resp.status == 400
            assert (await resp.json())["error"]["code"] == "INVALID_BODY"

    @pytest.mark.asyncio
    async def test_duplicate_timestamp_upserts(self):
        async with api_client() as (client, controller):
            for lat in (1.0, 2.0):
                await client.post("/api/v1/location/samples", json={"timestamp": 7, "latitude": lat, "longitude": 0})
            assert await controller.store.count() == 1
            resp = await client.get("/api/v1/location/samples/first")
            assert (await resp.json())["latitude"] == 2.0

    @pytest.mark.asyncio
    async def test_clear_then_everything_is_empty(self):
        async with api_client() as (client, controller):
            for ts in (1000, 1001, 1005):
                await controller.store.insert(Sample(ts, 0.0, 0.0))

            resp = await client.delete("/api/v1/location/samples")
            assert resp.status == 200
            data = await resp.json()
            assert data["success"] is True
            assert data["bounds"]["empty"] is True

            resp = await client.get("/api/v1/location/samples/first")
            assert resp.status == 404
            resp = await client.get("/api/v1/location/bounds", params={"refresh": "true"})
            assert (await resp.json())["empty"] is True

    @pytest.mark.asyncio
    async def test_clear_failure_is_an_error_response(self):
        async with api_client(BrokenStore(fail_writes=True, fail_reads=False)) as (client, _):
            resp = await client.delete("/api/v1/location/samples")
            assert resp.status == 500
            assert (await resp.json())["error"]["code"] == "CLEAR_FAILED"

    @pytest.mark.asyncio
    async def test_all_samples_streams_ndjson_in_order(self):
        async with api_client() as (client, controller):
            for ts in (1005, 1000, 1001):
                await controller.store.insert(Sample(ts, 0.0, 0.0))
            resp = await client.get("/api/v1/location/samples/all")
            assert resp.status == 200
            assert resp.headers["Content-Type"].startswith("application/x-ndjson")
            lines = (await resp.text()).splitlines()
            assert [json.loads(line)["timestamp"] for line in lines] == [1000, 1001, 1005]

    @pytest.mark.asyncio
    async def test_first_and_last(self):
        async with api_client() as (client, controller):
            for ts in (1005, 1000, 1001):
                await controller.store.insert(Sample(ts, 0.0, 0.0))
            first = await (await client.get("/api/v1/location/samples/first")).json()
            last = await (await client.get("/api/v1/location/samples/last")).json()
            assert (first["timestamp"], last["timestamp"]) == (1000, 1005)


class TestBoundsAndCurrent:

    @pytest.mark.asyncio
    async def test_bounds_cached_until_refreshed(self):
        async with api_client() as (client, controller):
            await controller.store.insert(Sample(1000, 0.0, 0.0))
            resp = await client.get("/api/v1/location/bounds")
            assert (await resp.json())["empty"] is True

            resp = await client.get("/api/v1/location/bounds", params={"refresh": "1"})
            data = await resp.json()
            assert (data["min_timestamp"], data["max_timestamp"]) == (1000, 1000)

            resp = await client.get("/api/v1/location/samples", params={"at": "1000"})
            assert (await resp.json())["in_bounds"] is True
            resp = await client.get("/api/v1/location/samples", params={"at": "1001"})
            assert (await resp.json())["in_bounds"] is False

    @pytest.mark.asyncio
    async def test_current_before_any_fix(self):
        async with api_client() as (client, _):
            data = await (await client.get("/api/v1/location/current")).json()
            assert data["event"] is None
            assert data["address"] is None
            assert data["mocked"] is False


class TestPushEvents:

    @pytest.mark.asyncio
    async def test_pushed_event_is_ingested(self):
        async with api_client(subscribe=True) as (client, controller):
            payload = {
                "timestamp": 1_700_000_000_456,
                "coords": {"latitude": 48.1, "longitude": 11.5, "accuracy": 5.0},
                "mocked": False,
            }
            resp = await client.post("/api/v1/location/events", json=payload)
            assert resp.status == 202
            assert (await resp.json())["success"] is True

            for _ in range(50):
                if await controller.store.count():
                    break
                await asyncio.sleep(0.01)
            assert await controller.store.get_first() == Sample(1_700_000_000, 48.1, 11.5)

            current = await (await client.get("/api/v1/location/current")).json()
            assert current["sample"]["timestamp"] == 1_700_000_000

    @pytest.mark.asyncio
    async def test_bad_event_payload(self):
        async with api_client() as (client, _):
            resp = await client.post("/api/v1/location/events", json={"coords": {"latitude": 1}})
            assert resp.status == 400

    @pytest.mark.asyncio
    async def test_push_disabled(self):
        async with api_client(with_push=False) as (client, _):
            resp = await client.post(
                "/api/v1/location/events", json={"timestamp": 1, "coords": {"latitude": 1, "longitude": 1}}
            )
            assert resp.status == 404
            assert (await resp.json())["error"]["code"] == "PUSH_DISABLED"
