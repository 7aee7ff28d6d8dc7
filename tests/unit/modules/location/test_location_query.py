"""Tests for the query façade, date bounds and the bounds refresher."""

from __future__ import annotations

import asyncio
import datetime as dt

import pytest

from moodmap.modules.Location.location_core.errors import InvalidSample
from moodmap.modules.Location.location_core.query import BoundsRefresher, DateBounds, QueryFacade
from moodmap.modules.Location.location_core.sample import Sample
from moodmap.modules.Location.location_core.sample_store import MEMORY_DB, SampleStore

from tests.unit.conftest import BrokenStore, run_async


def utc(seconds: int) -> dt.datetime:
    return dt.datetime.fromtimestamp(seconds, tz=dt.timezone.utc)


class TestDateBounds:

    def test_empty_sentinel(self):
        assert DateBounds.EMPTY.is_empty
        assert DateBounds.EMPTY.to_dict() == {"empty": True, "min_timestamp": None, "max_timestamp": None}
        assert not DateBounds.EMPTY.contains(0)

    def test_populated_bounds(self):
        bounds = DateBounds(1000, 1005)
        assert not bounds.is_empty
        assert bounds.contains(1001)
        assert not bounds.contains(1006)
        data = bounds.to_dict()
        assert data["min_timestamp"] == 1000
        assert data["max_utc"] == "1970-01-01T00:16:45+00:00"


class TestQueryFacade:

    def test_scenario(self):
        """1000/1001/1005: bounds, exact-second fetch, miss, clear."""

        async def do_test():
            async with SampleStore(MEMORY_DB) as store:
                facade = QueryFacade(store)
                for ts in (1005, 1000, 1001):
                    await facade.insert_sample(ts, 1.0, 2.0)

                bounds = await facade.refresh_bounds()
                assert (bounds.min_timestamp, bounds.max_timestamp) == (1000, 1005)
                assert facade.bounds == bounds

                assert await facade.fetch_by_timestamp(utc(1001)) == [Sample(1001, 1.0, 2.0)]
                assert await facade.fetch_by_timestamp(9999) == []

                assert await facade.clear_all() is True
                assert facade.bounds is DateBounds.EMPTY
                assert (await facade.refresh_bounds()).is_empty
                assert await facade.get_first() is None

        run_async(do_test())

    def test_fetch_ignores_sub_second_part(self):
        async def do_test():
            async with SampleStore(MEMORY_DB) as store:
                facade = QueryFacade(store)
                await facade.insert_sample(1001, 1.0, 2.0)
                moment = utc(1001) + dt.timedelta(milliseconds=750)
                assert [s.timestamp for s in await facade.fetch_by_timestamp(moment)] == [1001]
                assert [s.timestamp for s in await facade.fetch_by_timestamp(1001.9)] == [1001]

        run_async(do_test())

    def test_every_inserted_sample_is_found_by_its_second(self):
        timestamps = [0, 7, 86_400, 1_700_000_000, 1_700_000_001]

        async def do_test():
            async with SampleStore(MEMORY_DB) as store:
                facade = QueryFacade(store)
                for ts in timestamps:
                    await facade.insert_sample(ts, 0.5, 0.5)
                for ts in timestamps:
                    found = await facade.fetch_by_timestamp(utc(ts))
                    assert Sample(ts, 0.5, 0.5) in found

        run_async(do_test())

    def test_insert_sample_validates(self):
        async def do_test():
            async with SampleStore(MEMORY_DB) as store:
                facade = QueryFacade(store)
                with pytest.raises(InvalidSample):
                    await facade.insert_sample(1000, 0.0, 200.0)

        run_async(do_test())

    def test_iter_samples_and_first_last(self):
        async def do_test():
            async with SampleStore(MEMORY_DB) as store:
                facade = QueryFacade(store)
                for ts in (3, 1, 2):
                    await facade.insert_sample(ts, 0.0, 0.0)
                assert [s.timestamp async for s in facade.iter_samples(batch_size=2)] == [1, 2, 3]
                assert (await facade.get_first()).timestamp == 1
                assert (await facade.get_last()).timestamp == 3

        run_async(do_test())


class TestFailureRecovery:

    def test_reads_fall_back_to_empty_results(self):
        async def do_test():
            async with BrokenStore() as store:
                facade = QueryFacade(store)
                assert await facade.fetch_by_timestamp(1000) == []
                assert await facade.get_first() is None
                assert await facade.get_last() is None

        run_async(do_test())

    def test_bounds_refresh_failure_keeps_previous_bounds(self):
        async def do_test():
            async with BrokenStore(fail_writes=False, fail_reads=False) as store:
                facade = QueryFacade(store)
                await facade.insert_sample(10, 0.0, 0.0)
                await facade.refresh_bounds()
                store.fail_reads = True
                assert await facade.refresh_bounds() == DateBounds(10, 10)

        run_async(do_test())

    def test_clear_failure_is_reported(self):
        async def do_test():
            async with BrokenStore(fail_writes=True, fail_reads=False) as store:
                facade = QueryFacade(store)
                assert await facade.clear_all() is False

        run_async(do_test())


class TestBoundsRefresher:

    def test_tracks_new_inserts_and_stops(self):
        async def do_test():
            async with SampleStore(MEMORY_DB) as store:
                facade = QueryFacade(store)
                refresher = BoundsRefresher(facade, interval_s=0.01)
                refresher.start()
                assert refresher.running
                await asyncio.sleep(0.03)
                assert facade.bounds.is_empty

                await store.insert(Sample(500, 0.0, 0.0))
                await asyncio.sleep(0.05)
                assert facade.bounds == DateBounds(500, 500)

                await refresher.stop()
                assert not refresher.running
                await store.insert(Sample(900, 0.0, 0.0))
                await asyncio.sleep(0.03)
                assert facade.bounds == DateBounds(500, 500)

        run_async(do_test())

    def test_survives_a_closed_store(self):
        async def do_test():
            store = SampleStore(MEMORY_DB)
            await store.open()
            facade = QueryFacade(store)
            refresher = BoundsRefresher(facade, interval_s=0.01)
            refresher.start()
            await store.close()
            await asyncio.sleep(0.03)
            assert refresher.running
            await refresher.stop()

        run_async(do_test())

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            BoundsRefresher(QueryFacade(SampleStore(MEMORY_DB)), interval_s=0)
