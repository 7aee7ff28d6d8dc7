"""Location Module Runtime - composition root for the location service.

Owns the sample store and wires everything that uses it: the ingestion
pipeline with its location source and geocoder, the query façade with its
bounds refresher, and the HTTP API.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from moodmap.core.api import APIServer
from moodmap.core.logging_utils import get_module_logger
from .api import LocationApiController, setup_location_routes
from .config import LocationConfig
from .location_core.geocoding import NominatimConfig, NominatimGeocoder, ReverseGeocoder
from .location_core.ingestion import IngestionPipeline
from .location_core.query import BoundsRefresher, QueryFacade
from .location_core.sample_store import SampleStore
from .location_core.sources import (
    Accuracy,
    LocationSource,
    NMEALocationSource,
    PushLocationSource,
    ReplayLocationSource,
    SubscriptionOptions,
)

logger = get_module_logger("LocationRuntime")


def build_source(config: LocationConfig) -> Optional[LocationSource]:
    """Location source named by ``config.source`` (None for ``"none"``)."""
    if config.source == "push":
        return PushLocationSource(max_pending=config.push_max_pending)
    if config.source == "nmea":
        return NMEALocationSource(
            port=config.serial_port,
            baudrate=config.baud_rate,
            reconnect_delay=config.reconnect_delay_s,
        )
    if config.source == "replay":
        return ReplayLocationSource(config.replay_file, realtime_factor=config.replay_realtime_factor)
    return None


def build_geocoder(config: LocationConfig) -> Optional[ReverseGeocoder]:
    if config.geocoder == "nominatim":
        return NominatimGeocoder(
            NominatimConfig(
                base_url=config.nominatim_url,
                user_agent=config.nominatim_user_agent,
                timeout_s=config.geocode_timeout_s,
                min_interval_s=config.geocode_min_interval_s,
            )
        )
    return None


def build_subscription_options(config: LocationConfig) -> SubscriptionOptions:
    return SubscriptionOptions(
        accuracy=Accuracy.parse(config.accuracy),
        min_time_interval_ms=config.min_time_interval_ms,
        min_distance_m=config.min_distance_m,
    )


class LocationRuntime:
    """Starts and stops the location service as one unit.

    Example:
        async with LocationRuntime(config) as runtime:
            await runtime.shutdown_event.wait()
    """

    def __init__(
        self,
        config: LocationConfig,
        *,
        source: Optional[LocationSource] = None,
        geocoder: Optional[ReverseGeocoder] = None,
    ):
        self.config = config
        self.shutdown_event = asyncio.Event()

        self.store = SampleStore(config.db_path)
        self.source = source if source is not None else build_source(config)
        self.geocoder = geocoder if geocoder is not None else build_geocoder(config)

        self.pipeline = IngestionPipeline(
            self.store,
            self.geocoder,
            retention_max_rows=config.retention_max_rows,
            retention_check_every=config.retention_check_every,
        )
        self.facade = QueryFacade(self.store)
        self.refresher = BoundsRefresher(self.facade, config.bounds_refresh_interval_s)

        self.controller = LocationApiController(
            self.store,
            self.facade,
            self.pipeline,
            push_source=self.source if isinstance(self.source, PushLocationSource) else None,
            source_name=self.source.name if self.source else None,
        )
        self.api_server: Optional[APIServer] = None
        if config.api_enabled:
            self.api_server = APIServer(
                self.controller,
                host=config.api_host,
                port=config.api_port,
                localhost_only=config.api_localhost_only,
                debug=config.api_debug,
                route_setups=(setup_location_routes,),
            )

        self._started = False

    async def __aenter__(self) -> "LocationRuntime":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Open the store, then start bounds polling, ingestion and the API.

        Raises:
            StorageUnavailable: If the store cannot be opened. Nothing else
                is started in that case.
        """
        if self._started:
            return
        logger.info("Starting location runtime (db=%s, source=%s)", self.store.db_path, self.config.source)

        await self.store.open()
        self._started = True
        try:
            await self.facade.refresh_bounds()
            self.refresher.start()

            if self.source is not None:
                await self.pipeline.start(self.source, build_subscription_options(self.config))
            else:
                logger.info("No location source configured; ingestion disabled")

            if self.api_server is not None:
                await self.api_server.start()
        except BaseException:
            await self.stop()
            raise

        logger.info("Location runtime ready")

    async def run(self) -> None:
        """Run until ``shutdown_event`` is set, then tear down."""
        await self.start()
        try:
            await self.shutdown_event.wait()
        finally:
            await self.stop()

    def request_shutdown(self) -> None:
        self.shutdown_event.set()

    async def stop(self) -> None:
        """Tear down in dependency order so nothing writes to a closed store."""
        if not self._started:
            return
        self._started = False
        logger.info("Stopping location runtime")

        # Subscription first, then in-flight geocodes.
        await self.pipeline.stop()
        if isinstance(self.source, PushLocationSource):
            self.source.close()

        await self.refresher.stop()

        if self.api_server is not None:
            await self.api_server.stop()

        if self.geocoder is not None:
            await self.geocoder.close()

        await self.store.close()
        logger.info("Location runtime stopped")


__all__ = [
    "LocationRuntime",
    "build_geocoder",
    "build_source",
    "build_subscription_options",
]
