"""Location feeds that can drive the ingestion pipeline."""

from .base_source import (
    Accuracy,
    EventFilter,
    LocationCallback,
    LocationEvent,
    LocationSource,
    Subscription,
    SubscriptionOptions,
)
from .nmea_source import NMEALocationSource, NMEASentenceDecoder
from .push_source import PushLocationSource
from .replay_source import ReplayLocationSource

__all__ = [
    "Accuracy",
    "EventFilter",
    "LocationCallback",
    "LocationEvent",
    "LocationSource",
    "NMEALocationSource",
    "NMEASentenceDecoder",
    "PushLocationSource",
    "ReplayLocationSource",
    "Subscription",
    "SubscriptionOptions",
]
