"""Playback services: scheduling, dispatching and location sinks."""

from .dispatcher import PlaybackDispatcher, PlaybackSession, TargetRepeater
from .scheduler import ScheduledHandle, Scheduler, ThreadScheduler
from .sinks import (
    HttpBridgeSink,
    LocationSink,
    LoggingSink,
    MultiProviderSink,
    RecordingSink,
    get_default_sink,
    providers_from_settings,
)

__all__ = [
    "PlaybackDispatcher",
    "PlaybackSession",
    "TargetRepeater",
    "Scheduler",
    "ScheduledHandle",
    "ThreadScheduler",
    "LocationSink",
    "MultiProviderSink",
    "LoggingSink",
    "RecordingSink",
    "HttpBridgeSink",
    "get_default_sink",
    "providers_from_settings",
]
