"""Timeline building services."""

from .builder import TimelineInputError, build_timeline, pace_to_speed

__all__ = ["build_timeline", "pace_to_speed", "TimelineInputError"]
