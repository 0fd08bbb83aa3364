"""Convert authored scenarios into time-stamped playback samples."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Optional

from ...config import settings
from ...models.domain import (
    Coordinate,
    Scenario,
    ScenarioSegment,
    ScenarioSummary,
    TimelinePoint,
    TimelineResult,
)
from ..geospatial import cumulative_lengths_m, ensure_finite_points, interpolate_along

logger = logging.getLogger(__name__)


class TimelineInputError(ValueError):
    """Raised when a scenario cannot be turned into a timeline."""


@dataclass(slots=True)
class _SegmentTimeline:
    points: list[TimelinePoint]
    end_timestamp_ms: float
    distance_m: float


def _valid_number(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def pace_to_speed(pace: Optional[float], default_pace: float | None = None) -> float:
    """Convert a pace in min/km to a speed in m/s, substituting the default for 0/None."""

    fallback = default_pace if default_pace is not None else settings.default_pace_min_per_km
    minutes = pace if _valid_number(pace) else fallback
    return 1000 / (minutes * 60)


def _dwell_seconds(dwell_ms: Optional[float]) -> float:
    if dwell_ms is None or not math.isfinite(dwell_ms) or dwell_ms < 0:
        return 0.0
    return dwell_ms / 1000


def _interpolate_segment(
    segment: ScenarioSegment,
    *,
    start_timestamp_ms: float,
    distance_offset_m: float,
    default_pace: float,
    spacing_m: float,
) -> _SegmentTimeline:
    path = ensure_finite_points(segment.points)
    cumulative = cumulative_lengths_m(path)
    length = cumulative[-1] if cumulative else 0.0
    if length == 0:
        return _SegmentTimeline(points=[], end_timestamp_ms=start_timestamp_ms, distance_m=0.0)

    speed = pace_to_speed(segment.pace, default_pace)
    duration_s = length / speed
    total_duration_s = duration_s + _dwell_seconds(segment.dwell_ms)
    sample_count = max(2, math.ceil(length / spacing_m))
    delta_t = duration_s / (sample_count - 1)

    samples: list[TimelinePoint] = []
    for index in range(sample_count):
        fraction = index / (sample_count - 1)
        lon, lat = interpolate_along(path, fraction, cumulative)
        samples.append(
            TimelinePoint(
                segment_id=segment.id,
                coordinate=Coordinate(latitude=lat, longitude=lon),
                distance_from_start_m=distance_offset_m + length * fraction,
                timestamp_ms=start_timestamp_ms + index * delta_t * 1000,
                speed_mps=speed,
            )
        )

    return _SegmentTimeline(
        points=samples,
        end_timestamp_ms=start_timestamp_ms + total_duration_s * 1000,
        distance_m=length,
    )


def _validate(scenario: Scenario) -> None:
    for segment in scenario.segments:
        try:
            ensure_finite_points(segment.points)
        except (TypeError, ValueError) as exc:
            raise TimelineInputError(f"Segment '{segment.id}' is invalid: {exc}") from exc


def empty_summary(default_pace: float | None = None) -> ScenarioSummary:
    pace = default_pace if default_pace is not None else settings.default_pace_min_per_km
    return ScenarioSummary(total_distance_km=0, estimated_duration_minutes=0, average_pace=pace)


def build_timeline(
    scenario: Scenario | None,
    *,
    start_at_ms: float | None = None,
    default_pace: float | None = None,
    sample_spacing_m: float | None = None,
) -> TimelineResult:
    """Build the playback timeline and summary for ``scenario``.

    Samples are evenly spaced in time and distance within each segment, about
    one sample per ``sample_spacing_m`` of path and at least a start and an
    end sample per segment, so the actual gap can exceed the spacing. A
    segment's dwell delays the next segment's first sample but adds no samples
    or distance. ``start_at_ms`` defaults to the wall clock; passing it makes
    the result fully deterministic.
    """

    pace = default_pace if default_pace is not None else settings.default_pace_min_per_km
    spacing = sample_spacing_m if sample_spacing_m is not None else settings.sample_spacing_m

    if scenario is None or not scenario.segments:
        return TimelineResult(points=(), summary=empty_summary(pace))

    _validate(scenario)

    cursor = float(start_at_ms) if start_at_ms is not None else time.time() * 1000
    distance_offset = 0.0
    total_duration_s = 0.0
    timeline: list[TimelinePoint] = []

    for segment in scenario.segments:
        result = _interpolate_segment(
            segment,
            start_timestamp_ms=cursor,
            distance_offset_m=distance_offset,
            default_pace=pace,
            spacing_m=spacing,
        )
        if not result.points:
            logger.debug(f"Segment '{segment.id}' has zero length; skipping")
        timeline.extend(result.points)
        total_duration_s += (result.end_timestamp_ms - cursor) / 1000
        cursor = result.end_timestamp_ms
        distance_offset += result.distance_m

    total_distance_km = distance_offset / 1000
    estimated_duration_minutes = total_duration_s / 60
    average_pace = estimated_duration_minutes / total_distance_km if total_distance_km > 0 else pace

    summary = ScenarioSummary(
        total_distance_km=round(total_distance_km, 2),
        estimated_duration_minutes=round(estimated_duration_minutes, 1),
        average_pace=round(average_pace, 2),
    )
    logger.info(
        f"Built timeline for scenario '{scenario.id}': {len(timeline)} samples, "
        f"{summary.total_distance_km} km, {summary.estimated_duration_minutes} min"
    )
    return TimelineResult(points=tuple(timeline), summary=summary)
