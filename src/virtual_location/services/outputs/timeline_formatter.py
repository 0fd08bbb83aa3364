"""Serializers for timeline outputs."""

from __future__ import annotations

import csv
import io
from dataclasses import asdict
from typing import Any, Dict, List

from shapely.geometry import LineString, mapping

from ...models.domain import TimelinePoint, TimelineResult


def _point_row(point: TimelinePoint) -> dict:
    return {
        "segment_id": point.segment_id,
        "latitude": point.coordinate.latitude,
        "longitude": point.coordinate.longitude,
        "distance_from_start_m": point.distance_from_start_m,
        "timestamp_ms": point.timestamp_ms,
        "speed_mps": point.speed_mps,
    }


def timeline_to_json(result: TimelineResult) -> dict:
    return {
        "summary": asdict(result.summary),
        "points": [_point_row(point) for point in result.points],
    }


def timeline_to_csv(result: TimelineResult) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "index",
        "segment_id",
        "latitude",
        "longitude",
        "distance_from_start_m",
        "timestamp_ms",
        "speed_mps",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for index, point in enumerate(result.points):
        writer.writerow({"index": index, **_point_row(point)})
    return buffer.getvalue()


def timeline_to_geojson(result: TimelineResult) -> Dict[str, Any]:
    """Convert a timeline to a FeatureCollection with one LineString per segment.

    Coordinates follow GeoJSON order (lon, lat). Segments with fewer than two
    samples cannot form a line and are skipped.
    """

    grouped: Dict[str, List[TimelinePoint]] = {}
    for point in result.points:
        grouped.setdefault(point.segment_id, []).append(point)

    features: List[Dict[str, Any]] = []
    for segment_id, points in grouped.items():
        if len(points) < 2:
            continue
        line = LineString([(p.coordinate.longitude, p.coordinate.latitude) for p in points])
        features.append(
            {
                "type": "Feature",
                "geometry": mapping(line),
                "properties": {
                    "segment_id": segment_id,
                    "sample_count": len(points),
                    "start_timestamp_ms": points[0].timestamp_ms,
                    "end_timestamp_ms": points[-1].timestamp_ms,
                    "distance_m": points[-1].distance_from_start_m - points[0].distance_from_start_m,
                    "speed_mps": points[0].speed_mps,
                },
            }
        )

    return {
        "type": "FeatureCollection",
        "features": features,
        "properties": asdict(result.summary),
    }
