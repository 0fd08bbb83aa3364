"""Output serializers."""

from .timeline_formatter import timeline_to_csv, timeline_to_geojson, timeline_to_json

__all__ = ["timeline_to_json", "timeline_to_csv", "timeline_to_geojson"]
