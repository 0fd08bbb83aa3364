"""Pydantic request/response models for scenarios and timelines."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.domain import (
    Coordinate,
    Scenario,
    ScenarioSegment,
    ScenarioSummary,
    TimelinePoint,
    TimelineResult,
)


class CoordinateModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def to_domain(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


class SegmentModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    id: str = Field(..., min_length=1)
    label: str = ""
    points: List[tuple[float, float]] = Field(
        default_factory=list,
        description="GeoJSON positions as [longitude, latitude].",
    )
    pace: Optional[float] = Field(
        default=None,
        description="Minutes per km. Missing, zero or negative values fall back to the default pace.",
    )
    dwell_ms: float = Field(default=0, ge=0, description="Pause appended after the segment.")
    easing: Literal["linear", "easeInOut", "easeIn", "easeOut"] = "linear"

    def to_domain(self) -> ScenarioSegment:
        return ScenarioSegment(
            id=self.id,
            label=self.label,
            points=[tuple(point) for point in self.points],
            pace=self.pace,
            dwell_ms=self.dwell_ms,
            easing=self.easing,
        )


class ScenarioModel(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    segments: List[SegmentModel] = Field(default_factory=list)
    created_at: int = 0
    updated_at: int = 0

    @field_validator("segments")
    @classmethod
    def validate_unique_segment_ids(cls, value: List[SegmentModel]) -> List[SegmentModel]:
        seen: set[str] = set()
        for segment in value:
            if segment.id in seen:
                raise ValueError(f"Duplicate segment id '{segment.id}'")
            seen.add(segment.id)
        return value

    def to_domain(self) -> Scenario:
        return Scenario(
            id=self.id,
            name=self.name,
            description=self.description,
            segments=[segment.to_domain() for segment in self.segments],
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class TimelinePointModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    segment_id: str = "timeline"
    coordinate: CoordinateModel
    distance_from_start_m: float = Field(default=0, ge=0)
    timestamp_ms: float
    speed_mps: float = Field(default=0, ge=0)

    @classmethod
    def from_domain(cls, point: TimelinePoint) -> "TimelinePointModel":
        return cls(
            segment_id=point.segment_id,
            coordinate=CoordinateModel(
                latitude=point.coordinate.latitude,
                longitude=point.coordinate.longitude,
            ),
            distance_from_start_m=point.distance_from_start_m,
            timestamp_ms=point.timestamp_ms,
            speed_mps=point.speed_mps,
        )

    def to_domain(self) -> TimelinePoint:
        return TimelinePoint(
            segment_id=self.segment_id,
            coordinate=self.coordinate.to_domain(),
            distance_from_start_m=self.distance_from_start_m,
            timestamp_ms=self.timestamp_ms,
            speed_mps=self.speed_mps,
        )


class SummaryModel(BaseModel):
    total_distance_km: float
    estimated_duration_minutes: float
    average_pace: float

    @classmethod
    def from_domain(cls, summary: ScenarioSummary) -> "SummaryModel":
        return cls(
            total_distance_km=summary.total_distance_km,
            estimated_duration_minutes=summary.estimated_duration_minutes,
            average_pace=summary.average_pace,
        )


class TimelineRequest(BaseModel):
    scenario: Optional[ScenarioModel] = Field(default=None, description="Scenario to build; empty result when omitted.")
    start_at_ms: Optional[float] = Field(default=None, description="Timestamp of the first sample; defaults to now.")


class TimelineResponse(BaseModel):
    points: List[TimelinePointModel]
    summary: SummaryModel

    @classmethod
    def from_domain(cls, result: TimelineResult) -> "TimelineResponse":
        return cls(
            points=[TimelinePointModel.from_domain(point) for point in result.points],
            summary=SummaryModel.from_domain(result.summary),
        )
