"""Domain models for authored routes, timelines and simulation runs."""

from dataclasses import dataclass, field
from typing import Literal, Optional

LonLat = tuple[float, float]
Easing = Literal["linear", "easeInOut", "easeIn", "easeOut"]
PlaybackState = Literal["idle", "active"]


@dataclass(slots=True, frozen=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(slots=True)
class ScenarioSegment:
    """One leg of a route: a polyline walked at a constant pace.

    ``points`` are GeoJSON positions, i.e. ``(longitude, latitude)``.
    ``easing`` is carried for the authoring layer and does not change timing.
    """

    id: str
    points: list[LonLat]
    pace: Optional[float] = None
    dwell_ms: float = 0.0
    easing: Easing = "linear"
    label: str = ""


@dataclass(slots=True)
class Scenario:
    """An authored route made of ordered segments."""

    id: str
    name: str
    segments: list[ScenarioSegment]
    description: Optional[str] = None
    created_at: int = 0
    updated_at: int = 0


@dataclass(slots=True, frozen=True)
class TimelinePoint:
    """A scheduled, geolocated sample produced by the timeline builder."""

    segment_id: str
    coordinate: Coordinate
    distance_from_start_m: float
    timestamp_ms: float
    speed_mps: float


@dataclass(slots=True, frozen=True)
class ScenarioSummary:
    total_distance_km: float
    estimated_duration_minutes: float
    average_pace: float


@dataclass(slots=True, frozen=True)
class TimelineResult:
    points: tuple[TimelinePoint, ...]
    summary: ScenarioSummary


@dataclass(slots=True, frozen=True)
class SimulationOptions:
    """Options for a playback run.

    The enhancement flags are passed through to the log only.
    """

    target_coordinate: Optional[Coordinate] = None
    wifi_enhancement: bool = False
    cell_enhancement: bool = False

    def has_target(self) -> bool:
        return self.target_coordinate is not None

    def to_target_entry(self, timestamp_ms: float) -> Optional[TimelinePoint]:
        if self.target_coordinate is None:
            return None
        return TimelinePoint(
            segment_id="target",
            coordinate=self.target_coordinate,
            distance_from_start_m=0.0,
            timestamp_ms=timestamp_ms,
            speed_mps=0.0,
        )


@dataclass(slots=True, frozen=True)
class ProviderSpec:
    name: str
    accuracy: Literal["fine", "coarse"] = "fine"
    power_requirement: Literal["low", "medium", "high"] = "low"


@dataclass(slots=True, frozen=True)
class ProviderOutcome:
    """Result of one sink operation against one provider."""

    provider: str
    ok: bool
    error: Optional[str] = None


@dataclass(slots=True, frozen=True)
class DeliveryOutcome:
    kind: Literal["timeline", "target"]
    timestamp_ms: float
    outcomes: tuple[ProviderOutcome, ...]

    @property
    def ok(self) -> bool:
        return bool(self.outcomes) and all(outcome.ok for outcome in self.outcomes)


@dataclass(slots=True)
class StartResult:
    ok: bool
    reason: Optional[Literal["missing input", "sink arm failure"]] = None
    session_id: Optional[str] = None
    arm_outcomes: list[ProviderOutcome] = field(default_factory=list)
    scheduled_samples: int = 0
    target_broadcast: bool = False


@dataclass(slots=True)
class StopResult:
    stopped: bool
    session_id: Optional[str] = None
    cancelled_deliveries: int = 0
    disarm_outcomes: list[ProviderOutcome] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class PlaybackSnapshot:
    state: PlaybackState
    session_id: Optional[str] = None
    pending_deliveries: int = 0
    delivered: int = 0
    failed: int = 0
    target_repeating: bool = False
