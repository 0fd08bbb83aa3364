"""Pydantic request/response models for simulation endpoints."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ..models.domain import ProviderOutcome, SimulationOptions
from ..services.simulation.controller import SimulationResult
from .timeline import CoordinateModel, ScenarioModel, SummaryModel, TimelinePointModel


class SimulationOptionsModel(BaseModel):
    target_coordinate: Optional[CoordinateModel] = Field(
        default=None,
        description="Coordinate broadcast repeatedly alongside (or instead of) the timeline.",
    )
    wifi_enhancement: bool = False
    cell_enhancement: bool = False

    def to_domain(self) -> SimulationOptions:
        return SimulationOptions(
            target_coordinate=self.target_coordinate.to_domain() if self.target_coordinate else None,
            wifi_enhancement=self.wifi_enhancement,
            cell_enhancement=self.cell_enhancement,
        )


class StartSimulationRequest(BaseModel):
    timeline: List[TimelinePointModel] = Field(default_factory=list)
    options: SimulationOptionsModel = Field(default_factory=SimulationOptionsModel)


class RunScenarioRequest(BaseModel):
    scenario: ScenarioModel
    options: SimulationOptionsModel = Field(default_factory=SimulationOptionsModel)
    start_at_ms: Optional[float] = None


class ProviderOutcomeModel(BaseModel):
    provider: str
    ok: bool
    error: Optional[str] = None

    @classmethod
    def from_domain(cls, outcome: ProviderOutcome) -> "ProviderOutcomeModel":
        return cls(provider=outcome.provider, ok=outcome.ok, error=outcome.error)


class SimulationResponse(BaseModel):
    ok: bool
    error: Optional[Literal["missing input", "sink arm failure"]] = None
    session_id: Optional[str] = None
    scheduled_samples: int = 0
    target_broadcast: bool = False
    provider_outcomes: List[ProviderOutcomeModel] = Field(default_factory=list)
    summary: Optional[SummaryModel] = None

    @classmethod
    def from_result(cls, result: SimulationResult) -> "SimulationResponse":
        return cls(
            ok=result.ok,
            error=result.error,
            session_id=result.session_id,
            scheduled_samples=result.scheduled_samples,
            target_broadcast=result.target_broadcast,
            provider_outcomes=[ProviderOutcomeModel.from_domain(item) for item in result.provider_outcomes],
            summary=SummaryModel.from_domain(result.summary) if result.summary else None,
        )


class StatusResponse(BaseModel):
    state: Literal["idle", "active"]


class SessionSnapshotResponse(BaseModel):
    state: Literal["idle", "active"]
    session_id: Optional[str] = None
    pending_deliveries: int = 0
    delivered: int = 0
    failed: int = 0
    target_repeating: bool = False
