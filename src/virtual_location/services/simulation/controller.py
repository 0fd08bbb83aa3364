"""Process-wide simulation control surface."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ...models.domain import (
    ProviderOutcome,
    Scenario,
    ScenarioSummary,
    SimulationOptions,
    TimelinePoint,
)
from ..playback.dispatcher import PlaybackDispatcher
from ..playback.sinks import get_default_sink
from ..timeline.builder import build_timeline

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SimulationResult:
    ok: bool
    error: Optional[str] = None
    session_id: Optional[str] = None
    scheduled_samples: int = 0
    target_broadcast: bool = False
    provider_outcomes: list[ProviderOutcome] = field(default_factory=list)
    summary: Optional[ScenarioSummary] = None


class SimulationController:
    def __init__(self, dispatcher: PlaybackDispatcher) -> None:
        self.dispatcher = dispatcher

    def start_simulation(
        self, timeline: Iterable[TimelinePoint], options: SimulationOptions | None = None
    ) -> SimulationResult:
        result = self.dispatcher.start(timeline, options or SimulationOptions())
        if result.ok:
            logger.info(
                f"Started simulation {result.session_id}: {result.scheduled_samples} samples, "
                f"target={result.target_broadcast}"
            )
        return SimulationResult(
            ok=result.ok,
            error=result.reason,
            session_id=result.session_id,
            scheduled_samples=result.scheduled_samples,
            target_broadcast=result.target_broadcast,
            provider_outcomes=result.arm_outcomes,
        )

    def run_scenario(
        self,
        scenario: Scenario,
        options: SimulationOptions | None = None,
        *,
        start_at_ms: float | None = None,
    ) -> SimulationResult:
        """Build the scenario's timeline and start playing it."""
        timeline = build_timeline(scenario, start_at_ms=start_at_ms)
        result = self.start_simulation(timeline.points, options)
        result.summary = timeline.summary
        return result

    def jump_to_coordinate(self, options: SimulationOptions) -> SimulationResult:
        """Broadcast only the target coordinate, without a timeline."""
        if not options.has_target():
            return SimulationResult(ok=False, error="missing input")
        logger.info(f"jump_to_coordinate {options.target_coordinate}")
        return self.start_simulation([], options)

    def stop_simulation(self) -> SimulationResult:
        stopped = self.dispatcher.stop()
        logger.info(f"stop_simulation (was active: {stopped.stopped})")
        return SimulationResult(
            ok=True,
            session_id=stopped.session_id,
            provider_outcomes=stopped.disarm_outcomes,
        )

    def get_status(self) -> dict:
        return {"state": self.dispatcher.status()}

    def close(self) -> None:
        self.dispatcher.close()


_controller: SimulationController | None = None
_controller_lock = threading.Lock()


def get_controller() -> SimulationController:
    """Return the process-wide controller, creating it on first use."""
    global _controller
    with _controller_lock:
        if _controller is None:
            _controller = SimulationController(PlaybackDispatcher(get_default_sink()))
        return _controller


def reset_controller(controller: SimulationController | None = None) -> None:
    """Replace the process-wide controller, stopping and closing the current one."""
    global _controller
    with _controller_lock:
        if _controller is not None and _controller is not controller:
            _controller.stop_simulation()
            _controller.close()
        _controller = controller
