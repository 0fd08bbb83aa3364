"""Simulation control endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...schemas.simulation import (
    RunScenarioRequest,
    SessionSnapshotResponse,
    SimulationOptionsModel,
    SimulationResponse,
    StartSimulationRequest,
    StatusResponse,
)
from ...services.simulation.controller import SimulationController, SimulationResult, get_controller

router = APIRouter(prefix="/simulation", tags=["simulation"])


def _to_response(result: SimulationResult) -> SimulationResponse:
    if result.error == "missing input":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="missing input: provide a non-empty timeline or a target coordinate",
        )
    if result.error == "sink arm failure":
        failures = ", ".join(f"{item.provider}: {item.error}" for item in result.provider_outcomes if not item.ok)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"sink arm failure ({failures})",
        )
    return SimulationResponse.from_result(result)


@router.post("/start", response_model=SimulationResponse, status_code=status.HTTP_200_OK)
def start(
    payload: StartSimulationRequest,
    controller: SimulationController = Depends(get_controller),
) -> SimulationResponse:
    timeline = [point.to_domain() for point in payload.timeline]
    return _to_response(controller.start_simulation(timeline, payload.options.to_domain()))


@router.post("/run", response_model=SimulationResponse, status_code=status.HTTP_200_OK)
def run(
    payload: RunScenarioRequest,
    controller: SimulationController = Depends(get_controller),
) -> SimulationResponse:
    """Build the scenario's timeline and start playing it in one call."""
    try:
        result = controller.run_scenario(
            payload.scenario.to_domain(),
            payload.options.to_domain(),
            start_at_ms=payload.start_at_ms,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _to_response(result)


@router.post("/jump", response_model=SimulationResponse, status_code=status.HTTP_200_OK)
def jump(
    payload: SimulationOptionsModel,
    controller: SimulationController = Depends(get_controller),
) -> SimulationResponse:
    return _to_response(controller.jump_to_coordinate(payload.to_domain()))


@router.post("/stop", response_model=SimulationResponse, status_code=status.HTTP_200_OK)
def stop(controller: SimulationController = Depends(get_controller)) -> SimulationResponse:
    try:
        return SimulationResponse.from_result(controller.stop_simulation())
    except Exception as exc:
        logging.exception(f"Error stopping simulation: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to stop simulation: {str(exc)}",
        ) from exc


@router.get("/status", response_model=StatusResponse, status_code=status.HTTP_200_OK)
def get_status(controller: SimulationController = Depends(get_controller)) -> StatusResponse:
    return StatusResponse(**controller.get_status())


@router.get("/session", response_model=SessionSnapshotResponse, status_code=status.HTTP_200_OK)
def get_session(controller: SimulationController = Depends(get_controller)) -> SessionSnapshotResponse:
    """Delivery counters for the active session."""
    snapshot = controller.dispatcher.snapshot()
    return SessionSnapshotResponse(
        state=snapshot.state,
        session_id=snapshot.session_id,
        pending_deliveries=snapshot.pending_deliveries,
        delivered=snapshot.delivered,
        failed=snapshot.failed,
        target_repeating=snapshot.target_repeating,
    )
