"""Timeline endpoints."""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import PlainTextResponse

from ...models.domain import TimelineResult
from ...persistence.filesystem import FileStorage
from ...schemas.timeline import TimelineRequest, TimelineResponse
from ...services.outputs import timeline_to_csv, timeline_to_geojson, timeline_to_json
from ...services.timeline.builder import build_timeline

router = APIRouter(prefix="/timeline", tags=["timeline"])

logger = logging.getLogger(__name__)


def _build(payload: TimelineRequest) -> TimelineResult:
    scenario = payload.scenario.to_domain() if payload.scenario else None
    try:
        return build_timeline(scenario, start_at_ms=payload.start_at_ms)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error building timeline: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to build timeline: {str(exc)}",
        ) from exc


@router.post("/build", response_model=TimelineResponse, status_code=status.HTTP_200_OK)
def build(payload: TimelineRequest) -> TimelineResponse:
    return TimelineResponse.from_domain(_build(payload))


@router.post("/export", status_code=status.HTTP_200_OK)
def export(
    payload: TimelineRequest,
    format: Literal["json", "csv", "geojson"] = Query(default="json", description="Output format."),
    persist: bool = Query(default=False, description="Also write the export under the data root."),
):
    """Export a built timeline as JSON, CSV or GeoJSON."""
    result = _build(payload)
    if format == "csv":
        body = timeline_to_csv(result)
    elif format == "geojson":
        body = timeline_to_geojson(result)
    else:
        body = timeline_to_json(result)

    if persist:
        storage = FileStorage()
        run_dir = storage.make_run_directory(prefix="timeline")
        if format == "csv":
            storage.write_text(run_dir / "timeline.csv", body)
        else:
            storage.write_json(run_dir / f"timeline.{format}", body)
        logger.info(f"Persisted timeline export to {run_dir}")

    if format == "csv":
        return PlainTextResponse(body, media_type="text/csv")
    return body
