"""Admin routes for static GTFS refreshes."""

from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from transit_schedule.dependencies import error_status, get_engine
from transit_schedule.errors import ScheduleFeedError
from transit_schedule.logging import get_logger
from transit_schedule.services.schedule.engine import ScheduleEngine

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class StaticGtfsRefreshResponse(BaseModel):
    """Response body for a static GTFS refresh."""

    refreshed: bool
    report: Optional[Dict[str, Any]] = None
    snapshot: Dict[str, Any]


# TODO: Add auth in front of /admin before exposing this service publicly.
@router.post(
    "/refresh-static-gtfs",
    response_model=StaticGtfsRefreshResponse,
    summary="Refresh the static GTFS schedule",
    description=(
        "Reload the static GTFS feed. Without `force` the call is a no-op while "
        "the loaded schedule is still fresh. A failed refresh keeps the previous "
        "schedule."
    ),
)
async def refresh_static_gtfs(
    engine: Annotated[ScheduleEngine, Depends(get_engine)],
    force: Annotated[bool, Query(description="Reload even if fresh")] = False,
) -> Dict[str, Any]:
    """Refresh the in-memory schedule."""
    try:
        report = await engine.refresh() if force else await engine.ensure_fresh()
    except ScheduleFeedError as exc:
        raise HTTPException(status_code=error_status(exc), detail=str(exc)) from exc
    except Exception as exc:
        logger.error("Unexpected refresh error", exc_info=exc)
        raise HTTPException(
            status_code=500,
            detail=f"Refresh failed unexpectedly: {type(exc).__name__}: {exc}",
        ) from exc

    return {
        "refreshed": report is not None,
        "report": report.to_dict() if report else None,
        "snapshot": engine.status(),
    }
