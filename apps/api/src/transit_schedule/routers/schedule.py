"""Public schedule endpoints.

Endpoints
---------
GET /stops/{stop_id}/departures   – next scheduled departures from a stop
GET /arrivals                     – scheduled arrival for a known departure
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from transit_schedule.dependencies import ensure_schedule, get_engine
from transit_schedule.logging import get_logger
from transit_schedule.services.schedule.engine import ScheduleEngine

logger = get_logger(__name__)

router = APIRouter(tags=["schedule"])


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class DepartureItem(BaseModel):
    trip_id: str
    minutes_until: int
    scheduled_departure: datetime
    direction_id: int
    direction: str
    destination: str


class DeparturesResponse(BaseModel):
    stop_id: str
    stop_name: Optional[str]
    direction_id: int
    reference_time: datetime
    items: list[DepartureItem]
    count: int


class ArrivalResponse(BaseModel):
    from_stop_id: str
    to_stop_id: str
    direction_id: int
    departure_time: datetime
    arrival_time: datetime


# ---------------------------------------------------------------------------
# GET /stops/{stop_id}/departures
# ---------------------------------------------------------------------------


@router.get(
    "/stops/{stop_id}/departures",
    response_model=DeparturesResponse,
    summary="Next scheduled departures from a stop",
    description=(
        "Return the next `count` scheduled departures in `direction_id` at or "
        "after `at` (default: now). A time of day earlier than the current one "
        "means tomorrow. Early-morning trains of the following day are included."
    ),
)
async def get_departures(
    stop_id: str,
    engine: Annotated[ScheduleEngine, Depends(get_engine)],
    direction_id: Annotated[int, Query(ge=0, le=1, description="0 or 1")],
    at: Annotated[Optional[datetime], Query(description="Reference time")] = None,
    count: Annotated[Optional[int], Query(ge=1, le=50)] = None,
) -> DeparturesResponse:
    await ensure_schedule(engine)

    reference_time = at or engine.now()
    departures = engine.next_departures(stop_id, direction_id, reference_time, count)
    items = [DepartureItem(**departure.to_dict()) for departure in departures]

    return DeparturesResponse(
        stop_id=stop_id,
        stop_name=engine.stop_name(stop_id),
        direction_id=direction_id,
        reference_time=reference_time,
        items=items,
        count=len(items),
    )


# ---------------------------------------------------------------------------
# GET /arrivals
# ---------------------------------------------------------------------------


@router.get(
    "/arrivals",
    response_model=ArrivalResponse,
    summary="Scheduled arrival for a departure",
    description=(
        "Find the scheduled trip leaving `from_stop_id` within a couple of "
        "minutes of `departure_time` and return when it reaches `to_stop_id`. "
        "`trip_id`, when known, breaks ties between trips in the window."
    ),
    responses={404: {"description": "No matching trip serves both stops"}},
)
async def get_arrival(
    engine: Annotated[ScheduleEngine, Depends(get_engine)],
    from_stop_id: Annotated[str, Query(min_length=1)],
    to_stop_id: Annotated[str, Query(min_length=1)],
    departure_time: Annotated[datetime, Query()],
    direction_id: Annotated[int, Query(ge=0, le=1)],
    trip_id: Annotated[Optional[str], Query()] = None,
) -> ArrivalResponse:
    await ensure_schedule(engine)

    arrival = engine.arrival_time(from_stop_id, to_stop_id, departure_time, direction_id, trip_id)
    if arrival is None:
        raise HTTPException(status_code=404, detail="No scheduled arrival found")

    return ArrivalResponse(
        from_stop_id=from_stop_id,
        to_stop_id=to_stop_id,
        direction_id=direction_id,
        departure_time=departure_time,
        arrival_time=arrival,
    )
