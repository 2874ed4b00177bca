"""Public stops endpoints.

Endpoints
---------
GET /stops              – stops, optionally filtered by name
GET /stops/{stop_id}    – a single stop
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query

from transit_search.logging import get_logger
from transit_search.routers.deps import get_search_service
from transit_search.services.itinerary.search import RouteSearchService

logger = get_logger(__name__)

router = APIRouter(tags=["stops"])


@router.get(
    "/stops",
    summary="List stops",
    description=(
        "Return every stop, or only those whose name contains `filter_text` "
        "(case-insensitive), ordered by stop name."
    ),
)
async def list_stops(
    service: Annotated[RouteSearchService, Depends(get_search_service)],
    filter_text: Annotated[
        str | None,
        Query(max_length=200, description="Substring to look for in stop names"),
    ] = None,
) -> list[dict[str, Any]]:
    stops = await service.search_stops(filter_text)
    logger.debug("Listed stops", filter_text=filter_text, count=len(stops))
    return stops


@router.get(
    "/stops/{stop_id}",
    summary="Get a stop",
    responses={404: {"description": "Stop not found"}},
)
async def get_stop(
    stop_id: str,
    service: Annotated[RouteSearchService, Depends(get_search_service)],
) -> dict[str, Any]:
    stop = await service.get_stop(stop_id)
    if stop is None:
        raise HTTPException(status_code=404, detail=f"Stop '{stop_id}' not found")
    return stop
