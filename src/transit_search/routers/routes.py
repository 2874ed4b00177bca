"""Route search endpoint.

Endpoints
---------
POST /routes/search   – trips from one stop to another on a date
"""

from __future__ import annotations

from datetime import date
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from transit_search.logging import get_logger
from transit_search.routers.deps import get_search_service
from transit_search.services.itinerary.correlator import NoRouteFound
from transit_search.services.itinerary.search import RouteSearchService

logger = get_logger(__name__)

router = APIRouter(prefix="/routes", tags=["routes"])


class RouteSearchRequest(BaseModel):
    """Request body for a route search."""

    model_config = ConfigDict(populate_by_name=True)

    origin_stop_id: str = Field(alias="originStopId", min_length=1)
    destination_stop_id: str = Field(alias="destinationStopId", min_length=1)
    outbound_date: date = Field(alias="outboundDate", description="Travel date (YYYY-MM-DD)")
    inbound_date: date | None = Field(
        default=None,
        alias="inboundDate",
        description="Return date. Accepted but not applied yet.",
    )
    wheelchair_seating: bool | None = Field(
        default=None,
        alias="wheelchairSeating",
        description="Accessibility filter. Accepted but not applied yet.",
    )


class ItineraryResponse(BaseModel):
    route: dict[str, Any] | None
    trip: dict[str, Any]
    service_exception: dict[str, Any] | None
    calendar: dict[str, Any] | None
    itinerary: list[dict[str, Any]]


@router.post(
    "/search",
    response_model=list[ItineraryResponse],
    summary="Search trips between two stops",
    description=(
        "Return the trips that call at the origin stop before the destination "
        "stop and run on `outboundDate`, ordered by departure time at the origin."
    ),
    responses={404: {"description": "No trip connects the two stops on that date"}},
)
async def search_routes(
    body: RouteSearchRequest,
    service: Annotated[RouteSearchService, Depends(get_search_service)],
) -> Any:
    try:
        results = await service.search_routes(
            body.origin_stop_id,
            body.destination_stop_id,
            body.outbound_date,
            inbound_date=body.inbound_date,
            wheelchair_seating=body.wheelchair_seating,
        )
    except NoRouteFound as exc:
        logger.info(
            "No route found",
            origin_stop_id=exc.origin_stop_id,
            destination_stop_id=exc.destination_stop_id,
            reason=exc.reason,
        )
        return JSONResponse(
            status_code=404,
            content={
                "error": "no_route_found",
                "message": str(exc),
                "originStopId": exc.origin_stop_id,
                "destinationStopId": exc.destination_stop_id,
            },
        )

    return [result.to_dict() for result in results]
