"""Request dependencies resolving the services wired in create_app()."""

from __future__ import annotations

from fastapi import Request

from transit_search.services.gtfs_static.scheduler import SyncScheduler
from transit_search.services.itinerary.search import RouteSearchService


def get_search_service(request: Request) -> RouteSearchService:
    return request.app.state.search_service


def get_scheduler(request: Request) -> SyncScheduler:
    return request.app.state.scheduler
