"""Route search over the stored feed tables."""

from transit_search.services.itinerary.assembler import ItineraryAssembler, ItineraryResult
from transit_search.services.itinerary.calendar import CalendarResolver
from transit_search.services.itinerary.correlator import NoRouteFound, StopTripCorrelator
from transit_search.services.itinerary.search import RouteSearchService

__all__ = [
    "CalendarResolver",
    "ItineraryAssembler",
    "ItineraryResult",
    "NoRouteFound",
    "RouteSearchService",
    "StopTripCorrelator",
]
