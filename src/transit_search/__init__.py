"""Transit route search over GTFS feeds."""

__version__ = "0.1.0"
