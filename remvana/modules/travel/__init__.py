"""Travel Module: flight and hotel search, orders and booking records."""

from remvana.modules.travel.service import SearchResult, TravelService

__all__ = ["SearchResult", "TravelService"]
