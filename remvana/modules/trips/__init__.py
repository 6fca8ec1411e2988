"""Trip Management Module: trips, activities and traveler rosters."""

from remvana.modules.trips.service import TripService

__all__ = ["TripService"]
