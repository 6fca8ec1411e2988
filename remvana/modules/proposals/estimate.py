"""Trip cost estimation for proposals."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from remvana.modules.trips.models import Activity, Trip

# Per-category rates in whole currency units
BASE_RATES: dict[str, dict[str, int]] = {
    "domestic": {"daily": 200, "flights": 400, "hotels": 120},
    "international": {"daily": 350, "flights": 800, "hotels": 180},
    "luxury": {"daily": 500, "flights": 1200, "hotels": 300},
    "budget": {"daily": 100, "flights": 250, "hotels": 60},
}

BUDGET_SPLIT: dict[str, Decimal] = {
    "flights": Decimal("0.40"),
    "hotels": Decimal("0.30"),
    "activities": Decimal("0.15"),
    "meals": Decimal("0.10"),
    "transportation": Decimal("0.03"),
    "miscellaneous": Decimal("0.02"),
}

ACTIVITY_COST = 75
MEALS_PER_DAY = 60
TRANSPORT_PER_DAY = 40
MISC_RATE = Decimal("0.10")
CENTS = Decimal("0.01")

DOMESTIC_COUNTRIES = {"usa", "united states", "us"}


def _round(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _mentions(activities: Iterable[Activity], word: str) -> bool:
    return any(a.tag == word or word in (a.notes or "").lower() for a in activities)


def trip_category(trip: Trip, activities: list[Activity]) -> str:
    """Pick the rate band. Luxury beats budget, which beats international."""
    if _mentions(activities, "luxury"):
        return "luxury"
    if _mentions(activities, "budget"):
        return "budget"
    if trip.country and trip.country.strip().lower() not in DOMESTIC_COUNTRIES:
        return "international"
    return "domestic"


def split_budget(budget_cents: int) -> dict[str, int]:
    total = Decimal(budget_cents) / 100
    return {name: _round(total * share) for name, share in BUDGET_SPLIT.items()}


def estimate_from_rates(trip: Trip, activities: list[Activity]) -> dict[str, int]:
    rates = BASE_RATES[trip_category(trip, activities)]
    days = trip.duration_days
    breakdown = {
        "flights": rates["flights"],
        "hotels": rates["hotels"] * days,
        "activities": len(activities) * ACTIVITY_COST,
        "meals": days * MEALS_PER_DAY,
        "transportation": days * TRANSPORT_PER_DAY,
    }
    breakdown["miscellaneous"] = _round(Decimal(sum(breakdown.values())) * MISC_RATE)
    return breakdown


def generate_cost_estimate(
    trip: Trip, activities: list[Activity], budget_cents: Optional[int] = None
) -> tuple[Decimal, dict[str, int]]:
    """Return ``(estimated_cost, breakdown)``.

    A trip budget is split by fixed shares and its total is the estimate;
    without one the breakdown comes from the rate table and the estimate is
    the sum of its parts.
    """
    budget = trip.budget if budget_cents is None else budget_cents
    if budget:
        return (Decimal(budget) / 100).quantize(CENTS), split_budget(budget)
    breakdown = estimate_from_rates(trip, activities)
    return Decimal(sum(breakdown.values())).quantize(CENTS), breakdown
