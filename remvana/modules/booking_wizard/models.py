"""Wizard session state and request schemas for sequential multi-traveler booking."""

from __future__ import annotations

import datetime as dt
from enum import StrEnum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from remvana.database import utcnow
from remvana.modules.travel.models import FlightOffer
from remvana.modules.trips.models import CabinClass


class WizardStatus(StrEnum):
    """Wizard steps; sessions only move forward."""
    FLIGHTS = "flights"
    PAYMENT = "payment"
    COMPLETE = "complete"


class WizardTravelerIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = ""
    phone: str = ""
    departure_city: str = Field(..., min_length=2)
    travel_class: CabinClass = CabinClass.ECONOMY


class WizardTraveler(WizardTravelerIn):
    """A traveler in the wizard and their flight picks."""
    selected_outbound: Optional[FlightOffer] = None
    selected_return: Optional[FlightOffer] = None


class WizardStart(BaseModel):
    """Body for starting a wizard session."""

    trip_id: str = Field(..., min_length=1)
    trip_destination: str = Field(..., min_length=2)
    destination_code: Optional[str] = Field(default=None, min_length=3, max_length=3)
    departure_date: dt.date
    return_date: Optional[dt.date] = None
    travelers: list[WizardTravelerIn] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _check_dates(self) -> "WizardStart":
        if self.return_date and self.return_date < self.departure_date:
            raise ValueError("return_date must be on or after departure_date")
        return self


class FlightSelection(BaseModel):
    """Flights picked for the current traveler."""

    outbound: FlightOffer
    return_offer: Optional[FlightOffer] = None


class WizardSession(BaseModel):
    """Server-side wizard state, kept in memory only."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str
    organization_id: Optional[str] = None
    trip_id: str
    trip_destination: str
    destination_code: str
    departure_date: dt.date
    return_date: Optional[dt.date] = None
    current_traveler_index: int = 0
    travelers: list[WizardTraveler]
    status: WizardStatus = WizardStatus.FLIGHTS
    confirmation_number: Optional[str] = None
    booking_date: Optional[dt.datetime] = None
    booking_ids: list[str] = Field(default_factory=list)
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)

    @property
    def is_round_trip(self) -> bool:
        return self.return_date is not None and self.return_date != self.departure_date

    @property
    def current_traveler(self) -> Optional[WizardTraveler]:
        if self.status != WizardStatus.FLIGHTS:
            return None
        return self.travelers[self.current_traveler_index]

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        current = self.current_traveler
        data["current_traveler"] = current.model_dump(mode="json") if current else None
        data["is_round_trip"] = self.is_round_trip
        return data
