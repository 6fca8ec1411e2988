"""Travel data models: provider projections, search requests and persisted bookings."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from enum import StrEnum
from typing import Any, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import Column, DateTime, Numeric, String
from sqlalchemy.dialects.sqlite import JSON as SQLiteJSON

from remvana.database import Base, utcnow
from remvana.modules.trips.models import CabinClass


class BookingType(StrEnum):
    """Kinds of bookings."""
    FLIGHT = "flight"
    HOTEL = "hotel"


class BookingStatus(StrEnum):
    """Booking status."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


# =============================================================================
# Provider projections (never persisted)
# =============================================================================


class Airport(BaseModel):
    """Airport as shown in results and autocomplete."""
    code: str
    name: str = "Unknown Airport"
    city: str = "Unknown City"
    country: str = ""


class FlightEndpoint(BaseModel):
    airport: Airport
    time: dt.datetime


class FlightSegment(BaseModel):
    """One leg flown by a single aircraft."""
    departure: FlightEndpoint
    arrival: FlightEndpoint
    airline_code: str
    airline_name: str
    flight_number: str
    duration: str = ""
    aircraft: str = ""


class FlightSlice(BaseModel):
    """An origin-to-destination journey made of one or more segments."""
    origin: Airport
    destination: Airport
    departure_time: dt.datetime
    arrival_time: dt.datetime
    duration: str
    stops: int
    segments: list[FlightSegment] = Field(default_factory=list)


class FlightOffer(BaseModel):
    """Read-only projection of a provider flight offer."""
    id: str
    airline: str
    airline_code: str
    flight_number: str
    price: Decimal
    currency: str = "USD"
    departure: FlightEndpoint
    arrival: FlightEndpoint
    duration: str
    stops: int
    slices: list[FlightSlice] = Field(default_factory=list)
    booking_token: str
    valid_until: Optional[dt.datetime] = None

    @property
    def is_round_trip(self) -> bool:
        return len(self.slices) > 1


class HotelResult(BaseModel):
    """Read-only projection of a provider accommodation result."""
    id: str
    name: str
    price: Decimal
    currency: str = "USD"
    rating: Optional[float] = None
    review_score: Optional[float] = None
    address: str = ""
    city: str = ""
    country: str = ""
    amenities: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    check_in_time: str = "14:00"
    check_out_time: str = "12:00"
    rate_id: Optional[str] = None


# =============================================================================
# Request schemas
# =============================================================================


class FlightSearchRequest(BaseModel):
    """Structured flight search forwarded to the provider."""

    origin: str = Field(..., min_length=3, max_length=3, description="IATA airport or city code")
    destination: str = Field(..., min_length=3, max_length=3)
    departure_date: dt.date
    return_date: Optional[dt.date] = None
    passengers: int = Field(default=1, ge=1, le=9)
    cabin_class: CabinClass = CabinClass.ECONOMY
    max_connections: Optional[int] = Field(default=None, ge=0, le=2)

    @field_validator("origin", "destination")
    @classmethod
    def _upper_code(cls, v: str) -> str:
        if not v.isalpha():
            raise ValueError("airport code must be three letters")
        return v.upper()

    @model_validator(mode="after")
    def _check_route(self) -> "FlightSearchRequest":
        if self.origin == self.destination:
            raise ValueError("origin and destination must differ")
        return self


class HotelSearchRequest(BaseModel):
    """Structured accommodation search."""

    destination: str = Field(..., min_length=2)
    check_in: dt.date
    check_out: dt.date
    guests: int = Field(default=1, ge=1, le=9)
    rooms: int = Field(default=1, ge=1, le=9)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    radius_km: int = Field(default=10, ge=1, le=100)


class PassengerDetails(BaseModel):
    """Passenger data required to place a flight order."""

    title: Literal["mr", "ms", "mrs", "miss", "dr"]
    given_name: str = Field(..., min_length=1)
    family_name: str = Field(..., min_length=1)
    born_on: dt.date
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone_number: str = Field(..., min_length=10)
    gender: Literal["m", "f"]

    @field_validator("gender", mode="before")
    @classmethod
    def _lower_gender(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class FlightBookingRequest(BaseModel):
    offer_id: str = Field(..., min_length=1)
    passengers: list[PassengerDetails] = Field(..., min_length=1)
    trip_id: Optional[str] = None


class HotelGuest(BaseModel):
    given_name: str = Field(..., min_length=1)
    family_name: str = Field(..., min_length=1)


class HotelBookingRequest(BaseModel):
    rate_id: str = Field(..., min_length=1)
    guests: list[HotelGuest] = Field(..., min_length=1)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone_number: str = Field(..., min_length=6)
    special_requests: str = ""
    trip_id: Optional[str] = None


# =============================================================================
# Persisted bookings
# =============================================================================


class Booking(Base):
    """A confirmed or pending reservation."""

    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    trip_id = Column(String(36), nullable=True, index=True)
    owner_id = Column(String(128), nullable=False, index=True)
    organization_id = Column(String(36), nullable=True, index=True)
    booking_type = Column(String(16), nullable=False)
    status = Column(String(16), default=BookingStatus.CONFIRMED.value, nullable=False)
    confirmation_number = Column(String(64), nullable=False, index=True)
    provider_reference = Column(String(128), nullable=True)
    traveler_name = Column(String(256), nullable=False, default="")
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    details = Column(SQLiteJSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    cancelled_at = Column(DateTime, nullable=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "trip_id": self.trip_id,
            "booking_type": self.booking_type,
            "status": self.status,
            "confirmation_number": self.confirmation_number,
            "provider_reference": self.provider_reference,
            "traveler_name": self.traveler_name,
            "total_amount": str(self.total_amount),
            "currency": self.currency,
            "details": self.details or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }
