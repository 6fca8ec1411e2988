"""Database models and Pydantic schemas for trips, activities and travelers."""

from __future__ import annotations

import datetime as dt
from enum import StrEnum
from typing import Any, ClassVar, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator
from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text

from remvana.database import Base, utcnow


class TripType(StrEnum):
    """Types of trips."""
    PERSONAL = "personal"
    BUSINESS = "business"


class CabinClass(StrEnum):
    """Cabin classes understood by the booking provider."""
    ECONOMY = "economy"
    PREMIUM_ECONOMY = "premium_economy"
    BUSINESS = "business"
    FIRST = "first"


class Trip(Base):
    """SQLAlchemy model for a trip."""

    __tablename__ = "trips"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    owner_id = Column(String(128), nullable=False, index=True)
    organization_id = Column(String(36), nullable=True, index=True)
    title = Column(String(256), nullable=False)
    destination = Column(String(256), nullable=False)
    country = Column(String(128), nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    budget = Column(Integer, nullable=True)  # cents
    trip_type = Column(String(16), default=TripType.PERSONAL.value, nullable=False)
    client_name = Column(String(256), nullable=True)
    completed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def duration_days(self) -> int:
        return max(1, (self.end_date - self.start_date).days)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "organization_id": self.organization_id,
            "title": self.title,
            "destination": self.destination,
            "country": self.country,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "budget": self.budget,
            "trip_type": self.trip_type,
            "client_name": self.client_name,
            "completed": self.completed,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Trip(id={self.id}, title={self.title}, destination={self.destination})>"


class Activity(Base):
    """A scheduled item within a trip."""

    __tablename__ = "activities"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    trip_id = Column(String(36), ForeignKey("trips.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(256), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String(16), nullable=True)
    location_name = Column(String(256), nullable=True)
    notes = Column(Text, nullable=True)
    tag = Column(String(64), nullable=True)
    order = Column(Integer, default=0, nullable=False)
    completed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_activities_trip_order", "trip_id", "order"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "trip_id": self.trip_id,
            "title": self.title,
            "date": self.date.isoformat(),
            "time": self.time,
            "location_name": self.location_name,
            "notes": self.notes,
            "tag": self.tag,
            "order": self.order,
            "completed": self.completed,
        }


class Traveler(Base):
    """A person on a trip's roster."""

    __tablename__ = "travelers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    trip_id = Column(String(36), ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(256), nullable=False)
    email = Column(String(256), nullable=False)
    phone = Column(String(64), nullable=True)
    departure_city = Column(String(128), nullable=False)
    travel_class = Column(String(32), default=CabinClass.ECONOMY.value, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "trip_id": self.trip_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "departure_city": self.departure_city,
            "travel_class": self.travel_class,
        }


# =============================================================================
# Pydantic request schemas
# =============================================================================


class PartialUpdate(BaseModel):
    """Base for partial updates: omitted fields stay unchanged, NOT NULL columns reject null."""

    non_nullable: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _reject_nulls(self) -> "PartialUpdate":
        nulls = [
            name for name in self.non_nullable
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if nulls:
            raise ValueError(f"{', '.join(nulls)} cannot be null")
        return self


class TripCreate(BaseModel):
    """Payload for creating a trip."""

    title: str = Field(..., min_length=1, max_length=256)
    destination: str = Field(..., min_length=1, max_length=256)
    country: Optional[str] = None
    start_date: dt.date
    end_date: dt.date
    budget: Optional[int] = Field(default=None, ge=0, description="Budget in cents")
    trip_type: TripType = TripType.PERSONAL
    client_name: Optional[str] = None


class TripUpdate(PartialUpdate):
    """Partial trip update; unset fields are left unchanged."""

    non_nullable = ("title", "destination", "start_date", "end_date", "trip_type", "completed")

    title: Optional[str] = Field(default=None, min_length=1, max_length=256)
    destination: Optional[str] = Field(default=None, min_length=1, max_length=256)
    country: Optional[str] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    budget: Optional[int] = Field(default=None, ge=0)
    trip_type: Optional[TripType] = None
    client_name: Optional[str] = None
    completed: Optional[bool] = None


class ActivityCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=256)
    date: dt.date
    time: Optional[str] = None
    location_name: Optional[str] = None
    notes: Optional[str] = None
    tag: Optional[str] = None
    order: Optional[int] = None


class ActivityUpdate(PartialUpdate):
    non_nullable = ("title", "date")

    title: Optional[str] = Field(default=None, min_length=1, max_length=256)
    date: Optional[dt.date] = None
    time: Optional[str] = None
    location_name: Optional[str] = None
    notes: Optional[str] = None
    tag: Optional[str] = None


class TravelerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=256)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: Optional[str] = None
    departure_city: str = Field(..., min_length=2)
    travel_class: CabinClass = CabinClass.ECONOMY


class TravelerUpdate(PartialUpdate):
    non_nullable = ("name", "email", "departure_city", "travel_class")

    name: Optional[str] = Field(default=None, min_length=1, max_length=256)
    email: Optional[str] = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: Optional[str] = None
    departure_city: Optional[str] = Field(default=None, min_length=2)
    travel_class: Optional[CabinClass] = None
