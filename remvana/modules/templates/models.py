"""Trip template marketplace models."""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.dialects.sqlite import JSON as SQLiteJSON

from remvana.database import Base, utcnow


class TemplateStatus(StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"


class TripTemplate(Base):
    """A reusable itinerary sold in the template marketplace."""

    __tablename__ = "trip_templates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    slug = Column(String(128), nullable=False, unique=True)
    title = Column(String(256), nullable=False)
    description = Column(Text, nullable=False, default="")
    destination = Column(String(256), nullable=False)
    country = Column(String(128), nullable=True)
    duration_days = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    tags = Column(SQLiteJSON, nullable=False, default=list)
    activities = Column(SQLiteJSON, nullable=False, default=list)
    author_id = Column(String(128), nullable=False, index=True)
    source_trip_id = Column(String(36), nullable=True)
    status = Column(String(16), default=TemplateStatus.DRAFT.value, nullable=False, index=True)
    sales_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self, include_activities: bool = True) -> dict[str, Any]:
        data = {
            "id": self.id,
            "slug": self.slug,
            "title": self.title,
            "description": self.description,
            "destination": self.destination,
            "country": self.country,
            "duration_days": self.duration_days,
            "price": str(self.price),
            "currency": self.currency,
            "tags": self.tags or [],
            "author_id": self.author_id,
            "status": self.status,
            "sales_count": self.sales_count,
            "activity_count": len(self.activities or []),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_activities:
            data["activities"] = self.activities or []
        return data


class TemplatePurchase(Base):
    """A buyer's purchase of a published template."""

    __tablename__ = "template_purchases"
    __table_args__ = (UniqueConstraint("template_id", "buyer_id", name="uq_template_purchases_buyer"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    template_id = Column(String(36), ForeignKey("trip_templates.id"), nullable=False, index=True)
    buyer_id = Column(String(128), nullable=False, index=True)
    seller_id = Column(String(128), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    platform_fee = Column(Numeric(10, 2), nullable=False)
    seller_earnings = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "template_id": self.template_id,
            "buyer_id": self.buyer_id,
            "price": str(self.price),
            "platform_fee": str(self.platform_fee),
            "seller_earnings": str(self.seller_earnings),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class TemplateFromTrip(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    price: Decimal = Field(default=Decimal("0"), ge=0)
    tags: list[str] = Field(default_factory=list)
