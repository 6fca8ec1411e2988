"""Corporate card models."""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field
from sqlalchemy import Column, DateTime, ForeignKey, Index, Numeric, String, Text

from remvana.database import Base, utcnow


class CardStatus(StrEnum):
    ACTIVE = "active"
    FROZEN = "frozen"
    CANCELLED = "cancelled"


class SpendingInterval(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class TransactionType(StrEnum):
    CREDIT = "credit"
    PURCHASE = "purchase"
    ADJUSTMENT = "adjustment"


class CorporateCard(Base):
    """A virtual card issued to an employee. Provider ids are stored encrypted."""

    __tablename__ = "corporate_cards"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    organization_id = Column(String(36), nullable=True, index=True)
    cardholder_name = Column(String(256), nullable=False)
    cardholder_email = Column(String(256), nullable=True)
    department = Column(String(128), nullable=True)
    purpose = Column(String(256), nullable=True)
    last4 = Column(String(4), nullable=False)
    expiry_month = Column(String(2), nullable=False)
    expiry_year = Column(String(4), nullable=False)
    provider_card_id = Column(Text, nullable=False)
    provider_cardholder_id = Column(Text, nullable=False)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    spending_limit = Column(Numeric(12, 2), nullable=False)
    interval = Column(String(16), default=SpendingInterval.MONTHLY.value, nullable=False)
    status = Column(String(16), default=CardStatus.ACTIVE.value, nullable=False)
    created_by = Column(String(128), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def masked_number(self) -> str:
        return f"**** **** **** {self.last4}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "card_number": self.masked_number,
            "cardholder_name": self.cardholder_name,
            "cardholder_email": self.cardholder_email,
            "department": self.department,
            "purpose": self.purpose,
            "expiry": f"{self.expiry_month}/{self.expiry_year}",
            "balance": str(self.balance),
            "spending_limit": str(self.spending_limit),
            "interval": self.interval,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class CardTransaction(Base):
    """Ledger entry against a corporate card."""

    __tablename__ = "card_transactions"
    __table_args__ = (Index("ix_card_transactions_card_created", "card_id", "created_at"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    card_id = Column(String(36), ForeignKey("corporate_cards.id"), nullable=False)
    transaction_type = Column(String(16), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    description = Column(String(512), nullable=False, default="")
    processed_by = Column(String(128), nullable=False)
    balance_after = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "card_id": self.card_id,
            "transaction_type": self.transaction_type,
            "amount": str(self.amount),
            "currency": self.currency,
            "description": self.description,
            "processed_by": self.processed_by,
            "balance_after": str(self.balance_after),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ── Request schemas ─────────────────────────────────────────────────

class CardIssueRequest(BaseModel):
    cardholder_name: str = Field(..., min_length=1)
    cardholder_email: Optional[str] = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    spending_limit: Decimal = Field(..., gt=0)
    interval: SpendingInterval = SpendingInterval.MONTHLY
    department: Optional[str] = None
    purpose: Optional[str] = None
    allowed_categories: Optional[list[str]] = None


class CardFreezeRequest(BaseModel):
    freeze: bool = True
    reason: Optional[str] = None


class AddFundsRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    description: str = "Funds added by admin"


class CardUpdateRequest(BaseModel):
    spending_limit: Optional[Decimal] = Field(default=None, gt=0)
    cardholder_name: Optional[str] = Field(default=None, min_length=1)
    department: Optional[str] = None
