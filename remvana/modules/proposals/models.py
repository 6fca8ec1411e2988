"""Proposal and invoice models."""

from __future__ import annotations

import datetime as dt
from enum import StrEnum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field
from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.dialects.sqlite import JSON as SQLiteJSON

from remvana.database import Base, utcnow


class ProposalStatus(StrEnum):
    """Proposal lifecycle."""
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    SIGNED = "signed"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


# Statuses that lapse to EXPIRED once valid_until has passed
OPEN_STATUSES = {ProposalStatus.DRAFT, ProposalStatus.SENT, ProposalStatus.VIEWED}


class InvoiceStatus(StrEnum):
    OPEN = "open"
    PAID = "paid"
    VOID = "void"


class Proposal(Base):
    """SQLAlchemy model for a client proposal."""

    __tablename__ = "proposals"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    trip_id = Column(String(36), nullable=False, index=True)
    owner_id = Column(String(128), nullable=False, index=True)
    organization_id = Column(String(36), nullable=True, index=True)
    client_name = Column(String(256), nullable=False)
    client_email = Column(String(256), nullable=False)
    contact_phone = Column(String(64), nullable=True)
    contact_website = Column(String(256), nullable=True)
    agent_name = Column(String(256), nullable=False, default="")
    company_name = Column(String(256), nullable=False, default="")
    estimated_cost = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    cost_breakdown = Column(SQLiteJSON, nullable=False, default=dict)
    notes = Column(Text, nullable=False, default="")
    valid_until = Column(Date, nullable=False)
    status = Column(String(16), default=ProposalStatus.DRAFT.value, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    sent_at = Column(DateTime, nullable=True)
    signed_at = Column(DateTime, nullable=True)

    def effective_status(self, today: Optional[dt.date] = None) -> ProposalStatus:
        """Stored status, or EXPIRED for an open proposal past its validity date."""
        today = today or dt.date.today()
        status = ProposalStatus(self.status)
        if status in OPEN_STATUSES and self.valid_until < today:
            return ProposalStatus.EXPIRED
        return status

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "trip_id": self.trip_id,
            "client_name": self.client_name,
            "client_email": self.client_email,
            "contact_phone": self.contact_phone,
            "contact_website": self.contact_website,
            "agent_name": self.agent_name,
            "company_name": self.company_name,
            "estimated_cost": str(self.estimated_cost),
            "currency": self.currency,
            "cost_breakdown": self.cost_breakdown or {},
            "notes": self.notes,
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
            "status": self.effective_status().value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "signed_at": self.signed_at.isoformat() if self.signed_at else None,
        }


class Invoice(Base):
    """Invoice raised from a signed proposal; at most one per proposal."""

    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    proposal_id = Column(String(36), ForeignKey("proposals.id"), nullable=False, unique=True)
    invoice_number = Column(String(32), nullable=False, unique=True)
    client_name = Column(String(256), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String(16), default=InvoiceStatus.OPEN.value, nullable=False)
    issued_at = Column(DateTime, default=utcnow, nullable=False)
    due_date = Column(Date, nullable=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "proposal_id": self.proposal_id,
            "invoice_number": self.invoice_number,
            "client_name": self.client_name,
            "amount": str(self.amount),
            "currency": self.currency,
            "status": self.status,
            "issued_at": self.issued_at.isoformat() if self.issued_at else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
        }


# ── Request schemas ─────────────────────────────────────────────────

class ProposalCreate(BaseModel):
    client_name: str = Field(..., min_length=1)
    client_email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    contact_phone: Optional[str] = None
    contact_website: Optional[str] = None
    agent_name: Optional[str] = None
    message: Optional[str] = None


class ProposalStatusUpdate(BaseModel):
    status: ProposalStatus
