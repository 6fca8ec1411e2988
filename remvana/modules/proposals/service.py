"""Proposal generation, status lifecycle, invoicing and PDF export."""

from __future__ import annotations

import datetime as dt
import io
from typing import Optional
from uuid import uuid4

from sqlalchemy import select
from tenacity import retry, stop_after_attempt, wait_exponential

from remvana.config import get_settings
from remvana.database import get_session, utcnow
from remvana.errors import ProposalStateError
from remvana.logging_config import get_logger
from remvana.modules.proposals.estimate import generate_cost_estimate
from remvana.modules.proposals.models import (
    Invoice, Proposal, ProposalCreate, ProposalStatus,
)
from remvana.modules.trips.models import Activity, Trip
from remvana.modules.trips.service import TripService
from remvana.security.audit import log_action
from remvana.security.rbac import Permission, UserIdentity, owner_scope

logger = get_logger(__name__)

DEFAULT_NOTES = (
    "We're excited to present this customized travel itinerary "
    "tailored specifically for your needs."
)
INVOICE_DUE_DAYS = 30


class ProposalService:
    """Creates proposals for trips and moves them through their lifecycle."""

    def __init__(self, trips: Optional[TripService] = None) -> None:
        self._settings = get_settings()
        self.trips = trips or TripService()

    # ── Generation ───────────────────────────────────────────────────

    async def create_proposal(self, trip_id: str, user: UserIdentity, data: ProposalCreate) -> Proposal:
        """Build a draft proposal from a trip, its activities and budget."""
        user.require_permission(Permission.MANAGE_PROPOSALS)
        trip = await self.trips.get_trip(trip_id, user)
        activities = await self.trips.list_activities(trip_id)

        estimated_cost, breakdown = generate_cost_estimate(trip, activities)
        notes = (data.message or "").strip() or await self._notes_for(trip, activities, data.client_name)

        proposal = Proposal(
            trip_id=trip_id,
            owner_id=user.user_id,
            organization_id=user.organization_id,
            client_name=data.client_name,
            client_email=data.client_email,
            contact_phone=data.contact_phone,
            contact_website=data.contact_website,
            agent_name=data.agent_name or user.display_name or user.user_id,
            company_name=self._settings.company_name,
            estimated_cost=estimated_cost,
            cost_breakdown=breakdown,
            notes=notes,
            valid_until=dt.date.today() + dt.timedelta(days=self._settings.proposal_validity_days),
            status=ProposalStatus.DRAFT.value,
        )
        async with get_session() as session:
            session.add(proposal)
            await session.flush()

        logger.info(
            "proposal_created",
            proposal_id=proposal.id,
            trip_id=trip_id,
            estimated_cost=str(estimated_cost),
        )
        await log_action(
            user.user_id, "proposal_created", "proposals",
            {"proposal_id": proposal.id, "trip_id": trip_id},
            organization_id=user.organization_id,
        )
        return proposal

    async def _notes_for(self, trip: Trip, activities: list[Activity], client_name: str) -> str:
        if not self._settings.has_provider("openai"):
            return DEFAULT_NOTES
        try:
            drafted = await self.draft_notes(trip, activities, client_name)
        except Exception as exc:
            logger.warning("proposal_notes_draft_failed", trip_id=trip.id, error=str(exc))
            return DEFAULT_NOTES
        return drafted.strip() or DEFAULT_NOTES

    @retry(stop=stop_after_attempt(2), wait=wait_exponential(min=1, max=5), reraise=True)
    async def draft_notes(self, trip: Trip, activities: list[Activity], client_name: str) -> str:
        """Ask the LLM for a short client-facing introduction."""
        import openai

        client = openai.AsyncOpenAI(api_key=self._settings.openai_api_key)
        highlights = ", ".join(a.title for a in activities[:8]) or "flexible free time"
        prompt = (
            f"Write a warm two-sentence introduction for a travel proposal for {client_name}. "
            f"Trip: {trip.title} to {trip.destination}"
            f"{', ' + trip.country if trip.country else ''} from {trip.start_date} to {trip.end_date}. "
            f"Highlights: {highlights}. Do not mention prices."
        )
        response = await client.chat.completions.create(
            model=self._settings.openai_model,
            messages=[
                {"role": "system", "content": "You are a professional travel agent."},
                {"role": "user", "content": prompt},
            ],
            temperature=0.7,
            max_tokens=200,
        )
        return response.choices[0].message.content or ""

    # ── Queries ──────────────────────────────────────────────────────

    async def list_proposals(self, user: UserIdentity, trip_id: Optional[str] = None) -> list[Proposal]:
        stmt = select(Proposal)
        scope = owner_scope(Proposal, user)
        if scope is not None:
            stmt = stmt.where(scope)
        if trip_id:
            stmt = stmt.where(Proposal.trip_id == trip_id)
        async with get_session() as session:
            result = await session.execute(stmt.order_by(Proposal.created_at.desc()))
            return list(result.scalars().all())

    async def get_proposal(self, proposal_id: str, user: UserIdentity, modify: bool = False) -> Proposal:
        """Fetch a proposal the user may see, or change when ``modify`` is set."""
        async with get_session() as session:
            proposal = await session.get(Proposal, proposal_id)
        if proposal is None:
            raise LookupError(f"Proposal {proposal_id} not found")
        if modify:
            allowed = user.can_modify(proposal.owner_id)
        else:
            allowed = user.can_view(proposal.owner_id, proposal.organization_id)
        if not allowed:
            raise PermissionError(f"User '{user.user_id}' cannot access proposal {proposal_id}")
        return proposal

    # ── Lifecycle ────────────────────────────────────────────────────

    async def update_status(self, proposal_id: str, user: UserIdentity, status: ProposalStatus) -> Proposal:
        """Set a new status. Signed proposals are final."""
        user.require_permission(Permission.MANAGE_PROPOSALS)
        await self.get_proposal(proposal_id, user, modify=True)
        async with get_session() as session:
            proposal = await session.get(Proposal, proposal_id)
            previous = proposal.status
            if previous == ProposalStatus.SIGNED and status != ProposalStatus.SIGNED:
                raise ProposalStateError("A signed proposal cannot change status")
            proposal.status = status.value
            now = utcnow()
            if status == ProposalStatus.SENT and proposal.sent_at is None:
                proposal.sent_at = now
            elif status == ProposalStatus.SIGNED and proposal.signed_at is None:
                proposal.signed_at = now

        logger.info("proposal_status_changed", proposal_id=proposal_id, previous=previous, status=status)
        await log_action(
            user.user_id, "proposal_status_changed", "proposals",
            {"proposal_id": proposal_id, "from": previous, "to": status.value},
            organization_id=user.organization_id,
        )
        return proposal

    async def convert_to_invoice(self, proposal_id: str, user: UserIdentity) -> Invoice:
        """Raise the invoice for a signed proposal, or return the one already raised."""
        user.require_permission(Permission.MANAGE_PROPOSALS)
        proposal = await self.get_proposal(proposal_id, user, modify=True)
        if proposal.status != ProposalStatus.SIGNED:
            raise ProposalStateError(
                f"Only signed proposals can be invoiced (status is '{proposal.status}')"
            )

        async with get_session() as session:
            result = await session.execute(select(Invoice).where(Invoice.proposal_id == proposal_id))
            existing = result.scalar_one_or_none()
            if existing is not None:
                return existing

            today = dt.date.today()
            invoice = Invoice(
                proposal_id=proposal_id,
                invoice_number=f"INV-{today:%Y%m%d}-{uuid4().hex[:6].upper()}",
                client_name=proposal.client_name,
                amount=proposal.estimated_cost,
                currency=proposal.currency,
                due_date=today + dt.timedelta(days=INVOICE_DUE_DAYS),
            )
            session.add(invoice)
            await session.flush()

        logger.info("proposal_invoiced", proposal_id=proposal_id, invoice_number=invoice.invoice_number)
        await log_action(
            user.user_id, "invoice_created", "proposals",
            {"proposal_id": proposal_id, "invoice_id": invoice.id},
            organization_id=user.organization_id,
        )
        return invoice

    # ── Export ───────────────────────────────────────────────────────

    async def render_pdf(self, proposal_id: str, user: UserIdentity) -> bytes:
        proposal = await self.get_proposal(proposal_id, user)
        trip = await self.trips.get_trip(proposal.trip_id)
        return generate_proposal_pdf(proposal, trip)


_BREAKDOWN_LABELS = [
    ("flights", "Flights"),
    ("hotels", "Accommodation"),
    ("activities", "Activities & Tours"),
    ("meals", "Meals"),
    ("transportation", "Transportation"),
    ("miscellaneous", "Miscellaneous"),
]


def generate_proposal_pdf(proposal: Proposal, trip: Trip) -> bytes:
    """Render a client-facing proposal document."""
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import A4
    from reportlab.lib.styles import getSampleStyleSheet
    from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4)
    styles = getSampleStyleSheet()
    story = []

    story.append(Paragraph(proposal.company_name, styles["Heading2"]))
    story.append(Paragraph(f"Travel Proposal: {trip.title}", styles["Title"]))
    story.append(Spacer(1, 12))

    destination = trip.destination + (f", {trip.country}" if trip.country else "")
    for label, value in [
        ("Prepared for", proposal.client_name),
        ("Destination", destination),
        ("Travel dates", f"{trip.start_date:%B %d, %Y} - {trip.end_date:%B %d, %Y}"),
        ("Agent", proposal.agent_name),
        ("Valid until", f"{proposal.valid_until:%A, %B %d, %Y}"),
    ]:
        story.append(Paragraph(f"<b>{label}:</b> {value}", styles["Normal"]))
    story.append(Spacer(1, 20))

    breakdown = proposal.cost_breakdown or {}
    data = [["Item", "Amount"]]
    for key, label in _BREAKDOWN_LABELS:
        data.append([label, f"{proposal.currency} {breakdown.get(key, 0):,}"])
    data.append(["Total Estimated Cost", f"{proposal.currency} {proposal.estimated_cost:,.2f}"])

    table = Table(data, colWidths=[300, 150])
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#007bff")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
    ]))
    story.append(table)

    if proposal.notes:
        story.append(Spacer(1, 20))
        story.append(Paragraph("Important Notes", styles["Heading3"]))
        story.append(Paragraph(proposal.notes, styles["Normal"]))

    story.append(Spacer(1, 20))
    contact = [proposal.client_email]
    contact += [c for c in (proposal.contact_phone, proposal.contact_website) if c]
    story.append(Paragraph("Contact: " + " | ".join(contact), styles["Italic"]))

    doc.build(story)
    logger.info("proposal_pdf_generated", proposal_id=proposal.id)
    return buffer.getvalue()
