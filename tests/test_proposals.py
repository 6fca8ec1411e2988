"""Tests for proposals: cost estimates, lifecycle, invoicing and PDF export."""

from __future__ import annotations

import datetime as dt
import re
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

import remvana.config
from remvana.errors import ProposalStateError
from remvana.modules.proposals.estimate import (
    estimate_from_rates, generate_cost_estimate, split_budget, trip_category,
)
from remvana.modules.proposals.models import Proposal, ProposalCreate, ProposalStatus
from remvana.modules.proposals.service import DEFAULT_NOTES, ProposalService, generate_proposal_pdf
from remvana.modules.trips.models import Activity, ActivityCreate, Trip, TripCreate
from remvana.modules.trips.service import TripService


def _trip(**overrides) -> Trip:
    data = {
        "id": "trip-1",
        "title": "Offsite",
        "destination": "Austin",
        "start_date": dt.date(2026, 11, 10),
        "end_date": dt.date(2026, 11, 14),
    }
    data.update(overrides)
    return Trip(**data)


def _activity(title: str = "Tour", tag: str | None = None, notes: str | None = None) -> Activity:
    return Activity(title=title, date=dt.date(2026, 11, 11), tag=tag, notes=notes)


class TestCategory:
    """Tests for rate-band selection."""

    def test_domestic_without_country(self) -> None:
        assert trip_category(_trip(), []) == "domestic"

    def test_domestic_country_names(self) -> None:
        assert trip_category(_trip(country="United States"), []) == "domestic"
        assert trip_category(_trip(country=" USA "), []) == "domestic"

    def test_international(self) -> None:
        assert trip_category(_trip(country="Portugal"), []) == "international"

    def test_luxury_beats_budget(self) -> None:
        activities = [_activity(tag="budget"), _activity(notes="A LUXURY spa day")]
        assert trip_category(_trip(country="Portugal"), activities) == "luxury"

    def test_budget_beats_international(self) -> None:
        assert trip_category(_trip(country="Portugal"), [_activity(tag="budget")]) == "budget"


class TestEstimate:
    """Tests for cost arithmetic."""

    def test_domestic_rates(self) -> None:
        breakdown = estimate_from_rates(_trip(), [_activity(), _activity()])
        assert breakdown == {
            "flights": 400,
            "hotels": 480,
            "activities": 150,
            "meals": 240,
            "transportation": 160,
            "miscellaneous": 143,
        }

    def test_international_total(self) -> None:
        total, breakdown = generate_cost_estimate(_trip(country="Portugal"), [])
        assert breakdown["flights"] == 800
        assert breakdown["hotels"] == 720
        assert total == Decimal("2112")

    def test_same_day_trip_charged_one_day(self) -> None:
        breakdown = estimate_from_rates(_trip(end_date=dt.date(2026, 11, 10)), [])
        assert breakdown["hotels"] == 120
        assert breakdown["meals"] == 60

    def test_budget_split(self) -> None:
        assert split_budget(500_000) == {
            "flights": 2000,
            "hotels": 1500,
            "activities": 750,
            "meals": 500,
            "transportation": 150,
            "miscellaneous": 100,
        }

    def test_budget_split_rounds_half_up(self) -> None:
        assert split_budget(12_345) == {
            "flights": 49,
            "hotels": 37,
            "activities": 19,
            "meals": 12,
            "transportation": 4,
            "miscellaneous": 2,
        }

    def test_budget_is_the_estimate(self) -> None:
        total, breakdown = generate_cost_estimate(_trip(budget=250_050), [_activity()])
        assert total == Decimal("2500.50")
        assert breakdown["flights"] == 1000

    def test_explicit_budget_overrides_trip(self) -> None:
        total, _ = generate_cost_estimate(_trip(budget=100), [], budget_cents=300_000)
        assert total == Decimal("3000")


class TestProposalModel:
    """Tests for expiry."""

    def test_open_proposal_expires(self) -> None:
        proposal = Proposal(status="sent", valid_until=dt.date(2026, 1, 1))
        assert proposal.effective_status(dt.date(2026, 1, 1)) == ProposalStatus.SENT
        assert proposal.effective_status(dt.date(2026, 1, 2)) == ProposalStatus.EXPIRED

    def test_signed_proposal_never_expires(self) -> None:
        proposal = Proposal(status="signed", valid_until=dt.date(2026, 1, 1))
        assert proposal.effective_status(dt.date(2027, 1, 1)) == ProposalStatus.SIGNED


async def _seed_trip(user, **overrides) -> str:
    data = {
        "title": "Lisbon week",
        "destination": "Lisbon",
        "country": "Portugal",
        "start_date": dt.date(2026, 11, 10),
        "end_date": dt.date(2026, 11, 17),
    }
    data.update(overrides)
    trips = TripService()
    trip = await trips.create_trip(user, TripCreate(**data))
    await trips.add_activity(trip.id, user, ActivityCreate(title="Tram 28", date=dt.date(2026, 11, 11)))
    return trip.id


def _request(**overrides) -> ProposalCreate:
    data = {"client_name": "Acme Corp", "client_email": "travel@acme.test"}
    data.update(overrides)
    return ProposalCreate(**data)


class TestProposalService:
    """Tests for generation and lifecycle."""

    @pytest.mark.asyncio
    async def test_create_draft(self, db, agent) -> None:
        trip_id = await _seed_trip(agent)
        proposal = await ProposalService().create_proposal(trip_id, agent, _request())

        assert proposal.status == ProposalStatus.DRAFT
        assert proposal.agent_name == "Ana Agent"
        assert proposal.company_name == "Remvana Travel Services"
        assert proposal.notes == DEFAULT_NOTES
        assert proposal.valid_until == dt.date.today() + dt.timedelta(days=30)
        # 7 days international, one activity
        assert proposal.cost_breakdown["hotels"] == 1260
        assert proposal.estimated_cost == Decimal(sum(proposal.cost_breakdown.values()))

    @pytest.mark.asyncio
    async def test_message_becomes_notes(self, db, agent) -> None:
        trip_id = await _seed_trip(agent)
        proposal = await ProposalService().create_proposal(
            trip_id, agent, _request(message="  Looking forward to it.  ", agent_name="Sam")
        )
        assert proposal.notes == "Looking forward to it."
        assert proposal.agent_name == "Sam"

    @pytest.mark.asyncio
    async def test_traveler_cannot_create(self, db, traveler) -> None:
        trip_id = await _seed_trip(traveler)
        with pytest.raises(PermissionError):
            await ProposalService().create_proposal(trip_id, traveler, _request())

    @pytest.mark.asyncio
    async def test_notes_drafted_by_llm(self, db, agent, mock_openai, monkeypatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        remvana.config._settings = None
        trip_id = await _seed_trip(agent)
        proposal = await ProposalService().create_proposal(trip_id, agent, _request())

        assert proposal.notes == "A tailored week in Lisbon awaits you."
        kwargs = mock_openai.chat.completions.create.call_args.kwargs
        assert "Acme Corp" in kwargs["messages"][1]["content"]
        assert "Tram 28" in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_llm_failure_falls_back(self, db, agent, monkeypatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        remvana.config._settings = None
        trip_id = await _seed_trip(agent)
        with patch.object(ProposalService, "draft_notes", AsyncMock(side_effect=RuntimeError("quota"))):
            proposal = await ProposalService().create_proposal(trip_id, agent, _request())
        assert proposal.notes == DEFAULT_NOTES

    @pytest.mark.asyncio
    async def test_list_and_access(self, db, agent, manager) -> None:
        service = ProposalService()
        trip_id = await _seed_trip(agent)
        proposal = await service.create_proposal(trip_id, agent, _request())

        assert [p.id for p in await service.list_proposals(agent)] == [proposal.id]
        assert [p.id for p in await service.list_proposals(manager, trip_id=trip_id)] == [proposal.id]
        other = agent.model_copy(update={"user_id": "agent-2"})
        assert await service.list_proposals(other) == []
        with pytest.raises(PermissionError):
            await service.get_proposal(proposal.id, other)
        with pytest.raises(LookupError):
            await service.get_proposal("missing", agent)

    @pytest.mark.asyncio
    async def test_managers_read_only_within_organization(self, db, agent, manager, other_manager) -> None:
        service = ProposalService()
        proposal = await service.create_proposal(await _seed_trip(agent), agent, _request())

        assert (await service.get_proposal(proposal.id, manager)).id == proposal.id
        with pytest.raises(PermissionError):
            await service.update_status(proposal.id, manager, ProposalStatus.SENT)
        assert await service.list_proposals(other_manager) == []
        with pytest.raises(PermissionError):
            await service.get_proposal(proposal.id, other_manager)
        assert (await service.get_proposal(proposal.id, agent)).status == "draft"

    @pytest.mark.asyncio
    async def test_status_lifecycle(self, db, agent) -> None:
        service = ProposalService()
        proposal = await service.create_proposal(await _seed_trip(agent), agent, _request())

        sent = await service.update_status(proposal.id, agent, ProposalStatus.SENT)
        assert sent.sent_at is not None
        signed = await service.update_status(proposal.id, agent, ProposalStatus.SIGNED)
        assert signed.signed_at is not None

        with pytest.raises(ProposalStateError):
            await service.update_status(proposal.id, agent, ProposalStatus.CANCELLED)
        again = await service.update_status(proposal.id, agent, ProposalStatus.SIGNED)
        assert again.signed_at == signed.signed_at

    @pytest.mark.asyncio
    async def test_invoice_requires_signature(self, db, agent) -> None:
        service = ProposalService()
        proposal = await service.create_proposal(await _seed_trip(agent), agent, _request())
        with pytest.raises(ProposalStateError):
            await service.convert_to_invoice(proposal.id, agent)

    @pytest.mark.asyncio
    async def test_invoice_is_idempotent(self, db, agent) -> None:
        service = ProposalService()
        proposal = await service.create_proposal(await _seed_trip(agent), agent, _request())
        await service.update_status(proposal.id, agent, ProposalStatus.SIGNED)

        invoice = await service.convert_to_invoice(proposal.id, agent)
        assert re.fullmatch(r"INV-\d{8}-[0-9A-F]{6}", invoice.invoice_number)
        assert invoice.amount == proposal.estimated_cost
        assert invoice.client_name == "Acme Corp"
        assert invoice.due_date == dt.date.today() + dt.timedelta(days=30)

        second = await service.convert_to_invoice(proposal.id, agent)
        assert second.id == invoice.id

    @pytest.mark.asyncio
    async def test_render_pdf(self, db, agent) -> None:
        service = ProposalService()
        proposal = await service.create_proposal(await _seed_trip(agent), agent, _request())
        pdf = await service.render_pdf(proposal.id, agent)
        assert pdf.startswith(b"%PDF")


class TestProposalPdf:
    """Tests for the standalone renderer."""

    def test_pdf_with_contacts(self) -> None:
        proposal = Proposal(
            id="p1", company_name="Remvana", client_name="Acme", client_email="a@acme.test",
            contact_phone="+1 555 0100", agent_name="Ana", currency="USD",
            estimated_cost=Decimal("1573.00"), cost_breakdown={"flights": 400},
            notes="Welcome aboard.", valid_until=dt.date(2026, 12, 1),
        )
        assert generate_proposal_pdf(proposal, _trip()).startswith(b"%PDF")
