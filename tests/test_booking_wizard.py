"""Tests for the sequential booking wizard."""

from __future__ import annotations

import datetime as dt
import re
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from remvana.errors import WizardStateError
from remvana.modules.booking_wizard.models import (
    FlightSelection, WizardSession, WizardStart, WizardStatus, WizardTraveler,
)
from remvana.modules.booking_wizard.service import BookingWizard, new_confirmation_number
from remvana.modules.booking_wizard.store import WizardStore, get_wizard_store
from remvana.modules.travel.models import FlightOffer
from remvana.modules.travel.providers import DuffelClient
from remvana.modules.travel.service import SearchResult, TravelService
from remvana.modules.trips.models import TripCreate
from remvana.modules.trips.service import TripService


class FakeClock:
    def __init__(self) -> None:
        self.now = dt.datetime(2026, 11, 1, 9, 0)

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += dt.timedelta(**kwargs)


def _session(**overrides) -> WizardSession:
    data = {
        "owner_id": "traveler-1",
        "trip_id": "trip-1",
        "trip_destination": "London",
        "destination_code": "LHR",
        "departure_date": dt.date(2026, 11, 10),
        "travelers": [WizardTraveler(name="Ana", departure_city="New York")],
    }
    data.update(overrides)
    return WizardSession(**data)


@pytest.fixture
def offer(duffel_offer) -> FlightOffer:
    return DuffelClient("k").parse_flight_offer(duffel_offer)


@pytest.fixture
def travel(offer) -> TravelService:
    """TravelService whose provider search is replaced by a canned result."""
    service = TravelService()
    service.search_flights = AsyncMock(return_value=SearchResult(success=True, data=[offer], source="duffel"))
    return service


async def _trip(user) -> str:
    trip = await TripService().create_trip(user, TripCreate(
        title="London week", destination="London",
        start_date=dt.date(2026, 11, 10), end_date=dt.date(2026, 11, 17),
    ))
    return trip.id


def _start(trip_id: str, return_date=dt.date(2026, 11, 17), **overrides) -> WizardStart:
    data = {
        "trip_id": trip_id,
        "trip_destination": "London",
        "departure_date": dt.date(2026, 11, 10),
        "return_date": return_date,
        "travelers": [
            {"name": "Ana", "departure_city": "New York"},
            {"name": "Ben", "departure_city": "Chicago", "travel_class": "business"},
        ],
    }
    data.update(overrides)
    return WizardStart(**data)


class TestWizardModels:
    """Tests for session state helpers."""

    def test_round_trip(self) -> None:
        assert _session(return_date=dt.date(2026, 11, 17)).is_round_trip is True
        assert _session(return_date=dt.date(2026, 11, 10)).is_round_trip is False
        assert _session().is_round_trip is False

    def test_current_traveler_only_while_selecting(self) -> None:
        session = _session()
        assert session.current_traveler.name == "Ana"
        session.status = WizardStatus.PAYMENT
        assert session.current_traveler is None
        assert session.to_dict()["current_traveler"] is None

    def test_return_before_departure_rejected(self) -> None:
        with pytest.raises(ValueError):
            _start("trip-1", return_date=dt.date(2026, 11, 1))

    def test_needs_a_traveler(self) -> None:
        with pytest.raises(ValueError):
            _start("trip-1", travelers=[])

    def test_confirmation_number_format(self) -> None:
        assert re.fullmatch(r"CONF[0-9A-F]{10}", new_confirmation_number())


class TestWizardStore:
    """Tests for the in-memory session store."""

    def test_put_get_delete(self) -> None:
        store = WizardStore()
        session = store.put(_session())
        assert store.get(session.id) is session
        assert store.delete(session.id) is True
        assert store.delete(session.id) is False
        with pytest.raises(LookupError):
            store.get(session.id)

    def test_idle_sessions_expire(self) -> None:
        clock = FakeClock()
        store = WizardStore(ttl_minutes=30, clock=clock)
        session = store.put(_session())

        clock.advance(minutes=29)
        store.get(session.id)
        store.put(session)  # activity refreshes the idle timer
        clock.advance(minutes=29)
        assert store.get(session.id) is session

        clock.advance(minutes=31)
        with pytest.raises(LookupError):
            store.get(session.id)
        assert len(store) == 0

    def test_singleton_uses_settings_ttl(self, monkeypatch) -> None:
        monkeypatch.setenv("WIZARD_SESSION_TTL_MINUTES", "5")
        store = get_wizard_store()
        assert store is get_wizard_store()
        assert store._ttl == dt.timedelta(minutes=5)


class TestBookingWizard:
    """Tests for the flights, payment and complete flow."""

    @pytest.mark.asyncio
    async def test_full_round_trip_flow(self, db, traveler, travel, offer) -> None:
        wizard = BookingWizard(store=WizardStore(), travel=travel)
        trip_id = await _trip(traveler)

        session = await wizard.start(traveler, _start(trip_id))
        assert session.destination_code == "LHR"
        assert session.status == WizardStatus.FLIGHTS

        # First traveler
        found = await wizard.search(session.id, traveler)
        assert found["traveler"] == "Ana"
        assert found["origin"] == "JFK"
        assert found["destination"] == "LHR"
        assert len(found["return_flights"]) == 1
        outbound_req = travel.search_flights.await_args_list[0].args[0]
        return_req = travel.search_flights.await_args_list[1].args[0]
        assert (outbound_req.origin, outbound_req.destination, outbound_req.passengers) == ("JFK", "LHR", 1)
        assert (return_req.origin, return_req.destination) == ("LHR", "JFK")

        session = wizard.select(session.id, traveler, FlightSelection(outbound=offer, return_offer=offer))
        assert session.current_traveler_index == 1
        assert session.status == WizardStatus.FLIGHTS

        # Second traveler flies business from Chicago
        found = await wizard.search(session.id, traveler)
        assert found["traveler_index"] == 1
        assert found["origin"] == "ORD"
        assert travel.search_flights.await_args_list[2].args[0].cabin_class == "business"

        session = wizard.select(session.id, traveler, FlightSelection(outbound=offer, return_offer=offer))
        assert session.status == WizardStatus.PAYMENT
        assert session.current_traveler_index == 1

        session = await wizard.complete(session.id, traveler)
        assert session.status == WizardStatus.COMPLETE
        assert re.fullmatch(r"CONF[0-9A-F]{10}", session.confirmation_number)
        assert session.booking_date is not None
        assert len(session.booking_ids) == 2

        bookings = await travel.list_bookings(traveler, trip_id=trip_id)
        assert {b.traveler_name for b in bookings} == {"Ana", "Ben"}
        assert {b.confirmation_number for b in bookings} == {session.confirmation_number}
        assert all(b.total_amount == Decimal("491.20") for b in bookings)

    @pytest.mark.asyncio
    async def test_one_way_skips_return_search(self, db, traveler, travel, offer) -> None:
        wizard = BookingWizard(store=WizardStore(), travel=travel)
        trip_id = await _trip(traveler)
        session = await wizard.start(traveler, _start(trip_id, return_date=None))

        found = await wizard.search(session.id, traveler)
        assert found["return_flights"] == []
        assert travel.search_flights.await_count == 1

        session = wizard.select(session.id, traveler, FlightSelection(outbound=offer, return_offer=offer))
        assert session.travelers[0].selected_return is None

    @pytest.mark.asyncio
    async def test_round_trip_requires_return(self, db, traveler, travel, offer) -> None:
        wizard = BookingWizard(store=WizardStore(), travel=travel)
        session = await wizard.start(traveler, _start(await _trip(traveler)))
        with pytest.raises(ValueError, match="return flight"):
            wizard.select(session.id, traveler, FlightSelection(outbound=offer))
        assert wizard.get(session.id, traveler).current_traveler_index == 0

    @pytest.mark.asyncio
    async def test_complete_before_payment_rejected(self, db, traveler, travel) -> None:
        wizard = BookingWizard(store=WizardStore(), travel=travel)
        session = await wizard.start(traveler, _start(await _trip(traveler)))
        with pytest.raises(WizardStateError):
            await wizard.complete(session.id, traveler)

    @pytest.mark.asyncio
    async def test_no_flight_steps_after_payment(self, db, traveler, travel, offer) -> None:
        wizard = BookingWizard(store=WizardStore(), travel=travel)
        start = _start(await _trip(traveler), travelers=[{"name": "Ana", "departure_city": "New York"}])
        session = await wizard.start(traveler, start)
        wizard.select(session.id, traveler, FlightSelection(outbound=offer, return_offer=offer))

        with pytest.raises(WizardStateError):
            wizard.select(session.id, traveler, FlightSelection(outbound=offer, return_offer=offer))
        with pytest.raises(WizardStateError):
            await wizard.search(session.id, traveler)

    @pytest.mark.asyncio
    async def test_completed_session_dropped_after_read(self, db, traveler, travel, offer) -> None:
        store = WizardStore()
        wizard = BookingWizard(store=store, travel=travel)
        start = _start(await _trip(traveler), return_date=None, travelers=[{"name": "Ana", "departure_city": "New York"}])
        session = await wizard.start(traveler, start)
        wizard.select(session.id, traveler, FlightSelection(outbound=offer))
        await wizard.complete(session.id, traveler)

        assert wizard.get(session.id, traveler).status == WizardStatus.COMPLETE
        with pytest.raises(LookupError):
            wizard.get(session.id, traveler)

    @pytest.mark.asyncio
    async def test_other_user_cannot_drive_session(
        self, db, traveler, agent, manager, other_manager, travel, offer
    ) -> None:
        wizard = BookingWizard(store=WizardStore(), travel=travel)
        session = await wizard.start(traveler, _start(await _trip(traveler)))
        with pytest.raises(PermissionError):
            wizard.get(session.id, agent)
        with pytest.raises(PermissionError):
            wizard.get(session.id, other_manager)
        # Same-organization managers can look but not drive
        assert wizard.get(session.id, manager).id == session.id
        with pytest.raises(PermissionError):
            wizard.select(session.id, manager, FlightSelection(outbound=offer, return_offer=offer))
        with pytest.raises(PermissionError):
            wizard.cancel(session.id, manager)
        assert wizard.get(session.id, traveler).current_traveler_index == 0

    @pytest.mark.asyncio
    async def test_failed_completion_writes_nothing_and_can_be_retried(self, db, traveler, travel, offer) -> None:
        wizard = BookingWizard(store=WizardStore(), travel=travel)
        session = await wizard.start(traveler, _start(await _trip(traveler), return_date=None))
        wizard.select(session.id, traveler, FlightSelection(outbound=offer))
        wizard.select(session.id, traveler, FlightSelection(outbound=offer))

        build = travel.new_booking

        def clashing_ids(*args, **kwargs):
            booking = build(*args, **kwargs)
            booking.id = "booking-1"
            return booking

        travel.new_booking = clashing_ids
        with pytest.raises(SQLAlchemyError):
            await wizard.complete(session.id, traveler)
        del travel.new_booking

        assert await travel.list_bookings(traveler) == []
        pending = wizard.get(session.id, traveler)
        assert pending.status == WizardStatus.PAYMENT
        assert pending.booking_ids == []

        done = await wizard.complete(session.id, traveler)
        bookings = await travel.list_bookings(traveler)
        assert sorted(b.traveler_name for b in bookings) == ["Ana", "Ben"]
        assert sorted(done.booking_ids) == sorted(b.id for b in bookings)
        assert {b.confirmation_number for b in bookings} == {done.confirmation_number}

    @pytest.mark.asyncio
    async def test_unknown_destination_rejected(self, db, traveler, travel) -> None:
        wizard = BookingWizard(store=WizardStore(), travel=travel)
        with pytest.raises(ValueError):
            await wizard.start(traveler, _start(await _trip(traveler), trip_destination="Atlantis"))

    @pytest.mark.asyncio
    async def test_explicit_destination_code(self, db, traveler, travel) -> None:
        wizard = BookingWizard(store=WizardStore(), travel=travel)
        session = await wizard.start(
            traveler, _start(await _trip(traveler), trip_destination="Lisbon", destination_code="lis")
        )
        assert session.destination_code == "LIS"

    @pytest.mark.asyncio
    async def test_start_needs_trip_access(self, db, traveler, agent, travel) -> None:
        wizard = BookingWizard(store=WizardStore(), travel=travel)
        trip_id = await _trip(traveler)
        with pytest.raises(PermissionError):
            await wizard.start(agent, _start(trip_id))
        with pytest.raises(LookupError):
            await wizard.start(traveler, _start("missing"))

    @pytest.mark.asyncio
    async def test_cancel_clears_session(self, db, traveler, travel) -> None:
        store = WizardStore()
        wizard = BookingWizard(store=store, travel=travel)
        session = await wizard.start(traveler, _start(await _trip(traveler)))
        wizard.cancel(session.id, traveler)
        assert len(store) == 0
