"""Sequential booking wizard: one traveler's flights at a time, then payment."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

from remvana.database import utcnow
from remvana.errors import WizardStateError
from remvana.logging_config import get_logger
from remvana.modules.booking_wizard.models import (
    FlightSelection, WizardSession, WizardStart, WizardStatus, WizardTraveler,
)
from remvana.modules.booking_wizard.store import WizardStore, get_wizard_store
from remvana.modules.travel.models import BookingType, FlightOffer, FlightSearchRequest
from remvana.modules.travel.service import TravelService
from remvana.modules.trips.service import TripService
from remvana.security.audit import log_action
from remvana.security.rbac import UserIdentity

logger = get_logger(__name__)


def new_confirmation_number() -> str:
    """``CONF`` followed by ten upper-case hex characters."""
    return "CONF" + uuid4().hex[:10].upper()


class BookingWizard:
    """Drives a wizard session through flights, payment and complete."""

    def __init__(
        self,
        store: Optional[WizardStore] = None,
        travel: Optional[TravelService] = None,
        trips: Optional[TripService] = None,
    ) -> None:
        self.store = store if store is not None else get_wizard_store()
        self.travel = travel or TravelService()
        self.trips = trips or TripService()

    async def start(self, user: UserIdentity, request: WizardStart) -> WizardSession:
        await self.trips.get_trip(request.trip_id, user)
        destination_code = (
            request.destination_code.upper() if request.destination_code
            else self.travel.resolve_airport_code(request.trip_destination)
        )
        session = WizardSession(
            owner_id=user.user_id,
            organization_id=user.organization_id,
            trip_id=request.trip_id,
            trip_destination=request.trip_destination,
            destination_code=destination_code,
            departure_date=request.departure_date,
            return_date=request.return_date,
            travelers=[WizardTraveler(**t.model_dump()) for t in request.travelers],
        )
        self.store.put(session)
        logger.info(
            "wizard_started",
            session_id=session.id,
            trip_id=request.trip_id,
            travelers=len(session.travelers),
        )
        return session

    def get(self, session_id: str, user: UserIdentity) -> WizardSession:
        """Return the session, dropping it from the store once a completed one has been read."""
        session = self._owned(session_id, user, modify=False)
        if session.status == WizardStatus.COMPLETE:
            self.store.delete(session_id)
        return session

    def _owned(self, session_id: str, user: UserIdentity, modify: bool = True) -> WizardSession:
        session = self.store.get(session_id)
        if modify:
            allowed = user.can_modify(session.owner_id)
        else:
            allowed = user.can_view(session.owner_id, session.organization_id)
        if not allowed:
            raise PermissionError(f"User '{user.user_id}' cannot access booking session {session_id}")
        return session

    async def search(self, session_id: str, user: UserIdentity) -> dict[str, Any]:
        """Search outbound and, for round trips, return flights for the current traveler."""
        session = self._owned(session_id, user)
        if session.status != WizardStatus.FLIGHTS:
            raise WizardStateError(f"Cannot search flights while session is '{session.status}'")
        traveler = session.current_traveler
        origin = self.travel.resolve_airport_code(traveler.departure_city)

        outbound = await self.travel.search_flights(FlightSearchRequest(
            origin=origin,
            destination=session.destination_code,
            departure_date=session.departure_date,
            passengers=1,
            cabin_class=traveler.travel_class,
        ))
        inbound: list[FlightOffer] = []
        if session.is_round_trip:
            result = await self.travel.search_flights(FlightSearchRequest(
                origin=session.destination_code,
                destination=origin,
                departure_date=session.return_date,
                passengers=1,
                cabin_class=traveler.travel_class,
            ))
            inbound = result.data

        self.store.put(session)
        logger.info(
            "wizard_flights_searched",
            session_id=session_id,
            traveler=traveler.name,
            route=f"{origin}-{session.destination_code}",
            outbound=len(outbound.data),
            inbound=len(inbound),
        )
        return {
            "traveler_index": session.current_traveler_index,
            "traveler": traveler.name,
            "origin": origin,
            "destination": session.destination_code,
            "outbound_flights": outbound.data,
            "return_flights": inbound,
        }

    def select(self, session_id: str, user: UserIdentity, selection: FlightSelection) -> WizardSession:
        """Store the current traveler's flights and move on."""
        session = self._owned(session_id, user)
        if session.status != WizardStatus.FLIGHTS:
            raise WizardStateError(f"Cannot select flights while session is '{session.status}'")
        if session.is_round_trip and selection.return_offer is None:
            raise ValueError("A return flight is required for a round trip")

        index = session.current_traveler_index
        traveler = session.travelers[index]
        traveler.selected_outbound = selection.outbound
        traveler.selected_return = selection.return_offer if session.is_round_trip else None

        if index < len(session.travelers) - 1:
            session.current_traveler_index = index + 1
        else:
            session.status = WizardStatus.PAYMENT

        self.store.put(session)
        logger.info(
            "wizard_flight_selected",
            session_id=session_id,
            traveler_index=index,
            status=session.status,
        )
        return session

    async def complete(self, session_id: str, user: UserIdentity) -> WizardSession:
        """Record one booking per traveler and close the wizard.

        All bookings are written in one transaction; the session only moves to
        ``complete`` once they are saved, so a failed attempt can be retried.
        """
        session = self._owned(session_id, user)
        if session.status != WizardStatus.PAYMENT:
            raise WizardStateError(f"Cannot complete booking while session is '{session.status}'")

        confirmation = new_confirmation_number()
        bookings = []
        for traveler in session.travelers:
            offers = [o for o in (traveler.selected_outbound, traveler.selected_return) if o]
            bookings.append(self.travel.new_booking(
                user,
                booking_type=BookingType.FLIGHT,
                confirmation_number=confirmation,
                traveler_name=traveler.name,
                total_amount=sum((o.price for o in offers), Decimal("0")),
                currency=offers[0].currency,
                trip_id=session.trip_id,
                details={
                    "session_id": session.id,
                    "departure_city": traveler.departure_city,
                    "flights": [o.flight_number for o in offers],
                    "offer_ids": [o.id for o in offers],
                },
            ))
        await self.travel.save_bookings(bookings)

        session.booking_ids = [b.id for b in bookings]
        session.confirmation_number = confirmation
        session.booking_date = utcnow()
        session.status = WizardStatus.COMPLETE
        self.store.put(session)

        await log_action(
            user.user_id, "sequential_booking_completed", "travel",
            {"session_id": session.id, "confirmation": confirmation, "travelers": len(session.travelers)},
            organization_id=user.organization_id,
        )
        logger.info("wizard_completed", session_id=session.id, confirmation=confirmation)
        return session

    def cancel(self, session_id: str, user: UserIdentity) -> None:
        self._owned(session_id, user)
        self.store.delete(session_id)
        logger.info("wizard_cleared", session_id=session_id)
