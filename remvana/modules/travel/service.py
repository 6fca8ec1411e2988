"""Travel service: booking-search proxy, provider orders and booking records."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select

from remvana.config import get_settings
from remvana.database import get_session, utcnow
from remvana.errors import ProviderError, ProviderNotConfigured
from remvana.logging_config import get_logger
from remvana.modules.travel.airports import city_coordinates, resolve_airport_code, search_airports
from remvana.modules.travel.models import (
    Booking, BookingStatus, BookingType, FlightBookingRequest, FlightSearchRequest,
    HotelBookingRequest, HotelSearchRequest,
)
from remvana.modules.travel.providers import DuffelClient
from remvana.security.audit import log_action
from remvana.security.rbac import UserIdentity, owner_scope

logger = get_logger(__name__)


@dataclass
class SearchResult:
    """Generic search result container."""
    success: bool
    data: list[Any]
    error: Optional[str] = None
    source: str = ""


class TravelService:
    """Unified travel search and booking service."""

    def __init__(self, client: Optional[DuffelClient] = None) -> None:
        self._client = client

    def _duffel(self) -> DuffelClient:
        if self._client is not None:
            return self._client
        settings = get_settings()
        if not settings.has_provider("duffel"):
            raise ProviderNotConfigured("Duffel", "DUFFEL_API_KEY")
        self._client = DuffelClient(settings.duffel_api_key, settings.duffel_base_url)
        return self._client

    @property
    def is_configured(self) -> bool:
        return self._client is not None or get_settings().has_provider("duffel")

    # ── Search ───────────────────────────────────────────────────────

    async def search_flights(self, request: FlightSearchRequest) -> SearchResult:
        """Search flights through the provider.

        Raises:
            ValueError: If the return date is before the departure date.
            ProviderNotConfigured: If no provider credentials are set.
            ProviderError: If the provider call fails.
        """
        if request.return_date and request.return_date < request.departure_date:
            raise ValueError("return_date must be on or after departure_date")
        client = self._duffel()
        try:
            offers = await client.search_flights(request)
        except ProviderError as exc:
            logger.error("flight_search_failed", origin=request.origin, error=str(exc))
            raise
        logger.info("flight_search_completed", results=len(offers))
        return SearchResult(success=True, data=offers, source="duffel")

    async def search_hotels(self, request: HotelSearchRequest) -> SearchResult:
        if request.check_out <= request.check_in:
            raise ValueError("check_out must be after check_in")
        if request.latitude is not None and request.longitude is not None:
            coords = (request.latitude, request.longitude)
        else:
            coords = city_coordinates(request.destination)
        if coords is None:
            raise ValueError(
                f"Unknown destination '{request.destination}'; pass latitude and longitude"
            )
        client = self._duffel()
        try:
            hotels = await client.search_hotels(request, *coords)
        except ProviderError as exc:
            logger.error("hotel_search_failed", destination=request.destination, error=str(exc))
            raise
        return SearchResult(success=True, data=hotels, source="duffel")

    async def search_airports(self, query: str) -> SearchResult:
        """Autocomplete airports, using the built-in table when the provider is unavailable."""
        if len(query.strip()) < 2:
            raise ValueError("query must be at least 2 characters")
        if self.is_configured:
            try:
                places = await self._duffel().suggest_places(query.strip())
                if places:
                    return SearchResult(success=True, data=places, source="duffel")
            except ProviderError as exc:
                logger.warning("airport_suggestions_failed", query=query, error=str(exc))
        return SearchResult(success=True, data=search_airports(query), source="builtin")

    def resolve_airport_code(self, city_or_code: str) -> str:
        code = resolve_airport_code(city_or_code)
        if code is None:
            raise ValueError(f"Could not resolve an airport for '{city_or_code}'")
        return code

    # ── Orders ───────────────────────────────────────────────────────

    async def book_flight(self, user: UserIdentity, request: FlightBookingRequest) -> Booking:
        """Place a flight order with the provider and record it."""
        order = await self._duffel().create_order(request.offer_id, request.passengers)
        lead = request.passengers[0]
        booking = await self.record_booking(
            user,
            booking_type=BookingType.FLIGHT,
            confirmation_number=order.get("booking_reference") or order.get("id", ""),
            provider_reference=order.get("id"),
            traveler_name=f"{lead.given_name} {lead.family_name}",
            total_amount=Decimal(str(order.get("total_amount") or "0")),
            currency=order.get("total_currency") or "USD",
            trip_id=request.trip_id,
            details={"offer_id": request.offer_id, "passengers": len(request.passengers)},
        )
        await log_action(
            user.user_id, "flight_booked", "travel",
            {"booking_id": booking.id, "offer_id": request.offer_id},
            organization_id=user.organization_id,
        )
        return booking

    async def book_hotel(self, user: UserIdentity, request: HotelBookingRequest) -> Booking:
        stay = await self._duffel().book_stay(request)
        lead = request.guests[0]
        accommodation = stay.get("accommodation") or {}
        booking = await self.record_booking(
            user,
            booking_type=BookingType.HOTEL,
            confirmation_number=stay.get("reference") or stay["id"],
            provider_reference=stay["id"],
            traveler_name=f"{lead.given_name} {lead.family_name}",
            total_amount=Decimal(str(stay.get("total_amount") or "0")),
            currency=stay.get("total_currency") or "USD",
            trip_id=request.trip_id,
            details={
                "rate_id": request.rate_id,
                "hotel_name": accommodation.get("name", ""),
                "check_in_date": stay.get("check_in_date"),
                "check_out_date": stay.get("check_out_date"),
            },
        )
        await log_action(
            user.user_id, "hotel_booked", "travel", {"booking_id": booking.id},
            organization_id=user.organization_id,
        )
        return booking

    # ── Booking records ──────────────────────────────────────────────

    def new_booking(
        self,
        user: UserIdentity,
        booking_type: BookingType,
        confirmation_number: str,
        traveler_name: str,
        total_amount: Decimal,
        currency: str = "USD",
        trip_id: Optional[str] = None,
        provider_reference: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> Booking:
        """Build an unsaved booking owned by ``user``."""
        return Booking(
            trip_id=trip_id,
            owner_id=user.user_id,
            organization_id=user.organization_id,
            booking_type=booking_type.value,
            status=BookingStatus.CONFIRMED.value,
            confirmation_number=confirmation_number,
            provider_reference=provider_reference,
            traveler_name=traveler_name,
            total_amount=total_amount,
            currency=currency,
            details=details or {},
        )

    async def save_bookings(self, bookings: list[Booking]) -> list[Booking]:
        """Persist bookings in one transaction; if any write fails none are kept."""
        async with get_session() as session:
            session.add_all(bookings)
            await session.flush()
        for booking in bookings:
            logger.info(
                "booking_recorded",
                booking_id=booking.id,
                booking_type=booking.booking_type,
                confirmation=booking.confirmation_number,
            )
        return bookings

    async def record_booking(self, user: UserIdentity, **fields: Any) -> Booking:
        (booking,) = await self.save_bookings([self.new_booking(user, **fields)])
        return booking

    async def list_bookings(self, user: UserIdentity, trip_id: Optional[str] = None) -> list[Booking]:
        stmt = select(Booking)
        scope = owner_scope(Booking, user)
        if scope is not None:
            stmt = stmt.where(scope)
        if trip_id:
            stmt = stmt.where(Booking.trip_id == trip_id)
        async with get_session() as session:
            result = await session.execute(stmt.order_by(Booking.created_at.desc()))
            return list(result.scalars().all())

    async def cancel_booking(self, booking_id: str, user: UserIdentity) -> Booking:
        """Mark a booking cancelled, cancelling the provider order when there is one.

        Raises:
            ProviderNotConfigured: If the booking has a provider order but no provider
                credentials are set; the booking is left unchanged.
        """
        async with get_session() as session:
            booking = await session.get(Booking, booking_id)
        if booking is None:
            raise LookupError(f"Booking {booking_id} not found")
        if not user.can_modify(booking.owner_id):
            raise PermissionError(f"User '{user.user_id}' cannot cancel booking {booking_id}")
        if booking.status == BookingStatus.CANCELLED:
            return booking

        if booking.booking_type == BookingType.FLIGHT and booking.provider_reference:
            await self._duffel().cancel_order(booking.provider_reference)

        async with get_session() as session:
            booking = await session.get(Booking, booking_id)
            booking.status = BookingStatus.CANCELLED.value
            booking.cancelled_at = utcnow()
        logger.info("booking_cancelled", booking_id=booking_id)
        await log_action(
            user.user_id, "booking_cancelled", "travel", {"booking_id": booking_id},
            organization_id=user.organization_id,
        )
        return booking
