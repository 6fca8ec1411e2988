"""Duffel API client for flight and accommodation search and booking."""

from __future__ import annotations

import datetime as dt
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from remvana.errors import ProviderError
from remvana.logging_config import get_logger
from remvana.modules.travel.models import (
    Airport, FlightEndpoint, FlightOffer, FlightSearchRequest, FlightSegment, FlightSlice,
    HotelBookingRequest, HotelResult, HotelSearchRequest, PassengerDetails,
)

logger = get_logger(__name__)

_DURATION_RE = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?)?$")


def format_duration(duration: Optional[str]) -> str:
    """Render an ISO-8601 duration such as ``PT2H30M`` as ``2h 30m``."""
    if not duration:
        return "0h 0m"
    match = _DURATION_RE.match(duration)
    if not match:
        return duration
    days, hours, minutes = (int(g) if g else 0 for g in match.groups())
    hours += days * 24
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _parse_time(value: Optional[str]) -> dt.datetime:
    if not value:
        return dt.datetime.now(dt.UTC).replace(tzinfo=None)
    return dt.datetime.fromisoformat(value.replace("Z", "+00:00"))


def _decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value)) if value is not None else Decimal("0")
    except InvalidOperation:
        return Decimal("0")


def _airport(place: Optional[dict[str, Any]]) -> Airport:
    place = place or {}
    return Airport(
        code=place.get("iata_code") or "",
        name=place.get("name") or "Unknown Airport",
        city=place.get("city_name") or (place.get("city") or {}).get("name") or "Unknown City",
        country=place.get("iata_country_code") or place.get("country_name") or "",
    )


class DuffelClient:
    """Client for the Duffel flights and stays API."""

    API_VERSION = "v2"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.duffel.com",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Accept": "application/json",
                "Content-Type": "application/json",
                "Duffel-Version": self.API_VERSION,
            },
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            logger.error("duffel_request_failed", path=path, error=str(exc))
            raise ProviderError("duffel", str(exc)) from exc

        if response.status_code >= 400:
            message = self._error_message(response)
            logger.error("duffel_api_error", path=path, status=response.status_code, error=message)
            raise ProviderError("duffel", message, response.status_code)
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            errors = response.json().get("errors") or []
        except ValueError:
            errors = []
        messages = [e.get("message", "") for e in errors if isinstance(e, dict)]
        return ", ".join(m for m in messages if m) or f"HTTP {response.status_code}"

    # ── Flights ──────────────────────────────────────────────────────

    async def search_flights(self, request: FlightSearchRequest, max_results: int = 50) -> list[FlightOffer]:
        """Create an offer request and return the offers it produced."""
        slices = [{
            "origin": request.origin,
            "destination": request.destination,
            "departure_date": request.departure_date.isoformat(),
        }]
        if request.return_date:
            slices.append({
                "origin": request.destination,
                "destination": request.origin,
                "departure_date": request.return_date.isoformat(),
            })
        body: dict[str, Any] = {
            "data": {
                "slices": slices,
                "passengers": [{"type": "adult"} for _ in range(request.passengers)],
                "cabin_class": request.cabin_class.value,
            }
        }
        if request.max_connections is not None:
            body["data"]["max_connections"] = request.max_connections

        logger.info(
            "duffel_flight_search",
            origin=request.origin,
            destination=request.destination,
            departure_date=request.departure_date.isoformat(),
        )
        data = await self._request(
            "POST", "/air/offer_requests", json=body, params={"return_offers": "true"}
        )
        offers = (data.get("data") or {}).get("offers") or []
        parsed = [self.parse_flight_offer(o) for o in offers[:max_results]]
        return [o for o in parsed if o is not None]

    async def get_offer(self, offer_id: str) -> dict[str, Any]:
        data = await self._request("GET", f"/air/offers/{offer_id}")
        return data.get("data") or {}

    async def create_order(self, offer_id: str, passengers: list[PassengerDetails]) -> dict[str, Any]:
        """Place an instant order for an offer, paying from the account balance."""
        offer = await self.get_offer(offer_id)
        offer_passengers = offer.get("passengers") or []
        if len(offer_passengers) != len(passengers):
            raise ValueError(
                f"Offer is priced for {len(offer_passengers)} passengers, got {len(passengers)}"
            )
        body = {
            "data": {
                "type": "instant",
                "selected_offers": [offer_id],
                "passengers": [
                    {
                        "id": slot.get("id"),
                        "title": p.title,
                        "given_name": p.given_name,
                        "family_name": p.family_name,
                        "born_on": p.born_on.isoformat(),
                        "email": p.email,
                        "phone_number": p.phone_number,
                        "gender": p.gender,
                    }
                    for slot, p in zip(offer_passengers, passengers)
                ],
                "payments": [{
                    "type": "balance",
                    "amount": offer.get("total_amount", "0"),
                    "currency": offer.get("total_currency", "USD"),
                }],
            }
        }
        data = await self._request("POST", "/air/orders", json=body)
        order = data.get("data") or {}
        logger.info("duffel_order_created", order_id=order.get("id"))
        return order

    async def cancel_order(self, order_id: str) -> dict[str, Any]:
        """Request and confirm cancellation of an order."""
        created = await self._request(
            "POST", "/air/order_cancellations", json={"data": {"order_id": order_id}}
        )
        cancellation_id = (created.get("data") or {}).get("id")
        if not cancellation_id:
            raise ProviderError("duffel", "cancellation was not created")
        confirmed = await self._request(
            "POST", f"/air/order_cancellations/{cancellation_id}/actions/confirm"
        )
        return confirmed.get("data") or {}

    async def suggest_places(self, query: str) -> list[Airport]:
        data = await self._request("GET", "/places/suggestions", params={"query": query})
        places = data.get("data") or []
        return [_airport(p) for p in places if p.get("iata_code")]

    def parse_flight_offer(self, offer: dict[str, Any]) -> Optional[FlightOffer]:
        """Map a Duffel offer onto the FlightOffer projection."""
        slices = offer.get("slices") or []
        if not slices or not slices[0].get("segments"):
            logger.warning("flight_offer_without_segments", offer_id=offer.get("id"))
            return None

        parsed_slices = [self._parse_slice(s) for s in slices if s.get("segments")]
        outbound = parsed_slices[0]
        first_segment = outbound.segments[0]
        owner = offer.get("owner") or {}

        return FlightOffer(
            id=offer.get("id", ""),
            airline=first_segment.airline_name or owner.get("name") or "Unknown Airline",
            airline_code=first_segment.airline_code or owner.get("iata_code") or "",
            flight_number=first_segment.flight_number,
            price=_decimal(offer.get("total_amount")),
            currency=offer.get("total_currency") or "USD",
            departure=outbound.segments[0].departure,
            arrival=outbound.segments[-1].arrival,
            duration=outbound.duration,
            stops=outbound.stops,
            slices=parsed_slices,
            booking_token=offer.get("id", ""),
            valid_until=_parse_time(offer["expires_at"]) if offer.get("expires_at") else None,
        )

    def _parse_slice(self, raw: dict[str, Any]) -> FlightSlice:
        segments = [self._parse_segment(s) for s in raw.get("segments", [])]
        return FlightSlice(
            origin=_airport(raw.get("origin")) if raw.get("origin") else segments[0].departure.airport,
            destination=(
                _airport(raw.get("destination")) if raw.get("destination")
                else segments[-1].arrival.airport
            ),
            departure_time=segments[0].departure.time,
            arrival_time=segments[-1].arrival.time,
            duration=format_duration(raw.get("duration")),
            stops=max(0, len(segments) - 1),
            segments=segments,
        )

    @staticmethod
    def _parse_segment(raw: dict[str, Any]) -> FlightSegment:
        carrier = raw.get("marketing_carrier") or raw.get("operating_carrier") or {}
        code = carrier.get("iata_code") or ""
        number = raw.get("marketing_carrier_flight_number") or raw.get("operating_carrier_flight_number") or ""
        return FlightSegment(
            departure=FlightEndpoint(airport=_airport(raw.get("origin")), time=_parse_time(raw.get("departing_at"))),
            arrival=FlightEndpoint(airport=_airport(raw.get("destination")), time=_parse_time(raw.get("arriving_at"))),
            airline_code=code,
            airline_name=carrier.get("name") or "Unknown Airline",
            flight_number=f"{code}{number}",
            duration=format_duration(raw.get("duration")),
            aircraft=(raw.get("aircraft") or {}).get("name") or "",
        )

    # ── Stays ────────────────────────────────────────────────────────

    async def search_hotels(
        self,
        request: HotelSearchRequest,
        latitude: float,
        longitude: float,
        max_results: int = 30,
    ) -> list[HotelResult]:
        body = {
            "data": {
                "location": {
                    "radius": request.radius_km,
                    "geographic_coordinates": {"latitude": latitude, "longitude": longitude},
                },
                "check_in_date": request.check_in.isoformat(),
                "check_out_date": request.check_out.isoformat(),
                "rooms": request.rooms,
                "guests": [{"type": "adult"} for _ in range(request.guests)],
            }
        }
        logger.info("duffel_hotel_search", destination=request.destination)
        data = await self._request("POST", "/stays/search", json=body)
        results = (data.get("data") or {}).get("results") or []
        return [self.parse_hotel_result(r) for r in results[:max_results]]

    def parse_hotel_result(self, result: dict[str, Any]) -> HotelResult:
        accommodation = result.get("accommodation") or {}
        address = (accommodation.get("location") or {}).get("address") or {}
        check_in = accommodation.get("check_in_information") or {}
        rating = accommodation.get("rating")
        review = accommodation.get("review_score")
        rooms = accommodation.get("rooms") or [{}]
        rates = rooms[0].get("rates") or [{}]
        return HotelResult(
            id=result.get("id") or accommodation.get("id") or "",
            name=accommodation.get("name") or "Unknown Hotel",
            price=_decimal(result.get("cheapest_rate_total_amount")),
            currency=result.get("cheapest_rate_currency") or "USD",
            rating=float(rating) if rating is not None else None,
            review_score=float(review) if review is not None else None,
            address=", ".join(
                part for part in (
                    address.get("line_one"),
                    address.get("city_name"),
                    address.get("region"),
                    address.get("postal_code"),
                    address.get("country_code"),
                ) if part
            ),
            city=address.get("city_name") or "",
            country=address.get("country_code") or "",
            amenities=[
                a.get("description") or a.get("type") or ""
                for a in accommodation.get("amenities") or []
            ],
            images=[p.get("url") for p in accommodation.get("photos") or [] if p.get("url")],
            check_in_time=check_in.get("check_in_after_time") or "14:00",
            check_out_time=check_in.get("check_out_before_time") or "12:00",
            rate_id=rates[0].get("id"),
        )

    async def book_stay(self, request: HotelBookingRequest) -> dict[str, Any]:
        """Quote the selected rate and book it."""
        quote = await self._request("POST", "/stays/quotes", json={"data": {"rate_id": request.rate_id}})
        quote_data = quote.get("data") or {}
        quote_id = quote_data.get("id")
        if not quote_id:
            raise ProviderError("duffel", "invalid quote returned for rate")

        body = {
            "data": {
                "quote_id": quote_id,
                "guests": [g.model_dump() for g in request.guests],
                "email": request.email,
                "phone_number": request.phone_number,
                "accommodation_special_requests": request.special_requests,
            }
        }
        booking = await self._request("POST", "/stays/bookings", json=body)
        booking_data = booking.get("data") or {}
        if not booking_data.get("id"):
            raise ProviderError("duffel", "invalid booking response")
        booking_data.setdefault("total_amount", quote_data.get("total_amount"))
        booking_data.setdefault("total_currency", quote_data.get("total_currency"))
        logger.info("duffel_stay_booked", booking_id=booking_data["id"])
        return booking_data
