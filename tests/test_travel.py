"""Tests for the travel module: Duffel client, search proxy and booking records."""

from __future__ import annotations

import datetime as dt
import json
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from remvana.errors import ProviderError, ProviderNotConfigured
from remvana.modules.travel.airports import city_coordinates, resolve_airport_code, search_airports
from remvana.modules.travel.models import (
    Airport, BookingType, FlightSearchRequest, HotelSearchRequest,
)
from remvana.modules.travel.providers import DuffelClient, format_duration
from remvana.modules.travel.service import TravelService


def _mock_duffel(handler) -> DuffelClient:
    return DuffelClient("duffel_test_key", transport=httpx.MockTransport(handler))


def _search(**overrides) -> FlightSearchRequest:
    data: dict[str, Any] = {
        "origin": "jfk",
        "destination": "LHR",
        "departure_date": dt.date(2026, 11, 10),
    }
    data.update(overrides)
    return FlightSearchRequest(**data)


class TestFormatDuration:
    """Tests for ISO-8601 duration rendering."""

    @pytest.mark.parametrize("raw,expected", [
        ("PT2H30M", "2h 30m"),
        ("PT45M", "45m"),
        ("PT9H", "9h 0m"),
        ("P1DT2H5M", "26h 5m"),
        (None, "0h 0m"),
        ("", "0h 0m"),
        ("garbage", "garbage"),
    ])
    def test_format(self, raw, expected) -> None:
        assert format_duration(raw) == expected


class TestSearchRequest:
    """Tests for request validation."""

    def test_codes_uppercased(self) -> None:
        assert _search().origin == "JFK"

    def test_same_origin_and_destination_rejected(self) -> None:
        with pytest.raises(ValueError):
            _search(destination="JFK")

    def test_non_alpha_code_rejected(self) -> None:
        with pytest.raises(ValueError):
            _search(origin="J1K")


class TestDuffelParsing:
    """Tests for mapping provider payloads onto projections."""

    def test_parse_flight_offer(self, duffel_offer) -> None:
        offer = DuffelClient("k").parse_flight_offer(duffel_offer)
        assert offer is not None
        assert offer.id == "off_0001"
        assert offer.booking_token == "off_0001"
        assert offer.airline == "Duffel Airways"
        assert offer.airline_code == "ZZ"
        assert offer.flight_number == "ZZ101"
        assert offer.price == Decimal("245.60")
        assert offer.currency == "USD"
        assert offer.stops == 1
        assert offer.duration == "9h 15m"
        assert offer.departure.airport.code == "JFK"
        assert offer.departure.time == dt.datetime(2026, 11, 10, 8, 0)
        assert offer.arrival.airport.code == "LHR"
        assert offer.arrival.time == dt.datetime(2026, 11, 10, 17, 15)
        assert offer.slices[0].segments[1].flight_number == "ZZ202"
        assert offer.slices[0].segments[0].aircraft == "Airbus A321"
        assert offer.is_round_trip is False

    def test_offer_without_segments_is_skipped(self) -> None:
        assert DuffelClient("k").parse_flight_offer({"id": "x", "slices": []}) is None

    def test_parse_hotel_result(self) -> None:
        hotel = DuffelClient("k").parse_hotel_result({
            "id": "sr_1",
            "cheapest_rate_total_amount": "310.00",
            "cheapest_rate_currency": "EUR",
            "accommodation": {
                "name": "Hotel Avenida",
                "rating": 4,
                "location": {"address": {"line_one": "Av. da Liberdade 1", "city_name": "Lisbon", "country_code": "PT"}},
                "amenities": [{"type": "wifi", "description": "Free WiFi"}],
                "photos": [{"url": "https://img.test/1.jpg"}],
                "rooms": [{"rates": [{"id": "rat_1"}]}],
            },
        })
        assert hotel.name == "Hotel Avenida"
        assert hotel.price == Decimal("310.00")
        assert hotel.address == "Av. da Liberdade 1, Lisbon, PT"
        assert hotel.amenities == ["Free WiFi"]
        assert hotel.rate_id == "rat_1"
        assert hotel.check_in_time == "14:00"

    def test_hotel_without_rooms_has_no_rate(self) -> None:
        hotel = DuffelClient("k").parse_hotel_result({"id": "sr_2", "accommodation": {"name": "X"}})
        assert hotel.rate_id is None


class TestDuffelClient:
    """Tests for the HTTP side of the Duffel client."""

    @pytest.mark.asyncio
    async def test_search_flights_request(self, duffel_offer) -> None:
        seen: dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {"offers": [duffel_offer]}})

        offers = await _mock_duffel(handler).search_flights(
            _search(return_date=dt.date(2026, 11, 17), passengers=2)
        )

        assert len(offers) == 1
        assert seen["path"] == "/air/offer_requests"
        assert seen["params"] == {"return_offers": "true"}
        assert seen["headers"]["Duffel-Version"] == "v2"
        assert seen["headers"]["Authorization"] == "Bearer duffel_test_key"
        body = seen["body"]["data"]
        assert len(body["slices"]) == 2
        assert body["slices"][1] == {"origin": "LHR", "destination": "JFK", "departure_date": "2026-11-17"}
        assert body["passengers"] == [{"type": "adult"}, {"type": "adult"}]
        assert body["cabin_class"] == "economy"

    @pytest.mark.asyncio
    async def test_error_becomes_provider_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, json={"errors": [{"message": "Invalid date"}, {"message": "Bad origin"}]})

        with pytest.raises(ProviderError) as exc_info:
            await _mock_duffel(handler).search_flights(_search())
        assert exc_info.value.status_code == 422
        assert "Invalid date, Bad origin" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error_becomes_provider_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route", request=request)

        with pytest.raises(ProviderError) as exc_info:
            await _mock_duffel(handler).suggest_places("lon")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_cancel_order_confirms(self) -> None:
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path.endswith("/confirm"):
                return httpx.Response(200, json={"data": {"id": "ore_1", "confirmed_at": "now"}})
            return httpx.Response(200, json={"data": {"id": "ore_1"}})

        result = await _mock_duffel(handler).cancel_order("ord_1")
        assert paths == ["/air/order_cancellations", "/air/order_cancellations/ore_1/actions/confirm"]
        assert result["confirmed_at"] == "now"

    @pytest.mark.asyncio
    async def test_create_order_checks_passenger_count(self) -> None:
        from remvana.modules.travel.models import PassengerDetails

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"id": "off_1", "passengers": [{"id": "p1"}, {"id": "p2"}]}})

        passenger = PassengerDetails(
            title="ms", given_name="Ana", family_name="Silva", born_on=dt.date(1990, 1, 1),
            email="ana@example.com", phone_number="+15555550100", gender="F",
        )
        with pytest.raises(ValueError, match="2 passengers"):
            await _mock_duffel(handler).create_order("off_1", [passenger])


class TestAirports:
    """Tests for the built-in airport table."""

    def test_search_by_city(self) -> None:
        codes = [a.code for a in search_airports("lond")]
        assert codes == ["LHR"]

    def test_search_by_code_prefix(self) -> None:
        assert "SFO" in [a.code for a in search_airports("sf")]

    @pytest.mark.parametrize("value,code", [
        ("New York", "JFK"),
        ("Chicago, IL", "ORD"),
        ("cdg", "CDG"),
        ("Atlantis", None),
        ("", None),
    ])
    def test_resolve(self, value, code) -> None:
        assert resolve_airport_code(value) == code

    def test_city_coordinates(self) -> None:
        assert city_coordinates("Paris, France") == (48.8566, 2.3522)
        assert city_coordinates("Atlantis") is None


class TestTravelService:
    """Tests for the search proxy."""

    @pytest.mark.asyncio
    async def test_not_configured(self) -> None:
        service = TravelService()
        assert service.is_configured is False
        with pytest.raises(ProviderNotConfigured):
            await service.search_flights(_search())

    @pytest.mark.asyncio
    async def test_return_before_departure_rejected_before_provider(self) -> None:
        client = AsyncMock(spec=DuffelClient)
        with pytest.raises(ValueError):
            await TravelService(client).search_flights(_search(return_date=dt.date(2026, 11, 1)))
        client.search_flights.assert_not_called()

    @pytest.mark.asyncio
    async def test_search_flights_wraps_offers(self, duffel_offer) -> None:
        client = AsyncMock(spec=DuffelClient)
        client.search_flights.return_value = [DuffelClient("k").parse_flight_offer(duffel_offer)]
        result = await TravelService(client).search_flights(_search())
        assert result.success is True
        assert result.source == "duffel"
        assert result.data[0].flight_number == "ZZ101"

    @pytest.mark.asyncio
    async def test_provider_error_propagates(self) -> None:
        client = AsyncMock(spec=DuffelClient)
        client.search_flights.side_effect = ProviderError("duffel", "down", 500)
        with pytest.raises(ProviderError):
            await TravelService(client).search_flights(_search())

    @pytest.mark.asyncio
    async def test_hotel_search_validation(self) -> None:
        client = AsyncMock(spec=DuffelClient)
        service = TravelService(client)
        with pytest.raises(ValueError, match="check_out"):
            await service.search_hotels(HotelSearchRequest(
                destination="Paris", check_in=dt.date(2026, 11, 10), check_out=dt.date(2026, 11, 10),
            ))
        with pytest.raises(ValueError, match="latitude"):
            await service.search_hotels(HotelSearchRequest(
                destination="Atlantis", check_in=dt.date(2026, 11, 10), check_out=dt.date(2026, 11, 12),
            ))
        client.search_hotels.assert_not_called()

    @pytest.mark.asyncio
    async def test_hotel_search_uses_city_coordinates(self) -> None:
        client = AsyncMock(spec=DuffelClient)
        client.search_hotels.return_value = []
        await TravelService(client).search_hotels(HotelSearchRequest(
            destination="Paris", check_in=dt.date(2026, 11, 10), check_out=dt.date(2026, 11, 12),
        ))
        args = client.search_hotels.call_args.args
        assert args[1:] == (48.8566, 2.3522)

    @pytest.mark.asyncio
    async def test_airport_search_short_query(self) -> None:
        with pytest.raises(ValueError):
            await TravelService().search_airports("l")

    @pytest.mark.asyncio
    async def test_airport_search_falls_back_to_builtin(self) -> None:
        result = await TravelService().search_airports("paris")
        assert result.source == "builtin"
        assert [a.code for a in result.data] == ["CDG"]

    @pytest.mark.asyncio
    async def test_airport_search_falls_back_on_provider_error(self) -> None:
        client = AsyncMock(spec=DuffelClient)
        client.suggest_places.side_effect = ProviderError("duffel", "down")
        result = await TravelService(client).search_airports("paris")
        assert result.source == "builtin"

    @pytest.mark.asyncio
    async def test_airport_search_prefers_provider(self) -> None:
        client = AsyncMock(spec=DuffelClient)
        client.suggest_places.return_value = [Airport(code="LIS", name="Humberto Delgado", city="Lisbon")]
        result = await TravelService(client).search_airports("lisbon")
        assert result.source == "duffel"
        assert result.data[0].code == "LIS"

    def test_resolve_airport_code(self) -> None:
        service = TravelService()
        assert service.resolve_airport_code("Miami") == "MIA"
        with pytest.raises(ValueError):
            service.resolve_airport_code("Atlantis")


class TestBookings:
    """Tests for persisted booking records."""

    async def _record(self, service: TravelService, user, **kwargs):
        data = {
            "booking_type": BookingType.FLIGHT,
            "confirmation_number": "CONFABC",
            "traveler_name": "Ana Silva",
            "total_amount": Decimal("245.60"),
        }
        data.update(kwargs)
        return await service.record_booking(user, **data)

    @pytest.mark.asyncio
    async def test_record_and_list(self, db, traveler, agent, manager) -> None:
        service = TravelService()
        mine = await self._record(service, traveler, trip_id="trip-1")
        await self._record(service, agent)

        assert [b.id for b in await service.list_bookings(traveler)] == [mine.id]
        assert len(await service.list_bookings(manager)) == 2
        assert len(await service.list_bookings(manager, trip_id="trip-1")) == 1
        assert mine.to_dict()["total_amount"] == "245.60"

    @pytest.mark.asyncio
    async def test_managers_see_only_their_organization(self, db, traveler, manager, other_manager) -> None:
        service = TravelService()
        booking = await self._record(service, traveler)
        assert len(await service.list_bookings(manager)) == 1
        assert await service.list_bookings(other_manager) == []
        with pytest.raises(PermissionError):
            await service.cancel_booking(booking.id, manager)

    @pytest.mark.asyncio
    async def test_cancel(self, db, traveler, agent) -> None:
        service = TravelService()
        booking = await self._record(service, traveler)

        with pytest.raises(PermissionError):
            await service.cancel_booking(booking.id, agent)
        with pytest.raises(LookupError):
            await service.cancel_booking("missing", traveler)

        cancelled = await service.cancel_booking(booking.id, traveler)
        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at is not None
        again = await service.cancel_booking(booking.id, traveler)
        assert again.status == "cancelled"

    @pytest.mark.asyncio
    async def test_cancel_flight_cancels_provider_order(self, db, traveler) -> None:
        client = AsyncMock(spec=DuffelClient)
        service = TravelService(client)
        booking = await self._record(service, traveler, provider_reference="ord_1")
        await service.cancel_booking(booking.id, traveler)
        client.cancel_order.assert_awaited_once_with("ord_1")

    @pytest.mark.asyncio
    async def test_cancel_provider_booking_without_credentials(self, db, traveler) -> None:
        service = TravelService()
        booking = await self._record(service, traveler, provider_reference="ord_1")
        with pytest.raises(ProviderNotConfigured):
            await service.cancel_booking(booking.id, traveler)
        [stored] = await service.list_bookings(traveler)
        assert stored.status == "confirmed"
        assert stored.cancelled_at is None

    @pytest.mark.asyncio
    async def test_cancel_local_booking_needs_no_provider(self, db, traveler) -> None:
        service = TravelService()
        booking = await self._record(service, traveler, booking_type=BookingType.HOTEL, provider_reference="htl_1")
        assert (await service.cancel_booking(booking.id, traveler)).status == "cancelled"

    @pytest.mark.asyncio
    async def test_book_flight_records_order(self, db, traveler) -> None:
        from remvana.modules.travel.models import FlightBookingRequest

        client = AsyncMock(spec=DuffelClient)
        client.create_order.return_value = {
            "id": "ord_9", "booking_reference": "RZPNX8", "total_amount": "245.60", "total_currency": "USD",
        }
        request = FlightBookingRequest.model_validate({
            "offer_id": "off_0001",
            "trip_id": "trip-1",
            "passengers": [{
                "title": "ms", "given_name": "Ana", "family_name": "Silva", "born_on": "1990-01-01",
                "email": "ana@example.com", "phone_number": "+15555550100", "gender": "f",
            }],
        })
        booking = await TravelService(client).book_flight(traveler, request)
        assert booking.confirmation_number == "RZPNX8"
        assert booking.provider_reference == "ord_9"
        assert booking.traveler_name == "Ana Silva"
        assert booking.total_amount == Decimal("245.60")
