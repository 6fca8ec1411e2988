"""API route definitions for Remvana."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from pydantic import BaseModel, Field

from remvana import __version__
from remvana.api.deps import get_current_user, get_optional_user, require_org_permission, require_permission
from remvana.config import get_settings
from remvana.errors import ProviderError, ProviderNotConfigured, StateError
from remvana.logging_config import get_logger
from remvana.modules.booking_wizard import BookingWizard
from remvana.modules.booking_wizard.models import FlightSelection, WizardStart
from remvana.modules.corporate_cards import CorporateCardService
from remvana.modules.corporate_cards.models import (
    AddFundsRequest, CardFreezeRequest, CardIssueRequest, CardUpdateRequest,
)
from remvana.modules.proposals import ProposalService
from remvana.modules.proposals.models import ProposalCreate, ProposalStatusUpdate
from remvana.modules.templates import TemplateService
from remvana.modules.templates.models import TemplateFromTrip
from remvana.modules.travel import TravelService
from remvana.modules.travel.models import (
    FlightBookingRequest, FlightSearchRequest, HotelBookingRequest, HotelSearchRequest,
)
from remvana.modules.trips import TripService
from remvana.modules.trips.models import (
    ActivityCreate, ActivityUpdate, TravelerCreate, TravelerUpdate, TripCreate, TripUpdate,
)
from remvana.security.audit import recent_entries
from remvana.security.monitor import SecurityMonitor
from remvana.security.rbac import Permission, UserIdentity

logger = get_logger(__name__)

router = APIRouter()


# ── Request / Response Models ────────────────────────────────────────

class ActivityCompleteRequest(BaseModel):
    """Set the completed flag; omit to toggle."""

    completed: Optional[bool] = None


class ActivityOrderRequest(BaseModel):
    order: int = Field(..., ge=0)


class AlertResolveRequest(BaseModel):
    resolution: str = ""
    notes: str = ""


@contextmanager
def service_errors() -> Iterator[None]:
    """Translate service exceptions into HTTP errors."""
    try:
        yield
    except ProviderNotConfigured as exc:
        raise HTTPException(503, str(exc)) from exc
    except ProviderError as exc:
        raise HTTPException(502, str(exc)) from exc
    except StateError as exc:
        raise HTTPException(409, str(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(403, str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(404, str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc


def _pdf(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ── Health ───────────────────────────────────────────────────────────

@router.get("/health")
async def health_check() -> dict[str, Any]:
    """System health check."""
    settings = get_settings()
    return {
        "status": "healthy",
        "version": __version__,
        "environment": settings.remvana_env,
        "providers": {
            "duffel": settings.has_provider("duffel"),
            "stripe": settings.has_provider("stripe"),
            "openai": settings.has_provider("openai"),
        },
    }


# ── Trips ────────────────────────────────────────────────────────────

@router.get("/trips")
async def list_trips(user: UserIdentity = Depends(get_current_user)) -> list[dict[str, Any]]:
    trips = await TripService().list_trips(user)
    return [t.to_dict() for t in trips]


@router.post("/trips", status_code=201)
async def create_trip(request: TripCreate, user: UserIdentity = Depends(get_current_user)) -> dict[str, Any]:
    with service_errors():
        trip = await TripService().create_trip(user, request)
    return trip.to_dict()


@router.get("/trips/{trip_id}")
async def get_trip(trip_id: str, user: UserIdentity = Depends(get_current_user)) -> dict[str, Any]:
    """Trip with its activities and travelers."""
    service = TripService()
    with service_errors():
        trip = await service.get_trip(trip_id, user)
    activities = await service.list_activities(trip_id)
    travelers = await service.list_travelers(trip_id)
    return {
        **trip.to_dict(),
        "activities": [a.to_dict() for a in activities],
        "travelers": [t.to_dict() for t in travelers],
    }


@router.put("/trips/{trip_id}")
async def update_trip(
    trip_id: str, request: TripUpdate, user: UserIdentity = Depends(get_current_user)
) -> dict[str, Any]:
    with service_errors():
        trip = await TripService().update_trip(trip_id, user, request)
    return trip.to_dict()


@router.delete("/trips/{trip_id}")
async def delete_trip(trip_id: str, user: UserIdentity = Depends(get_current_user)) -> dict[str, str]:
    with service_errors():
        await TripService().delete_trip(trip_id, user)
    return {"status": "deleted"}


@router.get("/trips/{trip_id}/export/pdf")
async def export_trip_pdf(trip_id: str, user: UserIdentity = Depends(get_current_user)) -> Response:
    service = TripService()
    with service_errors():
        trip = await service.get_trip(trip_id, user)
    activities = await service.list_activities(trip_id)
    return _pdf(service.generate_itinerary_pdf(trip, activities), f"itinerary-{trip_id}.pdf")


# ── Activities ───────────────────────────────────────────────────────

@router.get("/trips/{trip_id}/activities")
async def list_activities(trip_id: str, user: UserIdentity = Depends(get_current_user)) -> list[dict[str, Any]]:
    service = TripService()
    with service_errors():
        await service.get_trip(trip_id, user)
    return [a.to_dict() for a in await service.list_activities(trip_id)]


@router.post("/trips/{trip_id}/activities", status_code=201)
async def create_activity(
    trip_id: str, request: ActivityCreate, user: UserIdentity = Depends(get_current_user)
) -> dict[str, Any]:
    with service_errors():
        activity = await TripService().add_activity(trip_id, user, request)
    return activity.to_dict()


@router.put("/activities/{activity_id}")
async def update_activity(
    activity_id: str, request: ActivityUpdate, user: UserIdentity = Depends(get_current_user)
) -> dict[str, Any]:
    with service_errors():
        activity = await TripService().update_activity(activity_id, user, request)
    return activity.to_dict()


@router.patch("/activities/{activity_id}/complete")
async def complete_activity(
    activity_id: str,
    request: ActivityCompleteRequest = ActivityCompleteRequest(),
    user: UserIdentity = Depends(get_current_user),
) -> dict[str, Any]:
    with service_errors():
        activity = await TripService().set_activity_completed(activity_id, user, request.completed)
    return activity.to_dict()


@router.put("/activities/{activity_id}/order")
async def reorder_activity(
    activity_id: str, request: ActivityOrderRequest, user: UserIdentity = Depends(get_current_user)
) -> dict[str, Any]:
    with service_errors():
        activity = await TripService().reorder_activity(activity_id, user, request.order)
    return activity.to_dict()


@router.delete("/activities/{activity_id}")
async def delete_activity(activity_id: str, user: UserIdentity = Depends(get_current_user)) -> dict[str, str]:
    with service_errors():
        await TripService().delete_activity(activity_id, user)
    return {"status": "deleted"}


# ── Travelers ────────────────────────────────────────────────────────

@router.get("/trips/{trip_id}/travelers")
async def list_travelers(trip_id: str, user: UserIdentity = Depends(get_current_user)) -> list[dict[str, Any]]:
    service = TripService()
    with service_errors():
        await service.get_trip(trip_id, user)
    return [t.to_dict() for t in await service.list_travelers(trip_id)]


@router.post("/trips/{trip_id}/travelers", status_code=201)
async def add_traveler(
    trip_id: str, request: TravelerCreate, user: UserIdentity = Depends(get_current_user)
) -> dict[str, Any]:
    with service_errors():
        traveler = await TripService().add_traveler(trip_id, user, request)
    return traveler.to_dict()


@router.put("/trips/{trip_id}/travelers/{traveler_id}")
async def update_traveler(
    trip_id: str,
    traveler_id: str,
    request: TravelerUpdate,
    user: UserIdentity = Depends(get_current_user),
) -> dict[str, Any]:
    with service_errors():
        traveler = await TripService().update_traveler(trip_id, traveler_id, user, request)
    return traveler.to_dict()


@router.delete("/trips/{trip_id}/travelers/{traveler_id}")
async def delete_traveler(
    trip_id: str, traveler_id: str, user: UserIdentity = Depends(get_current_user)
) -> dict[str, str]:
    with service_errors():
        await TripService().delete_traveler(trip_id, traveler_id, user)
    return {"status": "deleted"}


# ── Booking search proxy ─────────────────────────────────────────────

@router.post("/bookings/flights/search")
async def search_flights(
    request: FlightSearchRequest, user: UserIdentity = Depends(get_current_user)
) -> dict[str, Any]:
    """Search flights through the booking provider."""
    with service_errors():
        result = await TravelService().search_flights(request)
    return {"flights": [o.model_dump(mode="json") for o in result.data], "source": result.source}


@router.post("/bookings/hotels/search")
async def search_hotels(
    request: HotelSearchRequest, user: UserIdentity = Depends(get_current_user)
) -> dict[str, Any]:
    with service_errors():
        result = await TravelService().search_hotels(request)
    return {"hotels": [h.model_dump(mode="json") for h in result.data], "source": result.source}


@router.get("/bookings/airports/search")
async def search_airports(
    q: str = Query(default="", description="City, airport name or IATA code"),
    user: UserIdentity = Depends(get_current_user),
) -> dict[str, Any]:
    with service_errors():
        result = await TravelService().search_airports(q)
    return {"airports": [a.model_dump() for a in result.data], "source": result.source}


@router.post("/bookings/flights/book", status_code=201)
async def book_flight(
    request: FlightBookingRequest, user: UserIdentity = Depends(require_permission(Permission.BOOK_TRAVEL))
) -> dict[str, Any]:
    with service_errors():
        booking = await TravelService().book_flight(user, request)
    return booking.to_dict()


@router.post("/bookings/hotels/book", status_code=201)
async def book_hotel(
    request: HotelBookingRequest, user: UserIdentity = Depends(require_permission(Permission.BOOK_TRAVEL))
) -> dict[str, Any]:
    with service_errors():
        booking = await TravelService().book_hotel(user, request)
    return booking.to_dict()


@router.get("/bookings")
async def list_bookings(
    trip_id: Optional[str] = None, user: UserIdentity = Depends(get_current_user)
) -> list[dict[str, Any]]:
    bookings = await TravelService().list_bookings(user, trip_id)
    return [b.to_dict() for b in bookings]


@router.delete("/bookings/{booking_id}")
async def cancel_booking(booking_id: str, user: UserIdentity = Depends(get_current_user)) -> dict[str, Any]:
    with service_errors():
        booking = await TravelService().cancel_booking(booking_id, user)
    return booking.to_dict()


# ── Sequential booking wizard ────────────────────────────────────────

@router.post("/bookings/sequential", status_code=201)
async def start_sequential_booking(
    request: WizardStart, user: UserIdentity = Depends(require_permission(Permission.BOOK_TRAVEL))
) -> dict[str, Any]:
    with service_errors():
        session = await BookingWizard().start(user, request)
    return session.to_dict()


@router.get("/bookings/sequential/{session_id}")
async def get_sequential_booking(
    session_id: str, user: UserIdentity = Depends(get_current_user)
) -> dict[str, Any]:
    with service_errors():
        session = BookingWizard().get(session_id, user)
    return session.to_dict()


@router.post("/bookings/sequential/{session_id}/search")
async def search_sequential_flights(
    session_id: str, user: UserIdentity = Depends(get_current_user)
) -> dict[str, Any]:
    with service_errors():
        result = await BookingWizard().search(session_id, user)
    result["outbound_flights"] = [o.model_dump(mode="json") for o in result["outbound_flights"]]
    result["return_flights"] = [o.model_dump(mode="json") for o in result["return_flights"]]
    return result


@router.post("/bookings/sequential/{session_id}/select")
async def select_sequential_flights(
    session_id: str, request: FlightSelection, user: UserIdentity = Depends(get_current_user)
) -> dict[str, Any]:
    with service_errors():
        session = BookingWizard().select(session_id, user, request)
    return session.to_dict()


@router.post("/bookings/sequential/{session_id}/complete")
async def complete_sequential_booking(
    session_id: str, user: UserIdentity = Depends(get_current_user)
) -> dict[str, Any]:
    with service_errors():
        session = await BookingWizard().complete(session_id, user)
    return session.to_dict()


@router.delete("/bookings/sequential/{session_id}")
async def clear_sequential_booking(
    session_id: str, user: UserIdentity = Depends(get_current_user)
) -> dict[str, str]:
    with service_errors():
        BookingWizard().cancel(session_id, user)
    return {"status": "cleared"}


# ── Proposals ────────────────────────────────────────────────────────

@router.post("/trips/{trip_id}/proposal", status_code=201)
async def create_proposal(
    trip_id: str, request: ProposalCreate, user: UserIdentity = Depends(get_current_user)
) -> dict[str, Any]:
    """Generate a draft proposal for a trip."""
    with service_errors():
        proposal = await ProposalService().create_proposal(trip_id, user, request)
    return proposal.to_dict()


@router.get("/proposals")
async def list_proposals(
    trip_id: Optional[str] = None, user: UserIdentity = Depends(get_current_user)
) -> list[dict[str, Any]]:
    proposals = await ProposalService().list_proposals(user, trip_id)
    return [p.to_dict() for p in proposals]


@router.get("/proposals/{proposal_id}")
async def get_proposal(proposal_id: str, user: UserIdentity = Depends(get_current_user)) -> dict[str, Any]:
    with service_errors():
        proposal = await ProposalService().get_proposal(proposal_id, user)
    return proposal.to_dict()


@router.patch("/proposals/{proposal_id}/status")
async def update_proposal_status(
    proposal_id: str, request: ProposalStatusUpdate, user: UserIdentity = Depends(get_current_user)
) -> dict[str, Any]:
    with service_errors():
        proposal = await ProposalService().update_status(proposal_id, user, request.status)
    return proposal.to_dict()


@router.post("/proposals/{proposal_id}/invoice", status_code=201)
async def convert_proposal_to_invoice(
    proposal_id: str, user: UserIdentity = Depends(get_current_user)
) -> dict[str, Any]:
    with service_errors():
        invoice = await ProposalService().convert_to_invoice(proposal_id, user)
    return invoice.to_dict()


@router.get("/proposals/{proposal_id}/pdf")
async def export_proposal_pdf(proposal_id: str, user: UserIdentity = Depends(get_current_user)) -> Response:
    with service_errors():
        content = await ProposalService().render_pdf(proposal_id, user)
    return _pdf(content, f"proposal-{proposal_id}.pdf")


# ── Corporate cards ──────────────────────────────────────────────────

card_admin = require_org_permission(Permission.MANAGE_CARDS)


@router.get("/corporate-cards/cards")
async def list_cards(user: UserIdentity = Depends(card_admin)) -> dict[str, Any]:
    with service_errors():
        cards = await CorporateCardService().list_cards(user)
    return {"cards": [c.to_dict() for c in cards]}


@router.get("/corporate-cards/cards/{card_id}")
async def get_card(card_id: str, user: UserIdentity = Depends(card_admin)) -> dict[str, Any]:
    service = CorporateCardService()
    with service_errors():
        card = await service.get_card(card_id, user)
        transactions = await service.list_transactions(card_id, user, limit=10)
    return {**card.to_dict(), "recent_transactions": [t.to_dict() for t in transactions]}


@router.post("/corporate-cards/cards", status_code=201)
async def issue_card(request: CardIssueRequest, user: UserIdentity = Depends(card_admin)) -> dict[str, Any]:
    with service_errors():
        card = await CorporateCardService().issue_card(user, request)
    return card.to_dict()


@router.post("/corporate-cards/cards/{card_id}/freeze")
async def freeze_card(
    card_id: str,
    request: CardFreezeRequest = CardFreezeRequest(),
    user: UserIdentity = Depends(card_admin),
) -> dict[str, Any]:
    with service_errors():
        card = await CorporateCardService().set_frozen(card_id, user, request.freeze, request.reason)
    return card.to_dict()


@router.post("/corporate-cards/cards/{card_id}/unfreeze")
async def unfreeze_card(card_id: str, user: UserIdentity = Depends(card_admin)) -> dict[str, Any]:
    with service_errors():
        card = await CorporateCardService().set_frozen(card_id, user, False)
    return card.to_dict()


@router.post("/corporate-cards/cards/{card_id}/add-funds")
async def add_card_funds(
    card_id: str, request: AddFundsRequest, user: UserIdentity = Depends(card_admin)
) -> dict[str, Any]:
    with service_errors():
        transaction = await CorporateCardService().add_funds(card_id, user, request)
    return transaction.to_dict()


@router.put("/corporate-cards/cards/{card_id}")
async def update_card(
    card_id: str, request: CardUpdateRequest, user: UserIdentity = Depends(card_admin)
) -> dict[str, Any]:
    with service_errors():
        card = await CorporateCardService().update_card(card_id, user, request)
    return card.to_dict()


@router.delete("/corporate-cards/cards/{card_id}")
async def cancel_card(card_id: str, user: UserIdentity = Depends(card_admin)) -> dict[str, Any]:
    with service_errors():
        card = await CorporateCardService().cancel_card(card_id, user)
    return card.to_dict()


@router.get("/corporate-cards/cards/{card_id}/transactions")
async def list_card_transactions(
    card_id: str,
    limit: int = Query(default=100, ge=1, le=500),
    user: UserIdentity = Depends(card_admin),
) -> dict[str, Any]:
    with service_errors():
        transactions = await CorporateCardService().list_transactions(card_id, user, limit)
    return {"transactions": [t.to_dict() for t in transactions]}


# ── Security ─────────────────────────────────────────────────────────

security_admin = require_org_permission(Permission.VIEW_SECURITY)


@router.get("/security/alerts")
async def security_alerts(user: UserIdentity = Depends(security_admin)) -> list[dict[str, Any]]:
    alerts = await SecurityMonitor().alerts(user.organization_id)
    return [a.to_dict() for a in alerts]


@router.get("/security/metrics")
async def security_metrics(user: UserIdentity = Depends(security_admin)) -> dict[str, Any]:
    return await SecurityMonitor().metrics(user.organization_id)


@router.get("/security/audit-summary")
async def security_audit_summary(user: UserIdentity = Depends(security_admin)) -> dict[str, Any]:
    return await SecurityMonitor().audit_summary(user.organization_id)


@router.post("/security/alerts/{alert_id}/resolve")
async def resolve_security_alert(
    alert_id: str,
    http_request: Request,
    request: AlertResolveRequest = AlertResolveRequest(),
    user: UserIdentity = Depends(security_admin),
) -> dict[str, Any]:
    return await SecurityMonitor().resolve_alert(
        alert_id,
        user.user_id,
        resolution=request.resolution,
        notes=request.notes,
        organization_id=user.organization_id,
        ip_address=http_request.client.host if http_request.client else None,
    )


@router.get("/security/audit-logs")
async def security_audit_logs(
    limit: int = Query(default=100, ge=1, le=1000),
    user: UserIdentity = Depends(security_admin),
) -> list[dict[str, Any]]:
    entries = await recent_entries(organization_id=user.organization_id, limit=limit)
    return [e.to_dict() for e in entries]


# ── Templates ────────────────────────────────────────────────────────

@router.get("/templates")
async def list_templates(destination: Optional[str] = None) -> list[dict[str, Any]]:
    templates = await TemplateService().list_published(destination)
    return [t.to_dict(include_activities=False) for t in templates]


@router.get("/templates/mine")
async def list_my_templates(user: UserIdentity = Depends(get_current_user)) -> list[dict[str, Any]]:
    templates = await TemplateService().list_mine(user)
    return [t.to_dict(include_activities=False) for t in templates]


@router.get("/templates/{slug}")
async def get_template(
    slug: str, viewer: Optional[UserIdentity] = Depends(get_optional_user)
) -> dict[str, Any]:
    with service_errors():
        template = await TemplateService().get_by_slug(slug, viewer)
    return template.to_dict()


@router.post("/templates/from-trip/{trip_id}", status_code=201)
async def create_template_from_trip(
    trip_id: str,
    request: TemplateFromTrip = TemplateFromTrip(),
    user: UserIdentity = Depends(get_current_user),
) -> dict[str, Any]:
    with service_errors():
        template = await TemplateService().create_from_trip(trip_id, user, request)
    return template.to_dict()


@router.post("/templates/{template_id}/publish")
async def publish_template(template_id: str, user: UserIdentity = Depends(get_current_user)) -> dict[str, Any]:
    with service_errors():
        template = await TemplateService().set_published(template_id, user, True)
    return template.to_dict()


@router.post("/templates/{template_id}/unpublish")
async def unpublish_template(template_id: str, user: UserIdentity = Depends(get_current_user)) -> dict[str, Any]:
    with service_errors():
        template = await TemplateService().set_published(template_id, user, False)
    return template.to_dict()


@router.delete("/templates/{template_id}")
async def delete_template(template_id: str, user: UserIdentity = Depends(get_current_user)) -> dict[str, str]:
    with service_errors():
        await TemplateService().delete_template(template_id, user)
    return {"status": "deleted"}


@router.post("/templates/{template_id}/purchase", status_code=201)
async def purchase_template(template_id: str, user: UserIdentity = Depends(get_current_user)) -> dict[str, Any]:
    with service_errors():
        purchase = await TemplateService().purchase(template_id, user)
    return purchase.to_dict()
