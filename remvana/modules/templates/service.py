"""Template marketplace service."""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from sqlalchemy import delete, func, select

from remvana.database import get_session
from remvana.errors import TemplateStateError
from remvana.logging_config import get_logger
from remvana.modules.templates.models import (
    TemplateFromTrip, TemplatePurchase, TemplateStatus, TripTemplate,
)
from remvana.modules.trips.service import TripService
from remvana.security.audit import log_action
from remvana.security.rbac import Permission, UserIdentity

logger = get_logger(__name__)

PLATFORM_FEE_RATE = Decimal("0.30")


def slugify(title: str) -> str:
    """Lower-case slug from a title plus a short random suffix."""
    base = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")[:80] or "template"
    return f"{base}-{uuid4().hex[:6]}"


class TemplateService:
    """Publishing and browsing of trip templates."""

    def __init__(self, trips: Optional[TripService] = None) -> None:
        self.trips = trips or TripService()

    async def list_published(self, destination: Optional[str] = None) -> list[TripTemplate]:
        """Published templates, best sellers first."""
        stmt = select(TripTemplate).where(TripTemplate.status == TemplateStatus.PUBLISHED.value)
        if destination:
            stmt = stmt.where(func.lower(TripTemplate.destination).contains(destination.lower()))
        async with get_session() as session:
            result = await session.execute(
                stmt.order_by(TripTemplate.sales_count.desc(), TripTemplate.created_at.desc())
            )
            return list(result.scalars().all())

    async def list_mine(self, user: UserIdentity) -> list[TripTemplate]:
        async with get_session() as session:
            result = await session.execute(
                select(TripTemplate)
                .where(TripTemplate.author_id == user.user_id)
                .order_by(TripTemplate.created_at.desc())
            )
            return list(result.scalars().all())

    async def get_by_slug(self, slug: str, user: Optional[UserIdentity] = None) -> TripTemplate:
        """Published templates are public; drafts are visible to their author and admins."""
        async with get_session() as session:
            result = await session.execute(select(TripTemplate).where(TripTemplate.slug == slug))
            template = result.scalar_one_or_none()
        if template is None or (
            template.status != TemplateStatus.PUBLISHED and not self._can_edit(template, user)
        ):
            raise LookupError(f"Template '{slug}' not found")
        return template

    @staticmethod
    def _can_edit(template: TripTemplate, user: Optional[UserIdentity]) -> bool:
        return user is not None and (template.author_id == user.user_id or user.is_admin)

    async def _get_editable(self, template_id: str, user: UserIdentity) -> TripTemplate:
        async with get_session() as session:
            template = await session.get(TripTemplate, template_id)
        if template is None:
            raise LookupError(f"Template {template_id} not found")
        if not self._can_edit(template, user):
            raise PermissionError(f"User '{user.user_id}' cannot modify template {template_id}")
        return template

    async def create_from_trip(self, trip_id: str, user: UserIdentity, data: TemplateFromTrip) -> TripTemplate:
        """Snapshot a trip and its activities as a draft template."""
        user.require_permission(Permission.MANAGE_TEMPLATES)
        trip = await self.trips.get_trip(trip_id, user)
        activities = await self.trips.list_activities(trip_id)
        duration = (trip.end_date - trip.start_date).days + 1
        title = data.title or f"{trip.title} Itinerary"

        template = TripTemplate(
            slug=slugify(title),
            title=title,
            description=data.description or f"A {duration}-day trip to {trip.destination}",
            destination=trip.destination,
            country=trip.country,
            duration_days=duration,
            price=data.price,
            tags=data.tags,
            activities=[
                {
                    "title": a.title,
                    "day": (a.date - trip.start_date).days + 1,
                    "time": a.time,
                    "location_name": a.location_name,
                    "notes": a.notes,
                    "tag": a.tag,
                    "order": a.order,
                }
                for a in activities
            ],
            author_id=user.user_id,
            source_trip_id=trip_id,
        )
        async with get_session() as session:
            session.add(template)
            await session.flush()
        logger.info("template_created", template_id=template.id, slug=template.slug, trip_id=trip_id)
        return template

    async def set_published(self, template_id: str, user: UserIdentity, published: bool) -> TripTemplate:
        template = await self._get_editable(template_id, user)
        if published and not template.activities:
            raise ValueError("A template needs at least one activity before it can be published")
        async with get_session() as session:
            template = await session.get(TripTemplate, template_id)
            template.status = (TemplateStatus.PUBLISHED if published else TemplateStatus.DRAFT).value
        action = "template_published" if published else "template_unpublished"
        logger.info(action, template_id=template_id)
        await log_action(
            user.user_id, action, "templates", {"template_id": template_id},
            organization_id=user.organization_id,
        )
        return template

    async def delete_template(self, template_id: str, user: UserIdentity) -> None:
        template = await self._get_editable(template_id, user)
        if template.sales_count > 0:
            raise TemplateStateError("Templates that have been sold cannot be deleted")
        async with get_session() as session:
            await session.execute(delete(TripTemplate).where(TripTemplate.id == template_id))
        logger.info("template_deleted", template_id=template_id)
        await log_action(
            user.user_id, "template_deleted", "templates", {"template_id": template_id},
            organization_id=user.organization_id,
        )

    async def purchase(self, template_id: str, user: UserIdentity) -> TemplatePurchase:
        """Record a purchase of a published template and bump its sales count."""
        async with get_session() as session:
            template = await session.get(TripTemplate, template_id)
            if template is None:
                raise LookupError(f"Template {template_id} not found")
            if template.status != TemplateStatus.PUBLISHED:
                raise TemplateStateError("Only published templates can be purchased")
            existing = await session.execute(
                select(TemplatePurchase).where(
                    TemplatePurchase.template_id == template_id,
                    TemplatePurchase.buyer_id == user.user_id,
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise TemplateStateError("Template already purchased")

            price = Decimal(template.price or 0)
            fee = (price * PLATFORM_FEE_RATE).quantize(Decimal("0.01"))
            purchase = TemplatePurchase(
                template_id=template_id,
                buyer_id=user.user_id,
                seller_id=template.author_id,
                price=price,
                platform_fee=fee,
                seller_earnings=price - fee,
            )
            session.add(purchase)
            template.sales_count = template.sales_count + 1
            await session.flush()

        logger.info("template_purchased", template_id=template_id, buyer_id=user.user_id)
        return purchase
