"""Trip management service: trips, activities, travelers and itinerary export."""

from __future__ import annotations

import io
from typing import Optional

from sqlalchemy import delete, func, select

from remvana.database import get_session
from remvana.logging_config import get_logger
from remvana.modules.trips.models import (
    Activity, ActivityCreate, ActivityUpdate, Traveler, TravelerCreate, TravelerUpdate,
    Trip, TripCreate, TripUpdate,
)
from remvana.security.rbac import UserIdentity

logger = get_logger(__name__)


class TripService:
    """CRUD over trips and the records hanging off them."""

    # ── Trips ────────────────────────────────────────────────────────

    async def list_trips(self, user: UserIdentity) -> list[Trip]:
        """Return the caller's trips, newest first."""
        async with get_session() as session:
            result = await session.execute(
                select(Trip)
                .where(Trip.owner_id == user.user_id)
                .order_by(Trip.created_at.desc())
            )
            return list(result.scalars().all())

    async def create_trip(self, user: UserIdentity, data: TripCreate) -> Trip:
        if data.end_date < data.start_date:
            raise ValueError("end_date must be on or after start_date")
        trip = Trip(
            owner_id=user.user_id,
            organization_id=user.organization_id,
            title=data.title,
            destination=data.destination,
            country=data.country,
            start_date=data.start_date,
            end_date=data.end_date,
            budget=data.budget,
            trip_type=data.trip_type.value,
            client_name=data.client_name,
        )
        async with get_session() as session:
            session.add(trip)
            await session.flush()
        logger.info("trip_created", trip_id=trip.id, owner_id=user.user_id)
        return trip

    async def get_trip(
        self, trip_id: str, user: Optional[UserIdentity] = None, modify: bool = False
    ) -> Trip:
        """Fetch a trip, enforcing access when a user is given.

        Managers may read trips in their own organization; only the owner or an
        admin may modify one.

        Raises:
            LookupError: If the trip does not exist.
            PermissionError: If the user may not access it.
        """
        async with get_session() as session:
            trip = await session.get(Trip, trip_id)
        if trip is None:
            raise LookupError(f"Trip {trip_id} not found")
        if user is None:
            return trip
        if modify:
            allowed = user.can_modify(trip.owner_id)
        else:
            allowed = user.can_view(trip.owner_id, trip.organization_id)
        if not allowed:
            action = "modify" if modify else "access"
            raise PermissionError(f"User '{user.user_id}' cannot {action} trip {trip_id}")
        return trip

    async def update_trip(self, trip_id: str, user: UserIdentity, data: TripUpdate) -> Trip:
        await self.get_trip(trip_id, user, modify=True)
        changes = data.model_dump(exclude_unset=True)
        async with get_session() as session:
            trip = await session.get(Trip, trip_id)
            for key, value in changes.items():
                setattr(trip, key, value.value if hasattr(value, "value") else value)
            if trip.end_date < trip.start_date:
                raise ValueError("end_date must be on or after start_date")
        logger.info("trip_updated", trip_id=trip_id, fields=sorted(changes))
        return trip

    async def delete_trip(self, trip_id: str, user: UserIdentity) -> None:
        await self.get_trip(trip_id, user, modify=True)
        async with get_session() as session:
            await session.execute(delete(Activity).where(Activity.trip_id == trip_id))
            await session.execute(delete(Traveler).where(Traveler.trip_id == trip_id))
            await session.execute(delete(Trip).where(Trip.id == trip_id))
        logger.info("trip_deleted", trip_id=trip_id)

    # ── Activities ───────────────────────────────────────────────────

    async def list_activities(self, trip_id: str) -> list[Activity]:
        async with get_session() as session:
            result = await session.execute(
                select(Activity)
                .where(Activity.trip_id == trip_id)
                .order_by(Activity.date, Activity.order)
            )
            return list(result.scalars().all())

    async def add_activity(self, trip_id: str, user: UserIdentity, data: ActivityCreate) -> Activity:
        await self.get_trip(trip_id, user, modify=True)
        async with get_session() as session:
            order = data.order
            if order is None:
                current = await session.execute(
                    select(func.max(Activity.order)).where(Activity.trip_id == trip_id)
                )
                highest = current.scalar()
                order = 0 if highest is None else highest + 1
            activity = Activity(
                trip_id=trip_id,
                title=data.title,
                date=data.date,
                time=data.time,
                location_name=data.location_name,
                notes=data.notes,
                tag=data.tag,
                order=order,
            )
            session.add(activity)
            await session.flush()
        logger.info("activity_created", activity_id=activity.id, trip_id=trip_id)
        return activity

    async def _get_activity(self, activity_id: str, user: UserIdentity) -> Activity:
        async with get_session() as session:
            activity = await session.get(Activity, activity_id)
        if activity is None:
            raise LookupError(f"Activity {activity_id} not found")
        await self.get_trip(activity.trip_id, user, modify=True)
        return activity

    async def update_activity(self, activity_id: str, user: UserIdentity, data: ActivityUpdate) -> Activity:
        await self._get_activity(activity_id, user)
        changes = data.model_dump(exclude_unset=True)
        async with get_session() as session:
            activity = await session.get(Activity, activity_id)
            for key, value in changes.items():
                setattr(activity, key, value)
        return activity

    async def set_activity_completed(
        self, activity_id: str, user: UserIdentity, completed: Optional[bool] = None
    ) -> Activity:
        """Set the completed flag, or toggle it when ``completed`` is None."""
        await self._get_activity(activity_id, user)
        async with get_session() as session:
            activity = await session.get(Activity, activity_id)
            activity.completed = (not activity.completed) if completed is None else completed
        return activity

    async def reorder_activity(self, activity_id: str, user: UserIdentity, order: int) -> Activity:
        if order < 0:
            raise ValueError("order must be zero or positive")
        await self._get_activity(activity_id, user)
        async with get_session() as session:
            activity = await session.get(Activity, activity_id)
            activity.order = order
        return activity

    async def delete_activity(self, activity_id: str, user: UserIdentity) -> None:
        await self._get_activity(activity_id, user)
        async with get_session() as session:
            await session.execute(delete(Activity).where(Activity.id == activity_id))
        logger.info("activity_deleted", activity_id=activity_id)

    # ── Travelers ────────────────────────────────────────────────────

    async def list_travelers(self, trip_id: str) -> list[Traveler]:
        async with get_session() as session:
            result = await session.execute(
                select(Traveler).where(Traveler.trip_id == trip_id).order_by(Traveler.created_at)
            )
            return list(result.scalars().all())

    async def add_traveler(self, trip_id: str, user: UserIdentity, data: TravelerCreate) -> Traveler:
        await self.get_trip(trip_id, user, modify=True)
        traveler = Traveler(
            trip_id=trip_id,
            name=data.name,
            email=data.email,
            phone=data.phone,
            departure_city=data.departure_city,
            travel_class=data.travel_class.value,
        )
        async with get_session() as session:
            session.add(traveler)
            await session.flush()
        logger.info("traveler_added", trip_id=trip_id, traveler_id=traveler.id)
        return traveler

    async def update_traveler(
        self, trip_id: str, traveler_id: str, user: UserIdentity, data: TravelerUpdate
    ) -> Traveler:
        await self.get_trip(trip_id, user, modify=True)
        changes = data.model_dump(exclude_unset=True)
        async with get_session() as session:
            traveler = await session.get(Traveler, traveler_id)
            if traveler is None or traveler.trip_id != trip_id:
                raise LookupError(f"Traveler {traveler_id} not found")
            for key, value in changes.items():
                setattr(traveler, key, value.value if hasattr(value, "value") else value)
        return traveler

    async def delete_traveler(self, trip_id: str, traveler_id: str, user: UserIdentity) -> None:
        await self.get_trip(trip_id, user, modify=True)
        async with get_session() as session:
            result = await session.execute(
                delete(Traveler).where(Traveler.id == traveler_id, Traveler.trip_id == trip_id)
            )
            if result.rowcount == 0:
                raise LookupError(f"Traveler {traveler_id} not found")

    # ── Export ───────────────────────────────────────────────────────

    def generate_itinerary_pdf(self, trip: Trip, activities: list[Activity]) -> bytes:
        """Render the trip and its activities as a PDF itinerary."""
        from reportlab.lib import colors
        from reportlab.lib.pagesizes import A4
        from reportlab.lib.styles import getSampleStyleSheet
        from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=A4)
        styles = getSampleStyleSheet()
        story = []

        story.append(Paragraph(f"Travel Itinerary: {trip.title}", styles["Title"]))
        story.append(Spacer(1, 12))
        destination = trip.destination + (f", {trip.country}" if trip.country else "")
        story.append(Paragraph(f"<b>Destination:</b> {destination}", styles["Normal"]))
        story.append(Paragraph(f"<b>Dates:</b> {trip.start_date} to {trip.end_date}", styles["Normal"]))
        if trip.client_name:
            story.append(Paragraph(f"<b>Client:</b> {trip.client_name}", styles["Normal"]))
        story.append(Spacer(1, 20))

        if activities:
            data = [["Date", "Time", "Activity", "Location"]]
            for item in activities:
                data.append([
                    item.date.isoformat(),
                    item.time or "",
                    item.title,
                    item.location_name or "",
                ])

            table = Table(data, colWidths=[80, 50, 220, 150])
            table.setStyle(TableStyle([
                ("BACKGROUND", (0, 0), (-1, 0), colors.grey),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
                ("ALIGN", (0, 0), (-1, -1), "LEFT"),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("BOTTOMPADDING", (0, 0), (-1, 0), 12),
                ("BACKGROUND", (0, 1), (-1, -1), colors.beige),
                ("GRID", (0, 0), (-1, -1), 1, colors.black),
            ]))
            story.append(table)
        else:
            story.append(Paragraph("No activities planned yet.", styles["Italic"]))

        doc.build(story)
        logger.info("itinerary_pdf_generated", trip_id=trip.id, activities=len(activities))
        return buffer.getvalue()
