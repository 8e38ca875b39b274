"""Scheduling repository - Database operations for contacts' visit schedules"""

from datetime import date, datetime, time
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...models import Contact, RouteHolder
from ...models_route import Route, Waypoint


class SchedulingRepository:
    """Repository for scheduling database operations"""

    @staticmethod
    def get_contact(db: Session, contact_id: int, user_id: int) -> Optional[Contact]:
        """Get a contact owned by the user"""
        return (
            db.query(Contact)
            .filter(Contact.id == contact_id, Contact.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_route_holder(db: Session, route_holder_id: int, user_id: int) -> Optional[RouteHolder]:
        return (
            db.query(RouteHolder)
            .filter(RouteHolder.id == route_holder_id, RouteHolder.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_scheduled_contacts(db: Session, user_id: int) -> list[Contact]:
        """Contacts with either a recurrence or a one-time visit configured"""
        return (
            db.query(Contact)
            .filter(
                Contact.user_id == user_id,
                or_(Contact.repeat_interval_weeks.isnot(None), Contact.is_one_time_visit.is_(True)),
            )
            .order_by(Contact.id)
            .all()
        )

    @staticmethod
    def count_outstanding_occurrences(db: Session, contact_id: int, generation: int) -> int:
        """Occurrences of this recurrence generation that are materialized but not settled yet"""
        return (
            db.query(func.count(Waypoint.id))
            .filter(
                Waypoint.contact_id == contact_id,
                Waypoint.recurrence_generation == generation,
                Waypoint.occurrence_counted.is_(False),
            )
            .scalar()
            or 0
        )

    @staticmethod
    def occurrence_exists(db: Session, contact_id: int, occurrence_date: date) -> bool:
        return (
            db.query(Waypoint.id)
            .filter(Waypoint.contact_id == contact_id, Waypoint.occurrence_date == occurrence_date)
            .first()
            is not None
        )

    @staticmethod
    def find_open_route(
        db: Session, user_id: int, day: date, route_holder_id: Optional[int]
    ) -> Optional[Route]:
        """An unfinished, unarchived route for this holder on this day"""
        start = datetime.combine(day, time.min)
        end = datetime.combine(day, time.max)
        query = db.query(Route).filter(
            Route.user_id == user_id,
            Route.scheduled_date >= start,
            Route.scheduled_date <= end,
            Route.completed_at.is_(None),
            Route.is_archived.is_(False),
        )
        if route_holder_id is None:
            query = query.filter(Route.route_holder_id.is_(None))
        else:
            query = query.filter(Route.route_holder_id == route_holder_id)
        return query.order_by(Route.id).first()

    @staticmethod
    def create_route(
        db: Session, user_id: int, name: str, day: date, route_holder_id: Optional[int]
    ) -> Route:
        route = Route(
            user_id=user_id,
            name=name,
            scheduled_date=datetime.combine(day, time.min),
            route_holder_id=route_holder_id,
        )
        db.add(route)
        db.flush()
        return route

    @staticmethod
    def next_position(db: Session, route_id: int) -> int:
        highest = db.query(func.max(Waypoint.position)).filter(Waypoint.route_id == route_id).scalar()
        return 0 if highest is None else highest + 1

    @staticmethod
    def add_waypoint(db: Session, **waypoint_data) -> Waypoint:
        waypoint = Waypoint(**waypoint_data)
        db.add(waypoint)
        db.flush()
        return waypoint
