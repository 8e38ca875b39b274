"""Reschedule repository - Database operations for the reschedule ledger"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models_reschedule import RescheduleHistory
from ...models_route import Route, Waypoint


class RescheduleRepository:
    """Repository for reschedule history database operations"""

    @staticmethod
    def get_entry(db: Session, entry_id: int, user_id: int) -> Optional[RescheduleHistory]:
        return (
            db.query(RescheduleHistory)
            .filter(RescheduleHistory.id == entry_id, RescheduleHistory.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_open_entry(db: Session, waypoint_id: int, user_id: int) -> Optional[RescheduleHistory]:
        """The pending entry for a waypoint, if it has been rescheduled and not yet settled"""
        return (
            db.query(RescheduleHistory)
            .filter(
                RescheduleHistory.waypoint_id == waypoint_id,
                RescheduleHistory.user_id == user_id,
                RescheduleHistory.status == "pending",
            )
            .order_by(RescheduleHistory.id.desc())
            .first()
        )

    @staticmethod
    def get_entries_for_waypoint(db: Session, waypoint_id: int, user_id: int) -> list[RescheduleHistory]:
        return (
            db.query(RescheduleHistory)
            .filter(RescheduleHistory.waypoint_id == waypoint_id, RescheduleHistory.user_id == user_id)
            .order_by(RescheduleHistory.id)
            .all()
        )

    @staticmethod
    def list_history(db: Session, user_id: int, status: Optional[str] = None) -> list[RescheduleHistory]:
        """Newest first, optionally filtered by status"""
        query = db.query(RescheduleHistory).filter(RescheduleHistory.user_id == user_id)
        if status and status != "all":
            query = query.filter(RescheduleHistory.status == status)
        return query.order_by(RescheduleHistory.created_at.desc(), RescheduleHistory.id.desc()).all()

    @staticmethod
    def add_entry(db: Session, **entry_data) -> RescheduleHistory:
        entry = RescheduleHistory(**entry_data)
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def has_entry_for_waypoint(db: Session, waypoint_id: int) -> bool:
        return (
            db.query(RescheduleHistory.id).filter(RescheduleHistory.waypoint_id == waypoint_id).first()
            is not None
        )

    @staticmethod
    def get_rescheduled_waypoints(db: Session, user_id: Optional[int] = None) -> list[tuple[Waypoint, Route]]:
        """Waypoints carrying a rescheduled date, with their route"""
        query = (
            db.query(Waypoint, Route)
            .join(Route, Route.id == Waypoint.route_id)
            .filter(Waypoint.rescheduled_date.isnot(None))
        )
        if user_id is not None:
            query = query.filter(Route.user_id == user_id)
        return query.order_by(Waypoint.id).all()
