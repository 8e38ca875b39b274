"""Execution repository - Database operations for routes and waypoints in the field"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models_route import Route, Waypoint


class ExecutionRepository:
    """Repository for waypoint execution database operations"""

    @staticmethod
    def get_waypoint(db: Session, waypoint_id: int, user_id: int, for_update: bool = False) -> Optional[Waypoint]:
        """Get a waypoint on one of the user's routes, optionally row-locked"""
        query = (
            db.query(Waypoint)
            .join(Route, Route.id == Waypoint.route_id)
            .filter(Waypoint.id == waypoint_id, Route.user_id == user_id)
        )
        if for_update:
            query = query.with_for_update(of=Waypoint).populate_existing()
        return query.first()

    @staticmethod
    def get_route(db: Session, route_id: int, user_id: int) -> Optional[Route]:
        return db.query(Route).filter(Route.id == route_id, Route.user_id == user_id).first()

    @staticmethod
    def get_route_waypoints(db: Session, route_id: int) -> list[Waypoint]:
        return db.query(Waypoint).filter(Waypoint.route_id == route_id).order_by(Waypoint.position).all()

    @staticmethod
    def get_missed_waypoints(db: Session, user_id: int) -> list[tuple[Waypoint, Route]]:
        """Missed stops still waiting for a reschedule"""
        return (
            db.query(Waypoint, Route)
            .join(Route, Route.id == Waypoint.route_id)
            .filter(
                Route.user_id == user_id,
                Waypoint.status == "missed",
                Waypoint.needs_reschedule.is_(True),
            )
            .order_by(Route.scheduled_date, Waypoint.position)
            .all()
        )
