"""Billing repository - Database operations for billing"""

from datetime import date
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ...models_billing import BillingClient, BillingRate, BillingRecord
from ...models_reschedule import RescheduleHistory
from ...models_route import Route, Waypoint


class BillingRepository:
    """Repository for billing database operations"""

    @staticmethod
    def get_clients(db: Session, user_id: int) -> list[BillingClient]:
        return (
            db.query(BillingClient)
            .options(joinedload(BillingClient.rates))
            .filter(BillingClient.user_id == user_id)
            .order_by(BillingClient.client_label)
            .all()
        )

    @staticmethod
    def get_client(db: Session, client_id: int, user_id: int) -> Optional[BillingClient]:
        return (
            db.query(BillingClient)
            .filter(BillingClient.id == client_id, BillingClient.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_client_by_label(db: Session, user_id: int, client_label: str) -> Optional[BillingClient]:
        return (
            db.query(BillingClient)
            .filter(BillingClient.user_id == user_id, BillingClient.client_label == client_label)
            .first()
        )

    @staticmethod
    def create_client(db: Session, user_id: int, data: dict, rates: list[dict]) -> BillingClient:
        client = BillingClient(user_id=user_id, **data)
        client.rates = [BillingRate(**rate) for rate in rates]
        db.add(client)
        db.flush()
        return client

    @staticmethod
    def get_settled_waypoints(db: Session, user_id: int) -> list[tuple[Waypoint, Route]]:
        """
        Contact stops with a final outcome: complete, or missed without a pending reschedule.
        Missed stops still waiting for a new date are not settled yet.
        """
        return (
            db.query(Waypoint, Route)
            .join(Route, Waypoint.route_id == Route.id)
            .filter(
                Route.user_id == user_id,
                Waypoint.is_gap_stop.is_(False),
                or_(
                    Waypoint.status == "complete",
                    (Waypoint.status == "missed") & (Waypoint.needs_reschedule.is_(False)),
                ),
            )
            .order_by(Waypoint.id)
            .all()
        )

    @staticmethod
    def get_settled_entries(db: Session, user_id: int) -> list[RescheduleHistory]:
        """Reschedule ledger entries whose attempt is over (completed or re-missed)"""
        return (
            db.query(RescheduleHistory)
            .filter(
                RescheduleHistory.user_id == user_id,
                RescheduleHistory.status.in_(["completed", "re_missed"]),
            )
            .order_by(RescheduleHistory.id)
            .all()
        )

    @staticmethod
    def get_waypoint(db: Session, waypoint_id: int) -> Optional[Waypoint]:
        return db.query(Waypoint).filter(Waypoint.id == waypoint_id).first()

    @staticmethod
    def get_record_by_source(db: Session, user_id: int, source_key: str) -> Optional[BillingRecord]:
        return (
            db.query(BillingRecord)
            .filter(BillingRecord.user_id == user_id, BillingRecord.source_key == source_key)
            .first()
        )

    @staticmethod
    def list_records(
        db: Session,
        user_id: int,
        client_label: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[BillingRecord]:
        query = db.query(BillingRecord).filter(BillingRecord.user_id == user_id)
        if client_label:
            query = query.filter(BillingRecord.client_label == client_label)
        if status:
            query = query.filter(BillingRecord.status == status)
        if start_date:
            query = query.filter(BillingRecord.visit_date >= start_date)
        if end_date:
            query = query.filter(BillingRecord.visit_date <= end_date)
        return query.order_by(BillingRecord.visit_date, BillingRecord.id).all()
