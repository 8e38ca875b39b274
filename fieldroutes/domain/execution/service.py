"""
Execution service - applies waypoint transitions.

A transition, its ledger write, the occurrence count and route completion are committed
together or not at all.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ...exceptions import NotFoundError, StorageError, TransitionConflict
from ...models import User
from ...models_route import Route, Waypoint
from ..reschedule.repository import RescheduleRepository
from ..reschedule.service import RescheduleLedger
from ..scheduling.counter import OccurrenceCounter
from .repository import ExecutionRepository
from .schemas import TransitionRequest
from .state_machine import (
    Action,
    HistoryStatus,
    LedgerEffect,
    WaypointState,
    WaypointStatus,
    plan_transition,
    stop_from_waypoint,
)

logger = logging.getLogger(__name__)

FINISHED_STATUSES = {WaypointStatus.COMPLETE.value, WaypointStatus.MISSED.value}

LEDGER_CLOSE_STATUS = {
    LedgerEffect.CLOSE_COMPLETED: HistoryStatus.COMPLETED,
    LedgerEffect.CLOSE_RE_MISSED: HistoryStatus.RE_MISSED,
    LedgerEffect.CLOSE_CANCELLED: HistoryStatus.CANCELLED,
}


class ExecutionService:
    """Service layer for field execution of routes"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ExecutionRepository()
        self.history = RescheduleRepository()

    def get_waypoint(self, waypoint_id: int, user: User) -> Waypoint:
        waypoint = self.repo.get_waypoint(self.db, waypoint_id, user.id)
        if not waypoint:
            raise NotFoundError("Waypoint not found")
        return waypoint

    def transition_waypoint(self, waypoint_id: int, data: TransitionRequest, user: User) -> Waypoint:
        """Apply a complete / miss / reschedule / cancel / start action to a waypoint"""
        try:
            waypoint = self.repo.get_waypoint(self.db, waypoint_id, user.id, for_update=True)
            if not waypoint:
                raise NotFoundError("Waypoint not found")
            if data.expected_version is not None and data.expected_version != waypoint.version:
                logger.warning(
                    f"⚠️ Stale transition rejected for waypoint {waypoint.id}: "
                    f"expected v{data.expected_version}, found v{waypoint.version}"
                )
                raise TransitionConflict("Waypoint was changed by someone else; reload and retry")

            open_entry = self.history.get_open_entry(self.db, waypoint.id, user.id)
            now = datetime.now()
            state = WaypointState(
                stop=stop_from_waypoint(waypoint),
                status=WaypointStatus(waypoint.status),
                needs_reschedule=bool(waypoint.needs_reschedule),
                has_open_reschedule=open_entry is not None,
                counts_as_occurrence=self._counts_as_occurrence(waypoint),
            )
            plan = plan_transition(
                state,
                data.action,
                now,
                missed_reason=data.missed_reason,
                rescheduled_date=data.rescheduled_date,
            )

            previous = waypoint.status
            waypoint.status = plan.status.value
            waypoint.needs_reschedule = plan.needs_reschedule
            if plan.status == WaypointStatus.COMPLETE:
                waypoint.completed_at = plan.completed_at
            else:
                waypoint.completed_at = None
            if plan.missed_reason is not None:
                waypoint.missed_reason = plan.missed_reason
            if plan.rescheduled_date is not None:
                waypoint.rescheduled_date = plan.rescheduled_date
            if data.execution_notes:
                waypoint.execution_notes = data.execution_notes
            if data.service_minutes is not None:
                waypoint.service_minutes = data.service_minutes
            if data.distance_meters is not None:
                waypoint.distance_meters = data.distance_meters

            route = waypoint.route
            if plan.ledger == LedgerEffect.OPEN:
                RescheduleLedger.record_reschedule(
                    self.db, waypoint, route, plan.rescheduled_date, waypoint.missed_reason
                )
            elif plan.ledger in LEDGER_CLOSE_STATUS:
                RescheduleLedger.close_entry(open_entry, LEDGER_CLOSE_STATUS[plan.ledger], now)
                if plan.ledger == LedgerEffect.CLOSE_CANCELLED and data.notes:
                    open_entry.notes = data.notes

            if plan.count_occurrence:
                OccurrenceCounter.increment(self.db, waypoint.contact_id, user.id)
                waypoint.occurrence_counted = True

            self._stamp_route_completion(route, now)
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Concurrent update detected on waypoint {waypoint_id}")
            raise TransitionConflict("Waypoint was changed by someone else; reload and retry") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Transition failed for waypoint {waypoint_id}: {e}")
            raise StorageError("Could not save the waypoint transition") from e
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(waypoint)
        logger.info(
            f"✅ Waypoint {waypoint.id} {data.action.value}: {previous} → {waypoint.status}"
            + (" (needs reschedule)" if waypoint.needs_reschedule else "")
        )
        return waypoint

    def update_execution_order(self, waypoint_id: int, new_order: int, user: User) -> Waypoint:
        """Record the order a stop was actually visited in; the planned position is untouched"""
        waypoint = self.get_waypoint(waypoint_id, user)
        waypoint.execution_order = new_order
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise TransitionConflict("Waypoint was changed by someone else; reload and retry") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError("Could not save the execution order") from e
        self.db.refresh(waypoint)
        return waypoint

    def get_missed_waypoints(self, user: User) -> list[tuple[Waypoint, Route]]:
        return self.repo.get_missed_waypoints(self.db, user.id)

    def get_route_progress(self, route_id: int, user: User) -> dict:
        route = self.repo.get_route(self.db, route_id, user.id)
        if not route:
            raise NotFoundError("Route not found")

        waypoints = self.repo.get_route_waypoints(self.db, route.id)
        completed = sum(1 for w in waypoints if w.status == WaypointStatus.COMPLETE.value)
        missed = sum(1 for w in waypoints if w.status == WaypointStatus.MISSED.value)
        total = len(waypoints)
        return {
            "route_id": route.id,
            "route_name": route.name,
            "total": total,
            "completed": completed,
            "missed": missed,
            "pending": total - completed - missed,
            "percent_complete": round(completed / total * 100, 1) if total else 0.0,
            "completed_at": route.completed_at,
        }

    @staticmethod
    def _counts_as_occurrence(waypoint: Waypoint) -> bool:
        """Only stops materialized from the contact's current recurrence move its counter"""
        contact = waypoint.contact
        return (
            contact is not None
            and waypoint.recurrence_generation is not None
            and waypoint.recurrence_generation == contact.recurrence_generation
            and not waypoint.occurrence_counted
        )

    def _stamp_route_completion(self, route: Route, now: datetime) -> None:
        if route.completed_at is not None:
            return
        self.db.flush()
        waypoints = self.repo.get_route_waypoints(self.db, route.id)
        if waypoints and all(w.status in FINISHED_STATUSES for w in waypoints):
            route.completed_at = now
            logger.info(f"🏁 Route {route.id} completed")
