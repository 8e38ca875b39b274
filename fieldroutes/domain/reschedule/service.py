"""Reschedule ledger service - recording, querying and exporting reschedule history"""

import csv
import logging
from datetime import datetime
from io import StringIO
from typing import Optional

from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...exceptions import NotFoundError, StorageError, TransitionConflict, ValidationFailed
from ...models import User
from ...models_reschedule import RescheduleHistory
from ...models_route import Route, Waypoint
from ..execution.state_machine import HistoryStatus, WaypointStatus
from .repository import RescheduleRepository

logger = logging.getLogger(__name__)

CSV_HEADERS = ["Contact", "Address", "Route", "Status", "Original Date", "Rescheduled Date", "Missed Reason"]

# Status a backfilled entry gets, from the waypoint's current status
BACKFILL_STATUS = {
    WaypointStatus.COMPLETE.value: HistoryStatus.COMPLETED.value,
    WaypointStatus.MISSED.value: HistoryStatus.RE_MISSED.value,
}


class RescheduleLedger:
    """Service layer for the append-only reschedule history"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = RescheduleRepository()

    @staticmethod
    def record_reschedule(
        db: Session,
        waypoint: Waypoint,
        route: Route,
        target_date: datetime,
        reason: Optional[str],
    ) -> RescheduleHistory:
        """
        Append a pending entry for a reschedule. Runs inside the caller's transaction and
        does not commit; route and contact details are copied as they are right now.
        """
        entry = RescheduleRepository.add_entry(
            db,
            user_id=route.user_id,
            waypoint_id=waypoint.id,
            route_id=route.id,
            route_name=route.name,
            contact_name=waypoint.contact_name or "Unknown",
            address=waypoint.address or "No address",
            stop_type=waypoint.stop_type,
            contact_labels_snapshot=list(waypoint.contact_labels_snapshot or []),
            original_date=route.scheduled_date,
            rescheduled_date=target_date,
            missed_reason=reason,
            status=HistoryStatus.PENDING.value,
        )
        logger.info(f"📝 Reschedule logged for waypoint {waypoint.id} → {target_date.isoformat()}")
        return entry

    @staticmethod
    def close_entry(entry: RescheduleHistory, status: HistoryStatus, now: datetime) -> RescheduleHistory:
        """Move a pending entry to its final status"""
        if entry.status != HistoryStatus.PENDING.value:
            raise TransitionConflict(f"Reschedule entry {entry.id} is already {entry.status}")
        entry.status = status.value
        if status == HistoryStatus.COMPLETED:
            entry.completed_at = now
        logger.info(f"📝 Reschedule entry {entry.id} closed as {status.value}")
        return entry

    def list_history(self, user: User, status_filter: Optional[str] = None) -> list[RescheduleHistory]:
        if status_filter and status_filter != "all":
            valid = {status.value for status in HistoryStatus}
            if status_filter not in valid:
                raise ValidationFailed(f"Unknown status filter: {status_filter}")
        return self.repo.list_history(self.db, user.id, status_filter)

    def history_rows(self, user: User, status_filter: Optional[str] = None) -> list[list[str]]:
        """Flatten entries to CSV rows, header first"""
        rows = [CSV_HEADERS]
        for entry in self.list_history(user, status_filter):
            rows.append(
                [
                    entry.contact_name,
                    entry.address,
                    entry.route_name,
                    entry.status,
                    entry.original_date.isoformat() if entry.original_date else "",
                    entry.rescheduled_date.isoformat(),
                    entry.missed_reason or "",
                ]
            )
        return rows

    def export_history_csv(self, user: User, status_filter: Optional[str] = None) -> StreamingResponse:
        """Export reschedule history as CSV"""
        rows = self.history_rows(user, status_filter)
        logger.info(f"📊 Reschedule history export for user {user.id}: {len(rows) - 1} row(s)")

        output = StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL)
        writer.writerows(rows)
        output.seek(0)

        filename = f"reschedule_history_{datetime.now().strftime('%Y%m%d')}.csv"
        return StreamingResponse(
            iter([output.getvalue()]),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    def update_notes(self, entry_id: int, notes: Optional[str], user: User) -> RescheduleHistory:
        """Notes stay editable only while the reschedule is pending"""
        entry = self.repo.get_entry(self.db, entry_id, user.id)
        if not entry:
            raise NotFoundError("Reschedule entry not found")
        if entry.status != HistoryStatus.PENDING.value:
            raise TransitionConflict("Notes can only be changed while the reschedule is pending")
        entry.notes = notes
        self._commit()
        return entry

    def backfill(self, user_id: Optional[int] = None) -> dict:
        """
        Create ledger entries for waypoints that carry a rescheduled date but have no history.
        Waypoints already present in the ledger are skipped, so a second run inserts nothing.
        """
        inserted = 0
        skipped = 0
        for waypoint, route in self.repo.get_rescheduled_waypoints(self.db, user_id):
            if self.repo.has_entry_for_waypoint(self.db, waypoint.id):
                skipped += 1
                continue
            entry = self.record_reschedule(
                self.db, waypoint, route, waypoint.rescheduled_date, waypoint.missed_reason
            )
            status = BACKFILL_STATUS.get(waypoint.status)
            if status:
                entry.status = status
                if status == HistoryStatus.COMPLETED.value:
                    entry.completed_at = waypoint.completed_at
            inserted += 1

        self._commit()
        logger.info(f"✅ Reschedule backfill complete: inserted={inserted}, skipped={skipped}")
        return {"inserted": inserted, "skipped": skipped}

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to write reschedule history: {e}")
            raise StorageError("Failed to write reschedule history") from e
