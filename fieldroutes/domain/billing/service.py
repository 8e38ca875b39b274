"""
Billing service - derives per-client billing records from settled visits.

Derivation is idempotent: every record is keyed by its source ("waypoint:<id>" or
"reschedule:<id>") so a re-run updates rows in place. A bad record is logged and skipped,
it never aborts the run.
"""

import csv
import logging
from datetime import date, datetime
from io import StringIO
from typing import Optional

from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...exceptions import NotFoundError, StorageError, ValidationFailed
from ...models import User
from ...models_billing import BillingClient, BillingRate, BillingRecord
from ...models_reschedule import RescheduleHistory
from ...models_route import Route, Waypoint
from .money import BillingModel, calculate_amount, format_cents
from .repository import BillingRepository
from .schemas import BillingClientCreate, BillingClientUpdate

logger = logging.getLogger(__name__)

RECORD_STATUSES = {"completed", "missed", "rescheduled"}

CSV_HEADERS = [
    "Client",
    "Contact",
    "Visit Type",
    "Visit Date",
    "Route Holder",
    "Status",
    "Amount",
    "Warnings",
]


def _as_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def waypoint_visit_date(waypoint: Waypoint, route: Route) -> Optional[date]:
    """The day the final attempt took place"""
    return (
        _as_date(waypoint.rescheduled_date)
        or waypoint.occurrence_date
        or _as_date(route.scheduled_date)
        or _as_date(waypoint.completed_at)
    )


def summarize(records: list[BillingRecord]) -> list[dict]:
    """Per client label: completed / missed / rescheduled counts and the total in cents"""
    summary: dict[str, dict] = {}
    for record in records:
        row = summary.setdefault(
            record.client_label,
            {
                "client_label": record.client_label,
                "completed_count": 0,
                "missed_count": 0,
                "rescheduled_count": 0,
                "total_amount": 0,
            },
        )
        row[f"{record.status}_count"] += 1
        row["total_amount"] += record.calculated_amount
    return [summary[label] for label in sorted(summary)]


class BillingService:
    """Service layer for billing operations"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BillingRepository()

    # ------------------------------------------------------------------
    # Client configuration
    # ------------------------------------------------------------------

    def list_clients(self, user: User) -> list[BillingClient]:
        return self.repo.get_clients(self.db, user.id)

    def create_client(self, data: BillingClientCreate, user: User) -> BillingClient:
        if self.repo.get_client_by_label(self.db, user.id, data.client_label):
            raise ValidationFailed(f"Billing is already configured for '{data.client_label}'")

        client = self.repo.create_client(
            self.db,
            user.id,
            {
                "client_label": data.client_label,
                "billing_model": data.billing_model.value,
                "rate_cents": data.rate_cents,
                "bill_missed_visits": data.bill_missed_visits,
            },
            [rate.model_dump() for rate in data.rates],
        )
        self._commit("create billing client")
        self.db.refresh(client)
        logger.info(f"✅ Billing client '{client.client_label}' created for user {user.id}")
        return client

    def update_client(self, client_id: int, data: BillingClientUpdate, user: User) -> BillingClient:
        client = self._get_client(client_id, user)
        if data.billing_model is not None:
            client.billing_model = data.billing_model.value
        if "rate_cents" in data.model_fields_set:
            client.rate_cents = data.rate_cents
        if data.bill_missed_visits is not None:
            client.bill_missed_visits = data.bill_missed_visits
        if data.rates is not None:
            stop_types = [r.stop_type for r in data.rates]
            if len(stop_types) != len(set(stop_types)):
                raise ValidationFailed("Each stop type may only have one rate")
            client.rates.clear()
            self.db.flush()
            client.rates.extend(BillingRate(**rate.model_dump()) for rate in data.rates)

        self._commit("update billing client")
        self.db.refresh(client)
        return client

    def delete_client(self, client_id: int, user: User) -> None:
        """Derived records are kept; the label simply stops being billed on the next run"""
        client = self._get_client(client_id, user)
        self.db.delete(client)
        self._commit("delete billing client")
        logger.info(f"🗑️ Billing client {client_id} deleted for user {user.id}")

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def derive_billing_records(
        self,
        user_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict:
        """
        Build or refresh billing records for every settled visit of an owner.

        Returns {"records": [...], "unattributed": n, "failures": [...]}.
        """
        clients = {c.client_label: c for c in self.repo.get_clients(self.db, user_id)}
        records: list[BillingRecord] = []
        unattributed = 0
        failures: list[str] = []

        if not clients:
            logger.info(f"ℹ️ User {user_id} has no billing clients configured, nothing to derive")
            return {"records": records, "unattributed": 0, "failures": failures}

        sources = [
            (f"waypoint:{waypoint.id}", waypoint, route, None)
            for waypoint, route in self.repo.get_settled_waypoints(self.db, user_id)
        ]
        for entry in self.repo.get_settled_entries(self.db, user_id):
            sources.append((f"reschedule:{entry.id}", None, None, entry))

        for source_key, waypoint, route, entry in sources:
            try:
                if entry is not None:
                    # The origin waypoint may be gone with its route; the entry carries its own snapshot
                    waypoint = self.repo.get_waypoint(self.db, entry.waypoint_id)
                    route = waypoint.route if waypoint else None
                    visit_date = _as_date(entry.original_date) or _as_date(entry.rescheduled_date)
                    labels = entry.contact_labels_snapshot
                    if labels is None:
                        labels = waypoint.contact_labels_snapshot if waypoint else []
                    stop_type = entry.stop_type or (waypoint.stop_type if waypoint else None)
                else:
                    visit_date = waypoint_visit_date(waypoint, route)
                    labels = waypoint.contact_labels_snapshot
                    stop_type = waypoint.stop_type

                if visit_date is None:
                    raise ValueError("visit has no date")
                if (start_date and visit_date < start_date) or (end_date and visit_date > end_date):
                    continue

                billable = [label for label in (labels or []) if label in clients]
                if len(billable) != 1:
                    unattributed += 1
                    logger.warning(
                        f"⚠️ Unattributed visit {source_key} for user {user_id}: "
                        f"{len(billable)} billable label(s) {billable}, skipping"
                    )
                    continue

                record = self._upsert_record(
                    user_id, source_key, clients[billable[0]], stop_type, waypoint, route, entry, visit_date
                )
                records.append(record)
            except Exception as e:
                failures.append(source_key)
                logger.error(f"❌ Billing derivation failed for {source_key} (user {user_id}): {e}")

        self._commit("save billing records")
        total = sum(r.calculated_amount for r in records)
        logger.info(
            f"📊 Billing run for user {user_id}: {len(records)} record(s), "
            f"{unattributed} unattributed, {len(failures)} failed, total {format_cents(total)}"
        )
        return {"records": records, "unattributed": unattributed, "failures": failures}

    def _upsert_record(
        self,
        user_id: int,
        source_key: str,
        client: BillingClient,
        stop_type: Optional[str],
        waypoint: Optional[Waypoint],
        route: Optional[Route],
        entry: Optional[RescheduleHistory],
        visit_date: date,
    ) -> BillingRecord:
        """waypoint is only None for a ledger entry whose route has since been deleted"""
        model = BillingModel(client.billing_model)
        rate_cents = client.rate_cents
        for override in client.rates:
            if override.stop_type == stop_type:
                rate_cents = override.rate_cents
                break

        if entry is not None:
            status = "rescheduled"
        elif waypoint.status == "complete":
            status = "completed"
        else:
            status = "missed"

        if status == "completed" or client.bill_missed_visits:
            # A ledger entry is an earlier attempt; the waypoint's figures describe the final one
            distance = waypoint.distance_meters if entry is None else None
            minutes = waypoint.service_minutes if entry is None else None
            amount, annotations = calculate_amount(model, rate_cents, distance, minutes)
        else:
            amount, annotations = 0, []

        if annotations:
            logger.warning(f"⚠️ Billing record {source_key} flagged {annotations}")

        record = self.repo.get_record_by_source(self.db, user_id, source_key)
        if record is None:
            record = BillingRecord(user_id=user_id, source_key=source_key)
            self.db.add(record)

        if entry is not None:
            record.waypoint_id = entry.waypoint_id
            record.route_id = entry.route_id
            record.contact_name = entry.contact_name
        else:
            record.waypoint_id = waypoint.id
            record.route_id = route.id if route else None
            record.contact_name = waypoint.contact_name
        record.client_label = client.client_label
        record.billing_model = model.value
        record.visit_type = stop_type
        record.visit_date = visit_date
        record.route_holder_name = route.route_holder.name if route and route.route_holder else None
        record.status = status
        record.calculated_amount = amount
        record.annotations = annotations
        return record

    # ------------------------------------------------------------------
    # Queries and export
    # ------------------------------------------------------------------

    def get_billing_records(
        self,
        user: User,
        client_label: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[BillingRecord]:
        if status and status not in RECORD_STATUSES:
            raise ValidationFailed(f"Unknown billing status '{status}'")
        return self.repo.list_records(self.db, user.id, client_label, status, start_date, end_date)

    def get_billing_summary(
        self, user: User, start_date: Optional[date] = None, end_date: Optional[date] = None
    ) -> list[dict]:
        return summarize(self.get_billing_records(user, start_date=start_date, end_date=end_date))

    def export_records_csv(self, user: User, **filters) -> StreamingResponse:
        """Export billing records as CSV"""
        records = self.get_billing_records(user, **filters)

        output = StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL)
        writer.writerow(CSV_HEADERS)
        for record in records:
            writer.writerow(
                [
                    record.client_label,
                    record.contact_name or "",
                    record.visit_type or "",
                    record.visit_date.isoformat(),
                    record.route_holder_name or "",
                    record.status,
                    format_cents(record.calculated_amount),
                    ", ".join(record.annotations or []),
                ]
            )
        output.seek(0)
        logger.info(f"📊 Billing export for user {user.id}: {len(records)} row(s)")

        filename = f"billing_{datetime.now().strftime('%Y%m%d')}.csv"
        return StreamingResponse(
            iter([output.getvalue()]),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    def _get_client(self, client_id: int, user: User) -> BillingClient:
        client = self.repo.get_client(self.db, client_id, user.id)
        if not client:
            raise NotFoundError("Billing client not found")
        return client

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to {action}: {e}")
            raise StorageError(f"Failed to {action}") from e
