"""
Nightly batch jobs: recurring visit materialization and billing derivation.

Both jobs walk owners in id order, isolate failures per owner and store a checkpoint after each
owner so an interrupted run resumes where it stopped. A run that reaches the last owner resets
the checkpoint, so the next run starts from the beginning.
"""

import logging
from datetime import date
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..domain.billing.service import BillingService
from ..domain.scheduling.service import SchedulingService
from ..models import JobCheckpoint, User

logger = logging.getLogger(__name__)

MATERIALIZE_JOB = "materialize_recurring_visits"
BILLING_JOB = "derive_billing"


def _get_checkpoint(db: Session, job_name: str) -> JobCheckpoint:
    checkpoint = db.query(JobCheckpoint).filter(JobCheckpoint.job_name == job_name).first()
    if checkpoint is None:
        checkpoint = JobCheckpoint(job_name=job_name, last_owner_id=0)
        db.add(checkpoint)
        db.commit()
    return checkpoint


def _save_checkpoint(db: Session, job_name: str, owner_id: int) -> None:
    db.query(JobCheckpoint).filter(JobCheckpoint.job_name == job_name).update(
        {JobCheckpoint.last_owner_id: owner_id}, synchronize_session=False
    )
    db.commit()


def _run_per_owner(db: Session, job_name: str, work: Callable[[int], dict]) -> dict:
    """Call work(owner_id) for each owner after the checkpoint; returns totals and failures"""
    start_after = _get_checkpoint(db, job_name).last_owner_id
    if start_after:
        logger.info(f"🔁 {job_name}: resuming after owner {start_after}")

    owner_ids = [
        row.id for row in db.query(User.id).filter(User.id > start_after).order_by(User.id).all()
    ]

    totals: dict = {"owners_processed": 0, "failures": []}
    for owner_id in owner_ids:
        try:
            result = work(owner_id)
            for key, value in result.items():
                totals[key] = totals.get(key, 0) + value
            totals["owners_processed"] += 1
        except Exception as e:
            db.rollback()
            logger.error(f"❌ {job_name} failed for user {owner_id}: {str(e)}")
            totals["failures"].append({"owner_id": owner_id, "error": str(e)})
        _save_checkpoint(db, job_name, owner_id)

    _save_checkpoint(db, job_name, 0)
    return totals


def materialize_recurring_visits(db: Session, today: Optional[date] = None) -> dict:
    """
    Materialize upcoming occurrences for every owner.

    Returns {"owners_processed", "waypoints_created", "failures"}.
    """
    logger.info("🗓️ Starting recurring visit materialization")
    service = SchedulingService(db)

    def work(owner_id: int) -> dict:
        waypoints = service.materialize_upcoming(owner_id, today=today)
        return {"waypoints_created": len(waypoints)}

    summary = _run_per_owner(db, MATERIALIZE_JOB, work)
    summary.setdefault("waypoints_created", 0)
    logger.info(
        f"✅ Materialization complete: {summary['owners_processed']} owner(s), "
        f"{summary['waypoints_created']} waypoint(s), {len(summary['failures'])} failure(s)"
    )
    return summary


def derive_billing_for_all_owners(db: Session) -> dict:
    """
    Re-derive billing records for every owner.

    Returns {"owners_processed", "records_derived", "unattributed", "record_failures", "failures"}.
    """
    logger.info("💰 Starting billing derivation")
    service = BillingService(db)

    def work(owner_id: int) -> dict:
        result = service.derive_billing_records(owner_id)
        return {
            "records_derived": len(result["records"]),
            "unattributed": result["unattributed"],
            "record_failures": len(result["failures"]),
        }

    summary = _run_per_owner(db, BILLING_JOB, work)
    for key in ("records_derived", "unattributed", "record_failures"):
        summary.setdefault(key, 0)
    logger.info(
        f"✅ Billing derivation complete: {summary['owners_processed']} owner(s), "
        f"{summary['records_derived']} record(s), {len(summary['failures'])} failure(s)"
    )
    return summary
