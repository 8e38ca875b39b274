from datetime import date, datetime

from fieldroutes.domain.scheduling.service import SchedulingService
from fieldroutes.exceptions import StorageError
from fieldroutes.models import JobCheckpoint
from fieldroutes.models_billing import BillingRecord
from fieldroutes.models_route import Waypoint
from fieldroutes.services.batch_jobs import (
    MATERIALIZE_JOB,
    derive_billing_for_all_owners,
    materialize_recurring_visits,
)

MONDAY = date(2024, 1, 1)


def test_materialize_processes_every_owner(db, factory, owner):
    second = factory.user()
    factory.recurring_contact(owner)
    factory.recurring_contact(second, days=["Tuesday"])

    summary = materialize_recurring_visits(db, today=MONDAY)

    assert summary["owners_processed"] == 2
    assert summary["failures"] == []
    assert summary["waypoints_created"] == db.query(Waypoint).count() > 0
    checkpoint = db.query(JobCheckpoint).filter(JobCheckpoint.job_name == MATERIALIZE_JOB).one()
    assert checkpoint.last_owner_id == 0


def test_failure_for_one_owner_does_not_stop_the_others(db, factory, owner, monkeypatch):
    second = factory.user()
    factory.recurring_contact(owner)
    factory.recurring_contact(second)
    original = SchedulingService.materialize_upcoming

    def flaky(self, user_id, today=None, horizon_days=None):
        if user_id == owner.id:
            raise StorageError("Failed to materialize visits")
        return original(self, user_id, today=today, horizon_days=horizon_days)

    monkeypatch.setattr(SchedulingService, "materialize_upcoming", flaky)

    summary = materialize_recurring_visits(db, today=MONDAY)

    assert summary["owners_processed"] == 1
    assert [f["owner_id"] for f in summary["failures"]] == [owner.id]
    assert db.query(Waypoint).count() == summary["waypoints_created"] > 0


def test_resumes_after_checkpoint(db, factory, owner):
    second = factory.user()
    factory.recurring_contact(owner)
    factory.recurring_contact(second)
    db.add(JobCheckpoint(job_name=MATERIALIZE_JOB, last_owner_id=owner.id))
    db.commit()

    summary = materialize_recurring_visits(db, today=MONDAY)

    assert summary["owners_processed"] == 1
    owners = {w.route.user_id for w in db.query(Waypoint).all()}
    assert owners == {second.id}


def test_billing_job_derives_for_all_owners(db, factory, owner):
    second = factory.user()
    for user in (owner, second):
        factory.billing_client(user, "Acme", "flat_fee", rate_cents=5000)
        contact = factory.contact(user, labels=["Acme"])
        route = factory.route(user, MONDAY)
        factory.waypoint(
            route, contact, status="complete", occurrence_date=MONDAY, completed_at=datetime(2024, 1, 1, 10)
        )

    summary = derive_billing_for_all_owners(db)
    again = derive_billing_for_all_owners(db)

    assert summary["owners_processed"] == 2
    assert summary["records_derived"] == 2
    assert again["records_derived"] == 2
    assert db.query(BillingRecord).count() == 2


def test_corrupt_stored_recurrence_fails_only_its_owner(db, factory, owner):
    second = factory.user()
    factory.recurring_contact(owner, repeat_interval_weeks=0)
    factory.recurring_contact(second)

    summary = materialize_recurring_visits(db, today=MONDAY)

    assert [f["owner_id"] for f in summary["failures"]] == [owner.id]
    owners = {w.route.user_id for w in db.query(Waypoint).all()}
    assert owners == {second.id}
