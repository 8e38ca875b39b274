from datetime import date

import pytest
from pydantic import ValidationError

from fieldroutes.domain.execution.schemas import TransitionRequest
from fieldroutes.domain.execution.service import ExecutionService
from fieldroutes.domain.scheduling.schemas import OneTimeVisitRequest, RecurrenceConfigRequest
from fieldroutes.domain.scheduling.service import SchedulingService, config_from_contact
from fieldroutes.exceptions import NotFoundError, RecurrenceConfigError, ValidationFailed
from fieldroutes.models_route import Route, Waypoint

MONDAY = date(2024, 1, 1)


def test_set_recurrence_replaces_one_time_visit(db, factory, owner):
    holder = factory.route_holder(owner)
    contact = factory.contact(owner, is_one_time_visit=True, one_time_visit_date=MONDAY)

    saved = SchedulingService(db).set_recurrence(
        contact.id,
        RecurrenceConfigRequest(
            repeat_interval_weeks=2,
            repeat_days=["Monday", "Thursday", "Monday"],
            day_route_holders={"Monday": holder.id},
            schedule_start=MONDAY,
            end_type="occurrences",
            end_occurrences=4,
        ),
        owner,
    )

    assert saved.is_one_time_visit is False
    assert saved.one_time_visit_date is None
    assert saved.repeat_days == ["Monday", "Thursday"]
    assert saved.day_route_holders == {"Monday": holder.id}
    assert saved.schedule_end_occurrences == 4


def test_set_recurrence_rejects_foreign_route_holder(db, factory, owner):
    other_holder = factory.route_holder(factory.user())
    contact = factory.contact(owner)

    with pytest.raises(ValidationFailed):
        SchedulingService(db).set_recurrence(
            contact.id,
            RecurrenceConfigRequest(
                repeat_days=["Monday"],
                day_route_holders={"Monday": other_holder.id},
                schedule_start=MONDAY,
            ),
            owner,
        )


@pytest.mark.parametrize(
    "payload",
    [
        {"repeat_days": [], "schedule_start": MONDAY},
        {"repeat_days": ["Monday"], "schedule_start": MONDAY, "repeat_interval_weeks": 0},
        {"repeat_days": ["Monday"], "schedule_start": MONDAY, "end_type": "date"},
        {"repeat_days": ["Monday"], "schedule_start": MONDAY, "end_type": "occurrences", "end_occurrences": 0},
        {"repeat_days": ["Monday"], "schedule_start": MONDAY, "day_route_holders": {"Friday": 1}},
    ],
)
def test_invalid_recurrence_requests(payload):
    with pytest.raises(ValidationError):
        RecurrenceConfigRequest(**payload)


def test_contact_of_other_owner_is_not_found(db, factory, owner):
    contact = factory.contact(factory.user())
    with pytest.raises(NotFoundError):
        SchedulingService(db).get_contact(contact.id, owner)


def test_next_occurrence_includes_today(db, factory, owner):
    contact = factory.recurring_contact(owner, days=["Monday"])
    occurrence = SchedulingService(db).compute_next_occurrence(contact.id, owner, today=MONDAY)
    assert occurrence.date == MONDAY


def test_one_time_visit_next_occurrence(db, factory, owner):
    contact = factory.contact(owner)
    service = SchedulingService(db)
    service.set_one_time_visit(contact.id, OneTimeVisitRequest(visit_date=date(2024, 1, 10)), owner)

    assert service.compute_next_occurrence(contact.id, owner, today=MONDAY).date == date(2024, 1, 10)
    assert service.compute_next_occurrence(contact.id, owner, today=date(2024, 1, 11)) is None


def test_materialize_creates_named_routes_with_snapshots(db, factory, owner):
    holder = factory.route_holder(owner, name="Dana")
    contact = factory.recurring_contact(
        owner,
        days=["Monday", "Wednesday"],
        day_route_holders={"Monday": holder.id},
        labels=["Acme"],
        stop_type="deep_clean",
    )

    created = SchedulingService(db).materialize_upcoming(owner.id, today=MONDAY, horizon_days=7)

    assert [w.occurrence_date for w in created] == [date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 8)]
    assert all(w.contact_labels_snapshot == ["Acme"] for w in created)
    assert all(w.stop_type == "deep_clean" for w in created)
    names = {r.name for r in db.query(Route).all()}
    assert names == {"Mon Jan 01 - Dana", "Wed Jan 03 - Unassigned", "Mon Jan 08 - Dana"}
    db.refresh(contact)
    assert contact.last_scheduled_date == date(2024, 1, 8)


def test_materialize_twice_creates_nothing_new(db, factory, owner):
    factory.recurring_contact(owner)
    service = SchedulingService(db)

    first = service.materialize_upcoming(owner.id, today=MONDAY, horizon_days=14)
    second = service.materialize_upcoming(owner.id, today=MONDAY, horizon_days=14)

    assert len(first) == 3
    assert second == []
    assert db.query(Waypoint).count() == 3


def test_contacts_share_a_route_for_the_same_day_and_holder(db, factory, owner):
    factory.recurring_contact(owner)
    factory.recurring_contact(owner)

    created = SchedulingService(db).materialize_upcoming(owner.id, today=MONDAY, horizon_days=0)

    assert len(created) == 2
    assert created[0].route_id == created[1].route_id
    assert sorted(w.position for w in created) == [0, 1]


def test_one_time_visit_materialized_once(db, factory, owner):
    contact = factory.contact(owner, stop_type="visit")
    service = SchedulingService(db)
    service.set_one_time_visit(
        contact.id, OneTimeVisitRequest(visit_date=date(2024, 1, 5), stop_type="inspection"), owner
    )

    created = service.materialize_upcoming(owner.id, today=MONDAY, horizon_days=7)
    again = service.materialize_upcoming(owner.id, today=MONDAY, horizon_days=7)

    assert [(w.occurrence_date, w.stop_type) for w in created] == [(date(2024, 1, 5), "inspection")]
    assert again == []
    assert service.compute_next_occurrence(contact.id, owner, today=MONDAY) is None


def test_end_after_occurrences_ends_after_third_settlement(db, factory, owner):
    contact = factory.recurring_contact(
        owner, schedule_end_type="occurrences", schedule_end_occurrences=3
    )
    scheduling = SchedulingService(db)
    execution = ExecutionService(db)

    created = scheduling.materialize_upcoming(owner.id, today=MONDAY, horizon_days=60)
    assert len(created) == 3

    execution.transition_waypoint(created[0].id, TransitionRequest(action="complete"), owner)
    execution.transition_waypoint(created[1].id, TransitionRequest(action="miss", missed_reason="Closed"), owner)
    execution.transition_waypoint(created[2].id, TransitionRequest(action="complete"), owner)

    db.refresh(contact)
    assert contact.occurrences_completed == 3
    assert scheduling.compute_next_occurrence(contact.id, owner, today=date(2024, 1, 16)) is None
    assert scheduling.materialize_upcoming(owner.id, today=date(2024, 1, 16), horizon_days=60) == []


def test_completed_one_time_visit_does_not_use_up_a_new_recurrence(db, factory, owner):
    contact = factory.contact(owner)
    scheduling = SchedulingService(db)
    scheduling.set_one_time_visit(contact.id, OneTimeVisitRequest(visit_date=date(2024, 1, 10)), owner)
    [visit] = scheduling.materialize_upcoming(owner.id, today=MONDAY, horizon_days=14)

    completed = ExecutionService(db).transition_waypoint(visit.id, TransitionRequest(action="complete"), owner)
    assert completed.occurrence_counted is False

    scheduling.set_recurrence(
        contact.id,
        RecurrenceConfigRequest(
            repeat_days=["Monday"],
            schedule_start=date(2024, 2, 5),
            end_type="occurrences",
            end_occurrences=1,
        ),
        owner,
    )

    db.refresh(contact)
    assert contact.occurrences_completed == 0
    assert scheduling.compute_next_occurrence(contact.id, owner, today=date(2024, 2, 1)).date == date(2024, 2, 5)


def test_reconfigured_recurrence_starts_counting_from_zero(db, factory, owner):
    contact = factory.recurring_contact(owner, schedule_end_type="occurrences", schedule_end_occurrences=3)
    scheduling = SchedulingService(db)
    execution = ExecutionService(db)
    first, second, _ = scheduling.materialize_upcoming(owner.id, today=MONDAY, horizon_days=60)
    execution.transition_waypoint(first.id, TransitionRequest(action="complete"), owner)

    scheduling.set_recurrence(
        contact.id,
        RecurrenceConfigRequest(
            repeat_days=["Monday"],
            schedule_start=date(2024, 2, 5),
            end_type="occurrences",
            end_occurrences=2,
        ),
        owner,
    )
    # A leftover stop from the previous schedule settles without touching the new count
    execution.transition_waypoint(second.id, TransitionRequest(action="complete"), owner)

    db.refresh(contact)
    assert contact.occurrences_completed == 0
    created = scheduling.materialize_upcoming(owner.id, today=date(2024, 2, 1), horizon_days=60)
    assert [w.occurrence_date for w in created] == [date(2024, 2, 5), date(2024, 2, 12)]


def test_clearing_the_schedule_resets_the_counter(db, factory, owner):
    contact = factory.recurring_contact(owner, occurrences_completed=2)

    cleared = SchedulingService(db).clear_schedule(contact.id, owner)

    assert cleared.occurrences_completed == 0
    assert cleared.repeat_interval_weeks is None


@pytest.mark.parametrize(
    "stored",
    [
        {"repeat_interval_weeks": 0},
        {"repeat_interval_weeks": -1},
        {"days": ["Monday", "Funday"]},
    ],
)
def test_corrupt_stored_recurrence_is_a_config_error(db, factory, owner, stored):
    contact = factory.recurring_contact(owner, **stored)

    with pytest.raises(RecurrenceConfigError):
        config_from_contact(contact)
    with pytest.raises(RecurrenceConfigError):
        SchedulingService(db).compute_next_occurrence(contact.id, owner, today=MONDAY)
