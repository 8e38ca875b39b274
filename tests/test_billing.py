from datetime import date, datetime

import pytest

from fieldroutes.domain.billing.money import (
    BillingModel,
    calculate_amount,
    format_cents,
    hourly_amount,
    mileage_amount,
    round_half_up,
)
from fieldroutes.domain.billing.schemas import BillingClientCreate, BillingClientUpdate
from fieldroutes.domain.billing.service import BillingService, summarize
from fieldroutes.domain.execution.schemas import TransitionRequest
from fieldroutes.domain.execution.service import ExecutionService
from fieldroutes.exceptions import NotFoundError, ValidationFailed
from fieldroutes.models_billing import BillingRecord
from fieldroutes.models_reschedule import RescheduleHistory

DAY = date(2024, 1, 1)


# --- arithmetic ---------------------------------------------------------------


def test_round_half_up_not_bankers():
    from decimal import Decimal

    assert round_half_up(Decimal("2.5")) == 3
    assert round_half_up(Decimal("3.5")) == 4
    assert round_half_up(Decimal("2.4999")) == 2


def test_hourly_amount_rounds_once():
    assert hourly_amount(3500, 45) == 2625
    # 1999 * 7 / 60 = 233.2166...
    assert hourly_amount(1999, 7) == 233


def test_mileage_amount_uses_exact_mile():
    assert mileage_amount(65, 1609) == 65
    assert mileage_amount(65, 16093) == 650
    # 58 * 4828 / 1609.344 = 173.9988...
    assert mileage_amount(58, 4828) == 174


def test_calculate_amount_annotations():
    assert calculate_amount(BillingModel.FLAT_FEE, 5000) == (5000, [])
    assert calculate_amount(BillingModel.FLAT_FEE, None) == (0, ["rate_missing"])
    assert calculate_amount(BillingModel.MILEAGE, 65, distance_meters=None) == (0, ["amount_unavailable"])
    assert calculate_amount(BillingModel.HOURLY, 3500, service_minutes=None) == (0, ["amount_unavailable"])


def test_format_cents():
    assert format_cents(15000) == "150.00"
    assert format_cents(5) == "0.05"


# --- derivation ---------------------------------------------------------------


@pytest.fixture()
def acme(factory, owner):
    return factory.contact(owner, name="Acme Lobby", labels=["Acme", "VIP"])


def settled_stop(factory, route, contact, status="complete", **kwargs):
    if status == "complete":
        kwargs.setdefault("completed_at", datetime(2024, 1, 1, 12, 0))
    return factory.waypoint(route, contact, status=status, occurrence_date=DAY, **kwargs)


def test_flat_fee_three_completed_and_one_missed(db, factory, owner, acme):
    factory.billing_client(owner, "Acme", "flat_fee", rate_cents=5000)
    route = factory.route(owner, DAY)
    for _ in range(3):
        settled_stop(factory, route, acme)
    settled_stop(factory, route, acme, status="missed", missed_reason="Closed")

    result = BillingService(db).derive_billing_records(owner.id)
    summary = summarize(result["records"])

    assert summary == [
        {
            "client_label": "Acme",
            "completed_count": 3,
            "missed_count": 1,
            "rescheduled_count": 0,
            "total_amount": 15000,
        }
    ]


def test_missed_visits_billed_when_policy_enabled(db, factory, owner, acme):
    factory.billing_client(owner, "Acme", "flat_fee", rate_cents=5000, bill_missed_visits=True)
    route = factory.route(owner, DAY)
    settled_stop(factory, route, acme, status="missed", missed_reason="Closed")

    records = BillingService(db).derive_billing_records(owner.id)["records"]

    assert [(r.status, r.calculated_amount) for r in records] == [("missed", 5000)]


def test_unsettled_miss_is_not_billed(db, factory, owner, acme):
    factory.billing_client(owner, "Acme", "flat_fee", rate_cents=5000)
    route = factory.route(owner, DAY)
    settled_stop(factory, route, acme, status="missed", needs_reschedule=True, missed_reason="Closed")
    factory.waypoint(route, acme)

    assert BillingService(db).derive_billing_records(owner.id)["records"] == []


def test_cancelled_miss_is_billed_when_policy_enabled(db, factory, owner, acme):
    factory.billing_client(owner, "Acme", "flat_fee", rate_cents=5000, bill_missed_visits=True)
    stop = factory.waypoint(factory.route(owner, DAY), acme)
    execution = ExecutionService(db)
    execution.transition_waypoint(stop.id, TransitionRequest(action="miss", missed_reason="Closed"), owner)
    assert BillingService(db).derive_billing_records(owner.id)["records"] == []

    execution.transition_waypoint(stop.id, TransitionRequest(action="cancel"), owner)
    records = BillingService(db).derive_billing_records(owner.id)["records"]

    assert [(r.status, r.calculated_amount) for r in records] == [("missed", 5000)]


def test_hourly_and_stop_type_override(db, factory, owner, acme):
    factory.billing_client(owner, "Acme", "hourly", rate_cents=3000, rates={"deep_clean": 3500})
    route = factory.route(owner, DAY)
    settled_stop(factory, route, acme, stop_type="deep_clean", service_minutes=45)
    settled_stop(factory, route, acme, stop_type="visit", service_minutes=30)

    records = BillingService(db).derive_billing_records(owner.id)["records"]

    assert sorted(r.calculated_amount for r in records) == [1500, 2625]


def test_mileage_without_distance_is_flagged(db, factory, owner, acme):
    factory.billing_client(owner, "Acme", "mileage", rate_cents=65)
    route = factory.route(owner, DAY)
    settled_stop(factory, route, acme)

    record = BillingService(db).derive_billing_records(owner.id)["records"][0]

    assert record.calculated_amount == 0
    assert record.annotations == ["amount_unavailable"]


def test_missing_rate_produces_zero_with_warning(db, factory, owner, acme):
    factory.billing_client(owner, "Acme", "flat_fee", rate_cents=None)
    route = factory.route(owner, DAY)
    settled_stop(factory, route, acme)

    result = BillingService(db).derive_billing_records(owner.id)

    assert result["failures"] == []
    assert result["records"][0].calculated_amount == 0
    assert result["records"][0].annotations == ["rate_missing"]


def test_unattributed_visits_are_excluded(db, factory, owner):
    factory.billing_client(owner, "Acme", "flat_fee", rate_cents=5000)
    factory.billing_client(owner, "Globex", "flat_fee", rate_cents=4000)
    route = factory.route(owner, DAY)
    settled_stop(factory, route, factory.contact(owner, labels=[]))
    settled_stop(factory, route, factory.contact(owner, labels=["Acme", "Globex"]))

    result = BillingService(db).derive_billing_records(owner.id)

    assert result["records"] == []
    assert result["unattributed"] == 2


def test_rescheduled_attempt_recorded_at_zero(db, factory, owner, acme):
    factory.billing_client(owner, "Acme", "flat_fee", rate_cents=5000)
    route = factory.route(owner, DAY, name="Mon Route")
    stop = settled_stop(factory, route, acme, rescheduled_date=datetime(2024, 1, 8, 9, 0), missed_reason="Closed")
    db.add(
        RescheduleHistory(
            user_id=owner.id,
            waypoint_id=stop.id,
            route_id=route.id,
            route_name=route.name,
            contact_name=acme.name,
            address=acme.address,
            original_date=route.scheduled_date,
            rescheduled_date=datetime(2024, 1, 8, 9, 0),
            status="completed",
        )
    )
    db.commit()

    records = BillingService(db).derive_billing_records(owner.id)["records"]
    by_status = {r.status: r for r in records}

    assert by_status["completed"].visit_date == date(2024, 1, 8)
    assert by_status["completed"].calculated_amount == 5000
    assert by_status["rescheduled"].visit_date == DAY
    assert by_status["rescheduled"].calculated_amount == 0


def test_rescheduled_attempt_survives_route_deletion(db, factory, owner, acme):
    factory.billing_client(owner, "Acme", "flat_fee", rate_cents=5000, rates={"deep_clean": 7000})
    route = factory.route(owner, DAY, name="Mon Route")
    stop = factory.waypoint(route, acme, stop_type="deep_clean")
    execution = ExecutionService(db)
    execution.transition_waypoint(stop.id, TransitionRequest(action="miss", missed_reason="Closed"), owner)
    execution.transition_waypoint(
        stop.id, TransitionRequest(action="reschedule", rescheduled_date=datetime(2024, 1, 8, 9, 0)), owner
    )
    execution.transition_waypoint(stop.id, TransitionRequest(action="complete"), owner)
    stop_id = stop.id

    db.delete(route)
    db.commit()
    result = BillingService(db).derive_billing_records(owner.id)

    assert result["unattributed"] == 0
    assert result["failures"] == []
    [record] = result["records"]
    assert (record.status, record.client_label, record.visit_type) == ("rescheduled", "Acme", "deep_clean")
    assert record.waypoint_id == stop_id
    assert record.visit_date == DAY
    assert record.contact_name == "Acme Lobby"


def test_derivation_is_idempotent(db, factory, owner, acme):
    factory.billing_client(owner, "Acme", "flat_fee", rate_cents=5000)
    route = factory.route(owner, DAY)
    settled_stop(factory, route, acme)
    service = BillingService(db)

    service.derive_billing_records(owner.id)
    service.derive_billing_records(owner.id)

    assert db.query(BillingRecord).count() == 1


def test_date_range_filters_visits(db, factory, owner, acme):
    factory.billing_client(owner, "Acme", "flat_fee", rate_cents=5000)
    route = factory.route(owner, DAY)
    settled_stop(factory, route, acme)

    result = BillingService(db).derive_billing_records(owner.id, start_date=date(2024, 2, 1))

    assert result["records"] == []


def test_records_scoped_to_owner(db, factory, owner, acme):
    factory.billing_client(owner, "Acme", "flat_fee", rate_cents=5000)
    settled_stop(factory, factory.route(owner, DAY), acme)
    service = BillingService(db)
    service.derive_billing_records(owner.id)

    assert len(service.get_billing_records(owner, status="completed")) == 1
    assert service.get_billing_records(factory.user()) == []
    with pytest.raises(ValidationFailed):
        service.get_billing_records(owner, status="paid")


# --- client configuration -----------------------------------------------------


def test_client_crud(db, owner):
    service = BillingService(db)
    client = service.create_client(
        BillingClientCreate(
            client_label="Acme",
            billing_model="hourly",
            rate_cents=3000,
            rates=[{"stop_type": "deep_clean", "rate_cents": 3500}],
        ),
        owner,
    )
    assert [(r.stop_type, r.rate_cents) for r in client.rates] == [("deep_clean", 3500)]

    with pytest.raises(ValidationFailed):
        service.create_client(BillingClientCreate(client_label="Acme", billing_model="flat_fee"), owner)

    updated = service.update_client(
        client.id,
        BillingClientUpdate(billing_model="flat_fee", rates=[{"stop_type": "deep_clean", "rate_cents": 4000}]),
        owner,
    )
    assert updated.billing_model == "flat_fee"
    assert updated.rate_cents == 3000
    assert [(r.stop_type, r.rate_cents) for r in updated.rates] == [("deep_clean", 4000)]

    service.delete_client(client.id, owner)
    with pytest.raises(NotFoundError):
        service.update_client(client.id, BillingClientUpdate(rate_cents=1), owner)
