"""Shared fixtures: a throwaway SQLite database, model factories and an authenticated API client."""

import os
import tempfile
from datetime import date, datetime, time
from pathlib import Path

_TMP = Path(tempfile.mkdtemp(prefix="fieldroutes_tests_"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from fieldroutes import models, models_billing, models_reschedule, models_route  # noqa: E402,F401
from fieldroutes.auth import get_current_user  # noqa: E402
from fieldroutes.database import Base, SessionLocal, engine, get_db  # noqa: E402
from fieldroutes.main import app  # noqa: E402
from fieldroutes.models import Contact, RouteHolder, User  # noqa: E402
from fieldroutes.models_billing import BillingClient, BillingRate  # noqa: E402
from fieldroutes.models_route import Route, Waypoint  # noqa: E402


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


class Factory:
    """Small builders for rows the tests need; every builder commits"""

    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def user(self, **kwargs) -> User:
        n = self._next()
        kwargs.setdefault("firebase_uid", f"uid-{n}")
        kwargs.setdefault("email", f"owner{n}@example.com")
        kwargs.setdefault("full_name", f"Owner {n}")
        return self._save(User(**kwargs))

    def route_holder(self, user: User, name: str = "Dana") -> RouteHolder:
        return self._save(RouteHolder(user_id=user.id, name=name))

    def contact(self, user: User, **kwargs) -> Contact:
        kwargs.setdefault("name", f"Contact {self._next()}")
        kwargs.setdefault("address", "1 Main St")
        kwargs.setdefault("labels", [])
        return self._save(Contact(user_id=user.id, **kwargs))

    def recurring_contact(self, user: User, days=("Monday",), start=date(2024, 1, 1), **kwargs) -> Contact:
        kwargs.setdefault("repeat_interval_weeks", 1)
        return self.contact(user, repeat_days=list(days), schedule_start=start, **kwargs)

    def route(self, user: User, day: date = date(2024, 1, 1), **kwargs) -> Route:
        kwargs.setdefault("name", f"Route {self._next()}")
        return self._save(Route(user_id=user.id, scheduled_date=datetime.combine(day, time.min), **kwargs))

    def waypoint(self, route: Route, contact: Contact = None, **kwargs) -> Waypoint:
        kwargs.setdefault("position", len(route.waypoints))
        kwargs.setdefault("stop_type", "visit")
        if contact is not None:
            kwargs.setdefault("contact_id", contact.id)
            kwargs.setdefault("contact_name", contact.name)
            kwargs.setdefault("address", contact.address)
            kwargs.setdefault("contact_labels_snapshot", list(contact.labels or []))
        waypoint = self._save(Waypoint(route_id=route.id, **kwargs))
        self.db.refresh(route)
        return waypoint

    def occurrence(self, route: Route, contact: Contact, day: date = date(2024, 1, 1), **kwargs) -> Waypoint:
        """A stop materialized from the contact's current recurrence"""
        kwargs.setdefault("recurrence_generation", contact.recurrence_generation)
        return self.waypoint(route, contact, occurrence_date=day, **kwargs)

    def gap(self, route: Route, minutes: int = 30) -> Waypoint:
        return self.waypoint(route, is_gap_stop=True, gap_name="Lunch", gap_duration_minutes=minutes, stop_type="gap")

    def billing_client(self, user: User, label: str, model: str, rate_cents=None, rates=None, **kwargs):
        client = BillingClient(
            user_id=user.id, client_label=label, billing_model=model, rate_cents=rate_cents, **kwargs
        )
        client.rates = [BillingRate(stop_type=k, rate_cents=v) for k, v in (rates or {}).items()]
        return self._save(client)


@pytest.fixture()
def factory(db):
    return Factory(db)


@pytest.fixture()
def owner(factory):
    return factory.user()


@pytest.fixture()
def client(db, owner):
    def override_get_db():
        yield db

    async def override_get_current_user():
        return owner

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
