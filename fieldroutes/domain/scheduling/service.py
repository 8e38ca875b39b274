"""Scheduling service - recurrence configuration and occurrence materialization"""

import logging
from dataclasses import replace
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import DEFAULT_STOP_TYPE, SCHEDULING_HORIZON_DAYS
from ...exceptions import NotFoundError, RecurrenceConfigError, StorageError, ValidationFailed
from ...models import Contact, User
from ...models_route import Waypoint
from .counter import OccurrenceCounter
from .recurrence import (
    EndAfterOccurrences,
    EndOnDate,
    NeverEnds,
    Occurrence,
    RecurringVisitConfig,
    Weekday,
    next_occurrence,
    occurrences_between,
    validate_config,
)
from .repository import SchedulingRepository
from .schemas import OneTimeVisitRequest, RecurrenceConfigRequest

logger = logging.getLogger(__name__)


def config_from_contact(contact: Contact) -> Optional[RecurringVisitConfig]:
    """
    Build the engine's view of a contact's recurrence, None for one-time or unscheduled contacts.

    Raises RecurrenceConfigError when the stored recurrence could never have passed validation
    (an interval below 1 or an unknown weekday name).
    """
    if contact.is_one_time_visit or contact.repeat_interval_weeks is None or contact.schedule_start is None:
        return None
    if contact.repeat_interval_weeks < 1:
        raise RecurrenceConfigError(
            f"Contact {contact.id} has an invalid repeat interval: {contact.repeat_interval_weeks!r}"
        )

    holders = contact.day_route_holders or {}
    try:
        repeat_days = {Weekday(day): holders.get(day) for day in (contact.repeat_days or [])}
    except ValueError as e:
        raise RecurrenceConfigError(f"Contact {contact.id} has an invalid repeat day: {e}") from e

    if contact.schedule_end_type == "date" and contact.schedule_end_date:
        end_policy = EndOnDate(contact.schedule_end_date)
    elif contact.schedule_end_type == "occurrences" and contact.schedule_end_occurrences:
        end_policy = EndAfterOccurrences(contact.schedule_end_occurrences)
    else:
        end_policy = NeverEnds()

    return RecurringVisitConfig(
        repeat_interval_weeks=contact.repeat_interval_weeks,
        repeat_days=repeat_days,
        schedule_start=contact.schedule_start,
        end_policy=end_policy,
        occurrences_completed=contact.occurrences_completed or 0,
    )


class SchedulingService:
    """Service layer for recurring and one-time visit scheduling"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    def get_contact(self, contact_id: int, user: User) -> Contact:
        contact = self.repo.get_contact(self.db, contact_id, user.id)
        if not contact:
            raise NotFoundError("Contact not found")
        return contact

    # ------------------------------------------------------------------
    # Configuration writes
    # ------------------------------------------------------------------

    def set_recurrence(self, contact_id: int, data: RecurrenceConfigRequest, user: User) -> Contact:
        """Store a recurring schedule; the contact stops being a one-time visit"""
        contact = self.get_contact(contact_id, user)
        self._check_route_holders(data.day_route_holders.values(), user)

        if data.end_type == "date":
            end_policy = EndOnDate(data.end_date)
        elif data.end_type == "occurrences":
            end_policy = EndAfterOccurrences(data.end_occurrences)
        else:
            end_policy = NeverEnds()

        config = RecurringVisitConfig(
            repeat_interval_weeks=data.repeat_interval_weeks,
            repeat_days={day: data.day_route_holders.get(day) for day in data.repeat_days},
            schedule_start=data.schedule_start,
            end_policy=end_policy,
        )
        problems = validate_config(config)
        if problems:
            raise ValidationFailed("; ".join(problems))

        contact.repeat_interval_weeks = data.repeat_interval_weeks
        contact.repeat_days = [day.value for day in data.repeat_days]
        contact.day_route_holders = {day.value: holder for day, holder in data.day_route_holders.items()}
        contact.schedule_start = data.schedule_start
        contact.schedule_end_type = data.end_type
        contact.schedule_end_date = data.end_date if data.end_type == "date" else None
        contact.schedule_end_occurrences = data.end_occurrences if data.end_type == "occurrences" else None
        contact.last_scheduled_date = None
        OccurrenceCounter.start_generation(contact)

        contact.is_one_time_visit = False
        contact.one_time_visit_date = None
        contact.one_time_route_holder_id = None
        contact.one_time_stop_type = None

        self._commit()
        logger.info(f"📅 Recurrence saved for contact {contact.id}: every {data.repeat_interval_weeks} week(s)")
        return contact

    def set_one_time_visit(self, contact_id: int, data: OneTimeVisitRequest, user: User) -> Contact:
        """Replace any recurrence with a single visit"""
        contact = self.get_contact(contact_id, user)
        if data.route_holder_id is not None:
            self._check_route_holders([data.route_holder_id], user)

        self._clear_recurrence(contact)
        contact.is_one_time_visit = True
        contact.one_time_visit_date = data.visit_date
        contact.one_time_route_holder_id = data.route_holder_id
        contact.one_time_stop_type = data.stop_type

        self._commit()
        logger.info(f"📅 One-time visit saved for contact {contact.id} on {data.visit_date}")
        return contact

    def clear_schedule(self, contact_id: int, user: User) -> Contact:
        contact = self.get_contact(contact_id, user)
        self._clear_recurrence(contact)
        contact.is_one_time_visit = False
        contact.one_time_visit_date = None
        contact.one_time_route_holder_id = None
        contact.one_time_stop_type = None
        self._commit()
        return contact

    # ------------------------------------------------------------------
    # Occurrences
    # ------------------------------------------------------------------

    def compute_next_occurrence(
        self, contact_id: int, user: User, today: Optional[date] = None
    ) -> Optional[Occurrence]:
        """Next visit for the contact, or None when the schedule has ended"""
        contact = self.get_contact(contact_id, user)
        today = today or date.today()

        if contact.is_one_time_visit:
            visit_date = contact.one_time_visit_date
            if visit_date is None or visit_date < today:
                return None
            if self.repo.occurrence_exists(self.db, contact.id, visit_date):
                return None
            return Occurrence(date=visit_date, route_holder_id=contact.one_time_route_holder_id)

        config = self._effective_config(contact)
        if config is None:
            return None
        return next_occurrence(config, self._cursor(contact, today))

    def materialize_upcoming(
        self, user_id: int, today: Optional[date] = None, horizon_days: Optional[int] = None
    ) -> list[Waypoint]:
        """
        Create waypoints for every occurrence due in (today - 1, today + horizon] and advance
        each contact's cursor. Existing occurrences are never duplicated, so re-running is safe.
        """
        today = today or date.today()
        until = today + timedelta(days=horizon_days or SCHEDULING_HORIZON_DAYS)
        created: list[Waypoint] = []
        holder_names: dict[Optional[int], str] = {}

        try:
            for contact in self.repo.get_scheduled_contacts(self.db, user_id):
                if contact.is_one_time_visit:
                    waypoint = self._materialize_one_time(contact, today, until, holder_names)
                    if waypoint is not None:
                        created.append(waypoint)
                    continue

                config = self._effective_config(contact)
                if config is None:
                    continue
                for occurrence in occurrences_between(config, self._cursor(contact, today), until):
                    if not self.repo.occurrence_exists(self.db, contact.id, occurrence.date):
                        created.append(
                            self._create_occurrence_waypoint(
                                contact,
                                occurrence,
                                stop_type=contact.stop_type,
                                holder_names=holder_names,
                                generation=contact.recurrence_generation,
                            )
                        )
                    contact.last_scheduled_date = occurrence.date

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to materialize visits for user {user_id}: {e}")
            raise StorageError("Failed to materialize visits") from e
        except Exception:
            self.db.rollback()
            raise

        if created:
            logger.info(f"🗓️ Materialized {len(created)} visit(s) for user {user_id} through {until}")
        return created

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _effective_config(self, contact: Contact) -> Optional[RecurringVisitConfig]:
        """Engine config with already-materialized, unsettled occurrences counted as used"""
        config = config_from_contact(contact)
        if config is None:
            return None
        outstanding = self.repo.count_outstanding_occurrences(
            self.db, contact.id, contact.recurrence_generation or 0
        )
        return replace(config, occurrences_completed=config.occurrences_completed + outstanding)

    @staticmethod
    def _cursor(contact: Contact, today: date) -> date:
        cursor = today - timedelta(days=1)
        if contact.last_scheduled_date and contact.last_scheduled_date > cursor:
            cursor = contact.last_scheduled_date
        return cursor

    def _materialize_one_time(
        self, contact: Contact, today: date, until: date, holder_names: dict
    ) -> Optional[Waypoint]:
        visit_date = contact.one_time_visit_date
        if visit_date is None or not today <= visit_date <= until:
            return None
        if self.repo.occurrence_exists(self.db, contact.id, visit_date):
            return None
        occurrence = Occurrence(date=visit_date, route_holder_id=contact.one_time_route_holder_id)
        return self._create_occurrence_waypoint(
            contact,
            occurrence,
            stop_type=contact.one_time_stop_type or contact.stop_type,
            holder_names=holder_names,
        )

    def _create_occurrence_waypoint(
        self,
        contact: Contact,
        occurrence: Occurrence,
        stop_type: Optional[str],
        holder_names: dict,
        generation: Optional[int] = None,
    ) -> Waypoint:
        """Waypoints from a recurrence carry its generation; one-time visits carry None and never count"""
        holder_id = occurrence.route_holder_id
        route = self.repo.find_open_route(self.db, contact.user_id, occurrence.date, holder_id)
        if route is None:
            name = f"{occurrence.date.strftime('%a %b %d')} - {self._holder_name(contact.user_id, holder_id, holder_names)}"
            route = self.repo.create_route(self.db, contact.user_id, name, occurrence.date, holder_id)

        waypoint = self.repo.add_waypoint(
            self.db,
            route_id=route.id,
            contact_id=contact.id,
            position=self.repo.next_position(self.db, route.id),
            contact_name=contact.name,
            address=contact.address,
            stop_type=stop_type or DEFAULT_STOP_TYPE,
            stop_color=contact.stop_color,
            contact_labels_snapshot=list(contact.labels or []),
            occurrence_date=occurrence.date,
            recurrence_generation=generation,
        )
        logger.info(f"➕ Contact {contact.id} scheduled on {occurrence.date} in route {route.id}")
        return waypoint

    def _holder_name(self, user_id: int, holder_id: Optional[int], cache: dict) -> str:
        if holder_id not in cache:
            holder = self.repo.get_route_holder(self.db, holder_id, user_id) if holder_id else None
            cache[holder_id] = holder.name if holder else "Unassigned"
        return cache[holder_id]

    def _check_route_holders(self, holder_ids, user: User) -> None:
        for holder_id in holder_ids:
            if not self.repo.get_route_holder(self.db, holder_id, user.id):
                raise ValidationFailed(f"Unknown route holder: {holder_id}")

    @staticmethod
    def _clear_recurrence(contact: Contact) -> None:
        contact.repeat_interval_weeks = None
        contact.repeat_days = []
        contact.day_route_holders = {}
        contact.schedule_start = None
        contact.schedule_end_type = "never"
        contact.schedule_end_date = None
        contact.schedule_end_occurrences = None
        contact.last_scheduled_date = None
        OccurrenceCounter.start_generation(contact)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to save schedule: {e}")
            raise StorageError("Failed to save schedule") from e
