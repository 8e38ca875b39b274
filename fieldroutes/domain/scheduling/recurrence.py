"""
Recurrence engine - pure date arithmetic for recurring visits.

"Every N weeks on these days": a date qualifies when its weekday is selected and the number
of whole weeks since schedule_start is a multiple of N. Week periods are counted from
schedule_start itself, not from calendar week boundaries.

No I/O here. The scheduling service loads the contact, builds a RecurringVisitConfig and
asks for the next occurrence.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Optional, Union

from ...exceptions import RecurrenceConfigError


class Weekday(str, Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def of(cls, day: date) -> "Weekday":
        return WEEKDAYS[day.weekday()]

    @property
    def short_name(self) -> str:
        return self.value[:3]


WEEKDAYS = list(Weekday)


@dataclass(frozen=True)
class NeverEnds:
    pass


@dataclass(frozen=True)
class EndOnDate:
    end_date: date


@dataclass(frozen=True)
class EndAfterOccurrences:
    count: int


EndPolicy = Union[NeverEnds, EndOnDate, EndAfterOccurrences]


@dataclass
class RecurringVisitConfig:
    repeat_interval_weeks: int
    # Selected weekdays mapped to the route holder assigned to that day (or None)
    repeat_days: dict[Weekday, Optional[int]]
    schedule_start: date
    end_policy: EndPolicy = field(default_factory=NeverEnds)
    occurrences_completed: int = 0


@dataclass(frozen=True)
class Occurrence:
    date: date
    route_holder_id: Optional[int] = None


def validate_config(config: RecurringVisitConfig) -> list[str]:
    """Return a list of problems; empty when the config can be stored"""
    problems = []
    if config.repeat_interval_weeks is None or config.repeat_interval_weeks < 1:
        problems.append("repeat_interval_weeks must be at least 1")
    if not config.repeat_days:
        problems.append("at least one repeat day is required")
    if config.schedule_start is None:
        problems.append("schedule_start is required")
    policy = config.end_policy
    if isinstance(policy, EndAfterOccurrences) and policy.count < 1:
        problems.append("occurrence count must be at least 1")
    if (
        isinstance(policy, EndOnDate)
        and config.schedule_start is not None
        and policy.end_date < config.schedule_start
    ):
        problems.append("end date must not be before schedule start")
    if config.occurrences_completed < 0:
        problems.append("occurrences_completed cannot be negative")
    return problems


def is_ended(config: RecurringVisitConfig, after: date) -> bool:
    """Termination checks that do not need a candidate date"""
    policy = config.end_policy
    if isinstance(policy, EndAfterOccurrences) and config.occurrences_completed >= policy.count:
        return True
    if isinstance(policy, EndOnDate) and after >= policy.end_date:
        return True
    return not config.repeat_days


def next_occurrence(config: RecurringVisitConfig, after: date) -> Optional[Occurrence]:
    """
    Next occurrence strictly after `after`, or None once the recurrence has ended.

    Raises RecurrenceConfigError for an interval below 1; such configs are rejected when
    written, so seeing one here means the stored row is corrupt.
    """
    interval = config.repeat_interval_weeks
    if interval is None or interval < 1:
        raise RecurrenceConfigError(f"Invalid repeat interval: {interval!r}")

    if is_ended(config, after):
        return None

    candidate = max(config.schedule_start, after + timedelta(days=1))
    # One full interval plus a week always contains a matching day
    for _ in range(interval * 7 + 7):
        weekday = Weekday.of(candidate)
        weeks_since_start = (candidate - config.schedule_start).days // 7
        if weekday in config.repeat_days and weeks_since_start % interval == 0:
            break
        candidate += timedelta(days=1)
    else:
        raise RecurrenceConfigError("No matching day found within one recurrence period")

    policy = config.end_policy
    if isinstance(policy, EndOnDate) and candidate > policy.end_date:
        return None

    return Occurrence(date=candidate, route_holder_id=config.repeat_days.get(weekday))


def occurrences_between(
    config: RecurringVisitConfig, after: date, until: date, limit: int = 366
) -> list[Occurrence]:
    """
    Occurrences in (after, until]. The occurrence counter is treated as advancing with each
    returned date so an EndAfterOccurrences policy is honoured across the window.
    """
    results = []
    remaining = None
    if isinstance(config.end_policy, EndAfterOccurrences):
        remaining = config.end_policy.count - config.occurrences_completed

    cursor = after
    while len(results) < limit:
        if remaining is not None and len(results) >= remaining:
            break
        occurrence = next_occurrence(config, cursor)
        if occurrence is None or occurrence.date > until:
            break
        results.append(occurrence)
        cursor = occurrence.date
    return results


def format_recurring_schedule(config: Optional[RecurringVisitConfig]) -> str:
    """Human readable summary, e.g. "Every 2 weeks on Mon, Wed (until Mar 1, 2024)" """
    if config is None or not config.repeat_days:
        return "No schedule"

    days = ", ".join(day.short_name for day in WEEKDAYS if day in config.repeat_days)
    if config.repeat_interval_weeks == 1:
        text = f"Every week on {days}"
    else:
        text = f"Every {config.repeat_interval_weeks} weeks on {days}"

    policy = config.end_policy
    if isinstance(policy, EndOnDate):
        end = policy.end_date
        text += f" (until {end.strftime('%b')} {end.day}, {end.year})"
    elif isinstance(policy, EndAfterOccurrences):
        text += f" ({policy.count} times)"
    return text
