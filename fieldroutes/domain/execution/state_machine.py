"""
Waypoint status state machine.

    pending ──start──▶ in_progress
    pending | in_progress ──complete──▶ complete
    pending | in_progress ──miss──▶ missed (needs_reschedule)
    missed (needs_reschedule) ──reschedule──▶ pending          opens a ledger entry
    pending | in_progress ──cancel──▶ missed (resolved)       only with an open ledger entry
    missed (needs_reschedule) ──cancel──▶ missed (resolved)   no revisit, no ledger entry

Settling a rescheduled stop closes its open ledger entry: complete → completed,
miss → re_missed. A re-miss does not open a new entry; the operator reschedules again.

plan_transition() is the only place these rules live. It has no I/O: the execution
service loads the state, asks for a plan and applies it in one transaction.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from ...exceptions import TransitionConflict, ValidationFailed


class WaypointStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    MISSED = "missed"


class HistoryStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    RE_MISSED = "re_missed"
    CANCELLED = "cancelled"


class Action(str, Enum):
    START = "start"
    COMPLETE = "complete"
    MISS = "miss"
    RESCHEDULE = "reschedule"
    CANCEL = "cancel"


class LedgerEffect(str, Enum):
    NONE = "none"
    OPEN = "open"
    CLOSE_COMPLETED = "completed"
    CLOSE_RE_MISSED = "re_missed"
    CLOSE_CANCELLED = "cancelled"


@dataclass(frozen=True)
class ContactVisit:
    waypoint_id: int
    contact_id: Optional[int]
    contact_name: Optional[str]
    address: Optional[str]
    stop_type: str
    labels: tuple


@dataclass(frozen=True)
class TimeGap:
    waypoint_id: int
    name: Optional[str]
    duration_minutes: Optional[int]


Stop = Union[ContactVisit, TimeGap]


def stop_from_waypoint(waypoint) -> Stop:
    """Tagged view of a waypoint row; gap rows never carry contact data"""
    if waypoint.is_gap_stop:
        return TimeGap(
            waypoint_id=waypoint.id,
            name=waypoint.gap_name,
            duration_minutes=waypoint.gap_duration_minutes,
        )
    return ContactVisit(
        waypoint_id=waypoint.id,
        contact_id=waypoint.contact_id,
        contact_name=waypoint.contact_name,
        address=waypoint.address,
        stop_type=waypoint.stop_type,
        labels=tuple(waypoint.contact_labels_snapshot or ()),
    )


@dataclass(frozen=True)
class WaypointState:
    stop: Stop
    status: WaypointStatus
    needs_reschedule: bool
    has_open_reschedule: bool
    # Recurrence occurrence that has not been counted yet
    counts_as_occurrence: bool = False


@dataclass(frozen=True)
class TransitionPlan:
    status: WaypointStatus
    needs_reschedule: bool
    ledger: LedgerEffect = LedgerEffect.NONE
    count_occurrence: bool = False
    completed_at: Optional[datetime] = None
    missed_reason: Optional[str] = None
    rescheduled_date: Optional[datetime] = None


ACTIVE_STATUSES = (WaypointStatus.PENDING, WaypointStatus.IN_PROGRESS)


def plan_transition(
    state: WaypointState,
    action: Action,
    now: datetime,
    missed_reason: Optional[str] = None,
    rescheduled_date: Optional[datetime] = None,
) -> TransitionPlan:
    """Validate the requested action against the current state and describe its effects"""
    is_gap = isinstance(state.stop, TimeGap)

    if action == Action.START:
        if state.status != WaypointStatus.PENDING:
            raise TransitionConflict(f"Cannot start a stop that is {state.status.value}")
        return TransitionPlan(status=WaypointStatus.IN_PROGRESS, needs_reschedule=False)

    if action == Action.COMPLETE:
        if state.status not in ACTIVE_STATUSES:
            raise TransitionConflict(f"Cannot complete a stop that is {state.status.value}")
        return TransitionPlan(
            status=WaypointStatus.COMPLETE,
            needs_reschedule=False,
            completed_at=now,
            ledger=LedgerEffect.CLOSE_COMPLETED if state.has_open_reschedule else LedgerEffect.NONE,
            count_occurrence=state.counts_as_occurrence,
        )

    if action == Action.MISS:
        if not missed_reason or not missed_reason.strip():
            raise ValidationFailed("A reason is required when marking a stop as missed")
        if is_gap:
            raise TransitionConflict("Time gaps cannot be missed")
        if state.status not in ACTIVE_STATUSES:
            raise TransitionConflict(f"Cannot miss a stop that is {state.status.value}")
        return TransitionPlan(
            status=WaypointStatus.MISSED,
            needs_reschedule=True,
            missed_reason=missed_reason.strip(),
            ledger=LedgerEffect.CLOSE_RE_MISSED if state.has_open_reschedule else LedgerEffect.NONE,
            count_occurrence=state.counts_as_occurrence,
        )

    if action == Action.RESCHEDULE:
        if rescheduled_date is None:
            raise ValidationFailed("A target date is required to reschedule a stop")
        if is_gap:
            raise TransitionConflict("Time gaps cannot be rescheduled")
        if state.status != WaypointStatus.MISSED or not state.needs_reschedule:
            raise TransitionConflict("Only missed stops awaiting a reschedule can be rescheduled")
        if state.has_open_reschedule:
            raise TransitionConflict("Stop already has a pending reschedule")
        return TransitionPlan(
            status=WaypointStatus.PENDING,
            needs_reschedule=False,
            rescheduled_date=rescheduled_date,
            ledger=LedgerEffect.OPEN,
        )

    if action == Action.CANCEL:
        if state.status == WaypointStatus.MISSED and state.needs_reschedule and not state.has_open_reschedule:
            return TransitionPlan(status=WaypointStatus.MISSED, needs_reschedule=False)
        if not state.has_open_reschedule or state.status not in ACTIVE_STATUSES:
            raise TransitionConflict("Only a pending reschedule or an unresolved miss can be cancelled")
        return TransitionPlan(
            status=WaypointStatus.MISSED,
            needs_reschedule=False,
            ledger=LedgerEffect.CLOSE_CANCELLED,
        )

    raise ValidationFailed(f"Unknown action: {action}")
