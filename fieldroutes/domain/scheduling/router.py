"""Scheduling router - FastAPI endpoints for visit schedules"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import Contact, User
from .schemas import (
    MaterializeRequest,
    MaterializeResponse,
    NextOccurrenceResponse,
    OneTimeVisitRequest,
    RecurrenceConfigRequest,
    ScheduleResponse,
)
from .recurrence import format_recurring_schedule
from .service import SchedulingService, config_from_contact

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduling", tags=["Scheduling"])


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    """Dependency injection for SchedulingService"""
    return SchedulingService(db)


def _schedule_response(contact: Contact) -> ScheduleResponse:
    if contact.is_one_time_visit:
        summary = f"One-time visit on {contact.one_time_visit_date.strftime('%b %d, %Y')}"
    else:
        summary = format_recurring_schedule(config_from_contact(contact))
    return ScheduleResponse(
        contact_id=contact.id,
        contact_name=contact.name,
        summary=summary,
        is_one_time_visit=contact.is_one_time_visit,
        repeat_interval_weeks=contact.repeat_interval_weeks,
        repeat_days=contact.repeat_days or [],
        day_route_holders=contact.day_route_holders or {},
        schedule_start=contact.schedule_start,
        end_type=contact.schedule_end_type,
        end_date=contact.schedule_end_date,
        end_occurrences=contact.schedule_end_occurrences,
        occurrences_completed=contact.occurrences_completed or 0,
        one_time_visit_date=contact.one_time_visit_date,
        one_time_route_holder_id=contact.one_time_route_holder_id,
    )


@router.get("/contacts/{contact_id}", response_model=ScheduleResponse)
async def get_schedule(
    contact_id: int,
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Get a contact's visit schedule"""
    return _schedule_response(service.get_contact(contact_id, current_user))


@router.put("/contacts/{contact_id}/recurrence", response_model=ScheduleResponse)
async def set_recurrence(
    contact_id: int,
    data: RecurrenceConfigRequest,
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Configure "every N weeks on these days" visits for a contact"""
    return _schedule_response(service.set_recurrence(contact_id, data, current_user))


@router.put("/contacts/{contact_id}/one-time-visit", response_model=ScheduleResponse)
async def set_one_time_visit(
    contact_id: int,
    data: OneTimeVisitRequest,
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Schedule a single visit for a contact"""
    return _schedule_response(service.set_one_time_visit(contact_id, data, current_user))


@router.delete("/contacts/{contact_id}", response_model=ScheduleResponse)
async def clear_schedule(
    contact_id: int,
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Remove any schedule from a contact"""
    return _schedule_response(service.clear_schedule(contact_id, current_user))


@router.get("/contacts/{contact_id}/next-occurrence", response_model=NextOccurrenceResponse)
async def compute_next_occurrence(
    contact_id: int,
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Next visit date and route holder, or ended=true"""
    occurrence = service.compute_next_occurrence(contact_id, current_user)
    if occurrence is None:
        return NextOccurrenceResponse(contact_id=contact_id, ended=True)
    return NextOccurrenceResponse(
        contact_id=contact_id,
        ended=False,
        occurrence_date=occurrence.date,
        route_holder_id=occurrence.route_holder_id,
    )


@router.post("/materialize", response_model=MaterializeResponse)
async def materialize_upcoming(
    data: MaterializeRequest,
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Create route stops for upcoming occurrences now instead of waiting for the nightly job"""
    waypoints = service.materialize_upcoming(current_user.id, horizon_days=data.horizon_days)
    return MaterializeResponse(
        waypoints_created=len(waypoints),
        route_ids=sorted({w.route_id for w in waypoints}),
    )
