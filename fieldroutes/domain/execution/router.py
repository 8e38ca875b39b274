"""Execution router - FastAPI endpoints for marking stops complete, missed or rescheduled"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import (
    ExecutionOrderRequest,
    MissedWaypointResponse,
    RouteProgressResponse,
    TransitionRequest,
    WaypointResponse,
)
from .service import ExecutionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/waypoints", tags=["Execution"])


def get_execution_service(db: Session = Depends(get_db)) -> ExecutionService:
    """Dependency injection for ExecutionService"""
    return ExecutionService(db)


@router.get("/missed", response_model=list[MissedWaypointResponse])
async def get_missed_waypoints(
    current_user: User = Depends(get_current_user),
    service: ExecutionService = Depends(get_execution_service),
):
    """Stops that were missed and still need a new date"""
    results = []
    for waypoint, route in service.get_missed_waypoints(current_user):
        data = WaypointResponse.model_validate(waypoint).model_dump()
        results.append(MissedWaypointResponse(**data, route_name=route.name))
    return results


@router.get("/routes/{route_id}/progress", response_model=RouteProgressResponse)
async def get_route_progress(
    route_id: int,
    current_user: User = Depends(get_current_user),
    service: ExecutionService = Depends(get_execution_service),
):
    return service.get_route_progress(route_id, current_user)


@router.get("/{waypoint_id}", response_model=WaypointResponse)
async def get_waypoint(
    waypoint_id: int,
    current_user: User = Depends(get_current_user),
    service: ExecutionService = Depends(get_execution_service),
):
    return WaypointResponse.model_validate(service.get_waypoint(waypoint_id, current_user))


@router.post("/{waypoint_id}/transition", response_model=WaypointResponse)
async def transition_waypoint(
    waypoint_id: int,
    data: TransitionRequest,
    current_user: User = Depends(get_current_user),
    service: ExecutionService = Depends(get_execution_service),
):
    """
    Move a stop through its lifecycle.

    - start / complete: normal execution
    - miss: requires missed_reason; the stop is flagged for rescheduling
    - reschedule: requires rescheduled_date; opens a reschedule history entry
    - cancel: abandons an open reschedule
    """
    waypoint = service.transition_waypoint(waypoint_id, data, current_user)
    return WaypointResponse.model_validate(waypoint)


@router.patch("/{waypoint_id}/execution-order", response_model=WaypointResponse)
async def update_execution_order(
    waypoint_id: int,
    data: ExecutionOrderRequest,
    current_user: User = Depends(get_current_user),
    service: ExecutionService = Depends(get_execution_service),
):
    """Record the order the stop was actually visited in"""
    waypoint = service.update_execution_order(waypoint_id, data.new_order, current_user)
    return WaypointResponse.model_validate(waypoint)
