"""Execution domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from .state_machine import Action


class TransitionRequest(BaseModel):
    """Schema for moving a waypoint through its lifecycle"""

    action: Action
    missed_reason: Optional[str] = None
    rescheduled_date: Optional[datetime] = None
    execution_notes: Optional[str] = None
    notes: Optional[str] = None  # Stored on the ledger entry when cancelling
    service_minutes: Optional[int] = None
    distance_meters: Optional[int] = None
    expected_version: Optional[int] = None

    @field_validator("service_minutes", "distance_meters")
    @classmethod
    def validate_non_negative(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("must not be negative")
        return v


class ExecutionOrderRequest(BaseModel):
    new_order: int

    @field_validator("new_order")
    @classmethod
    def validate_order(cls, v: int) -> int:
        if v < 0:
            raise ValueError("new_order must not be negative")
        return v


class WaypointResponse(BaseModel):
    """Schema for waypoint response"""

    id: int
    route_id: int
    contact_id: Optional[int] = None
    position: int
    contact_name: Optional[str] = None
    address: Optional[str] = None
    stop_type: str
    stop_color: Optional[str] = None
    contact_labels_snapshot: list[str] = []
    is_gap_stop: bool
    gap_name: Optional[str] = None
    gap_duration_minutes: Optional[int] = None
    status: str
    execution_order: Optional[int] = None
    needs_reschedule: bool
    missed_reason: Optional[str] = None
    execution_notes: Optional[str] = None
    rescheduled_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    service_minutes: Optional[int] = None
    distance_meters: Optional[int] = None
    calendar_event_id: Optional[str] = None
    version: int

    class Config:
        from_attributes = True


class MissedWaypointResponse(WaypointResponse):
    route_name: str


class RouteProgressResponse(BaseModel):
    route_id: int
    route_name: str
    total: int
    completed: int
    missed: int
    pending: int
    percent_complete: float
    completed_at: Optional[datetime] = None
