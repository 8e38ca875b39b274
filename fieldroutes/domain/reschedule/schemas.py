"""Reschedule domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class RescheduleHistoryResponse(BaseModel):
    """Schema for a reschedule ledger entry"""

    id: int
    waypoint_id: int
    route_id: int
    route_name: str
    contact_name: str
    address: str
    original_date: Optional[datetime] = None
    rescheduled_date: datetime
    missed_reason: Optional[str] = None
    status: str
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UpdateNotesRequest(BaseModel):
    notes: Optional[str] = None


class BackfillResponse(BaseModel):
    inserted: int
    skipped: int
