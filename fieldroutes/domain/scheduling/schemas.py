"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, field_validator, model_validator

from .recurrence import Weekday


class RecurrenceConfigRequest(BaseModel):
    """Schema for writing a contact's recurring visit configuration"""

    repeat_interval_weeks: int = 1
    repeat_days: list[Weekday]
    day_route_holders: dict[Weekday, int] = {}
    schedule_start: date
    end_type: Literal["never", "date", "occurrences"] = "never"
    end_date: Optional[date] = None
    end_occurrences: Optional[int] = None

    @field_validator("repeat_interval_weeks")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        if v < 1:
            raise ValueError("repeat_interval_weeks must be at least 1")
        return v

    @field_validator("repeat_days")
    @classmethod
    def validate_days(cls, v: list[Weekday]) -> list[Weekday]:
        if not v:
            raise ValueError("at least one repeat day is required")
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def validate_end_policy(self):
        if self.end_type == "date":
            if self.end_date is None:
                raise ValueError("end_date is required when end_type is 'date'")
            if self.end_date < self.schedule_start:
                raise ValueError("end_date must not be before schedule_start")
        if self.end_type == "occurrences" and (self.end_occurrences is None or self.end_occurrences < 1):
            raise ValueError("end_occurrences must be at least 1 when end_type is 'occurrences'")
        unknown = set(self.day_route_holders) - set(self.repeat_days)
        if unknown:
            names = ", ".join(sorted(day.value for day in unknown))
            raise ValueError(f"route holders assigned to unselected days: {names}")
        return self


class OneTimeVisitRequest(BaseModel):
    """Schema for scheduling a single visit instead of a recurrence"""

    visit_date: date
    route_holder_id: Optional[int] = None
    stop_type: Optional[str] = None


class ScheduleResponse(BaseModel):
    """Schema for a contact's schedule"""

    contact_id: int
    contact_name: Optional[str] = None
    summary: str
    is_one_time_visit: bool
    repeat_interval_weeks: Optional[int] = None
    repeat_days: list[str] = []
    day_route_holders: dict[str, int] = {}
    schedule_start: Optional[date] = None
    end_type: str = "never"
    end_date: Optional[date] = None
    end_occurrences: Optional[int] = None
    occurrences_completed: int = 0
    one_time_visit_date: Optional[date] = None
    one_time_route_holder_id: Optional[int] = None


class NextOccurrenceResponse(BaseModel):
    """Schema for the next computed occurrence; ended=True when nothing is left"""

    contact_id: int
    ended: bool
    occurrence_date: Optional[date] = None
    route_holder_id: Optional[int] = None


class MaterializeRequest(BaseModel):
    horizon_days: Optional[int] = None

    @field_validator("horizon_days")
    @classmethod
    def validate_horizon(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 1 <= v <= 90:
            raise ValueError("horizon_days must be between 1 and 90")
        return v


class MaterializeResponse(BaseModel):
    waypoints_created: int
    route_ids: list[int]
