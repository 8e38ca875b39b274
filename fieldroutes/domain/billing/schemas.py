"""Billing domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from .money import BillingModel


class BillingRateSchema(BaseModel):
    """Rate override for one stop type"""

    stop_type: str
    rate_cents: int

    @field_validator("stop_type")
    @classmethod
    def validate_stop_type(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("stop_type is required")
        return v.strip()

    @field_validator("rate_cents")
    @classmethod
    def validate_rate(cls, v: int) -> int:
        if v < 0:
            raise ValueError("rate_cents must not be negative")
        return v

    class Config:
        from_attributes = True


class BillingClientCreate(BaseModel):
    """Schema for configuring a billable client label"""

    client_label: str
    billing_model: BillingModel
    rate_cents: Optional[int] = None
    bill_missed_visits: bool = False
    rates: list[BillingRateSchema] = []

    @field_validator("client_label")
    @classmethod
    def validate_label(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("client_label is required")
        return v.strip()

    @field_validator("rate_cents")
    @classmethod
    def validate_rate(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("rate_cents must not be negative")
        return v

    @model_validator(mode="after")
    def validate_unique_stop_types(self):
        stop_types = [r.stop_type for r in self.rates]
        if len(stop_types) != len(set(stop_types)):
            raise ValueError("Each stop type may only have one rate")
        return self


class BillingClientUpdate(BaseModel):
    """Schema for updating a billing client; rates, when given, replace the existing overrides"""

    billing_model: Optional[BillingModel] = None
    rate_cents: Optional[int] = None
    bill_missed_visits: Optional[bool] = None
    rates: Optional[list[BillingRateSchema]] = None

    @field_validator("rate_cents")
    @classmethod
    def validate_rate(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("rate_cents must not be negative")
        return v


class BillingClientResponse(BaseModel):
    id: int
    client_label: str
    billing_model: str
    rate_cents: Optional[int] = None
    bill_missed_visits: bool
    rates: list[BillingRateSchema] = []

    class Config:
        from_attributes = True


class DeriveBillingRequest(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def validate_range(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class BillingRecordResponse(BaseModel):
    """Schema for billing record response"""

    id: int
    source_key: str
    waypoint_id: Optional[int] = None
    route_id: Optional[int] = None
    client_label: str
    billing_model: str
    contact_name: Optional[str] = None
    visit_type: Optional[str] = None
    visit_date: date
    route_holder_name: Optional[str] = None
    status: str
    calculated_amount: int
    annotations: list[str] = []
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DeriveBillingResponse(BaseModel):
    records_derived: int
    unattributed: int
    failures: list[str] = []


class ClientSummary(BaseModel):
    client_label: str
    completed_count: int
    missed_count: int
    rescheduled_count: int
    total_amount: int
