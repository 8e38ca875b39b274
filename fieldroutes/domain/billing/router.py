"""Billing router - FastAPI endpoints for billing clients and derived records"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import (
    BillingClientCreate,
    BillingClientResponse,
    BillingClientUpdate,
    BillingRecordResponse,
    ClientSummary,
    DeriveBillingRequest,
    DeriveBillingResponse,
)
from .service import BillingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])


def get_billing_service(db: Session = Depends(get_db)) -> BillingService:
    """Dependency injection for BillingService"""
    return BillingService(db)


@router.get("/clients", response_model=list[BillingClientResponse])
async def list_billing_clients(
    current_user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
):
    return [BillingClientResponse.model_validate(c) for c in service.list_clients(current_user)]


@router.post("/clients", response_model=BillingClientResponse, status_code=201)
async def create_billing_client(
    data: BillingClientCreate,
    current_user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
):
    """Start billing a contact label"""
    return BillingClientResponse.model_validate(service.create_client(data, current_user))


@router.patch("/clients/{client_id}", response_model=BillingClientResponse)
async def update_billing_client(
    client_id: int,
    data: BillingClientUpdate,
    current_user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
):
    return BillingClientResponse.model_validate(service.update_client(client_id, data, current_user))


@router.delete("/clients/{client_id}", status_code=204)
async def delete_billing_client(
    client_id: int,
    current_user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
):
    service.delete_client(client_id, current_user)


@router.post("/derive", response_model=DeriveBillingResponse)
async def derive_billing_records(
    data: DeriveBillingRequest,
    current_user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
):
    """Rebuild billing records from settled visits. Safe to run repeatedly."""
    result = service.derive_billing_records(current_user.id, data.start_date, data.end_date)
    return DeriveBillingResponse(
        records_derived=len(result["records"]),
        unattributed=result["unattributed"],
        failures=result["failures"],
    )


@router.get("/records", response_model=list[BillingRecordResponse])
async def get_billing_records(
    client_label: Optional[str] = Query(None),
    status: Optional[str] = Query(None, description="completed, missed or rescheduled"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
):
    records = service.get_billing_records(current_user, client_label, status, start_date, end_date)
    return [BillingRecordResponse.model_validate(r) for r in records]


@router.get("/records/export")
async def export_billing_records(
    client_label: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
):
    """Export billing records as CSV"""
    return service.export_records_csv(
        current_user,
        client_label=client_label,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/summary", response_model=list[ClientSummary])
async def get_billing_summary(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    current_user: User = Depends(get_current_user),
    service: BillingService = Depends(get_billing_service),
):
    """Per-client totals over the derived records"""
    return service.get_billing_summary(current_user, start_date, end_date)
