"""Reschedule history router - FastAPI endpoints for the reschedule ledger"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import BackfillResponse, RescheduleHistoryResponse, UpdateNotesRequest
from .service import RescheduleLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reschedule-history", tags=["Reschedule History"])


def get_reschedule_ledger(db: Session = Depends(get_db)) -> RescheduleLedger:
    """Dependency injection for RescheduleLedger"""
    return RescheduleLedger(db)


@router.get("", response_model=list[RescheduleHistoryResponse])
async def get_reschedule_history(
    status: Optional[str] = Query(None, description="pending, completed, re_missed or cancelled"),
    current_user: User = Depends(get_current_user),
    ledger: RescheduleLedger = Depends(get_reschedule_ledger),
):
    """Reschedule history, newest first"""
    return [RescheduleHistoryResponse.model_validate(e) for e in ledger.list_history(current_user, status)]


@router.get("/export")
async def export_reschedule_history(
    status: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    ledger: RescheduleLedger = Depends(get_reschedule_ledger),
):
    """Export reschedule history as CSV"""
    return ledger.export_history_csv(current_user, status)


@router.patch("/{entry_id}/notes", response_model=RescheduleHistoryResponse)
async def update_reschedule_notes(
    entry_id: int,
    data: UpdateNotesRequest,
    current_user: User = Depends(get_current_user),
    ledger: RescheduleLedger = Depends(get_reschedule_ledger),
):
    """Edit the notes of a pending reschedule"""
    return RescheduleHistoryResponse.model_validate(ledger.update_notes(entry_id, data.notes, current_user))


@router.post("/backfill", response_model=BackfillResponse)
async def backfill_reschedule_history(
    current_user: User = Depends(get_current_user),
    ledger: RescheduleLedger = Depends(get_reschedule_ledger),
):
    """Add missing ledger entries for the current user's rescheduled stops"""
    return ledger.backfill(current_user.id)
