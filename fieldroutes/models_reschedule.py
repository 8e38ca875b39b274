"""
Reschedule ledger model.

Route name, contact name, address, labels and stop type are copied in at write time so the
history reads and bills the same after the route or contact is edited, archived or deleted.
No foreign keys on purpose.
"""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


class RescheduleHistory(Base):
    __tablename__ = "reschedule_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    waypoint_id = Column(Integer, nullable=False, index=True)
    route_id = Column(Integer, nullable=False)  # Origin route
    route_name = Column(String(255), nullable=False)
    contact_name = Column(String(255), nullable=False)
    address = Column(Text, nullable=False)
    stop_type = Column(String(100), nullable=True)
    contact_labels_snapshot = Column(JSON, nullable=True)  # None on entries written before labels were kept
    original_date = Column(DateTime, nullable=True)
    rescheduled_date = Column(DateTime, nullable=False)
    missed_reason = Column(Text, nullable=True)
    # pending → completed | re_missed | cancelled
    status = Column(String(20), default="pending", nullable=False, index=True)
    completed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), index=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
