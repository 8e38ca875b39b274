"""
Billing models: per-client rate table and derived per-visit records
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class BillingClient(Base):
    """A contact label that is billed, with its billing model and default rate"""

    __tablename__ = "billing_clients"
    __table_args__ = (UniqueConstraint("user_id", "client_label", name="uq_billing_client_label"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    client_label = Column(String(255), nullable=False)
    billing_model = Column(String(20), nullable=False)  # mileage, flat_fee, hourly
    rate_cents = Column(Integer, nullable=True)  # $/mile, $/visit or $/hour, in cents
    bill_missed_visits = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    rates = relationship("BillingRate", back_populates="client", cascade="all, delete-orphan")


class BillingRate(Base):
    """Rate override for one stop type of a billing client"""

    __tablename__ = "billing_rates"
    __table_args__ = (UniqueConstraint("billing_client_id", "stop_type", name="uq_billing_rate_stop_type"),)

    id = Column(Integer, primary_key=True, index=True)
    billing_client_id = Column(Integer, ForeignKey("billing_clients.id"), nullable=False, index=True)
    stop_type = Column(String(100), nullable=False)
    rate_cents = Column(Integer, nullable=False)

    client = relationship("BillingClient", back_populates="rates")


class BillingRecord(Base):
    """
    One billable (or $0) line per settled visit attempt. source_key makes derivation
    re-runnable: "waypoint:<id>" for a settled waypoint, "reschedule:<id>" for a ledger entry.
    """

    __tablename__ = "billing_records"
    __table_args__ = (UniqueConstraint("user_id", "source_key", name="uq_billing_record_source"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    source_key = Column(String(64), nullable=False)
    waypoint_id = Column(Integer, nullable=True, index=True)
    route_id = Column(Integer, nullable=True)
    client_label = Column(String(255), nullable=False, index=True)
    billing_model = Column(String(20), nullable=False)
    contact_name = Column(String(255), nullable=True)
    visit_type = Column(String(100), nullable=True)
    visit_date = Column(Date, nullable=False, index=True)
    route_holder_name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False)  # completed, missed, rescheduled
    calculated_amount = Column(Integer, default=0, nullable=False)  # cents
    annotations = Column(JSON, default=list, nullable=False)  # ["amount_unavailable", ...]
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
