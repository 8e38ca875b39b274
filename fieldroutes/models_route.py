"""
Route and waypoint models for field execution
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
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Route(Base):
    """An ordered set of stops driven by one route holder on one day"""

    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    scheduled_date = Column(DateTime, nullable=True, index=True)
    route_holder_id = Column(Integer, ForeignKey("route_holders.id"), nullable=True)
    total_distance = Column(Integer, nullable=True)  # meters
    total_duration = Column(Integer, nullable=True)  # seconds
    completed_at = Column(DateTime, nullable=True)
    is_archived = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    route_holder = relationship("RouteHolder")
    waypoints = relationship(
        "Waypoint",
        back_populates="route",
        order_by="Waypoint.position",
        cascade="all, delete-orphan",
    )


class Waypoint(Base):
    """
    A single stop within a route. Contact visits and timed gaps share this table;
    domain code works with the ContactVisit / TimeGap variants instead of the raw row.
    """

    __tablename__ = "route_waypoints"

    id = Column(Integer, primary_key=True, index=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)
    contact_id = Column(Integer, ForeignKey("contacts.id"), nullable=True, index=True)
    position = Column(Integer, nullable=False)  # Planned order in the route

    # Snapshot of the contact at creation time
    contact_name = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    stop_type = Column(String(100), nullable=False)
    stop_color = Column(String(7), nullable=True)
    contact_labels_snapshot = Column(JSON, default=list, nullable=False)

    # Timed gap (lunch break, travel buffer)
    is_gap_stop = Column(Boolean, default=False, nullable=False)
    gap_name = Column(String(255), nullable=True)
    gap_duration_minutes = Column(Integer, nullable=True)

    # Status workflow: pending → in_progress → complete | missed
    # missed (needs_reschedule) → pending again once rescheduled
    status = Column(String(20), default="pending", nullable=False, index=True)
    execution_order = Column(Integer, nullable=True)  # Actual order in the field
    needs_reschedule = Column(Boolean, default=False, nullable=False)
    missed_reason = Column(Text, nullable=True)
    execution_notes = Column(Text, nullable=True)
    rescheduled_date = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Recurrence bookkeeping
    occurrence_date = Column(Date, nullable=True, index=True)
    occurrence_counted = Column(Boolean, default=False, nullable=False)
    recurrence_generation = Column(Integer, nullable=True)  # None for one-time and manual stops

    # Billing inputs
    distance_meters = Column(Integer, nullable=True)  # Leg driven to reach this stop
    service_minutes = Column(Integer, nullable=True)  # Time spent at the stop

    calendar_event_id = Column(String(255), nullable=True)  # Opaque, display only

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    route = relationship("Route", back_populates="waypoints")
    contact = relationship("Contact")

    __mapper_args__ = {"version_id_col": version}
