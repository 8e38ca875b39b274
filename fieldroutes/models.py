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


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    firebase_uid = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    contacts = relationship("Contact", back_populates="user", cascade="all, delete-orphan")
    route_holders = relationship("RouteHolder", back_populates="user", cascade="all, delete-orphan")


class RouteHolder(Base):
    """Staff member who drives a route and executes its stops"""

    __tablename__ = "route_holders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="route_holders")


class Contact(Base):
    """
    Contact record supplied by the contacts sync, plus its visit configuration.

    A contact carries either a recurring schedule or a one-time visit, never both.
    occurrences_completed is only ever changed through OccurrenceCounter, and only waypoints
    stamped with the current recurrence_generation count towards it.
    """

    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    google_resource_name = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    email = Column(String(320), nullable=True)
    address = Column(Text, nullable=True)
    labels = Column(JSON, default=list, nullable=False)  # ["Acme Corp", "VIP"]
    stop_type = Column(String(100), nullable=True)
    stop_color = Column(String(7), nullable=True)  # #RRGGBB

    # Recurring visits
    repeat_interval_weeks = Column(Integer, nullable=True)  # 1 = weekly
    repeat_days = Column(JSON, default=list, nullable=False)  # ["Monday", "Thursday"]
    day_route_holders = Column(JSON, default=dict, nullable=False)  # {"Monday": 3}
    schedule_start = Column(Date, nullable=True)
    schedule_end_type = Column(String(20), default="never", nullable=False)  # never, date, occurrences
    schedule_end_date = Column(Date, nullable=True)
    schedule_end_occurrences = Column(Integer, nullable=True)
    occurrences_completed = Column(Integer, default=0, nullable=False)  # Within the current generation
    recurrence_generation = Column(Integer, default=0, nullable=False)  # Bumped on every reconfiguration
    last_scheduled_date = Column(Date, nullable=True)  # Materialization cursor

    # One-time visit
    is_one_time_visit = Column(Boolean, default=False, nullable=False)
    one_time_visit_date = Column(Date, nullable=True)
    one_time_route_holder_id = Column(Integer, ForeignKey("route_holders.id"), nullable=True)
    one_time_stop_type = Column(String(100), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="contacts")


class JobCheckpoint(Base):
    """Last owner processed by a batch job, so an interrupted run resumes where it stopped"""

    __tablename__ = "job_checkpoints"

    id = Column(Integer, primary_key=True, index=True)
    job_name = Column(String(100), unique=True, nullable=False)
    last_owner_id = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
