from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(value: datetime | None) -> datetime | None:
    """Columns hold naive UTC; client timestamps arrive offset-aware."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    api_key = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    domain = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    visitors = relationship("Visitor", back_populates="project")


class Visitor(Base):
    __tablename__ = "visitors"

    id = Column(Integer, primary_key=True, index=True)
    # vis_<uuid>_<fingerprint>, minted by the agent and never rewritten here
    visitor_id = Column(String, unique=True, index=True, nullable=False)
    fingerprint = Column(String, nullable=True)
    project_id = Column(Integer, ForeignKey("projects.id"), index=True, nullable=False)

    # Identity (merged, never erased)
    user_id = Column(String, nullable=True, index=True)
    user_traits = Column(JSON, nullable=True)

    initial_referrer = Column(String, nullable=False, default="direct")
    first_seen = Column(DateTime, default=utcnow)
    last_seen = Column(DateTime, default=utcnow)

    project = relationship("Project", back_populates="visitors")
    events = relationship("Event", back_populates="visitor")


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), index=True, nullable=False)
    visitor_pk = Column(Integer, ForeignKey("visitors.id"), index=True, nullable=False)

    event_type = Column(String, index=True, nullable=False)
    event_name = Column(String, nullable=False)

    # Session / page context (sentinel "unknown" when the agent omitted it)
    session_id = Column(String, index=True, nullable=False, default="unknown")
    user_id = Column(String, nullable=True)
    page_url = Column(String, nullable=False, default="unknown")
    page_title = Column(String, nullable=True)
    referrer = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)

    timestamp = Column(DateTime, index=True, default=utcnow)
    created_at = Column(DateTime, default=utcnow)

    # Custom Data (stored as JSON)
    properties = Column(JSON, default=dict)

    visitor = relationship("Visitor", back_populates="events")


class EventBatch(Base):
    __tablename__ = "event_batches"

    id = Column(Integer, primary_key=True, index=True)
    batch_id = Column(String, unique=True, index=True, nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id"), index=True, nullable=False)
    event_count = Column(Integer, nullable=False)
    # pending -> processed | failed, written exactly once after processing
    status = Column(String, nullable=False, default="pending")
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    processed_at = Column(DateTime, nullable=True)
