from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from . import config


class EventPayload(BaseModel):
    """
    A single enriched event as sent by the agent inside a batch.
    Only ``event`` and ``properties`` are mandatory at the schema level;
    a missing visitor_id is a per-event processing failure, not a
    request validation failure.
    """
    event: str = Field(..., description="Event name: 'page_view', 'click', 'identify', or custom")
    properties: Dict[str, Any] = Field(..., description="Arbitrary event data")

    # Enrichment attached by the agent at call time
    visitor_id: Optional[str] = Field(None, description="Long-term visitor ID (vis_<uuid>_<fp>)")
    user_id: Optional[str] = Field(None, description="Explicit identity set via identify()")
    session_id: Optional[str] = Field(None, description="Ephemeral session ID (sess_<uuid>)")
    timestamp: Optional[datetime] = Field(None, description="Client-side timestamp of the call")
    api_key: Optional[str] = None
    page_url: Optional[str] = Field(None, description="The full URL where the event occurred")
    page_title: Optional[str] = None

    @field_validator("page_url")
    @classmethod
    def page_url_absolute(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not urlparse(v).scheme:
            raise ValueError("page_url must be an absolute URL")
        return v


class BatchPayload(BaseModel):
    """
    Body of POST /api/analytics/ingest.
    """
    api_key: str = Field(..., min_length=1, description="Project API key")
    events: List[EventPayload] = Field(..., min_length=1, max_length=config.MAX_BATCH_EVENTS)
    batch_id: UUID = Field(..., description="Generated at flush time, idempotency token")
    sent_at: datetime


class EventError(BaseModel):
    event: str
    message: str


class IngestResult(BaseModel):
    success: bool
    processed_count: int
    errors: List[EventError] = Field(default_factory=list)
    duplicate: bool = False


class EventMetadata(BaseModel):
    user_agent: Optional[str] = None
    referrer: Optional[str] = None


class EventOut(BaseModel):
    id: int
    event: str
    event_name: str
    visitor_id: str
    user_id: Optional[str] = None
    session_id: str
    properties: Dict[str, Any] = Field(default_factory=dict)
    page_url: str
    page_title: Optional[str] = None
    timestamp: datetime
    metadata: EventMetadata


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    hasMore: bool


class EventListResponse(BaseModel):
    events: List[EventOut]
    pagination: Pagination
