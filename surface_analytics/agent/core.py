"""
Core Agent Configuration

Shared configuration and the event/batch structures passed between the
facade, the queue and the transport.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class AgentConfig:
    version: str = "1.0.0"
    api_endpoint: str = "/api/analytics/ingest"
    batch_size: int = 10
    flush_interval_ms: int = 5000
    max_queue_size: int = 100
    cookie_duration_days: int = 365


CONFIG = AgentConfig()

VISITOR_ID_KEY = "surface_visitor_id"
USER_ID_KEY = "surface_user_id"
SESSION_ID_KEY = "surface_session_id"

# Event names with a fixed property shape
RESERVED_EVENTS = frozenset({"script_init", "page_view", "click", "email_entered", "identify"})


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, ``Z`` suffixed."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class AnalyticsEvent:
    """An event as produced by a tracker or public call, then enriched by the facade."""

    event: str
    properties: Dict[str, Any] = field(default_factory=dict)
    visitor_id: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    timestamp: Optional[str] = None
    api_key: Optional[str] = None
    page_url: Optional[str] = None
    page_title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "event": self.event,
            "properties": self.properties,
            "visitor_id": self.visitor_id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "timestamp": self.timestamp,
            "api_key": self.api_key,
            "page_url": self.page_url,
            "page_title": self.page_title,
        }
        # user_id is sent as null for anonymous visitors; other gaps are omitted
        return {k: v for k, v in data.items() if v is not None or k == "user_id"}


@dataclass(frozen=True)
class EventBatch:
    """An immutable, ordered group of enriched events dispatched together."""

    api_key: str
    events: Tuple[AnalyticsEvent, ...]
    batch_id: str
    sent_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "api_key": self.api_key,
            "events": [event.to_dict() for event in self.events],
            "batch_id": self.batch_id,
            "sent_at": self.sent_at,
        }
