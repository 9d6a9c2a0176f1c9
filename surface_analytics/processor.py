"""
Event Processor

Server side of the collector: authenticates a batch, records an audit row,
resolves each event's visitor and stores the event. Events are processed
one at a time in array order and committed individually, so a failing event
never rolls back its siblings.
"""

from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import AuthenticationError, EventProcessingError
from .models import Event, EventBatch, Project, Visitor, as_utc_naive, utcnow
from .schemas import EventError, EventPayload, IngestResult

logger = structlog.get_logger()

UNKNOWN = "unknown"
DIRECT = "direct"


def parse_fingerprint(visitor_id: str) -> Optional[str]:
    """Extract the fingerprint suffix from ``vis_<uuid>_<fingerprint>``."""
    parts = visitor_id.split("_")
    if len(parts) > 2 and parts[2]:
        return parts[2]
    return None


def _non_empty_traits(properties: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    traits = properties.get("traits")
    if isinstance(traits, dict) and traits:
        return traits
    return None


def _str_property(properties: Dict[str, Any], key: str) -> Optional[str]:
    value = properties.get(key)
    return value if isinstance(value, str) and value else None


class EventProcessor:
    """Processes ingested event batches against the database."""

    def __init__(self, db: Session):
        self.db = db

    def get_project(self, api_key: str) -> Project:
        project = self.db.query(Project).filter(Project.api_key == api_key).first()
        if project is None:
            raise AuthenticationError()
        return project

    def process_batch(self, api_key: str, events: List[EventPayload], batch_id: str) -> IngestResult:
        """Process a batch of events.

        Args:
            api_key: Project API key from the batch envelope
            events: Validated events in enqueue order
            batch_id: Batch UUID generated by the agent at flush time

        Returns:
            IngestResult with the number of stored events and per-event errors

        Raises:
            AuthenticationError: If the api_key is unknown. Nothing is written.
        """
        project = self.get_project(api_key)
        log = logger.bind(batch_id=batch_id, project_id=project.id)

        # 1. Audit row first, so a crash mid-batch still leaves a trace
        batch_record = self._record_batch(project, batch_id, len(events))
        if batch_record is None:
            log.info("Duplicate batch ignored", event_count=len(events))
            return IngestResult(success=True, processed_count=0, duplicate=True)

        # 2. Events, independently
        errors: List[EventError] = []
        processed_count = 0

        for event in events:
            try:
                self._process_event(project, event)
                self.db.commit()
                processed_count += 1
            except EventProcessingError as exc:
                self.db.rollback()
                errors.append(EventError(event=event.event, message=str(exc)))
                log.warning("Event rejected", event_name=event.event, error=str(exc))
            except SQLAlchemyError as exc:
                self.db.rollback()
                message = f"storage error: {exc.__class__.__name__}"
                errors.append(EventError(event=event.event, message=message))
                log.warning("Event storage failed", event_name=event.event, error=str(exc))

        # 3. Close the audit row
        batch_record.status = "processed" if not errors else "failed"
        batch_record.error = "; ".join(f"Event {e.event}: {e.message}" for e in errors) or None
        batch_record.processed_at = utcnow()
        self.db.commit()

        log.info(
            "Batch ingested",
            event_count=len(events),
            processed=processed_count,
            failed=len(errors),
        )

        return IngestResult(
            success=not errors,
            processed_count=processed_count,
            errors=errors,
        )

    def _record_batch(self, project: Project, batch_id: str, event_count: int) -> Optional[EventBatch]:
        """Insert the pending audit row. Returns None if batch_id was already seen."""
        if self.db.query(EventBatch).filter(EventBatch.batch_id == batch_id).first() is not None:
            return None

        batch_record = EventBatch(
            batch_id=batch_id,
            project_id=project.id,
            event_count=event_count,
            status="pending",
        )
        self.db.add(batch_record)
        try:
            self.db.commit()
        except IntegrityError:
            # Same batch delivered twice concurrently
            self.db.rollback()
            return None
        return batch_record

    def _process_event(self, project: Project, event: EventPayload) -> None:
        if not event.visitor_id:
            raise EventProcessingError("visitor_id is required")

        visitor = self._resolve_visitor(project, event)
        properties = event.properties or {}

        self.db.add(
            Event(
                project_id=project.id,
                visitor_pk=visitor.id,
                event_type=event.event,
                event_name=event.event,
                properties=properties,
                session_id=event.session_id or UNKNOWN,
                user_id=event.user_id,
                page_url=event.page_url or UNKNOWN,
                page_title=event.page_title,
                referrer=_str_property(properties, "referrer"),
                user_agent=_str_property(properties, "user_agent"),
                timestamp=as_utc_naive(event.timestamp) or utcnow(),
            )
        )

    def _resolve_visitor(self, project: Project, event: EventPayload) -> Visitor:
        visitor = self._get_visitor(event.visitor_id)
        if visitor is not None:
            self._merge_identity(visitor, event)
            return visitor

        visitor = self._create_visitor(project, event)
        try:
            self.db.flush()
        except IntegrityError:
            # Another request created this visitor between our read and write
            self.db.rollback()
            visitor = self._get_visitor(event.visitor_id)
            if visitor is None:
                raise EventProcessingError("visitor could not be created")
            self._merge_identity(visitor, event)
        return visitor

    def _get_visitor(self, visitor_id: str) -> Optional[Visitor]:
        return self.db.query(Visitor).filter(Visitor.visitor_id == visitor_id).first()

    def _create_visitor(self, project: Project, event: EventPayload) -> Visitor:
        properties = event.properties or {}
        initial_referrer = (
            _str_property(properties, "referrer")
            or _str_property(properties, "initial_referrer")
            or DIRECT
        )
        visitor = Visitor(
            visitor_id=event.visitor_id,
            fingerprint=parse_fingerprint(event.visitor_id),
            project_id=project.id,
            initial_referrer=initial_referrer,
            user_id=event.user_id or None,
            user_traits=_non_empty_traits(properties),
        )
        self.db.add(visitor)
        return visitor

    def _merge_identity(self, visitor: Visitor, event: EventPayload) -> None:
        """Monotonic merge: absent or empty incoming identity never clears stored values."""
        user_id = event.user_id or None
        traits = _non_empty_traits(event.properties or {})
        if user_id is None and traits is None:
            return

        if user_id is not None:
            visitor.user_id = user_id
        if traits is not None:
            visitor.user_traits = {**(visitor.user_traits or {}), **traits}
        visitor.last_seen = utcnow()
