import json
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy import desc
from sqlalchemy.orm import Session, joinedload

from . import config
from .database import Base, engine, get_db
from .errors import SurfaceError, ValidationError
from .logging_config import configure_logging
from .models import Event, Project, as_utc_naive
from .processor import EventProcessor
from .schemas import (
    BatchPayload,
    EventListResponse,
    EventMetadata,
    EventOut,
    Pagination,
)

configure_logging()
logger = structlog.get_logger()

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Surface Analytics Collector")

INGEST_PATH = "/api/analytics/ingest"
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class CollectorCORSMiddleware(CORSMiddleware):
    """CORS middleware that answers preflight requests with 204 No Content."""

    def preflight_response(self, request_headers):
        response = super().preflight_response(request_headers)
        if response.status_code != 200:
            return response
        headers = {
            key: value
            for key, value in response.headers.items()
            if key.lower() not in ("content-length", "content-type")
        }
        return Response(status_code=204, headers=headers)


# The tag runs on third-party sites, so any origin may post
app.add_middleware(
    CollectorCORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    error = ValidationError(errors=details)
    logger.info("Request rejected", path=request.url.path, errors=len(details))
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(),
        headers={"Access-Control-Allow-Origin": "*"},
    )


@app.exception_handler(SurfaceError)
async def surface_exception_handler(request: Request, exc: SurfaceError):
    logger.info("Request failed", path=request.url.path, error_code=exc.error_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={"Access-Control-Allow-Origin": "*"},
    )


@app.post(INGEST_PATH, status_code=204, response_class=Response)
def ingest_batch(payload: BatchPayload, db: Session = Depends(get_db)):
    """
    Receive an event batch from the agent.
    Per-event failures are recorded on the batch audit row, not returned here.
    """
    result = EventProcessor(db).process_batch(
        payload.api_key, payload.events, str(payload.batch_id)
    )
    if not result.success:
        logger.warning(
            "Batch partially failed",
            batch_id=str(payload.batch_id),
            processed=result.processed_count,
            errors=[f"{e.event}: {e.message}" for e in result.errors],
        )
    return Response(status_code=204)


@app.options(INGEST_PATH)
async def ingest_options():
    return Response(status_code=204, headers=CORS_HEADERS)


@app.get("/api/analytics/events", response_model=EventListResponse)
def list_events(
    api_key: str = Query(..., min_length=1),
    event_type: Optional[str] = None,
    limit: int = Query(config.DEFAULT_PAGE_LIMIT, ge=1, le=config.MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db),
):
    """
    Paginated event listing for the dashboard.
    """
    project = EventProcessor(db).get_project(api_key)

    query = db.query(Event).filter(Event.project_id == project.id)
    if event_type:
        query = query.filter(Event.event_type == event_type)
    if start_date:
        query = query.filter(Event.timestamp >= as_utc_naive(start_date))
    if end_date:
        query = query.filter(Event.timestamp <= as_utc_naive(end_date))

    total = query.count()
    events = (
        query.options(joinedload(Event.visitor))
        .order_by(desc(Event.timestamp), desc(Event.id))
        .offset(offset)
        .limit(limit)
        .all()
    )

    return EventListResponse(
        events=[
            EventOut(
                id=event.id,
                event=event.event_type,
                event_name=event.event_name,
                visitor_id=event.visitor.visitor_id,
                user_id=event.visitor.user_id,
                session_id=event.session_id,
                properties=event.properties or {},
                page_url=event.page_url,
                page_title=event.page_title,
                timestamp=event.timestamp.replace(tzinfo=timezone.utc),
                metadata=EventMetadata(user_agent=event.user_agent, referrer=event.referrer),
            )
            for event in events
        ],
        pagination=Pagination(
            total=total,
            limit=limit,
            offset=offset,
            hasMore=offset + limit < total,
        ),
    )


def _script_error(message: str, status_code: int) -> Response:
    return Response(
        content=f"// Error: {message}",
        status_code=status_code,
        media_type="application/javascript",
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )


@app.get("/tag.js")
def get_tag_js(api_key: Optional[str] = Query(None, alias="id"), db: Session = Depends(get_db)):
    """
    Serves the agent script with the project's API key baked in.
    """
    if not api_key:
        return _script_error("Missing API key parameter (?id=SURFACE_TAG_ID)", 400)

    project = db.query(Project).filter(Project.api_key == api_key).first()
    if project is None:
        return _script_error(f"Invalid API key: {json.dumps(api_key)}", 401)

    try:
        script = config.AGENT_BUNDLE_PATH.read_text(encoding="utf-8")
    except OSError:
        logger.exception("Agent bundle unreadable", path=str(config.AGENT_BUNDLE_PATH))
        return _script_error("Surface Analytics is unavailable", 500)

    script = script.replace(
        config.API_KEY_PLACEHOLDER,
        f"const SURFACE_API_KEY = {json.dumps(api_key)};",
    )

    return Response(
        content=script,
        media_type="application/javascript; charset=utf-8",
        headers={
            "Cache-Control": f"public, max-age={config.TAG_CACHE_SECONDS}, s-maxage={config.TAG_CACHE_SECONDS}",
            "Access-Control-Allow-Origin": "*",
            "X-Content-Type-Options": "nosniff",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("surface_analytics.main:app", host="0.0.0.0", port=8001)
