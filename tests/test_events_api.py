"""Tests for the event query endpoint."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from surface_analytics.processor import EventProcessor
from surface_analytics.schemas import EventPayload
from surface_analytics.seed import seed_project

EVENTS_URL = "/api/analytics/events"
START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def record(db, project, names, user_id=None):
    events = [
        EventPayload(
            event=name,
            properties={"index": i, "user_agent": "UA/2.0", "referrer": "https://www.google.com/"},
            visitor_id="vis_5e6f7a8b-1c2d-4e3f-9a0b-c1d2e3f4a5b6_fp01",
            user_id=user_id,
            session_id="sess_abc",
            timestamp=START + timedelta(minutes=i),
            page_url="https://shop.example.com/",
            page_title="Shop",
        )
        for i, name in enumerate(names)
    ]
    EventProcessor(db).process_batch(project.api_key, events, str(uuid4()))


def test_lists_newest_first_with_pagination(client, db, project):
    record(db, project, ["a", "b", "c"])

    response = client.get(EVENTS_URL, params={"api_key": project.api_key, "limit": 2})

    assert response.status_code == 200
    data = response.json()
    assert [e["event"] for e in data["events"]] == ["c", "b"]
    assert data["pagination"] == {"total": 3, "limit": 2, "offset": 0, "hasMore": True}

    response = client.get(EVENTS_URL, params={"api_key": project.api_key, "limit": 2, "offset": 2})

    data = response.json()
    assert [e["event"] for e in data["events"]] == ["a"]
    assert data["pagination"]["hasMore"] is False


def test_event_shape(client, db, project):
    record(db, project, ["identify"], user_id="user_9")

    event = client.get(EVENTS_URL, params={"api_key": project.api_key}).json()["events"][0]

    assert event["event"] == "identify"
    assert event["event_name"] == "identify"
    assert event["visitor_id"] == "vis_5e6f7a8b-1c2d-4e3f-9a0b-c1d2e3f4a5b6_fp01"
    assert event["user_id"] == "user_9"
    assert event["session_id"] == "sess_abc"
    assert event["page_url"] == "https://shop.example.com/"
    assert event["properties"]["index"] == 0
    assert event["metadata"] == {"user_agent": "UA/2.0", "referrer": "https://www.google.com/"}
    timestamp = datetime.fromisoformat(event["timestamp"].replace("Z", "+00:00"))
    assert timestamp == START


def test_default_limit_is_50(client, db, project):
    record(db, project, ["page_view"])

    pagination = client.get(EVENTS_URL, params={"api_key": project.api_key}).json()["pagination"]

    assert pagination["limit"] == 50


def test_filter_by_event_type(client, db, project):
    record(db, project, ["page_view", "click", "page_view"])

    data = client.get(EVENTS_URL, params={"api_key": project.api_key, "event_type": "click"}).json()

    assert [e["event"] for e in data["events"]] == ["click"]
    assert data["pagination"]["total"] == 1


def test_filter_by_date_range(client, db, project):
    record(db, project, ["e0", "e1", "e2", "e3"])

    data = client.get(
        EVENTS_URL,
        params={
            "api_key": project.api_key,
            "start_date": "2026-03-01T09:01:00Z",
            "end_date": "2026-03-01T09:02:00Z",
        },
    ).json()

    assert [e["event"] for e in data["events"]] == ["e2", "e1"]


def test_only_own_project_events(client, db, project):
    other = seed_project(db, api_key="proj_other", name="Other", domain="other.example.com")
    record(db, project, ["mine"])

    data = client.get(EVENTS_URL, params={"api_key": other.api_key}).json()

    assert data["events"] == []
    assert data["pagination"]["total"] == 0


def test_unknown_api_key_returns_401(client, project):
    response = client.get(EVENTS_URL, params={"api_key": "proj_nope"})

    assert response.status_code == 401
    assert response.json()["error"] == "Invalid API key"


@pytest.mark.parametrize("limit", [0, 101])
def test_limit_out_of_range_rejected(client, project, limit):
    response = client.get(EVENTS_URL, params={"api_key": project.api_key, "limit": limit})

    assert response.status_code == 400


def test_missing_api_key_rejected(client, project):
    assert client.get(EVENTS_URL).status_code == 400
