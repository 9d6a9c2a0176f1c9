"""Tests for the ingest endpoint."""

from uuid import uuid4

from surface_analytics.models import Event, EventBatch

INGEST_URL = "/api/analytics/ingest"


def event_body(event="page_view", **overrides):
    body = {
        "event": event,
        "properties": {"path": "/"},
        "visitor_id": "vis_0d9c3d2e-5f8a-4b1c-8e7d-6a5b4c3d2e1f_k2j4h5",
        "user_id": None,
        "session_id": "sess_9b1c",
        "timestamp": "2026-03-01T12:00:00.000Z",
        "api_key": "proj_test_12345",
        "page_url": "https://shop.example.com/",
        "page_title": "Shop",
    }
    body.update(overrides)
    return body


def batch_body(api_key, events=None, **overrides):
    body = {
        "api_key": api_key,
        "events": events if events is not None else [event_body()],
        "batch_id": str(uuid4()),
        "sent_at": "2026-03-01T12:00:01.000Z",
    }
    body.update(overrides)
    return body


def test_valid_batch_returns_204(client, db, project):
    response = client.post(INGEST_URL, json=batch_body(project.api_key, [event_body(), event_body("signup")]))

    assert response.status_code == 204
    assert response.content == b""
    assert [e.event_type for e in db.query(Event).order_by(Event.id)] == ["page_view", "signup"]


def test_unknown_api_key_returns_401(client, db, project):
    response = client.post(INGEST_URL, json=batch_body("proj_unknown"))

    assert response.status_code == 401
    assert response.json()["error_code"] == "INVALID_API_KEY"
    assert db.query(EventBatch).count() == 0
    assert db.query(Event).count() == 0


def test_missing_api_key_returns_400_with_details(client, db, project):
    body = batch_body(project.api_key)
    del body["api_key"]

    response = client.post(INGEST_URL, json=body)

    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "Invalid request body"
    assert data["error_code"] == "VALIDATION_ERROR"
    assert any(detail["field"].endswith("api_key") for detail in data["details"])
    assert db.query(EventBatch).count() == 0


def test_empty_events_rejected(client, project):
    response = client.post(INGEST_URL, json=batch_body(project.api_key, []))

    assert response.status_code == 400


def test_oversized_batch_rejected(client, project):
    response = client.post(INGEST_URL, json=batch_body(project.api_key, [event_body()] * 101))

    assert response.status_code == 400


def test_relative_page_url_rejected(client, db, project):
    response = client.post(INGEST_URL, json=batch_body(project.api_key, [event_body(page_url="/checkout")]))

    assert response.status_code == 400
    assert any("page_url" in detail["field"] for detail in response.json()["details"])
    assert db.query(Event).count() == 0


def test_file_page_url_accepted(client, db, project):
    page_url = "file:///home/me/index.html"

    response = client.post(INGEST_URL, json=batch_body(project.api_key, [event_body(page_url=page_url)]))

    assert response.status_code == 204
    assert db.query(Event).one().page_url == page_url


def test_malformed_batch_id_rejected(client, project):
    response = client.post(INGEST_URL, json=batch_body(project.api_key, batch_id="not-a-uuid"))

    assert response.status_code == 400


def test_event_without_properties_rejected(client, project):
    event = event_body()
    del event["properties"]

    response = client.post(INGEST_URL, json=batch_body(project.api_key, [event]))

    assert response.status_code == 400


def test_partial_failure_still_returns_204(client, db, project):
    body = batch_body(project.api_key, [event_body("ok"), event_body("anonymous", visitor_id=None)])

    response = client.post(INGEST_URL, json=body)

    assert response.status_code == 204
    assert db.query(Event).count() == 1
    row = db.query(EventBatch).one()
    assert row.status == "failed"
    assert "visitor_id is required" in row.error


def test_redelivered_batch_is_stored_once(client, db, project):
    body = batch_body(project.api_key)

    assert client.post(INGEST_URL, json=body).status_code == 204
    assert client.post(INGEST_URL, json=body).status_code == 204

    assert db.query(Event).count() == 1


def test_options_returns_204_with_cors_headers(client):
    response = client.options(INGEST_URL)

    assert response.status_code == 204
    assert response.headers["access-control-allow-origin"] == "*"
    assert "POST" in response.headers["access-control-allow-methods"]
    assert response.headers["access-control-allow-headers"] == "Content-Type"


def test_cors_preflight_returns_204(client):
    response = client.options(
        INGEST_URL,
        headers={
            "Origin": "https://shop.example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        },
    )

    assert response.status_code == 204
    assert response.headers["access-control-allow-origin"] == "*"
    assert "POST" in response.headers["access-control-allow-methods"]


def test_cross_origin_post_allowed(client, project):
    response = client.post(
        INGEST_URL,
        json=batch_body(project.api_key),
        headers={"Origin": "https://shop.example.com"},
    )

    assert response.status_code == 204
    assert response.headers["access-control-allow-origin"] == "*"


def test_malformed_json_returns_400(client, project):
    response = client.post(INGEST_URL, content=b"{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request body"
