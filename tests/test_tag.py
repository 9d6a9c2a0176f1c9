"""Tests for the served tag script."""

from surface_analytics import config


def test_tag_injects_api_key(client, project):
    response = client.get("/tag.js", params={"id": project.api_key})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/javascript")
    assert 'const SURFACE_API_KEY = "proj_test_12345";' in response.text
    assert config.API_KEY_PLACEHOLDER not in response.text


def test_tag_is_cacheable(client, project):
    response = client.get("/tag.js", params={"id": project.api_key})

    assert response.headers["cache-control"] == "public, max-age=3600, s-maxage=3600"
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["x-content-type-options"] == "nosniff"


def test_missing_id_returns_script_comment(client, project):
    response = client.get("/tag.js")

    assert response.status_code == 400
    assert response.text.startswith("// Error: Missing API key parameter")
    assert "no-cache" in response.headers["cache-control"]


def test_unknown_id_returns_401_script_comment(client, project):
    response = client.get("/tag.js", params={"id": "proj_unknown"})

    assert response.status_code == 401
    assert response.text == '// Error: Invalid API key: "proj_unknown"'
    assert response.headers["content-type"].startswith("application/javascript")


def test_unreadable_bundle_returns_500(client, project, monkeypatch, tmp_path):
    monkeypatch.setattr(config, "AGENT_BUNDLE_PATH", tmp_path / "missing.js")

    response = client.get("/tag.js", params={"id": project.api_key})

    assert response.status_code == 500
    assert response.text.startswith("// Error:")


def test_bundle_keeps_placeholder_for_injection():
    source = config.AGENT_BUNDLE_PATH.read_text(encoding="utf-8")

    assert source.count(config.API_KEY_PLACEHOLDER) == 1


def test_tag_registers_click_and_email_capture_listeners(client, project):
    response = client.get("/tag.js", params={"id": project.api_key})

    assert 'document.addEventListener("click", this.handler, true);' in response.text
    assert 'document.addEventListener("blur", this.handler, true);' in response.text
    assert 'subtle.digest("SHA-256"' in response.text
    assert "data-track-surface" in response.text


def test_tag_guards_identify_and_bounds_snippet_replay():
    source = config.AGENT_BUNDLE_PATH.read_text(encoding="utf-8")

    assert "identify() requires a user id" in source
    assert "this.readyCallbacks.push(callback);" in source
    assert "stub.slice(0, CONFIG.MAX_QUEUE_SIZE)" in source
