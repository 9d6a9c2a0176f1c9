"""Tests for the project seed command and the traffic simulator."""

import random

from surface_analytics.models import Project
from surface_analytics.seed import main as seed_main
from surface_analytics.seed import seed_project
from surface_analytics.simulate_data import EVENTS_PER_USER, simulate_user_journey


def test_seed_project_creates_default(db):
    project = seed_project(db)

    assert project.api_key == "proj_test_12345"
    assert project.name == "Test Project"
    assert project.domain == "localhost:3000"


def test_seed_project_is_an_upsert(db):
    first = seed_project(db, api_key="proj_shop", name="Shop")
    second = seed_project(db, api_key="proj_shop", name="Shop v2", domain="shop.example.com")

    assert first.id == second.id
    assert db.query(Project).count() == 1
    assert db.query(Project).one().name == "Shop v2"


def test_seed_command_line(db, capsys):
    seed_main(["--api-key", "proj_cli", "--name", "CLI Project", "--domain", "cli.example.com"])

    project = db.query(Project).filter(Project.api_key == "proj_cli").one()
    assert project.name == "CLI Project"
    assert "/tag.js?id=proj_cli" in capsys.readouterr().out


def test_simulated_journey_uses_one_visitor(transport, scheduler):
    analytics = simulate_user_journey(transport, rng=random.Random(7), scheduler=scheduler)

    events = transport.events
    assert [e.event for e in events[:2]] == ["script_init", "page_view"]
    assert 4 <= sum(e.event == "page_view" for e in events) <= EVENTS_PER_USER + 1
    assert {e.visitor_id for e in events} == {analytics.visitor_id}
    assert all(e.api_key == "proj_test_12345" for e in events)
    assert scheduler.timers[0].cancelled


def test_simulated_users_are_distinct(transport, scheduler):
    rng = random.Random(11)
    first = simulate_user_journey(transport, rng=rng, scheduler=scheduler)
    second = simulate_user_journey(transport, rng=rng, scheduler=scheduler)

    assert first.visitor_id != second.visitor_id
