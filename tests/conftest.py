"""Pytest configuration and fixtures."""

import os

# Set environment variables before imports
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SURFACE_LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient

from surface_analytics.agent.browser import Window
from surface_analytics.database import Base, SessionLocal, engine
from surface_analytics.main import app
from surface_analytics.seed import seed_project

API_KEY = "proj_test_12345"


class ManualTimer:
    def __init__(self, callback, interval_ms):
        self.callback = callback
        self.interval_ms = interval_ms
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.callback()


class ManualScheduler:
    """Scheduler whose timers only fire when the test calls ``tick()``."""

    def __init__(self):
        self.timers = []

    def __call__(self, callback, interval_ms):
        timer = ManualTimer(callback, interval_ms)
        self.timers.append(timer)
        return timer

    def tick(self):
        for timer in self.timers:
            timer.fire()


class RecordingTransport:
    def __init__(self):
        self.batches = []

    def send(self, batch):
        self.batches.append(batch)

    @property
    def events(self):
        return [event for batch in self.batches for event in batch.events]


@pytest.fixture
def db():
    """Fresh in-memory database per test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def project(db):
    return seed_project(db, api_key=API_KEY)


@pytest.fixture
def client(db):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def window():
    return Window(
        url="https://shop.example.com/products?id=3#top",
        title="Products",
        referrer="https://www.google.com/",
    )
