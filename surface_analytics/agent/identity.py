"""
Visitor and session identity.

The visitor id is minted once per storage context and written to both
localStorage and a cookie, so clearing either store alone does not reset
it. Storage failures never propagate: an unreadable store counts as empty
and an unwritable one leaves the id in memory for this page load.
"""

from dataclasses import dataclass
from typing import List, Optional

import structlog

from .browser import Storage, Window
from .core import (
    CONFIG,
    SESSION_ID_KEY,
    USER_ID_KEY,
    VISITOR_ID_KEY,
    AgentConfig,
    generate_uuid,
)
from .hashing import Djb2Hasher, Hasher

logger = structlog.get_logger()

FINGERPRINT_LENGTH = 12


@dataclass(frozen=True)
class EnvironmentSignals:
    user_agent: str
    language: str
    screen_width: int
    screen_height: int
    color_depth: int
    timezone_offset: int
    session_storage: bool
    local_storage: bool
    hardware_concurrency: int = 0
    max_touch_points: int = 0

    def components(self) -> List[str]:
        # Order is part of the fingerprint, do not reorder
        return [
            self.user_agent,
            self.language,
            f"{self.screen_width}x{self.screen_height}",
            str(self.color_depth),
            str(self.timezone_offset),
            str(self.session_storage).lower(),
            str(self.local_storage).lower(),
            str(self.hardware_concurrency or 0),
            str(self.max_touch_points or 0),
        ]


def _storage_available(storage: Storage) -> bool:
    try:
        storage.get_item("__surface_storage_test__")
        return True
    except Exception:
        return False


def collect_signals(window: Window) -> EnvironmentSignals:
    navigator = window.navigator
    return EnvironmentSignals(
        user_agent=navigator.user_agent,
        language=navigator.language,
        screen_width=window.screen.width,
        screen_height=window.screen.height,
        color_depth=window.screen.color_depth,
        timezone_offset=window.timezone_offset,
        session_storage=_storage_available(window.session_storage),
        local_storage=_storage_available(window.local_storage),
        hardware_concurrency=navigator.hardware_concurrency,
        max_touch_points=navigator.max_touch_points,
    )


def generate_fingerprint(signals: EnvironmentSignals, hasher: Optional[Hasher] = None) -> str:
    """Low-entropy seed for the visitor id. Never an identity key on its own."""
    hasher = hasher or Djb2Hasher()
    return hasher.digest("|".join(signals.components()))[:FINGERPRINT_LENGTH]


def _read(storage: Storage, key: str) -> Optional[str]:
    try:
        return storage.get_item(key)
    except Exception as exc:
        logger.debug("Storage read failed", key=key, error=str(exc))
        return None


def _write(storage: Storage, key: str, value: str) -> None:
    try:
        storage.set_item(key, value)
    except Exception as exc:
        logger.debug("Storage write failed", key=key, error=str(exc))


class VisitorIdentifier:
    """Resolves the long-lived visitor id for a window."""

    def __init__(self, window: Window, config: AgentConfig = CONFIG, hasher: Optional[Hasher] = None):
        self.window = window
        self.config = config
        self.hasher = hasher or Djb2Hasher()
        self._visitor_id: Optional[str] = None

    def get_visitor_id(self) -> str:
        if self._visitor_id:
            return self._visitor_id

        stored = self._get_from_storage()
        if stored:
            # Re-sync both stores in case one of them was cleared
            self.set_visitor_id(stored)
            return stored

        fingerprint = generate_fingerprint(collect_signals(self.window), self.hasher)
        self.set_visitor_id(f"vis_{generate_uuid()}_{fingerprint}")
        return self._visitor_id

    def set_visitor_id(self, visitor_id: str) -> None:
        self._visitor_id = visitor_id
        _write(self.window.local_storage, VISITOR_ID_KEY, visitor_id)
        try:
            self.window.document.cookies.set(VISITOR_ID_KEY, visitor_id, days=self.config.cookie_duration_days)
        except Exception as exc:
            logger.debug("Cookie write failed", error=str(exc))

    def _get_from_storage(self) -> Optional[str]:
        stored = _read(self.window.local_storage, VISITOR_ID_KEY)
        if stored:
            return stored
        try:
            return self.window.document.cookies.get(VISITOR_ID_KEY)
        except Exception as exc:
            logger.debug("Cookie read failed", error=str(exc))
            return None


class SessionManager:
    """Session id (tab scoped) and the explicit user id."""

    def __init__(self, window: Window):
        self.window = window
        self._session_id: Optional[str] = None
        self._user_id: Optional[str] = None

    def get_session_id(self) -> str:
        if self._session_id:
            return self._session_id

        self._session_id = _read(self.window.session_storage, SESSION_ID_KEY)
        if not self._session_id:
            self._session_id = f"sess_{generate_uuid()}"
            _write(self.window.session_storage, SESSION_ID_KEY, self._session_id)
        return self._session_id

    def get_user_id(self) -> Optional[str]:
        return _read(self.window.local_storage, USER_ID_KEY) or self._user_id

    def set_user_id(self, user_id: str) -> None:
        self._user_id = user_id
        _write(self.window.local_storage, USER_ID_KEY, user_id)
