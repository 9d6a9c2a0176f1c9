"""
Click and email trackers.

Each tracker installs one capturing listener on the document and emits a
raw ``AnalyticsEvent``; the facade enriches it. Listener bodies catch
everything so a tracking bug can never break the host page.
"""

import re
from typing import Callable, List, Optional

import structlog

from .browser import DomEvent, Element, Window
from .core import AnalyticsEvent
from .hashing import Djb2Hasher, Hasher, Sha256Hasher

logger = structlog.get_logger()

EventHandler = Callable[[AnalyticsEvent], None]

OPT_IN_ATTRIBUTE = "data-track-surface"
MAX_TEXT_LENGTH = 100
MAX_PATH_DEPTH = 5
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _or_none(value: Optional[str]) -> Optional[str]:
    return value or None


class ClickTracker:
    def __init__(self, window: Window):
        self.window = window
        self.handler: Optional[EventHandler] = None

    def setup(self, on_event: EventHandler) -> None:
        self.handler = on_event
        self.window.document.add_event_listener("click", self.handle_click, capture=True)

    def teardown(self) -> None:
        self.window.document.remove_event_listener("click", self.handle_click, capture=True)
        self.handler = None

    @staticmethod
    def is_interactive(element: Element) -> bool:
        tag_name = element.tag_name.lower()
        return (
            tag_name in ("button", "a")
            or (tag_name == "input" and element.type in ("submit", "button"))
            or element.get_attribute("role") == "button"
            or element.has_attribute(OPT_IN_ATTRIBUTE)
        )

    def handle_click(self, event: DomEvent) -> None:
        if self.handler is None:
            return

        try:
            element = event.target
            if not isinstance(element, Element) or not self.is_interactive(element):
                return

            self.handler(
                AnalyticsEvent(
                    event="click",
                    properties={
                        "element_id": _or_none(element.id),
                        "element_tag": element.tag_name.lower(),
                        "element_classes": element.class_list,
                        "element_text": self.get_element_text(element),
                        "element_href": _or_none(element.href),
                        "element_type": _or_none(element.type),
                        "element_name": _or_none(element.name),
                        "element_path": self.get_element_path(element),
                        "page_url": self.window.location.href,
                        "viewport_x": event.client_x,
                        "viewport_y": event.client_y,
                        "page_x": event.page_x,
                        "page_y": event.page_y,
                    },
                )
            )
        except Exception:
            logger.exception("Click tracking error")

    @staticmethod
    def get_element_text(element: Element) -> str:
        text = element.inner_text or element.text_content or ""
        return text.strip()[:MAX_TEXT_LENGTH]

    def get_element_path(self, element: Element) -> str:
        """Selector path up to five levels, stopping at the first ancestor with an id."""
        path: List[str] = []
        current: Optional[Element] = element
        body = self.window.document.body

        while current is not None and current is not body and len(path) < MAX_PATH_DEPTH:
            selector = current.tag_name.lower()
            if current.id:
                path.insert(0, f"{selector}#{current.id}")
                break

            classes = ".".join(current.class_list[:2])
            if classes:
                selector += f".{classes}"
            path.insert(0, selector)
            current = current.parent

        return " > ".join(path)


class EmailTracker:
    """Reports that an email was typed, as a hash. The address itself is never sent."""

    def __init__(self, window: Window, hasher: Optional[Hasher] = None):
        self.window = window
        self.hasher = hasher or Sha256Hasher()
        self._fallback = Djb2Hasher()
        self.handler: Optional[EventHandler] = None

    def setup(self, on_event: EventHandler) -> None:
        self.handler = on_event
        # blur does not bubble, only a capturing listener sees it
        self.window.document.add_event_listener("blur", self.handle_blur, capture=True)

    def teardown(self) -> None:
        self.window.document.remove_event_listener("blur", self.handle_blur, capture=True)
        self.handler = None

    @staticmethod
    def is_email_field(element: Element) -> bool:
        return (
            element.type == "email"
            or "email" in element.name.lower()
            or "email" in element.id.lower()
            or "email" in element.placeholder.lower()
        )

    @staticmethod
    def is_valid_email(email: str) -> bool:
        return bool(EMAIL_RE.match(email))

    def hash_email(self, email: str) -> str:
        try:
            return self.hasher.digest(email)
        except Exception:
            logger.warning("Email hasher failed, using fallback hash")
            return self._fallback.digest(email)

    def handle_blur(self, event: DomEvent) -> None:
        if self.handler is None:
            return

        try:
            element = event.target
            if not isinstance(element, Element) or not self.is_email_field(element) or not element.value:
                return

            email = element.value.strip().lower()
            if not self.is_valid_email(email):
                return

            form = element.form
            self.handler(
                AnalyticsEvent(
                    event="email_entered",
                    properties={
                        "email_hash": self.hash_email(email),
                        "field_id": _or_none(element.id),
                        "field_name": _or_none(element.name),
                        "field_type": _or_none(element.type),
                        "page_url": self.window.location.href,
                        "form_id": _or_none(form.id) if form is not None else None,
                        "form_name": _or_none(form.name) if form is not None else None,
                    },
                )
            )
        except Exception:
            logger.exception("Email tracking error")
