"""
Browser Capabilities

The agent never touches a real browser. Everything it needs from one is
modelled here and handed to it explicitly: web storage, cookies, navigator
and screen signals, the location, and a minimal DOM with capture/bubble
event dispatch. Hosts embed the agent by building a ``Window`` (or a
subclass wired to their own runtime) and passing it in.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

Listener = Callable[["DomEvent"], None]


class StorageUnavailableError(Exception):
    """Raised by storage that is disabled (private mode, blocked cookies)."""


class Storage:
    """Web Storage (localStorage / sessionStorage)."""

    def __init__(self, items: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(items or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class UnavailableStorage(Storage):
    """Storage whose every access fails, like a blocked localStorage."""

    def get_item(self, key: str) -> Optional[str]:
        raise StorageUnavailableError("storage is disabled")

    def set_item(self, key: str, value: str) -> None:
        raise StorageUnavailableError("storage is disabled")

    def remove_item(self, key: str) -> None:
        raise StorageUnavailableError("storage is disabled")


class CookieJar:
    """``document.cookie`` with expiry."""

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._clock = clock
        self._cookies: Dict[str, Tuple[str, Optional[datetime]]] = {}

    def get(self, name: str) -> Optional[str]:
        entry = self._cookies.get(name)
        if entry is None:
            return None
        value, expires = entry
        if expires is not None and expires <= self._clock():
            del self._cookies[name]
            return None
        return value

    def set(self, name: str, value: str, days: Optional[int] = None) -> None:
        expires = self._clock() + timedelta(days=days) if days is not None else None
        self._cookies[name] = (value, expires)

    def expires_at(self, name: str) -> Optional[datetime]:
        entry = self._cookies.get(name)
        return entry[1] if entry else None

    @property
    def header(self) -> str:
        return "; ".join(f"{name}={self.get(name)}" for name in list(self._cookies) if self.get(name) is not None)


class BlockedCookieJar(CookieJar):
    def get(self, name: str) -> Optional[str]:
        raise StorageUnavailableError("cookies are blocked")

    def set(self, name: str, value: str, days: Optional[int] = None) -> None:
        raise StorageUnavailableError("cookies are blocked")


@dataclass
class Navigator:
    user_agent: str = "Mozilla/5.0 (X11; Linux x86_64) SurfaceAgent/1.0"
    language: str = "en-US"
    platform: str = "Linux x86_64"
    hardware_concurrency: int = 0
    max_touch_points: int = 0
    cookie_enabled: bool = True
    online: bool = True
    # (url, body) -> queued?  None when the runtime has no beacon primitive
    send_beacon: Optional[Callable[[str, str], bool]] = None


@dataclass
class Screen:
    width: int = 1920
    height: int = 1080
    color_depth: int = 24


class Location:
    def __init__(self, href: str):
        self.href = href

    @property
    def pathname(self) -> str:
        return urlsplit(self.href).path or "/"

    @property
    def search(self) -> str:
        query = urlsplit(self.href).query
        return f"?{query}" if query else ""

    @property
    def hash(self) -> str:
        fragment = urlsplit(self.href).fragment
        return f"#{fragment}" if fragment else ""

    @property
    def origin(self) -> str:
        parts = urlsplit(self.href)
        return f"{parts.scheme}://{parts.netloc}"


class DomEvent:
    def __init__(
        self,
        type: str,
        target: Optional["EventTarget"] = None,
        bubbles: bool = True,
        client_x: int = 0,
        client_y: int = 0,
        page_x: Optional[int] = None,
        page_y: Optional[int] = None,
    ):
        self.type = type
        self.target = target
        self.bubbles = bubbles
        self.client_x = client_x
        self.client_y = client_y
        self.page_x = client_x if page_x is None else page_x
        self.page_y = client_y if page_y is None else page_y


class EventTarget:
    def __init__(self):
        self._listeners: Dict[str, List[Tuple[Listener, bool]]] = {}

    def add_event_listener(self, type: str, listener: Listener, capture: bool = False) -> None:
        entries = self._listeners.setdefault(type, [])
        if (listener, capture) not in entries:
            entries.append((listener, capture))

    def remove_event_listener(self, type: str, listener: Listener, capture: bool = False) -> None:
        entries = self._listeners.get(type, [])
        if (listener, capture) in entries:
            entries.remove((listener, capture))

    def listener_count(self, type: str) -> int:
        return len(self._listeners.get(type, []))

    def _invoke(self, event: DomEvent, capture: Optional[bool]) -> None:
        for listener, is_capture in list(self._listeners.get(event.type, [])):
            if capture is None or is_capture == capture:
                listener(event)


class Element(EventTarget):
    def __init__(
        self,
        tag_name: str,
        attributes: Optional[Dict[str, str]] = None,
        text: str = "",
        value: str = "",
    ):
        super().__init__()
        self.tag_name = tag_name.upper()
        self.attributes: Dict[str, str] = dict(attributes or {})
        self.text = text
        self.value = value
        self.parent: Optional[Element] = None
        self.children: List[Element] = []

    def __repr__(self) -> str:
        return f"<{self.tag_name.lower()} {self.attributes!r}>"

    def append_child(self, child: "Element") -> "Element":
        child.parent = self
        self.children.append(child)
        return child

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    def set_attribute(self, name: str, value: str) -> None:
        self.attributes[name] = value

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    @property
    def id(self) -> str:
        return self.attributes.get("id", "")

    @property
    def class_list(self) -> List[str]:
        return self.attributes.get("class", "").split()

    @property
    def name(self) -> str:
        return self.attributes.get("name", "")

    @property
    def placeholder(self) -> str:
        return self.attributes.get("placeholder", "")

    @property
    def href(self) -> str:
        return self.attributes.get("href", "") if self.tag_name in ("A", "AREA", "LINK") else ""

    @property
    def type(self) -> str:
        if self.tag_name == "INPUT":
            return self.attributes.get("type", "text").lower()
        if self.tag_name == "BUTTON":
            return self.attributes.get("type", "submit").lower()
        return ""

    @property
    def text_content(self) -> str:
        return self.text + "".join(child.text_content for child in self.children)

    @property
    def inner_text(self) -> str:
        return self.text_content

    @property
    def form(self) -> Optional["Element"]:
        node = self.parent
        while node is not None:
            if node.tag_name == "FORM":
                return node
            node = node.parent
        return None


class Document(EventTarget):
    def __init__(self, title: str = "", referrer: str = "", cookies: Optional[CookieJar] = None):
        super().__init__()
        self.title = title
        self.referrer = referrer
        self.cookies = cookies if cookies is not None else CookieJar()
        self.visibility_state = "visible"
        self.document_element = Element("html")
        self.body = self.document_element.append_child(Element("body"))

    def create_element(self, tag_name: str, text: str = "", value: str = "", **attributes: str) -> Element:
        # class_ -> class, data_track_surface -> data-track-surface
        attrs = {key.rstrip("_").replace("_", "-"): val for key, val in attributes.items()}
        return Element(tag_name, attrs, text=text, value=value)

    def dispatch_event(self, event: DomEvent) -> None:
        """Capture from the document down to the target, then bubble back up."""
        target = event.target
        if target is self or target is None:
            self._invoke(event, capture=None)
            return

        ancestors: List[EventTarget] = []
        node = target.parent if isinstance(target, Element) else None
        while node is not None:
            ancestors.append(node)
            node = node.parent

        self._invoke(event, capture=True)
        for node in reversed(ancestors):
            node._invoke(event, capture=True)
        target._invoke(event, capture=None)
        if event.bubbles:
            for node in ancestors:
                node._invoke(event, capture=False)
            self._invoke(event, capture=False)

    def set_visibility(self, state: str) -> None:
        self.visibility_state = state
        self.dispatch_event(DomEvent("visibilitychange", target=self, bubbles=False))


class Window(EventTarget):
    def __init__(
        self,
        url: str = "https://example.com/",
        title: str = "",
        referrer: str = "",
        navigator: Optional[Navigator] = None,
        screen: Optional[Screen] = None,
        local_storage: Optional[Storage] = None,
        session_storage: Optional[Storage] = None,
        cookies: Optional[CookieJar] = None,
        inner_width: int = 1280,
        inner_height: int = 720,
        timezone_name: str = "UTC",
        timezone_offset: int = 0,
    ):
        super().__init__()
        self.location = Location(url)
        self.document = Document(title=title, referrer=referrer, cookies=cookies)
        self.navigator = navigator or Navigator()
        self.screen = screen or Screen()
        self.local_storage = local_storage if local_storage is not None else Storage()
        self.session_storage = session_storage if session_storage is not None else Storage()
        self.inner_width = inner_width
        self.inner_height = inner_height
        self.timezone_name = timezone_name
        # Minutes, UTC minus local (same sign as getTimezoneOffset)
        self.timezone_offset = timezone_offset

    def navigate(self, url: str, title: Optional[str] = None) -> None:
        self.document.referrer = self.location.href
        self.location = Location(url)
        if title is not None:
            self.document.title = title

    def dispatch_event(self, event: DomEvent) -> None:
        self._invoke(event, capture=None)

    def unload(self) -> None:
        """Fire the lifecycle events a browser sends when leaving the page."""
        self.dispatch_event(DomEvent("beforeunload", target=self, bubbles=False))
        self.dispatch_event(DomEvent("pagehide", target=self, bubbles=False))
