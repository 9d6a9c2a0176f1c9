"""
Main Analytics Class

Public entry point of the agent. Wires identity, the queue, the transport
and the trackers together, and enriches every call with identity, session,
timestamp and page context at the moment it is made.

Calls made before ``load()`` go into a ``CommandBuffer`` and are replayed in
order once the agent is loaded.
"""

from dataclasses import replace
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import structlog

from .browser import Window
from .core import CONFIG, AgentConfig, AnalyticsEvent, utc_now_iso
from .hashing import Hasher
from .identity import SessionManager, VisitorIdentifier
from .queue import BatchSender, EventQueue, Scheduler, set_interval
from .trackers import ClickTracker, EmailTracker
from .transport import EventTransport

logger = structlog.get_logger()

Command = Tuple[str, Tuple[Any, ...], Dict[str, Any]]


class CommandBuffer:
    """Bounded, ordered record of agent calls made before the agent exists.

    Plays the role of the snippet's stub queue: the host page calls the same
    methods it would call on ``Analytics`` and the buffer is handed to the
    real agent at construction.
    """

    METHODS = ("load", "page", "track", "identify", "ready")

    def __init__(
        self,
        write_key: Optional[str] = None,
        snippet_version: str = "1.0.0",
        max_size: int = CONFIG.max_queue_size,
    ):
        self.write_key = write_key
        self.snippet_version = snippet_version
        self.max_size = max_size
        self._commands: List[Command] = []

    def __len__(self) -> int:
        return len(self._commands)

    def __iter__(self) -> Iterator[Command]:
        return iter(list(self._commands))

    def push(self, method: str, *args: Any, **kwargs: Any) -> bool:
        if method not in self.METHODS:
            logger.warning("Unknown analytics method ignored", method=method)
            return False
        if len(self._commands) >= self.max_size:
            logger.warning("Command buffer full, call dropped", method=method)
            return False
        self._commands.append((method, args, kwargs))
        return True

    def drain(self) -> List[Command]:
        commands, self._commands = self._commands, []
        return commands

    def load(self, key: Optional[str] = None) -> None:
        self.push("load", key)

    def page(self, properties: Optional[Dict[str, Any]] = None) -> None:
        self.push("page", properties)

    def track(self, event_name: str, properties: Optional[Dict[str, Any]] = None) -> None:
        self.push("track", event_name, properties)

    def identify(self, user_id: str, traits: Optional[Dict[str, Any]] = None) -> None:
        self.push("identify", user_id, traits)

    def ready(self, callback: Callable[[], None]) -> None:
        self.push("ready", callback)


class Analytics:
    def __init__(
        self,
        window: Window,
        transport: Optional[BatchSender] = None,
        commands: Optional[CommandBuffer] = None,
        scheduler: Scheduler = set_interval,
        hasher: Optional[Hasher] = None,
        email_hasher: Optional[Hasher] = None,
        config: AgentConfig = CONFIG,
        write_key: Optional[str] = None,
        snippet_version: Optional[str] = None,
        endpoint: Optional[str] = None,
    ):
        self.window = window
        self.config = config
        self.commands = commands
        self.scheduler = scheduler
        self.snippet_version = snippet_version or (commands.snippet_version if commands else "1.0.0")
        self._write_key = write_key or (commands.write_key if commands else None)

        self.initialized = False
        self.is_ready = False
        self.visitor_id = ""

        self.visitor = VisitorIdentifier(window, config, hasher)
        self.session = SessionManager(window)
        self.transport = transport or EventTransport(
            endpoint or window.location.origin + config.api_endpoint,
            beacon=window.navigator.send_beacon,
        )
        self.queue: Optional[EventQueue] = None
        self.click_tracker = ClickTracker(window)
        self.email_tracker = EmailTracker(window, email_hasher)
        self._ready_callbacks: List[Callable[[], None]] = []

    @property
    def write_key(self) -> Optional[str]:
        return self._write_key

    def load(self, key: Optional[str] = None) -> None:
        if self.initialized:
            return

        api_key = key or self._write_key
        if not api_key:
            logger.error("Surface Analytics: No API key provided")
            return

        self._write_key = api_key
        try:
            self.visitor_id = self.visitor.get_visitor_id()
            self.queue = EventQueue(
                api_key,
                self.transport,
                window=self.window,
                scheduler=self.scheduler,
                config=self.config,
            )
        except Exception:
            logger.exception("Surface Analytics: load failed")
            self.queue = None
            return

        # Only marked loaded once the queue exists, so a failed load can be retried
        self.initialized = True

        self._track_script_init()
        self._setup_auto_tracking()

        self.is_ready = True
        self._replay_commands()
        self._execute_ready_callbacks()

        logger.info("Surface Analytics initialized", visitor_id=self.visitor_id)

    def page(self, properties: Optional[Dict[str, Any]] = None) -> None:
        if self._defer("page", properties):
            return

        location = self.window.location
        document = self.window.document
        self._enqueue(
            AnalyticsEvent(
                event="page_view",
                properties={
                    "page_url": location.href,
                    "page_title": document.title,
                    "referrer": document.referrer or "direct",
                    "path": location.pathname,
                    "search": location.search,
                    "hash": location.hash,
                    **self._as_properties(properties),
                },
            )
        )

    def track(self, event_name: str, properties: Optional[Dict[str, Any]] = None) -> None:
        if not isinstance(event_name, str) or not event_name:
            logger.error("Surface Analytics: Event name must be a string", event_name=repr(event_name))
            return
        if self._defer("track", event_name, properties):
            return

        self._enqueue(AnalyticsEvent(event=event_name, properties=self._as_properties(properties)))

    def identify(self, user_id: str, traits: Optional[Dict[str, Any]] = None) -> None:
        if not user_id:
            logger.error("Surface Analytics: identify() requires a user id")
            return
        if self._defer("identify", user_id, traits):
            return

        user_id = str(user_id)
        self.session.set_user_id(user_id)
        self._enqueue(
            AnalyticsEvent(
                event="identify",
                properties={"user_id": user_id, "traits": self._as_properties(traits)},
            )
        )

    def ready(self, callback: Callable[[], None]) -> None:
        if not callable(callback):
            return

        if self.is_ready:
            self._run_callback(callback)
        else:
            self._ready_callbacks.append(callback)

    def flush(self) -> None:
        if self.queue is not None:
            self.queue.flush()

    def shutdown(self) -> None:
        """Stop the flush timer and detach trackers. Buffered events are not sent."""
        if self.queue is not None:
            self.queue.destroy()
        self.click_tracker.teardown()
        self.email_tracker.teardown()

    def _defer(self, method: str, *args: Any) -> bool:
        """Buffer a call made before load(). Returns True if the call was consumed."""
        if self.initialized:
            return False
        if self.commands is not None:
            self.commands.push(method, *args)
        else:
            logger.warning("Surface Analytics: call before load() dropped", method=method)
        return True

    @staticmethod
    def _as_properties(properties: Any) -> Dict[str, Any]:
        if properties is None:
            return {}
        if not isinstance(properties, dict):
            logger.warning("Surface Analytics: properties must be a mapping", got=type(properties).__name__)
            return {}
        return dict(properties)

    def _track_script_init(self) -> None:
        window = self.window
        navigator = window.navigator
        screen = window.screen
        self._enqueue(
            AnalyticsEvent(
                event="script_init",
                properties={
                    "snippet_version": self.snippet_version,
                    "script_version": self.config.version,
                    "page_url": window.location.href,
                    "page_title": window.document.title,
                    "referrer": window.document.referrer or "direct",
                    "user_agent": navigator.user_agent,
                    "screen_resolution": f"{screen.width}x{screen.height}",
                    "viewport_size": f"{window.inner_width}x{window.inner_height}",
                    "color_depth": screen.color_depth,
                    "timezone": window.timezone_name,
                    "timezone_offset": window.timezone_offset,
                    "language": navigator.language,
                    "platform": navigator.platform,
                    "cookie_enabled": navigator.cookie_enabled,
                    "online": navigator.online,
                },
            )
        )

    def _setup_auto_tracking(self) -> None:
        # Initial page view
        self.page()

        self.click_tracker.setup(self._enqueue)
        self.email_tracker.setup(self._enqueue)

    def _enqueue(self, event: AnalyticsEvent) -> None:
        if self.queue is None:
            return

        try:
            enriched = replace(
                event,
                visitor_id=self.visitor_id,
                user_id=self.session.get_user_id(),
                session_id=self.session.get_session_id(),
                timestamp=utc_now_iso(),
                api_key=self._write_key,
                page_url=self.window.location.href,
                page_title=self.window.document.title,
            )
            self.queue.enqueue(enriched)
        except Exception:
            logger.exception("Surface Analytics: enqueue failed", event_name=event.event)

    def _replay_commands(self) -> None:
        if self.commands is None:
            return

        for method, args, kwargs in self.commands.drain():
            if method == "load":
                continue
            try:
                getattr(self, method)(*args, **kwargs)
            except Exception:
                logger.exception("Surface Analytics: replayed call failed", method=method)

    def _run_callback(self, callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            logger.exception("Surface Analytics: Ready callback error")

    def _execute_ready_callbacks(self) -> None:
        callbacks, self._ready_callbacks = self._ready_callbacks, []
        for callback in callbacks:
            self._run_callback(callback)


def bootstrap(window: Window, commands: CommandBuffer, **kwargs: Any) -> Analytics:
    """Build the agent for a page whose snippet buffered ``commands``.

    Loads with the key from a buffered ``load`` call, or the snippet's write
    key, then replays the remaining calls in their original order.
    """
    analytics = Analytics(window, commands=commands, **kwargs)

    load_key = None
    has_load = False
    for method, args, call_kwargs in commands:
        if method == "load":
            has_load = True
            load_key = args[0] if args else call_kwargs.get("key")
            break

    if has_load or analytics.write_key:
        analytics.load(load_key)
    return analytics
