"""
Event Queue Module

Buffers enriched events and decides when to hand them to the transport.
A flush swaps in a fresh buffer before the batch is built, so an event
enqueued while a batch is being sent lands in the next batch, never in the
one already on its way.

Delivery is at most once: the queue keeps no copy of a flushed batch and
never retries, whatever the transport reports.
"""

import threading
from typing import Callable, List, Optional, Protocol

import structlog

from .browser import DomEvent, Window
from .core import CONFIG, AgentConfig, AnalyticsEvent, EventBatch, generate_uuid, utc_now_iso

logger = structlog.get_logger()


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


# (callback, interval_ms) -> handle
Scheduler = Callable[[Callable[[], None], int], TimerHandle]


class BatchSender(Protocol):
    def send(self, batch: EventBatch) -> None:
        ...


class IntervalTimer:
    """Calls ``callback`` every ``interval_ms`` on a daemon thread until cancelled."""

    def __init__(self, callback: Callable[[], None], interval_ms: int):
        self.callback = callback
        self.interval = interval_ms / 1000.0
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name="surface-flush-timer", daemon=True)

    def start(self) -> "IntervalTimer":
        self._thread.start()
        return self

    def cancel(self) -> None:
        self._stopped.set()

    @property
    def cancelled(self) -> bool:
        return self._stopped.is_set()

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self.callback()
            except Exception:
                logger.exception("Flush timer callback failed")


def set_interval(callback: Callable[[], None], interval_ms: int) -> IntervalTimer:
    return IntervalTimer(callback, interval_ms).start()


class EventQueue:
    def __init__(
        self,
        api_key: str,
        transport: BatchSender,
        window: Optional[Window] = None,
        scheduler: Scheduler = set_interval,
        config: AgentConfig = CONFIG,
    ):
        self.api_key = api_key
        self.transport = transport
        self.config = config
        self._queue: List[AnalyticsEvent] = []
        self._lock = threading.Lock()
        self._window = window
        self._flush_timer: Optional[TimerHandle] = scheduler(self._on_interval, config.flush_interval_ms)
        if window is not None:
            self._setup_unload_handlers(window)

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def enqueue(self, event: AnalyticsEvent) -> None:
        with self._lock:
            self._queue.append(event)
            size = len(self._queue)

        if size >= self.config.batch_size or size >= self.config.max_queue_size:
            self.flush()

    def flush(self) -> Optional[EventBatch]:
        """Drain the buffer into one batch and hand it to the transport."""
        with self._lock:
            if not self._queue:
                return None
            events, self._queue = self._queue, []

        batch = EventBatch(
            api_key=self.api_key,
            events=tuple(events),
            batch_id=generate_uuid(),
            sent_at=utc_now_iso(),
        )
        self.transport.send(batch)
        return batch

    def destroy(self) -> None:
        """Stop the flush timer and detach lifecycle listeners. Does not flush."""
        if self._flush_timer is not None:
            self._flush_timer.cancel()
            self._flush_timer = None

        if self._window is not None:
            self._window.remove_event_listener("beforeunload", self._on_unload)
            self._window.remove_event_listener("pagehide", self._on_unload)
            self._window.document.remove_event_listener("visibilitychange", self._on_visibility_change)
            self._window = None

    def _on_interval(self) -> None:
        if len(self) > 0:
            self.flush()

    def _setup_unload_handlers(self, window: Window) -> None:
        window.add_event_listener("beforeunload", self._on_unload)
        window.add_event_listener("pagehide", self._on_unload)
        window.document.add_event_listener("visibilitychange", self._on_visibility_change)

    def _on_unload(self, event: DomEvent) -> None:
        self.flush()

    def _on_visibility_change(self, event: DomEvent) -> None:
        if self._window is not None and self._window.document.visibility_state == "hidden":
            self.flush()
