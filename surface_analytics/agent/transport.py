"""
Event Transport Module

Delivers one batch, best effort. The beacon primitive goes first because it
survives page teardown; when the runtime has none, or it refuses the batch,
a keepalive POST is handed to a background executor. Neither path waits for
the server, neither retries, and no failure reaches the caller.
"""

import json
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable, Optional

import requests
import structlog

from .core import CONFIG, EventBatch

logger = structlog.get_logger()

REQUEST_TIMEOUT_SECONDS = 10

_default_executor: Optional[ThreadPoolExecutor] = None


def _shared_executor() -> ThreadPoolExecutor:
    global _default_executor
    if _default_executor is None:
        _default_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="surface-transport")
    return _default_executor


class EventTransport:
    def __init__(
        self,
        endpoint: str = CONFIG.api_endpoint,
        beacon: Optional[Callable[[str, str], bool]] = None,
        session: Optional[requests.Session] = None,
        executor: Optional[Executor] = None,
    ):
        """
        Args:
            endpoint: Ingest URL
            beacon: Fire-and-forget primitive, returns False if it refused the batch
            session: requests session for the fallback POST
            executor: Where the fallback POST runs; defaults to a shared thread pool
        """
        self.endpoint = endpoint
        self.beacon = beacon
        self.session = session or requests.Session()
        self.executor = executor

    def send(self, batch: EventBatch) -> None:
        body = json.dumps(batch.to_dict())

        if self._send_with_beacon(body):
            return

        self._send_with_fetch(body, batch.batch_id)

    def _send_with_beacon(self, body: str) -> bool:
        if self.beacon is None:
            return False

        try:
            return bool(self.beacon(self.endpoint, body))
        except Exception:
            logger.exception("Beacon send failed")
            return False

    def _send_with_fetch(self, body: str, batch_id: str) -> None:
        executor = self.executor or _shared_executor()
        try:
            executor.submit(self._post, body, batch_id)
        except RuntimeError as exc:
            # Executor already shut down (interpreter exiting)
            logger.warning("Fetch send dropped", batch_id=batch_id, error=str(exc))

    def _post(self, body: str, batch_id: str) -> None:
        try:
            response = self.session.post(
                self.endpoint,
                data=body,
                headers={"Content-Type": "application/json"},
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            logger.error("Fetch send failed", batch_id=batch_id, error=str(exc))
            return
        except Exception:
            logger.exception("Fetch send failed", batch_id=batch_id)
            return

        if response.status_code >= 400:
            logger.warning("Batch rejected", batch_id=batch_id, status_code=response.status_code)
