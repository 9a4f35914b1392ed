"""Fire-and-forget assessment events.

Events are queued and handed to a sink in batches. A sink failure never
reaches the caller: the batch is put back at the front of the queue while the
queue is still small, otherwise it is dropped.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

import httpx

from . import config

log = logging.getLogger(__name__)

EVENT_STARTED = "assessment_started"
EVENT_COMPLETED = "assessment_completed"
EVENT_ABANDONED = "assessment_abandoned"

Sink = Callable[[List[Dict[str, Any]]], None]


def log_sink(events: List[Dict[str, Any]]) -> None:
    for evt in events:
        log.debug("event %s %s", evt.get("eventType"), evt)


class HttpEventSink:
    """POSTs batches to an events endpoint (``{"events": [...]}``)."""

    def __init__(self, url: str, timeout: Optional[float] = None):
        self.url = url
        self.timeout = config.SUBMIT_TIMEOUT_SEC if timeout is None else timeout

    def __call__(self, events: List[Dict[str, Any]]) -> None:
        resp = httpx.post(self.url, json={"events": events}, timeout=self.timeout)
        resp.raise_for_status()


class AnalyticsEmitter:
    def __init__(
        self,
        sink: Optional[Sink] = None,
        batch_size: Optional[int] = None,
        max_requeue: Optional[int] = None,
        enabled: Optional[bool] = None,
    ):
        self.sink: Sink = sink or log_sink
        self.batch_size = max(1, batch_size or config.ANALYTICS_BATCH_SIZE)
        self.max_requeue = config.ANALYTICS_MAX_REQUEUE if max_requeue is None else max_requeue
        self.enabled = config.ANALYTICS_ENABLED if enabled is None else enabled
        self._queue: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    def emit(
        self,
        event_type: str,
        assessment_type: str,
        assessment_version: int,
        session_id: str,
        primary_class: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        if not self.enabled:
            return
        event = {
            "eventType": event_type,
            "assessmentType": assessment_type,
            "assessmentVersion": int(assessment_version),
            "sessionId": session_id,
            "primaryClass": primary_class,
            "metadata": dict(metadata or {}),
            "timestamp": int(time.time() * 1000),
        }
        with self._lock:
            self._queue.append(event)
            full = len(self._queue) >= self.batch_size
        if full:
            self.flush()

    def flush(self) -> int:
        """Send queued events batch by batch; stops at the first failing batch.

        The queue lock is held only while a batch is taken off or put back, so
        the sink call itself never blocks other emitters.
        """

        sent = 0
        while True:
            with self._lock:
                if not self._queue:
                    break
                batch = self._queue[: self.batch_size]
                del self._queue[: self.batch_size]
            try:
                self.sink(batch)
            except Exception as e:
                log.warning("event batch of %d not delivered: %s", len(batch), e)
                with self._lock:
                    if len(self._queue) < self.max_requeue:
                        self._queue[:0] = batch
                break
            sent += len(batch)
        return sent

    # convenience wrappers, one per lifecycle notification
    def track_started(self, assessment_type: str, version: int, session_id: str) -> None:
        self.emit(EVENT_STARTED, assessment_type, version, session_id)

    def track_completed(self, assessment_type: str, version: int, session_id: str, primary_class: str) -> None:
        self.emit(EVENT_COMPLETED, assessment_type, version, session_id, primary_class=primary_class)

    def track_abandoned(self, assessment_type: str, version: int, session_id: str, last_question_index: int) -> None:
        self.emit(
            EVENT_ABANDONED, assessment_type, version, session_id,
            metadata={"lastQuestionIndex": int(last_question_index)},
        )
