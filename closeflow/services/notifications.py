"""Notification dispatch for approval and workflow events.

Handles:
- Outbound events emitted after committed state transitions
- Background delivery to webhook and log channels
- Retry logic for failed deliveries
- A delivery log for inspection and manual retry

Publishing never blocks the caller and never raises: a notification failure
is logged and recorded, but the transition that triggered it stays committed.
"""

import json
import logging
import queue
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx
from jinja2 import Environment, Template, TemplateError

from closeflow.core.config import Settings

logger = logging.getLogger(__name__)


class NotificationEventType(str, Enum):
    APPROVAL_APPROVED = "approval.approved"
    APPROVAL_REJECTED = "approval.rejected"
    BATCH_REOPENED = "batch.reopened"
    BATCH_RESUBMITTED = "batch.resubmitted"
    COMMENT_ADDED = "comment.added"
    STEP_COMPLETED = "step.completed"


@dataclass(frozen=True)
class NotificationEvent:
    event_type: NotificationEventType
    batch_id: str
    context: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class NotificationLog:
    event_id: str
    event_type: str
    channel: str
    status: str = "pending"  # pending | sent | failed
    attempts: int = 0
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None


# Message templates
MESSAGE_TEMPLATES = {
    NotificationEventType.APPROVAL_APPROVED: {
        "subject": "[Closeflow] Batch {{ batch_id }} approved at level {{ level }}",
        "body": "Level {{ level }} approval by {{ actor }}. Batch status: {{ to_state }}.",
    },
    NotificationEventType.APPROVAL_REJECTED: {
        "subject": "[Closeflow] Batch {{ batch_id }} rejected at level {{ level }}",
        "body": "Rejected by {{ actor }}. Reason: {{ reason }}",
    },
    NotificationEventType.BATCH_REOPENED: {
        "subject": "[Closeflow] Batch {{ batch_id }} reopened after final approval",
        "body": "Reopened by {{ actor }}. Reason: {{ reason }}. All levels must approve again.",
    },
    NotificationEventType.BATCH_RESUBMITTED: {
        "subject": "[Closeflow] Batch {{ batch_id }} resubmitted for approval",
        "body": "Resubmitted by {{ actor }}. Level 1 approval is pending.",
    },
    NotificationEventType.COMMENT_ADDED: {
        "subject": "[Closeflow] New comment on batch {{ batch_id }}",
        "body": "{{ actor }}: {{ text }}",
    },
    NotificationEventType.STEP_COMPLETED: {
        "subject": "[Closeflow] {{ step_name }} complete for batch {{ batch_id }}",
        "body": "Completed by {{ actor }}.{% if unblocked %} Unblocked: {{ unblocked | join(', ') }}.{% endif %}",
    },
}


def render_message(event: NotificationEvent) -> Dict[str, str]:
    """Render subject and body for an event."""
    template = MESSAGE_TEMPLATES.get(event.event_type)
    context = {"batch_id": event.batch_id, **event.context}
    if not template:
        return {"subject": f"[Closeflow] {event.event_type.value}", "body": json.dumps(context, default=str)}
    return {
        "subject": Template(template["subject"]).render(**context),
        "body": Template(template["body"]).render(**context),
    }


def _json_escape(value: Any) -> Any:
    if isinstance(value, str):
        return json.dumps(value)[1:-1]
    return value


_PAYLOAD_ENV = Environment(finalize=_json_escape, autoescape=False)


class LoggingChannel:
    """Writes notifications to the application log."""

    name = "log"

    def deliver(self, event: NotificationEvent, message: Dict[str, str]) -> None:
        logger.info("%s | %s", message["subject"], message["body"])


class WebhookChannel:
    """Posts notifications as JSON to an HTTP endpoint.

    ``payload_template`` is a jinja2 template that must render to JSON. Put
    placeholders inside quoted strings; string values are JSON-escaped, so
    quotes and newlines in comments or reasons keep the document valid.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        payload_template: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url
        self.name = f"webhook:{url}"
        self.timeout = timeout
        self.headers = dict(headers or {})
        self.payload_template = payload_template
        self._template = None
        if payload_template:
            try:
                self._template = _PAYLOAD_ENV.from_string(payload_template)
            except TemplateError as e:
                logger.warning("Invalid webhook payload template for %s, using default payload: %s", url, e)
        self._transport = transport

    def build_payload(self, event: NotificationEvent, message: Dict[str, str]) -> Dict[str, Any]:
        if self._template is not None:
            try:
                rendered = self._template.render(
                    event=event.event_type.value,
                    batch_id=event.batch_id,
                    subject=message["subject"],
                    body=message["body"],
                    **event.context,
                )
                return json.loads(rendered)
            except (TemplateError, TypeError, ValueError) as e:
                logger.warning(f"Failed to render webhook template: {e}")
        return {
            "event": event.event_type.value,
            "id": event.id,
            "timestamp": event.created_at.isoformat(),
            "batchId": event.batch_id,
            "subject": message["subject"],
            "text": message["body"],
            "data": json.loads(json.dumps(event.context, default=str)),
        }

    def deliver(self, event: NotificationEvent, message: Dict[str, str]) -> None:
        payload = self.build_payload(event, message)
        headers = {**self.headers, "Content-Type": "application/json"}
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            response = client.post(self.url, json=payload, headers=headers)
            response.raise_for_status()


class NotificationDispatcher:
    """
    Delivers events to channels from a background worker thread.

    ``publish`` only enqueues. Each channel gets up to ``max_retries``
    attempts per event. The delivery log keeps the latest ``log_size``
    outcomes, and at most ``log_size`` failed deliveries are held for
    ``retry_failed`` (the oldest is dropped first).
    """

    _STOP = object()

    def __init__(
        self,
        channels: Sequence[Any],
        *,
        max_retries: int = 3,
        retry_backoff: float = 0.5,
        queue_size: int = 1000,
        log_size: int = 1000,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.channels = list(channels)
        self.max_retries = max(1, max_retries)
        self.retry_backoff = retry_backoff
        self._sleep = sleep
        self._queue: "queue.Queue" = queue.Queue(maxsize=queue_size)
        self.log_size = max(1, log_size)
        self._log: "deque[NotificationLog]" = deque(maxlen=self.log_size)
        self._failed: Dict[str, tuple] = {}
        self._log_lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "NotificationDispatcher":
        channels: List[Any] = [LoggingChannel()]
        for url in settings.webhook_urls_list:
            channels.append(WebhookChannel(
                url,
                timeout=settings.webhook_timeout,
                payload_template=settings.webhook_payload_template,
            ))
        return cls(
            channels,
            max_retries=settings.webhook_max_retries,
            retry_backoff=settings.webhook_retry_backoff,
            queue_size=settings.notification_queue_size,
            log_size=settings.notification_log_size,
        )

    @property
    def running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._worker = threading.Thread(target=self._run, name="closeflow-notifier", daemon=True)
        self._worker.start()

    def stop(self, timeout: float = 5.0) -> None:
        if not self.running:
            return
        self._queue.put(self._STOP)
        self._worker.join(timeout)
        self._worker = None

    def publish(self, event: NotificationEvent) -> bool:
        """Queue an event for delivery. Returns False if it had to be dropped."""
        return self._enqueue(event, None)

    def retry_failed(self) -> int:
        """Re-queue every failed delivery; returns the number re-queued."""
        with self._log_lock:
            pending = list(self._failed.values())
            self._failed.clear()
        for event, channel in pending:
            self._enqueue(event, [channel])
        return len(pending)

    def process_pending(self) -> int:
        """Deliver everything queued in the calling thread (worker not started)."""
        processed = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return processed
            try:
                if item is not self._STOP:
                    self._deliver(*item)
                    processed += 1
            finally:
                self._queue.task_done()

    def flush(self, timeout: float = 5.0) -> bool:
        """Wait until the worker has drained the queue."""
        if not self.running:
            self.process_pending()
            return True
        deadline = time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def delivery_log(self) -> List[NotificationLog]:
        with self._log_lock:
            return list(self._log)

    def failed_deliveries(self) -> List[NotificationLog]:
        return [entry for entry in self.delivery_log() if entry.status == "failed"]

    def _enqueue(self, event: NotificationEvent, channels: Optional[List[Any]]) -> bool:
        try:
            self._queue.put_nowait((event, channels))
            return True
        except queue.Full:
            logger.warning("Notification queue full, dropping %s for batch %s", event.event_type.value, event.batch_id)
            for channel in channels or self.channels:
                self._record(event, channel, "failed", 0, "queue full")
            return False

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is self._STOP:
                    return
                self._deliver(*item)
            except Exception:
                logger.exception("Notification worker error")
            finally:
                self._queue.task_done()

    def _deliver(self, event: NotificationEvent, channels: Optional[List[Any]]) -> None:
        message = render_message(event)
        for channel in channels or self.channels:
            error = None
            for attempt in range(1, self.max_retries + 1):
                try:
                    channel.deliver(event, message)
                    self._record(event, channel, "sent", attempt)
                    error = None
                    break
                except Exception as e:
                    error = e
                    logger.warning(
                        "Delivery of %s to %s failed (attempt %d/%d): %s",
                        event.event_type.value, channel.name, attempt, self.max_retries, e,
                    )
                    if attempt < self.max_retries and self.retry_backoff:
                        self._sleep(self.retry_backoff * attempt)
            if error is not None:
                logger.error("Giving up on %s to %s: %s", event.event_type.value, channel.name, error)
                self._record(event, channel, "failed", self.max_retries, str(error))
                with self._log_lock:
                    self._failed[f"{event.id}:{channel.name}"] = (event, channel)
                    while len(self._failed) > self.log_size:
                        dropped = self._failed.pop(next(iter(self._failed)))
                        logger.warning("Discarding failed %s for batch %s from the retry list",
                                       dropped[0].event_type.value, dropped[0].batch_id)

    def _record(
        self,
        event: NotificationEvent,
        channel: Any,
        status: str,
        attempts: int,
        error_message: Optional[str] = None,
    ) -> None:
        entry = NotificationLog(
            event_id=event.id,
            event_type=event.event_type.value,
            channel=channel.name,
            status=status,
            attempts=attempts,
            error_message=error_message,
            sent_at=datetime.utcnow() if status == "sent" else None,
        )
        with self._log_lock:
            self._log.append(entry)
