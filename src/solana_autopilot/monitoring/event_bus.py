"""Internal event bus for structured autopilot events."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Union

from .alerts import AlertManager, AlertSeverity
from .metrics import MetricsRegistry


class EventType(str, Enum):
    """Event categories emitted by the autopilot loop."""

    MONITOR = "monitor"
    OPPORTUNITY = "opportunity"
    REJECT = "reject"
    EXECUTION = "execution"
    HEALTH = "health"


class EventSeverity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(slots=True)
class Event:
    """Normalized representation of an observability event."""

    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    severity: EventSeverity = EventSeverity.INFO
    correlation_id: Optional[str] = None
    labels: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.value,
            "correlation_id": self.correlation_id,
            "labels": self.labels,
        }


Subscriber = Callable[[Event], Any]


class EventBus:
    """Threaded event bus that fans out structured events to subscribers."""

    def __init__(self, history_size: int = 500) -> None:
        self._queue: "queue.Queue[Event]" = queue.Queue()
        self._subscribers: Dict[Optional[EventType], List[Subscriber]] = defaultdict(list)
        self._history: Deque[Event] = deque(maxlen=history_size)
        self._lock = threading.RLock()
        self._logger = logging.getLogger(__name__)
        self._metrics: Optional[MetricsRegistry] = None
        self._alerts: Optional[AlertManager] = None
        self._worker = threading.Thread(target=self._run, name="event-bus", daemon=True)
        self._worker.start()

    def attach_metrics(self, registry: Optional[MetricsRegistry]) -> None:
        self._metrics = registry

    def attach_alert_manager(self, manager: Optional[AlertManager]) -> None:
        self._alerts = manager

    def subscribe(self, event_type: Optional[EventType], handler: Subscriber) -> None:
        """Register a subscriber for one event type, or for all events when ``None``."""

        with self._lock:
            self._subscribers[event_type].append(handler)

    def publish(
        self,
        event_type: Union[EventType, str],
        payload: Optional[Dict[str, Any]] = None,
        *,
        severity: EventSeverity = EventSeverity.INFO,
        correlation_id: Optional[str] = None,
        labels: Optional[Dict[str, str]] = None,
    ) -> None:
        if isinstance(event_type, str):
            try:
                event_type = EventType(event_type)
            except ValueError as exc:
                raise ValueError(f"Unsupported event type: {event_type}") from exc
        event = Event(
            type=event_type,
            payload=dict(payload or {}),
            severity=severity,
            correlation_id=correlation_id,
            labels=dict(labels or {}),
        )
        self._queue.put(event)

    def history(self, limit: int = 100, event_type: Optional[EventType] = None) -> List[Event]:
        with self._lock:
            events = list(self._history)
        if event_type is not None:
            events = [event for event in events if event.type == event_type]
        if limit <= 0:
            return []
        return events[-limit:]

    def flush(self, timeout: float = 1.0) -> bool:
        """Best-effort wait for the queue to drain."""

        deadline = time.time() + timeout
        while time.time() < deadline:
            if self._queue.unfinished_tasks == 0:
                return True
            time.sleep(0.01)
        return self._queue.unfinished_tasks == 0

    def reset(self) -> None:
        """Clear subscribers and history. Intended for tests."""

        self.flush()
        with self._lock:
            self._subscribers.clear()
            self._history.clear()
        self._metrics = None
        self._alerts = None

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            try:
                self._dispatch(event)
            except Exception:  # noqa: BLE001
                self._logger.exception("Failed to dispatch event %s", event.type.value)
            finally:
                self._queue.task_done()

    def _dispatch(self, event: Event) -> None:
        with self._lock:
            self._history.append(event)
            handlers = list(self._subscribers.get(event.type, [])) + list(
                self._subscribers.get(None, [])
            )
        self._update_metrics(event)
        self._trigger_alerts(event)
        for handler in handlers:
            try:
                handler(event)
            except Exception:  # noqa: BLE001 - subscriber failures never break dispatch
                self._logger.exception(
                    "Event handler %s failed for %s", getattr(handler, "__name__", handler), event.type.value
                )

    def _update_metrics(self, event: Event) -> None:
        if not self._metrics:
            return
        self._metrics.increment(f"events.{event.type.value}", 1.0)
        if event.type == EventType.EXECUTION:
            status = event.payload.get("status")
            if isinstance(status, str):
                self._metrics.increment(f"executions.{status}", 1.0)
            latency = event.payload.get("latency_seconds")
            if latency is not None:
                self._metrics.observe("execution_latency_seconds", float(latency))
        if event.type == EventType.REJECT:
            stage = event.payload.get("stage")
            if isinstance(stage, str):
                self._metrics.increment(f"orders_rejected.{stage}", 1.0)
        if event.type == EventType.MONITOR and "total_value_usd" in event.payload:
            try:
                self._metrics.gauge("portfolio_value_usd", float(event.payload["total_value_usd"]))
            except (TypeError, ValueError):
                self._logger.debug("Ignoring non-numeric portfolio value %r", event.payload["total_value_usd"])

    def _trigger_alerts(self, event: Event) -> None:
        if not self._alerts:
            return
        if event.severity in {EventSeverity.WARNING, EventSeverity.ERROR, EventSeverity.CRITICAL}:
            summary = event.payload.get("message") or event.payload
            message = f"{event.type.value.upper()}: {summary}"
            key = f"{event.type.value}:{event.payload.get('reason', '')}"
            self._alerts.send(
                message,
                severity=AlertSeverity(event.severity.value),
                key=key,
                extra=event.payload,
            )


EVENT_BUS = EventBus()


__all__ = [
    "EVENT_BUS",
    "Event",
    "EventBus",
    "EventSeverity",
    "EventType",
]
