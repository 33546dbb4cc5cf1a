"""Alert delivery to Slack and generic webhooks."""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

import requests

from ..config.settings import MonitoringConfig, get_app_config
from .logger import get_logger


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AlertManager:
    """Dispatch alerts to configured endpoints, throttled per alert key."""

    def __init__(
        self,
        config: Optional[MonitoringConfig] = None,
        *,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or get_app_config().monitoring
        self._session = session or requests.Session()
        self._clock = clock
        self._logger = get_logger(__name__)
        self._last_sent: Dict[str, float] = {}

    @property
    def enabled(self) -> bool:
        return bool(self._config.slack_webhook_url or self._config.webhook_urls)

    def send(
        self,
        message: str,
        *,
        severity: AlertSeverity = AlertSeverity.INFO,
        key: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Send ``message`` unless the same key fired within the throttle window."""

        key = key or message
        now = self._clock()
        throttle = max(self._config.alert_throttle_seconds, 0)
        last = self._last_sent.get(key)
        if last is not None and now - last < throttle:
            return False
        self._last_sent[key] = now
        payload = {
            "message": message,
            "severity": severity.value,
            "extra": extra or {},
        }
        if self._config.slack_webhook_url:
            self._post(str(self._config.slack_webhook_url), {"text": f"[{severity.value.upper()}] {message}"})
        for url in self._config.webhook_urls:
            self._post(str(url), payload)
        return True

    def _post(self, url: str, payload: Dict[str, Any]) -> None:
        try:
            response = self._session.post(url, json=payload, timeout=5)
            response.raise_for_status()
        except requests.RequestException as exc:
            self._logger.warning("Failed to send alert to %s: %s", url, exc)


__all__ = ["AlertManager", "AlertSeverity"]
