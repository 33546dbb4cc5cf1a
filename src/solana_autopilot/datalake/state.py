"""In-process state owned by the autopilot service.

Nothing here survives a restart. Every map is keyed by wallet address (or token
symbol for price history) and guarded by its own lock; callers that need a
consistent view across several maps hold the wallet lock from ``WalletLocks``.
"""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from ..config.settings import RiskLimits
from ..utils.constants import utc_now
from .schemas import (
    DailyLossRecord,
    ExecutedOrder,
    ExecutionStatus,
    MonitorSnapshot,
    PriceObservation,
)

Clock = Callable[[], datetime]

_LIMIT_MESSAGES = {
    "max_daily_loss_usd": "Max daily loss must be greater than 0",
    "max_order_size_usd": "Max order size must be greater than 0",
    "max_slippage_percent": "Max slippage must be between 0 and 50%",
    "max_portfolio_concentration": "Max portfolio concentration must be between 0 and 100%",
}


def _limit_aliases() -> Dict[str, str]:
    aliases: Dict[str, str] = {}
    for name in RiskLimits.model_fields:
        camel = to_camel(name)
        aliases[camel] = name
        if camel.endswith("Usd"):
            aliases[f"{camel[:-3]}USD"] = name
    return aliases


# Dashboard clients send camelCase keys such as ``maxOrderSizeUSD``.
_LIMIT_ALIASES = _limit_aliases()


def _normalize_changes(changes: Mapping[str, Any]) -> Dict[str, Any]:
    return {_LIMIT_ALIASES.get(key, key): value for key, value in changes.items()}


def _describe_error(error: Mapping[str, Any]) -> str:
    location = error.get("loc") or ()
    field_name = str(location[0]) if location else ""
    if error.get("type") == "extra_forbidden":
        return f"Unknown risk limit: {field_name}"
    if field_name in _LIMIT_MESSAGES and str(error.get("type", "")).startswith(("greater", "less")):
        return _LIMIT_MESSAGES[field_name]
    return f"{field_name}: {error.get('msg', 'invalid value')}" if field_name else str(error.get("msg"))


class WalletLocks:
    """Hands out one re-entrant lock per wallet address."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def get(self, wallet_address: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(wallet_address)
            if lock is None:
                lock = threading.RLock()
                self._locks[wallet_address] = lock
            return lock


class SnapshotStore:
    """Latest monitor snapshot per wallet."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._snapshots: Dict[str, MonitorSnapshot] = {}

    def get(self, wallet_address: str) -> Optional[MonitorSnapshot]:
        with self._lock:
            return self._snapshots.get(wallet_address)

    def put(self, snapshot: MonitorSnapshot) -> None:
        with self._lock:
            self._snapshots[snapshot.wallet_address] = snapshot

    def clear(self, wallet_address: Optional[str] = None) -> None:
        with self._lock:
            if wallet_address is None:
                self._snapshots.clear()
            else:
                self._snapshots.pop(wallet_address, None)


class PriceHistory:
    """Bounded per-symbol price observations used for trend checks."""

    def __init__(self, max_entries: int = 100) -> None:
        self._max_entries = max_entries
        self._lock = threading.RLock()
        self._history: Dict[str, Deque[PriceObservation]] = {}

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def record(self, observation: PriceObservation) -> None:
        key = observation.symbol.upper()
        with self._lock:
            history = self._history.get(key)
            if history is None:
                history = deque(maxlen=self._max_entries)
                self._history[key] = history
            history.append(observation)

    def last(self, symbol: str) -> Optional[PriceObservation]:
        with self._lock:
            history = self._history.get(symbol.upper())
            if not history:
                return None
            return history[-1]

    def observations(self, symbol: str) -> List[PriceObservation]:
        with self._lock:
            return list(self._history.get(symbol.upper(), ()))

    def average_change(self, symbol: str) -> float:
        """Mean percent change between consecutive stored observations."""

        items = self.observations(symbol)
        changes: List[float] = []
        for previous, current in zip(items, items[1:]):
            if previous.price_usd <= 0:
                continue
            changes.append((current.price_usd - previous.price_usd) / previous.price_usd * 100)
        if not changes:
            return 0.0
        return sum(changes) / len(changes)

    def clear(self, symbol: Optional[str] = None) -> None:
        with self._lock:
            if symbol is None:
                self._history.clear()
            else:
                self._history.pop(symbol.upper(), None)


class ExecutionLog:
    """Bounded FIFO audit log of executed orders."""

    def __init__(self, capacity: int = 500) -> None:
        self._lock = threading.RLock()
        self._entries: Deque[ExecutedOrder] = deque(maxlen=capacity)

    def append(self, record: ExecutedOrder) -> None:
        with self._lock:
            self._entries.append(record)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def entries(self, strategy: Optional[str] = None, limit: int = 50) -> List[ExecutedOrder]:
        with self._lock:
            items = list(self._entries)
        if strategy:
            items = [item for item in items if item.strategy == strategy]
        if limit <= 0:
            return []
        return items[-limit:]

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            items = list(self._entries)
        by_strategy: Dict[str, int] = {}
        for item in items:
            by_strategy[item.strategy] = by_strategy.get(item.strategy, 0) + 1
        success = sum(1 for item in items if item.status == ExecutionStatus.SUCCESS)
        failure = sum(1 for item in items if item.status == ExecutionStatus.FAILED)
        total = len(items)
        return {
            "total_executions": total,
            "success_count": success,
            "failure_count": failure,
            "success_rate": (success / total) * 100 if total else 0.0,
            "by_strategy": by_strategy,
        }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class RiskLimitsStore:
    """Per-wallet risk limits and rolling daily-loss tracking."""

    def __init__(
        self,
        defaults: Optional[RiskLimits] = None,
        *,
        window: timedelta = timedelta(hours=24),
        clock: Clock = utc_now,
    ) -> None:
        self._defaults = defaults or RiskLimits()
        self._window = window
        self._clock = clock
        self._lock = threading.RLock()
        self._limits: Dict[str, RiskLimits] = {}
        self._losses: Dict[str, DailyLossRecord] = {}

    def get_risk_limits(self, wallet_address: str) -> RiskLimits:
        with self._lock:
            limits = self._limits.get(wallet_address, self._defaults)
            return limits.model_copy(deep=True)

    def set_risk_limits(self, wallet_address: str, changes: Mapping[str, Any]) -> RiskLimits:
        """Merge ``changes`` into the stored limits; raises ``pydantic.ValidationError``."""

        with self._lock:
            current = self._limits.get(wallet_address, self._defaults)
            updated = RiskLimits.model_validate({**current.model_dump(), **_normalize_changes(changes)})
            self._limits[wallet_address] = updated
            return updated.model_copy(deep=True)

    def validate_limits(self, changes: Mapping[str, Any]) -> List[str]:
        """Return human-readable problems with a partial limits update."""

        try:
            RiskLimits.model_validate({**self._defaults.model_dump(), **_normalize_changes(changes)})
        except ValidationError as exc:
            return [_describe_error(error) for error in exc.errors()]
        return []

    def get_daily_loss(self, wallet_address: str) -> float:
        with self._lock:
            record = self._current_record(wallet_address)
            return record.loss_usd if record else 0.0

    def record_loss(self, wallet_address: str, amount_usd: float) -> float:
        if amount_usd <= 0:
            return self.get_daily_loss(wallet_address)
        with self._lock:
            record = self._current_record(wallet_address)
            if record is None:
                record = DailyLossRecord(loss_usd=0.0, reset_at=self._clock() + self._window)
                self._losses[wallet_address] = record
            record.loss_usd += amount_usd
            return record.loss_usd

    def reset_daily_loss(self, wallet_address: str) -> None:
        with self._lock:
            self._losses.pop(wallet_address, None)

    def _current_record(self, wallet_address: str) -> Optional[DailyLossRecord]:
        record = self._losses.get(wallet_address)
        if record is None:
            return None
        if self._clock() > record.reset_at:
            del self._losses[wallet_address]
            return None
        return record


class AutopilotState:
    """Container for every in-memory map the autopilot mutates."""

    def __init__(
        self,
        *,
        risk_defaults: Optional[RiskLimits] = None,
        price_history_size: int = 100,
        log_capacity: int = 500,
        loss_window: timedelta = timedelta(hours=24),
        clock: Clock = utc_now,
    ) -> None:
        self.locks = WalletLocks()
        self.snapshots = SnapshotStore()
        self.price_history = PriceHistory(price_history_size)
        self.execution_log = ExecutionLog(log_capacity)
        self.risk = RiskLimitsStore(risk_defaults, window=loss_window, clock=clock)


__all__ = [
    "AutopilotState",
    "ExecutionLog",
    "PriceHistory",
    "RiskLimitsStore",
    "SnapshotStore",
    "WalletLocks",
]
