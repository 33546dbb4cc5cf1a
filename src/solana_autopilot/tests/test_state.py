from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from solana_autopilot.config.settings import RiskLimits
from solana_autopilot.datalake.schemas import (
    ExecutedOrder,
    ExecutionStatus,
    OrderAction,
    PriceObservation,
)
from solana_autopilot.datalake.state import (
    ExecutionLog,
    PriceHistory,
    RiskLimitsStore,
    WalletLocks,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


def _executed(index: int, strategy: str = "buy-dip", status: ExecutionStatus = ExecutionStatus.SUCCESS) -> ExecutedOrder:
    return ExecutedOrder(
        id=f"order-{index}",
        timestamp=T0,
        strategy=strategy,
        action=OrderAction.BUY,
        input_token="USDC",
        output_token="SOL",
        input_amount=10.0,
        status=status,
    )


def test_price_history_keeps_most_recent_entries() -> None:
    history = PriceHistory(max_entries=100)
    for index in range(150):
        history.record(PriceObservation("sol", float(index + 1), T0 + timedelta(minutes=index)))

    observations = history.observations("SOL")
    assert len(observations) == 100
    assert observations[0].price_usd == 51.0
    assert history.last("Sol").price_usd == 150.0


def test_price_history_average_change_uses_consecutive_moves() -> None:
    history = PriceHistory()
    assert history.average_change("SOL") == 0.0
    for price in (100.0, 110.0, 99.0):
        history.record(PriceObservation("SOL", price, T0))
    # +10% then -10%
    assert history.average_change("SOL") == pytest.approx(0.0)
    history.clear("SOL")
    assert history.observations("SOL") == []


def test_execution_log_is_fifo_with_capacity() -> None:
    log = ExecutionLog(capacity=500)
    for index in range(510):
        log.append(_executed(index))

    assert len(log) == 500
    entries = log.entries(limit=500)
    assert entries[0].id == "order-10"
    assert entries[-1].id == "order-509"
    assert [entry.id for entry in log.entries(limit=2)] == ["order-508", "order-509"]


def test_execution_log_filters_and_stats() -> None:
    log = ExecutionLog()
    log.append(_executed(1, "buy-dip"))
    log.append(_executed(2, "take-profit", ExecutionStatus.FAILED))
    log.append(_executed(3, "buy-dip"))
    log.append(_executed(4, "rebalance", ExecutionStatus.FAILED))

    assert [entry.id for entry in log.entries(strategy="buy-dip")] == ["order-1", "order-3"]
    stats = log.stats()
    assert stats["total_executions"] == 4
    assert stats["success_count"] == 2
    assert stats["failure_count"] == 2
    assert stats["success_rate"] == pytest.approx(50.0)
    assert stats["by_strategy"] == {"buy-dip": 2, "take-profit": 1, "rebalance": 1}
    assert ExecutionLog().stats()["success_rate"] == 0.0


def test_risk_limits_round_trip_and_isolation() -> None:
    store = RiskLimitsStore()
    wallet_a, wallet_b = "wallet-a", "wallet-b"

    assert store.get_risk_limits(wallet_a) == RiskLimits()
    updated = store.set_risk_limits(wallet_a, {"max_order_size_usd": 250, "enable_autopilot": True})
    assert updated.max_order_size_usd == 250
    assert store.get_risk_limits(wallet_a).enable_autopilot is True
    assert store.get_risk_limits(wallet_b).enable_autopilot is False

    copy = store.get_risk_limits(wallet_a)
    copy.whitelist_tokens.append("SOL")
    assert store.get_risk_limits(wallet_a).whitelist_tokens == []


def test_set_risk_limits_rejects_invalid_values() -> None:
    store = RiskLimitsStore()
    with pytest.raises(ValidationError):
        store.set_risk_limits("wallet", {"max_slippage_percent": 75})
    assert store.get_risk_limits("wallet").max_slippage_percent == 5.0


def test_validate_limits_describes_each_problem() -> None:
    store = RiskLimitsStore()
    errors = store.validate_limits(
        {
            "max_daily_loss_usd": 0,
            "max_order_size_usd": -1,
            "max_slippage_percent": 51,
            "max_portfolio_concentration": 120,
            "max_leverage": 3,
        }
    )
    assert "Max daily loss must be greater than 0" in errors
    assert "Max order size must be greater than 0" in errors
    assert "Max slippage must be between 0 and 50%" in errors
    assert "Max portfolio concentration must be between 0 and 100%" in errors
    assert "Unknown risk limit: max_leverage" in errors
    assert store.validate_limits({"max_order_size_usd": 10}) == []


def test_camel_case_limit_keys_are_accepted() -> None:
    store = RiskLimitsStore()
    assert store.validate_limits({"maxSlippagePercent": 60}) == ["Max slippage must be between 0 and 50%"]
    updated = store.set_risk_limits(
        "wallet",
        {"maxOrderSizeUSD": 250, "maxDailyLossUsd": 40, "blacklistTokens": ["BONK"], "enableAutopilot": True},
    )
    assert updated.max_order_size_usd == 250
    assert updated.max_daily_loss_usd == 40
    assert updated.blacklist_tokens == ["BONK"]
    assert updated.enable_autopilot is True


def test_daily_loss_accumulates_and_expires_lazily() -> None:
    clock = FakeClock()
    store = RiskLimitsStore(clock=clock)

    assert store.record_loss("wallet", 40.0) == 40.0
    clock.now = T0 + timedelta(hours=23)
    assert store.record_loss("wallet", 45.0) == 85.0
    assert store.record_loss("wallet", 0.0) == 85.0
    assert store.record_loss("wallet", -5.0) == 85.0

    clock.now = T0 + timedelta(hours=24, seconds=1)
    assert store.get_daily_loss("wallet") == 0.0
    assert store.record_loss("wallet", 10.0) == 10.0


def test_reset_daily_loss() -> None:
    store = RiskLimitsStore()
    store.record_loss("wallet", 30.0)
    store.reset_daily_loss("wallet")
    assert store.get_daily_loss("wallet") == 0.0


def test_wallet_locks_are_reentrant_and_per_wallet() -> None:
    locks = WalletLocks()
    lock = locks.get("wallet-a")
    assert locks.get("wallet-a") is lock
    assert locks.get("wallet-b") is not lock
    with lock:
        with locks.get("wallet-a"):
            pass
