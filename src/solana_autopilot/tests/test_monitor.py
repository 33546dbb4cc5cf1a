from __future__ import annotations

import pytest
import requests

from conftest import FakePortfolioGateway, FakePriceGateway, make_portfolio, usdc
from solana_autopilot.analysis.monitor import PortfolioMonitor
from solana_autopilot.config.settings import MonitorConfig
from solana_autopilot.datalake.schemas import OpportunityType, TokenHolding
from solana_autopilot.datalake.state import AutopilotState
from solana_autopilot.errors import UpstreamError


def _monitor(portfolio, prices, state=None):
    state = state or AutopilotState()
    gateway = FakePortfolioGateway(portfolio)
    monitor = PortfolioMonitor(gateway, FakePriceGateway(prices), state=state, config=MonitorConfig())
    return monitor, gateway, state


def test_dip_with_downtrend_yields_buy_dip(wallet: str) -> None:
    portfolio = make_portfolio(wallet, sol_balance=1.0, tokens=[usdc(1000)])
    monitor, _, _ = _monitor(portfolio, {"SOL": [100 / 0.95, 100.0, 85.0], "USDC": 1.0})

    first = monitor.monitor(wallet)
    assert first.price_changes == []
    second = monitor.monitor(wallet)
    assert [change.symbol for change in second.price_changes] == ["SOL"]
    assert second.opportunities == []

    third = monitor.monitor(wallet)
    change = third.price_changes[0]
    assert change.previous_price == 100.0
    assert change.change_percent == pytest.approx(-15.0)
    (opportunity,) = third.opportunities
    assert opportunity.kind == OpportunityType.BUY_DIP
    assert opportunity.token == "SOL"
    assert opportunity.confidence == pytest.approx(0.75)
    assert opportunity.reason == "Price dropped 15.00% - potential buying opportunity"


def test_dip_without_downtrend_is_ignored(wallet: str) -> None:
    portfolio = make_portfolio(wallet, tokens=[usdc(1000)])
    monitor, _, _ = _monitor(portfolio, {"SOL": [100.0, 101.0, 90.0], "USDC": 1.0})
    for _ in range(2):
        monitor.monitor(wallet)
    snapshot = monitor.monitor(wallet)
    assert snapshot.price_changes
    assert snapshot.opportunities == []


def test_dip_after_flat_history_is_ignored(wallet: str) -> None:
    portfolio = make_portfolio(wallet, tokens=[usdc(1000)])
    monitor, _, _ = _monitor(portfolio, {"SOL": [100.0, 100.0, 94.0], "USDC": 1.0})
    monitor.monitor(wallet)
    monitor.monitor(wallet)
    snapshot = monitor.monitor(wallet)
    assert snapshot.price_changes[0].change_percent == pytest.approx(-6.0)
    assert snapshot.opportunities == []


def test_surge_yields_take_profit_with_target(wallet: str) -> None:
    jup = TokenHolding(symbol="JUP", balance=100.0, decimals=6, value_usd=50.0, price_usd=0.5)
    portfolio = make_portfolio(wallet, tokens=[usdc(1000), jup])
    monitor, _, _ = _monitor(portfolio, {"SOL": 100.0, "USDC": 1.0, "JUP": [0.5, 0.6]})

    monitor.monitor(wallet)
    snapshot = monitor.monitor(wallet)
    (opportunity,) = snapshot.opportunities
    assert opportunity.kind == OpportunityType.TAKE_PROFIT
    assert opportunity.token == "JUP"
    assert opportunity.confidence == pytest.approx(20.0 / 30.0)
    assert opportunity.target_price == pytest.approx(0.6 * 0.95)


def test_small_moves_are_not_material(wallet: str) -> None:
    portfolio = make_portfolio(wallet, tokens=[usdc(10)])
    monitor, _, _ = _monitor(portfolio, {"SOL": [100.0, 100.2], "USDC": 1.0})
    monitor.monitor(wallet)
    assert monitor.monitor(wallet).price_changes == []


def test_sol_concentration_yields_rebalance(wallet: str) -> None:
    portfolio = make_portfolio(wallet, sol_balance=9.0, tokens=[usdc(100)])
    monitor, _, _ = _monitor(portfolio, {"SOL": 100.0, "USDC": 1.0})
    snapshot = monitor.monitor(wallet)
    (opportunity,) = snapshot.opportunities
    assert opportunity.kind == OpportunityType.REBALANCE
    assert opportunity.token == "SOL"
    assert opportunity.confidence == pytest.approx((90.0 - 50.0) / 50.0)


def test_price_failures_are_skipped_not_fatal(wallet: str) -> None:
    bonk = TokenHolding(symbol="BONK", balance=1_000_000.0, decimals=5, value_usd=30.0)
    portfolio = make_portfolio(wallet, tokens=[usdc(100), bonk])
    monitor, _, state = _monitor(portfolio, {"SOL": 100.0, "USDC": 1.0})

    snapshot = monitor.monitor(wallet)
    assert [item.key for item in snapshot.skipped] == ["BONK"]
    assert state.price_history.last("SOL") is not None
    assert state.price_history.last("BONK") is None


class FlakyPriceGateway(FakePriceGateway):
    def get_price(self, symbol: str) -> float:
        if symbol.upper() == "JUP":
            raise requests.ConnectionError("jup price host down")
        if symbol.upper() == "BONK":
            return "n/a"  # type: ignore[return-value]
        return super().get_price(symbol)


def test_unexpected_price_errors_are_skipped(wallet: str) -> None:
    jup = TokenHolding(symbol="JUP", balance=100.0, decimals=6, value_usd=50.0)
    bonk = TokenHolding(symbol="BONK", balance=1_000_000.0, decimals=5, value_usd=30.0)
    portfolio = make_portfolio(wallet, tokens=[usdc(100), jup, bonk])
    state = AutopilotState()
    monitor = PortfolioMonitor(
        FakePortfolioGateway(portfolio),
        FlakyPriceGateway({"SOL": 100.0, "USDC": 1.0}),
        state=state,
        config=MonitorConfig(),
    )

    snapshot = monitor.monitor(wallet)
    assert sorted(item.key for item in snapshot.skipped) == ["BONK", "JUP"]
    assert "jup price host down" in next(item.reason for item in snapshot.skipped if item.key == "JUP")
    assert state.snapshots.get(wallet) is snapshot
    assert state.price_history.last("SOL") is not None


def test_portfolio_failure_propagates(wallet: str) -> None:
    monitor, gateway, state = _monitor(make_portfolio(wallet), {"SOL": 100.0})
    gateway.error = UpstreamError("rpc down", source="rpc")
    with pytest.raises(UpstreamError):
        monitor.monitor(wallet)
    assert state.snapshots.get(wallet) is None


def test_portfolio_change_against_previous_snapshot(wallet: str) -> None:
    monitor, gateway, state = _monitor(make_portfolio(wallet, tokens=[usdc(100)]), {"SOL": 100.0, "USDC": 1.0})
    first = monitor.monitor(wallet)
    assert first.portfolio_change.percent_change == 0.0

    gateway.portfolio = make_portfolio(wallet, tokens=[usdc(150)])
    second = monitor.monitor(wallet)
    assert second.portfolio_change.dollar_change == pytest.approx(50.0)
    assert second.portfolio_change.percent_change == pytest.approx(50.0)
    assert state.snapshots.get(wallet) is second

    gateway.portfolio = make_portfolio(wallet)
    monitor.monitor(wallet)
    gateway.portfolio = make_portfolio(wallet, tokens=[usdc(10)])
    assert monitor.monitor(wallet).portfolio_change.percent_change == 0.0


def test_clear_history(wallet: str) -> None:
    monitor, _, state = _monitor(make_portfolio(wallet, tokens=[usdc(100)]), {"SOL": 100.0, "USDC": 1.0})
    monitor.monitor(wallet)
    monitor.clear_history(wallet)
    assert state.snapshots.get(wallet) is None
    assert state.price_history.last("SOL") is not None

    monitor.monitor(wallet)
    monitor.clear_history()
    assert state.snapshots.get(wallet) is None
    assert state.price_history.last("SOL") is None
