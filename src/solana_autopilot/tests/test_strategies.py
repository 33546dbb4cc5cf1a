from __future__ import annotations

from typing import List

import pytest

from conftest import make_portfolio, usdc
from solana_autopilot.config.settings import (
    BuyDipParameters,
    BuyDipStrategyConfig,
    RebalanceParameters,
    RebalanceStrategyConfig,
    SentimentStrategyConfig,
    TakeProfitParameters,
    TakeProfitStrategyConfig,
)
from solana_autopilot.datalake.schemas import (
    MonitorSnapshot,
    Opportunity,
    OpportunityType,
    OrderAction,
    PortfolioSnapshot,
    StrategyOrder,
    TokenHolding,
)
from solana_autopilot.errors import OrderValidationError
from solana_autopilot.strategy import (
    BuyDipStrategy,
    RebalanceStrategy,
    SentimentStrategy,
    StrategyEvaluator,
    TakeProfitStrategy,
    validate_order,
)
from solana_autopilot.utils.constants import utc_now


def _opportunity(kind: OpportunityType, token: str, confidence: float, price: float = 100.0) -> Opportunity:
    return Opportunity(
        kind=kind,
        token=token,
        reason=f"{kind.value} {token}",
        current_price=price,
        confidence=confidence,
        timestamp=utc_now(),
    )


def _snapshot(portfolio: PortfolioSnapshot, opportunities: List[Opportunity]) -> MonitorSnapshot:
    return MonitorSnapshot(
        wallet_address=portfolio.wallet_address,
        timestamp=utc_now(),
        portfolio=portfolio,
        opportunities=opportunities,
    )


def test_buy_dip_below_min_confidence_emits_nothing(wallet: str) -> None:
    snapshot = _snapshot(
        make_portfolio(wallet, tokens=[usdc(1000)]),
        [_opportunity(OpportunityType.BUY_DIP, "SOL", 0.5)],
    )
    assert BuyDipStrategy().generate(snapshot, BuyDipParameters()) == []


def test_buy_dip_sizes_order_from_funding_balance(wallet: str) -> None:
    snapshot = _snapshot(
        make_portfolio(wallet, tokens=[usdc(1000)]),
        [_opportunity(OpportunityType.BUY_DIP, "SOL", 0.75)],
    )
    (order,) = BuyDipStrategy().generate(snapshot, BuyDipParameters())
    assert order.action == OrderAction.BUY
    assert order.input_token == "USDC"
    assert order.output_token == "SOL"
    assert order.input_amount == pytest.approx(500.0)
    assert order.metadata["price_drop_percent"] == pytest.approx(15.0)
    assert order.metadata["execution_type"] == "immediate"

    small = _snapshot(
        make_portfolio(wallet, tokens=[usdc(200)]),
        [_opportunity(OpportunityType.BUY_DIP, "SOL", 0.75)],
    )
    (order,) = BuyDipStrategy().generate(small, BuyDipParameters())
    assert order.input_amount == pytest.approx(100.0)


def test_buy_dip_requires_minimum_funding(wallet: str) -> None:
    snapshot = _snapshot(
        make_portfolio(wallet, tokens=[usdc(49)]),
        [_opportunity(OpportunityType.BUY_DIP, "SOL", 0.9)],
    )
    assert BuyDipStrategy().generate(snapshot, BuyDipParameters()) == []


def test_take_profit_without_holding_emits_nothing(wallet: str) -> None:
    snapshot = _snapshot(
        make_portfolio(wallet, tokens=[usdc(1000)]),
        [_opportunity(OpportunityType.TAKE_PROFIT, "JUP", 0.9, price=0.6)],
    )
    assert TakeProfitStrategy().generate(snapshot, TakeProfitParameters()) == []


def test_take_profit_places_limit_sell(wallet: str) -> None:
    jup = TokenHolding(symbol="JUP", balance=200.0, decimals=6, value_usd=120.0, price_usd=0.6)
    snapshot = _snapshot(
        make_portfolio(wallet, tokens=[jup]),
        [_opportunity(OpportunityType.TAKE_PROFIT, "JUP", 0.8, price=0.6)],
    )
    (order,) = TakeProfitStrategy().generate(snapshot, TakeProfitParameters())
    assert order.action == OrderAction.LIMIT
    assert order.input_token == "JUP"
    assert order.output_token == "USDC"
    assert order.input_amount == pytest.approx(100.0)
    assert order.target_price == pytest.approx(0.57)
    assert order.metadata["execution_type"] == "limit_order"


def test_rebalance_sells_overweight_and_buys_underweight(wallet: str) -> None:
    portfolio = make_portfolio(wallet, sol_balance=8.0, tokens=[usdc(200)])
    parameters = RebalanceParameters(target_allocation={"SOL": 0.4, "USDC": 0.3, "JUP": 0.3})
    orders = RebalanceStrategy().generate(_snapshot(portfolio, []), parameters)

    sell, buy = orders
    assert sell.action == OrderAction.SELL
    assert sell.input_token == "SOL"
    assert sell.output_token == "USDC"
    # SOL is 80% vs 40% target: $400 over on a $1000 portfolio, sold at 80%.
    assert sell.input_amount == pytest.approx(400.0 / 100.0 * 0.8)
    assert sell.confidence == pytest.approx(0.8)
    assert buy.action == OrderAction.BUY
    assert buy.output_token == "JUP"
    assert buy.input_amount == pytest.approx(300.0)


def test_rebalance_ignores_small_imbalances(wallet: str) -> None:
    portfolio = make_portfolio(wallet, sol_balance=5.0, tokens=[usdc(500)])
    parameters = RebalanceParameters(target_allocation={"SOL": 0.45, "USDC": 0.55})
    assert RebalanceStrategy().generate(_snapshot(portfolio, []), parameters) == []


def test_sentiment_never_trades(wallet: str) -> None:
    snapshot = _snapshot(
        make_portfolio(wallet, tokens=[usdc(1000)]),
        [_opportunity(OpportunityType.SENTIMENT, "SOL", 1.0)],
    )
    assert SentimentStrategy().generate(snapshot, SentimentStrategyConfig().parameters) == []


def test_evaluator_runs_enabled_configs_in_order(wallet: str) -> None:
    jup = TokenHolding(symbol="JUP", balance=200.0, decimals=6, value_usd=120.0, price_usd=0.6)
    snapshot = _snapshot(
        make_portfolio(wallet, tokens=[usdc(1000), jup]),
        [
            _opportunity(OpportunityType.TAKE_PROFIT, "JUP", 0.9, price=0.6),
            _opportunity(OpportunityType.BUY_DIP, "JUP", 0.9, price=0.6),
        ],
    )
    configs = [
        BuyDipStrategyConfig(),
        TakeProfitStrategyConfig(),
        RebalanceStrategyConfig(enabled=False),
        SentimentStrategyConfig(enabled=True),
    ]
    orders = StrategyEvaluator().evaluate(snapshot, configs)
    assert [order.strategy for order in orders] == ["buy-dip", "take-profit"]
    assert {order.token for order in orders} == {"JUP"}

    disabled = [BuyDipStrategyConfig(enabled=False), TakeProfitStrategyConfig(enabled=False)]
    assert StrategyEvaluator().evaluate(snapshot, disabled) == []


def _order(input_token: str, amount: float) -> StrategyOrder:
    return StrategyOrder(
        strategy="manual",
        token="SOL",
        action=OrderAction.BUY,
        input_token=input_token,
        output_token="SOL",
        input_amount=amount,
        reason="test",
        confidence=1.0,
    )


def test_validate_order(wallet: str) -> None:
    portfolio = make_portfolio(wallet, sol_balance=1.0, tokens=[usdc(100)])
    validate_order(_order("USDC", 100.0), portfolio)
    validate_order(_order("sol", 0.5), portfolio)

    with pytest.raises(OrderValidationError, match="below the minimum"):
        validate_order(_order("USDC", 0.0001), portfolio)
    with pytest.raises(OrderValidationError, match="does not hold"):
        validate_order(_order("JUP", 1.0), portfolio)
    with pytest.raises(OrderValidationError, match="Insufficient"):
        validate_order(_order("USDC", 150.0), portfolio)
