"""Runs the configured strategies over a monitor snapshot."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from ..config.settings import StrategyConfig, default_strategies
from ..datalake.schemas import MonitorSnapshot, PortfolioSnapshot, StrategyOrder
from ..errors import OrderValidationError
from ..monitoring.logger import get_logger
from .base import Strategy
from .buy_dip import BuyDipStrategy
from .rebalance import RebalanceStrategy
from .sentiment import SentimentStrategy
from .take_profit import TakeProfitStrategy

MIN_ORDER_AMOUNT = 0.001


def builtin_strategies() -> Dict[str, Strategy]:
    return {
        strategy.name: strategy
        for strategy in (BuyDipStrategy(), TakeProfitStrategy(), RebalanceStrategy(), SentimentStrategy())
    }


class StrategyEvaluator:
    """Dispatches each enabled strategy config to its implementation, in order.

    Orders from different strategies for the same token are kept side by side;
    nothing is merged or deduplicated here.
    """

    def __init__(self, strategies: Optional[Dict[str, Strategy]] = None) -> None:
        self._strategies = strategies if strategies is not None else builtin_strategies()
        self._logger = get_logger(__name__)

    def evaluate(
        self,
        snapshot: MonitorSnapshot,
        configs: Optional[Sequence[StrategyConfig]] = None,
    ) -> List[StrategyOrder]:
        orders: List[StrategyOrder] = []
        for config in configs if configs is not None else default_strategies():
            if not config.enabled:
                continue
            strategy = self._strategies.get(config.name)
            if strategy is None:
                self._logger.warning("No implementation registered for strategy %s", config.name)
                continue
            generated = list(strategy.generate(snapshot, config.parameters))
            if generated:
                self._logger.debug("Strategy %s produced %d orders", config.id, len(generated))
            orders.extend(generated)
        return orders


def validate_order(
    order: StrategyOrder,
    portfolio: PortfolioSnapshot,
    *,
    min_amount: float = MIN_ORDER_AMOUNT,
) -> None:
    """Raise ``OrderValidationError`` unless the wallet can fund ``order``."""

    if order.input_amount < min_amount:
        raise OrderValidationError(
            f"Order amount {order.input_amount} is below the minimum of {min_amount}"
        )
    holding = portfolio.holding(order.input_token)
    if holding is None:
        raise OrderValidationError(f"Wallet does not hold {order.input_token}")
    if holding.balance < order.input_amount:
        raise OrderValidationError(
            f"Insufficient {order.input_token} balance: have {holding.balance}, need {order.input_amount}"
        )


__all__ = ["MIN_ORDER_AMOUNT", "StrategyEvaluator", "builtin_strategies", "validate_order"]
