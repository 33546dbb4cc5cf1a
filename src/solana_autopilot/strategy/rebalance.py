"""Target-allocation rebalancing."""

from __future__ import annotations

from typing import List

from ..config.settings import RebalanceParameters
from ..datalake.schemas import MonitorSnapshot, OrderAction, StrategyOrder
from .base import Strategy

REBALANCE_CONFIDENCE = 0.8


class RebalanceStrategy(Strategy):
    """Sells overweight tokens into the funding token and buys underweight ones with it."""

    name = "rebalance"

    def generate(self, snapshot: MonitorSnapshot, parameters: RebalanceParameters) -> List[StrategyOrder]:
        portfolio = snapshot.portfolio
        total = portfolio.total_value_usd
        if total <= 0:
            return []
        funding_symbol = parameters.funding_token.upper()
        funding = portfolio.holding(funding_symbol)
        orders: List[StrategyOrder] = []
        for token, target in parameters.target_allocation.items():
            symbol = token.upper()
            if symbol == funding_symbol:
                continue
            holding = portfolio.holding(symbol)
            current_pct = (holding.value_usd / total * 100) if holding else 0.0
            target_pct = target * 100
            imbalance = current_pct - target_pct
            if abs(imbalance) <= parameters.imbalance_threshold * 100:
                continue
            order_value = abs(imbalance) / 100 * total
            if order_value <= parameters.min_order_value:
                continue
            reason = f"Portfolio rebalance: {symbol} at {current_pct:.1f}% vs target {target_pct:.1f}%"
            metadata = {"imbalance_percent": abs(imbalance), "execution_type": "immediate"}
            if imbalance > 0:
                if holding is None or holding.balance <= 0:
                    continue
                price = holding.price_usd or (holding.value_usd / holding.balance)
                if price <= 0:
                    continue
                orders.append(
                    StrategyOrder(
                        strategy=self.name,
                        token=symbol,
                        action=OrderAction.SELL,
                        input_token=symbol,
                        output_token=funding_symbol,
                        input_amount=order_value / price * parameters.sell_fraction,
                        reason=reason,
                        confidence=REBALANCE_CONFIDENCE,
                        metadata=metadata,
                    )
                )
            elif funding is not None and funding.value_usd > parameters.min_order_value:
                orders.append(
                    StrategyOrder(
                        strategy=self.name,
                        token=symbol,
                        action=OrderAction.BUY,
                        input_token=funding_symbol,
                        output_token=symbol,
                        input_amount=order_value,
                        reason=reason,
                        confidence=REBALANCE_CONFIDENCE,
                        metadata=metadata,
                    )
                )
        return orders


__all__ = ["RebalanceStrategy"]
