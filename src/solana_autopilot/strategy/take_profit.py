"""Lock in gains with limit sells after a pump."""

from __future__ import annotations

from typing import List

from ..config.settings import TakeProfitParameters
from ..datalake.schemas import MonitorSnapshot, OpportunityType, OrderAction, StrategyOrder
from .base import Strategy


class TakeProfitStrategy(Strategy):
    name = "take-profit"

    def generate(self, snapshot: MonitorSnapshot, parameters: TakeProfitParameters) -> List[StrategyOrder]:
        orders: List[StrategyOrder] = []
        for opportunity in snapshot.opportunities:
            if opportunity.kind != OpportunityType.TAKE_PROFIT:
                continue
            if opportunity.confidence < parameters.min_confidence:
                continue
            holding = snapshot.portfolio.holding(opportunity.token)
            if holding is None or holding.balance <= 0:
                continue
            orders.append(
                StrategyOrder(
                    strategy=self.name,
                    token=opportunity.token,
                    action=OrderAction.LIMIT,
                    input_token=opportunity.token,
                    output_token=parameters.proceeds_token,
                    input_amount=holding.balance * parameters.sell_fraction,
                    target_price=opportunity.current_price * parameters.profit_target,
                    reason=opportunity.reason,
                    confidence=opportunity.confidence,
                    metadata={
                        "profit_target_percent": (1 - parameters.profit_target) * 100,
                        "execution_type": "limit_order",
                    },
                )
            )
        return orders


__all__ = ["TakeProfitStrategy"]
