"""Buy tokens after a sustained price drop."""

from __future__ import annotations

from typing import List

from ..config.settings import BuyDipParameters
from ..datalake.schemas import MonitorSnapshot, OpportunityType, OrderAction, StrategyOrder
from .base import Strategy

# Monitor confidence is |drop| / 20, so this recovers the approximate drop.
_DROP_PER_CONFIDENCE = 20.0


class BuyDipStrategy(Strategy):
    """Spends part of the funding stablecoin on tokens flagged as dips."""

    name = "buy-dip"

    def generate(self, snapshot: MonitorSnapshot, parameters: BuyDipParameters) -> List[StrategyOrder]:
        funding = snapshot.portfolio.holding(parameters.funding_token)
        if funding is None or funding.value_usd < parameters.min_funding_value_usd:
            return []
        orders: List[StrategyOrder] = []
        for opportunity in snapshot.opportunities:
            if opportunity.kind != OpportunityType.BUY_DIP:
                continue
            if opportunity.confidence < parameters.min_confidence:
                continue
            if opportunity.token.upper() == parameters.funding_token.upper():
                continue
            size = min(parameters.max_order_size, funding.value_usd * parameters.funding_fraction)
            orders.append(
                StrategyOrder(
                    strategy=self.name,
                    token=opportunity.token,
                    action=OrderAction.BUY,
                    input_token=parameters.funding_token,
                    output_token=opportunity.token,
                    input_amount=size,
                    reason=opportunity.reason,
                    confidence=opportunity.confidence,
                    metadata={
                        "price_drop_percent": opportunity.confidence * _DROP_PER_CONFIDENCE,
                        "execution_type": "immediate",
                    },
                )
            )
        return orders


__all__ = ["BuyDipStrategy"]
