"""Pre-trade risk gate for autopilot orders."""

from __future__ import annotations

from typing import List, Optional

from ..datalake.schemas import PortfolioSnapshot, RiskCheckResult, StrategyOrder
from ..datalake.state import RiskLimitsStore
from ..ingestion.pricing import ApproximatePricer
from ..monitoring.event_bus import EVENT_BUS, EventSeverity, EventType
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS

DAILY_LOSS_WARNING_RATIO = 0.8
SLIPPAGE_PER_PORTFOLIO_PERCENT = 0.1
MAX_ESTIMATED_SLIPPAGE = 10.0


def estimate_slippage(order_value_usd: float, portfolio_value_usd: float) -> float:
    """0.1% slippage per 1% of portfolio, capped at 10%."""

    if portfolio_value_usd <= 0:
        return MAX_ESTIMATED_SLIPPAGE
    order_percent = order_value_usd / portfolio_value_usd * 100
    return min(order_percent * SLIPPAGE_PER_PORTFOLIO_PERCENT, MAX_ESTIMATED_SLIPPAGE)


class RiskGate:
    """Evaluates candidate orders against a wallet's risk limits.

    Checks run in a fixed order and the first failure decides the result.
    Concentration never rejects; it only adds a warning.
    """

    def __init__(self, store: RiskLimitsStore, pricer: Optional[ApproximatePricer] = None) -> None:
        self._store = store
        self._pricer = pricer or ApproximatePricer()
        self._logger = get_logger(__name__)

    def check(self, order: StrategyOrder, portfolio: PortfolioSnapshot, wallet_address: str) -> RiskCheckResult:
        result = self._evaluate(order, portfolio, wallet_address)
        if result.allowed:
            METRICS.increment("risk_approved", 1)
        else:
            METRICS.increment("risk_rejections", 1)
            self._logger.info("Risk gate rejected %s order for %s: %s", order.strategy, order.token, result.reason)
            EVENT_BUS.publish(
                EventType.REJECT,
                {
                    "stage": "risk",
                    "wallet": wallet_address,
                    "strategy": order.strategy,
                    "token": order.token,
                    "reason": result.reason,
                },
                severity=EventSeverity.INFO,
            )
        return result

    def _evaluate(self, order: StrategyOrder, portfolio: PortfolioSnapshot, wallet_address: str) -> RiskCheckResult:
        limits = self._store.get_risk_limits(wallet_address)
        warnings: List[str] = []
        input_token = order.input_token.upper()
        output_token = order.output_token.upper()

        if not limits.enable_autopilot:
            return RiskCheckResult(
                allowed=False,
                reason="Autopilot is disabled. Enable it in settings to execute autonomous trades.",
                warnings=warnings,
            )

        whitelist = {token.upper() for token in limits.whitelist_tokens}
        if whitelist and (input_token not in whitelist or output_token not in whitelist):
            return RiskCheckResult(
                allowed=False,
                reason=f"Token not in whitelist. Add {order.input_token} and {order.output_token} to your whitelist.",
                warnings=warnings,
            )

        blacklist = {token.upper() for token in limits.blacklist_tokens}
        if input_token in blacklist or output_token in blacklist:
            return RiskCheckResult(
                allowed=False,
                reason="Token is blacklisted. Remove from blacklist to trade.",
                warnings=warnings,
            )

        order_value = self._pricer.value_usd(order.input_token, order.input_amount)
        if order_value > limits.max_order_size_usd:
            return RiskCheckResult(
                allowed=False,
                reason=f"Order size exceeds maximum of ${limits.max_order_size_usd:g}",
                warnings=warnings,
            )

        daily_loss = self._store.get_daily_loss(wallet_address)
        if daily_loss >= limits.max_daily_loss_usd:
            return RiskCheckResult(
                allowed=False,
                reason=f"Daily loss limit of ${limits.max_daily_loss_usd:g} has been reached. Try again tomorrow.",
                warnings=warnings,
            )
        if daily_loss > limits.max_daily_loss_usd * DAILY_LOSS_WARNING_RATIO:
            warnings.append(f"Daily loss at {daily_loss / limits.max_daily_loss_usd * 100:.0f}% of limit")

        holding = portfolio.holding(order.input_token)
        if holding is not None and portfolio.total_value_usd > 0:
            concentration = holding.value_usd / portfolio.total_value_usd * 100
            if concentration > limits.max_portfolio_concentration:
                warnings.append(
                    f"High concentration in {order.input_token} ({concentration:.1f}%). Consider diversifying."
                )

        available = holding.balance if holding is not None else 0.0
        if available < order.input_amount:
            return RiskCheckResult(
                allowed=False,
                reason=f"Insufficient balance. Need {order.input_amount:g} {order.input_token}, have {available:g}",
                warnings=warnings,
            )

        slippage = estimate_slippage(order_value, portfolio.total_value_usd)
        if slippage > limits.max_slippage_percent:
            return RiskCheckResult(
                allowed=False,
                reason=(
                    f"Estimated slippage {slippage:.2f}% exceeds maximum of {limits.max_slippage_percent:g}%"
                ),
                warnings=warnings,
            )

        return RiskCheckResult(allowed=True, warnings=warnings)


__all__ = ["RiskGate", "estimate_slippage"]
