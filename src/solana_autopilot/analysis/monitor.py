"""Portfolio monitor turning price moves into trading opportunities."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..config.settings import MonitorConfig, get_app_config
from ..datalake.schemas import (
    MonitorSnapshot,
    Opportunity,
    OpportunityType,
    PortfolioChange,
    PortfolioSnapshot,
    PriceChange,
    PriceObservation,
    SkippedItem,
)
from ..datalake.state import AutopilotState
from ..errors import UpstreamError
from ..ingestion.base import PortfolioGateway, PriceGateway
from ..monitoring.logger import get_logger
from ..utils.constants import utc_now


class PortfolioMonitor:
    """Fetches a wallet's portfolio and prices and derives opportunities.

    Price history is shared across wallets because prices are global; the
    snapshot map is per wallet and overwritten on every cycle.
    """

    def __init__(
        self,
        portfolio_gateway: PortfolioGateway,
        price_gateway: PriceGateway,
        *,
        state: AutopilotState,
        config: Optional[MonitorConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._portfolio_gateway = portfolio_gateway
        self._price_gateway = price_gateway
        self._state = state
        self._config = config or get_app_config().monitor
        self._clock = clock
        self._logger = get_logger(__name__)

    def monitor(self, wallet_address: str) -> MonitorSnapshot:
        """Run one monitoring cycle. Raises ``UpstreamError`` if the portfolio is unavailable."""

        portfolio = self._portfolio_gateway.get_portfolio(wallet_address)
        previous = self._state.snapshots.get(wallet_address)
        now = self._clock()

        price_changes: List[PriceChange] = []
        trends: Dict[str, float] = {}
        prices: Dict[str, float] = {}
        skipped: List[SkippedItem] = []
        for symbol in self._symbols(portfolio):
            try:
                current = float(self._price_gateway.get_price(symbol))
            except UpstreamError as exc:
                self._logger.warning("Skipping price for %s: %s", symbol, exc)
                skipped.append(SkippedItem(key=symbol, reason=str(exc)))
                continue
            except Exception as exc:  # noqa: BLE001 - one unpriced token never aborts the cycle
                self._logger.exception("Unexpected price failure for %s", symbol)
                skipped.append(SkippedItem(key=symbol, reason=f"Price lookup failed: {exc}"))
                continue
            if current <= 0:
                skipped.append(SkippedItem(key=symbol, reason=f"Non-positive price {current}"))
                continue
            prices[symbol] = current
            # Trend is measured over history before this observation is added.
            trends[symbol] = self._state.price_history.average_change(symbol)
            last = self._state.price_history.last(symbol)
            previous_price = last.price_usd if last else current
            self._state.price_history.record(PriceObservation(symbol, current, now))
            change_percent = (current - previous_price) / previous_price * 100
            if abs(change_percent) >= self._config.materiality_threshold_pct:
                price_changes.append(
                    PriceChange(
                        symbol=symbol,
                        current_price=current,
                        previous_price=previous_price,
                        change_percent=change_percent,
                        timestamp=now,
                    )
                )

        opportunities = self._price_opportunities(price_changes, trends, now)
        rebalance = self._concentration_opportunity(portfolio, prices.get("SOL"), now)
        if rebalance is not None:
            opportunities.append(rebalance)

        snapshot = MonitorSnapshot(
            wallet_address=wallet_address,
            timestamp=now,
            portfolio=portfolio,
            price_changes=price_changes,
            opportunities=opportunities,
            portfolio_change=self._portfolio_change(previous, portfolio),
            skipped=skipped,
        )
        self._state.snapshots.put(snapshot)
        self._logger.info(
            "Monitored %s: %d price changes, %d opportunities",
            wallet_address,
            len(price_changes),
            len(opportunities),
        )
        return snapshot

    def clear_history(self, wallet_address: Optional[str] = None) -> None:
        """Forget one wallet's snapshot, or every snapshot and all price history."""

        if wallet_address:
            self._state.snapshots.clear(wallet_address)
            return
        self._state.snapshots.clear()
        self._state.price_history.clear()

    def _symbols(self, portfolio: PortfolioSnapshot) -> List[str]:
        ordered = ["SOL", *(token.symbol for token in portfolio.tokens)]
        return list(dict.fromkeys(symbol.upper() for symbol in ordered if symbol))

    def _price_opportunities(
        self,
        changes: List[PriceChange],
        trends: Dict[str, float],
        now: datetime,
    ) -> List[Opportunity]:
        cfg = self._config
        opportunities: List[Opportunity] = []
        for change in changes:
            pct = change.change_percent
            if pct < -cfg.dip_threshold_pct and trends.get(change.symbol, 0.0) < -cfg.dip_trend_threshold_pct:
                opportunities.append(
                    Opportunity(
                        kind=OpportunityType.BUY_DIP,
                        token=change.symbol,
                        reason=f"Price dropped {abs(pct):.2f}% - potential buying opportunity",
                        current_price=change.current_price,
                        confidence=min(1.0, abs(pct) / cfg.dip_confidence_scale),
                        timestamp=now,
                        suggested_action=f"Consider buying {change.symbol} using DCA or limit orders",
                    )
                )
            if pct > cfg.take_profit_threshold_pct:
                opportunities.append(
                    Opportunity(
                        kind=OpportunityType.TAKE_PROFIT,
                        token=change.symbol,
                        reason=f"Price surged {pct:.2f}% - consider taking profits",
                        current_price=change.current_price,
                        confidence=min(1.0, pct / cfg.take_profit_confidence_scale),
                        timestamp=now,
                        suggested_action=f"Consider creating limit sell order for {change.symbol}",
                        target_price=change.current_price * cfg.take_profit_target_ratio,
                    )
                )
        return opportunities

    def _concentration_opportunity(
        self,
        portfolio: PortfolioSnapshot,
        sol_price: Optional[float],
        now: datetime,
    ) -> Optional[Opportunity]:
        cfg = self._config
        if portfolio.total_value_usd <= 0:
            return None
        price = sol_price if sol_price is not None else (portfolio.sol_price_usd or 0.0)
        sol_pct = portfolio.sol_balance * price / portfolio.total_value_usd * 100
        if sol_pct <= cfg.concentration_threshold_pct:
            return None
        baseline = cfg.concentration_baseline_pct
        return Opportunity(
            kind=OpportunityType.REBALANCE,
            token="SOL",
            reason=f"SOL concentration at {sol_pct:.1f}% - portfolio is heavily weighted",
            current_price=price,
            confidence=max(0.0, min(1.0, (sol_pct - baseline) / (100 - baseline))),
            timestamp=now,
            suggested_action="Swap some SOL for stablecoins or diversified tokens",
        )

    def _portfolio_change(
        self,
        previous: Optional[MonitorSnapshot],
        current: PortfolioSnapshot,
    ) -> PortfolioChange:
        if previous is None:
            return PortfolioChange()
        dollar_change = current.total_value_usd - previous.portfolio.total_value_usd
        previous_total = previous.portfolio.total_value_usd
        percent_change = dollar_change / previous_total * 100 if previous_total else 0.0
        return PortfolioChange(percent_change=percent_change, dollar_change=dollar_change)


__all__ = ["PortfolioMonitor"]
