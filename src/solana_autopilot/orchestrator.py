"""Top-level autopilot service: monitor, evaluate, gate and execute for one wallet."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests

from .analysis.monitor import PortfolioMonitor
from .config.settings import AppConfig, RiskLimits, StrategyConfig, get_app_config
from .datalake.schemas import (
    ExecutedOrder,
    ExecutionStatus,
    MonitorSnapshot,
    PortfolioSnapshot,
    RiskCheckResult,
    RunReport,
    SkippedItem,
    StrategyOrder,
)
from .datalake.state import AutopilotState
from .errors import OrderValidationError
from .execution.base import OrderGateway
from .execution.executor import AutopilotExecutor
from .execution.jupiter import JupiterOrderClient
from .ingestion.base import PortfolioGateway, PriceGateway, TokenRegistry
from .ingestion.portfolio import SolanaPortfolioClient
from .ingestion.pricing import ApproximatePricer, JupiterPriceClient
from .ingestion.token_registry import JupiterTokenRegistry
from .monitoring.event_bus import EVENT_BUS, EventSeverity, EventType
from .monitoring.logger import correlation_scope, get_logger, new_correlation_id
from .strategy.manager import StrategyEvaluator, validate_order
from .strategy.risk import RiskGate


@dataclass(slots=True)
class ManualExecution:
    """Outcome of a single externally supplied order."""

    risk: RiskCheckResult
    executed: Optional[ExecutedOrder] = None


class AutopilotService:
    """Owns the autopilot state and sequences one run per call."""

    def __init__(
        self,
        portfolio_gateway: PortfolioGateway,
        price_gateway: PriceGateway,
        order_gateway: OrderGateway,
        registry: TokenRegistry,
        *,
        config: Optional[AppConfig] = None,
        state: Optional[AutopilotState] = None,
        evaluator: Optional[StrategyEvaluator] = None,
        pricer: Optional[ApproximatePricer] = None,
    ) -> None:
        self._config = config or get_app_config()
        self.state = state or AutopilotState(
            risk_defaults=self._config.risk,
            price_history_size=self._config.monitor.price_history_size,
            log_capacity=self._config.execution.log_capacity,
            loss_window=timedelta(hours=self._config.execution.daily_loss_window_hours),
        )
        pricer = pricer or ApproximatePricer()
        self._portfolio_gateway = portfolio_gateway
        self.monitor_engine = PortfolioMonitor(
            portfolio_gateway,
            price_gateway,
            state=self.state,
            config=self._config.monitor,
        )
        self.evaluator = evaluator or StrategyEvaluator()
        self.risk_gate = RiskGate(self.state.risk, pricer)
        self.executor = AutopilotExecutor(
            order_gateway,
            registry,
            log=self.state.execution_log,
            risk_store=self.state.risk,
            config=self._config.execution,
            pricer=pricer,
        )
        self._logger = get_logger(__name__)

    @property
    def strategies(self) -> List[StrategyConfig]:
        return list(self._config.strategies)

    def run(
        self,
        wallet_address: str,
        strategies: Optional[Sequence[StrategyConfig]] = None,
    ) -> RunReport:
        """Run one full cycle. ``UpstreamError`` from the monitor propagates."""

        with correlation_scope(new_correlation_id()) as correlation_id, self.state.locks.get(wallet_address):
            snapshot = self._monitor(wallet_address, correlation_id)
            configs = list(strategies) if strategies is not None else self.strategies
            orders = self.evaluator.evaluate(snapshot, configs)
            for order in orders:
                EVENT_BUS.publish(
                    EventType.OPPORTUNITY,
                    {
                        "wallet": wallet_address,
                        "strategy": order.strategy,
                        "token": order.token,
                        "action": order.action.value,
                        "confidence": order.confidence,
                    },
                    correlation_id=correlation_id,
                )

            executed: List[ExecutedOrder] = []
            skipped: List[SkippedItem] = []
            for order in orders:
                key = f"{order.strategy}:{order.token}"
                try:
                    validate_order(order, snapshot.portfolio, min_amount=self._config.execution.min_order_amount)
                except OrderValidationError as exc:
                    self._logger.info("Dropping invalid order %s: %s", key, exc)
                    EVENT_BUS.publish(
                        EventType.REJECT,
                        {"stage": "validation", "wallet": wallet_address, "strategy": order.strategy, "reason": str(exc)},
                        correlation_id=correlation_id,
                    )
                    skipped.append(SkippedItem(key=key, reason=str(exc)))
                    continue
                verdict = self.risk_gate.check(order, snapshot.portfolio, wallet_address)
                if not verdict.allowed:
                    skipped.append(SkippedItem(key=key, reason=verdict.reason or "Rejected by risk gate"))
                    continue
                for warning in verdict.warnings:
                    self._logger.warning("Risk warning for %s: %s", key, warning)
                executed.append(self.executor.execute(order, wallet_address, snapshot.portfolio))

            message = self._summarize(snapshot, orders, executed, skipped)
            self._logger.info(message)
            return RunReport(
                wallet_address=wallet_address,
                snapshot=snapshot,
                opportunities=orders,
                executed=executed,
                skipped=skipped,
                message=message,
            )

    def monitor(self, wallet_address: str) -> MonitorSnapshot:
        with correlation_scope(new_correlation_id("monitor")) as correlation_id, self.state.locks.get(wallet_address):
            return self._monitor(wallet_address, correlation_id)

    def latest_snapshot(self, wallet_address: str) -> Optional[MonitorSnapshot]:
        return self.state.snapshots.get(wallet_address)

    def execute_order(
        self,
        order: StrategyOrder,
        wallet_address: str,
        portfolio: Optional[PortfolioSnapshot] = None,
    ) -> ManualExecution:
        """Gate and execute one externally supplied order against a fresh or given portfolio."""

        with self.state.locks.get(wallet_address):
            if portfolio is None:
                portfolio = self._portfolio_gateway.get_portfolio(wallet_address)
            verdict = self.risk_gate.check(order, portfolio, wallet_address)
            if not verdict.allowed:
                return ManualExecution(risk=verdict)
            return ManualExecution(risk=verdict, executed=self.executor.execute(order, wallet_address, portfolio))

    def enable(self, wallet_address: str) -> RiskLimits:
        return self.update_risk_limits(wallet_address, {"enable_autopilot": True})

    def disable(self, wallet_address: str) -> RiskLimits:
        return self.update_risk_limits(wallet_address, {"enable_autopilot": False})

    def get_risk_limits(self, wallet_address: str) -> RiskLimits:
        return self.state.risk.get_risk_limits(wallet_address)

    def update_risk_limits(self, wallet_address: str, changes: Mapping[str, Any]) -> RiskLimits:
        with self.state.locks.get(wallet_address):
            limits = self.state.risk.set_risk_limits(wallet_address, changes)
        self._logger.info("Updated risk limits for %s: %s", wallet_address, sorted(changes))
        return limits

    def validate_risk_limits(self, changes: Mapping[str, Any]) -> List[str]:
        return self.state.risk.validate_limits(changes)

    def daily_loss(self, wallet_address: str) -> float:
        return self.state.risk.get_daily_loss(wallet_address)

    def reset_daily_loss(self, wallet_address: str) -> None:
        with self.state.locks.get(wallet_address):
            self.state.risk.reset_daily_loss(wallet_address)

    def execution_log(self, strategy: Optional[str] = None, limit: int = 50) -> List[ExecutedOrder]:
        return self.state.execution_log.entries(strategy, limit)

    def execution_stats(self) -> Dict[str, Any]:
        return self.state.execution_log.stats()

    def _monitor(self, wallet_address: str, correlation_id: str) -> MonitorSnapshot:
        snapshot = self.monitor_engine.monitor(wallet_address)
        EVENT_BUS.publish(
            EventType.MONITOR,
            {
                "wallet": wallet_address,
                "total_value_usd": snapshot.portfolio.total_value_usd,
                "price_changes": len(snapshot.price_changes),
                "opportunities": len(snapshot.opportunities),
                "skipped": len(snapshot.skipped),
            },
            severity=EventSeverity.WARNING if snapshot.skipped else EventSeverity.INFO,
            correlation_id=correlation_id,
        )
        return snapshot

    def _summarize(
        self,
        snapshot: MonitorSnapshot,
        orders: List[StrategyOrder],
        executed: List[ExecutedOrder],
        skipped: List[SkippedItem],
    ) -> str:
        if not orders:
            return f"No actionable orders from {len(snapshot.opportunities)} opportunities"
        succeeded = sum(1 for item in executed if item.status == ExecutionStatus.SUCCESS)
        return (
            f"Evaluated {len(orders)} orders: {succeeded} executed, "
            f"{len(executed) - succeeded} failed, {len(skipped)} skipped"
        )


def build_service(config: Optional[AppConfig] = None) -> AutopilotService:
    """Wire the HTTP gateway adapters into an ``AutopilotService``."""

    app_config = config or get_app_config()
    session = requests.Session()
    registry = JupiterTokenRegistry(app_config.gateways, session=session)
    prices = JupiterPriceClient(registry, app_config.gateways, session=session)
    portfolio = SolanaPortfolioClient(registry, prices, app_config.rpc)
    orders = JupiterOrderClient(registry, app_config.gateways, session=session)
    return AutopilotService(portfolio, prices, orders, registry, config=app_config)


__all__ = ["AutopilotService", "ManualExecution", "build_service"]
