"""Dispatches approved orders to the order gateway and records the outcome."""

from __future__ import annotations

import math
import time
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from ..config.settings import ExecutionConfig, get_app_config
from ..datalake.schemas import (
    ExecutedOrder,
    ExecutionStatus,
    OrderAction,
    PortfolioSnapshot,
    StrategyOrder,
)
from ..datalake.state import ExecutionLog, RiskLimitsStore
from ..errors import AutopilotError, ExecutionFailure, TokenNotFoundError
from ..ingestion.base import TokenInfo, TokenRegistry
from ..ingestion.pricing import ApproximatePricer
from ..monitoring.event_bus import EVENT_BUS, EventSeverity, EventType
from ..monitoring.logger import current_correlation_id, get_logger
from ..monitoring.metrics import METRICS
from ..utils.constants import utc_now
from .base import DcaOrderRequest, LimitOrderRequest, OrderGateway, SwapRequest


def new_order_id(now: datetime) -> str:
    return f"autopilot_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"


class AutopilotExecutor:
    """Turns a ``StrategyOrder`` into a gateway call according to its action.

    ``execute`` never raises. Failures are captured on the returned record,
    which is appended to the execution log either way, and the order's
    approximate USD value is charged to the wallet's daily loss budget.
    """

    def __init__(
        self,
        gateway: OrderGateway,
        registry: TokenRegistry,
        *,
        log: ExecutionLog,
        risk_store: RiskLimitsStore,
        config: Optional[ExecutionConfig] = None,
        pricer: Optional[ApproximatePricer] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._gateway = gateway
        self._registry = registry
        self._log = log
        self._risk_store = risk_store
        self._config = config or get_app_config().execution
        self._pricer = pricer or ApproximatePricer()
        self._clock = clock
        self._logger = get_logger(__name__)

    def execute(
        self,
        order: StrategyOrder,
        wallet_address: str,
        portfolio: Optional[PortfolioSnapshot] = None,
    ) -> ExecutedOrder:
        now = self._clock()
        record = ExecutedOrder(
            id=new_order_id(now),
            timestamp=now,
            strategy=order.strategy,
            action=order.action,
            input_token=order.input_token,
            output_token=order.output_token,
            input_amount=order.input_amount,
            metadata=dict(order.metadata),
        )
        self._logger.info(
            "Executing %s %s order %s: %s %s -> %s",
            order.strategy,
            order.action.value,
            record.id,
            order.input_amount,
            order.input_token,
            order.output_token,
        )
        started = time.perf_counter()
        try:
            if order.action in (OrderAction.BUY, OrderAction.SELL):
                self._execute_swap(order, wallet_address, record)
            elif order.action == OrderAction.LIMIT:
                self._execute_limit(order, wallet_address, record)
            elif order.action == OrderAction.DCA:
                self._execute_dca(order, wallet_address, record)
            else:
                raise ExecutionFailure(f"Unsupported order action: {order.action}")
            record.status = ExecutionStatus.SUCCESS
        except AutopilotError as exc:
            self._fail(record, wallet_address, str(exc))
        except Exception as exc:  # noqa: BLE001
            self._logger.exception("Unexpected failure executing %s", record.id)
            self._fail(record, wallet_address, str(exc) or exc.__class__.__name__)
        latency = time.perf_counter() - started

        self._log.append(record)
        METRICS.increment(f"orders_{record.status.value}", 1)
        EVENT_BUS.publish(
            EventType.EXECUTION,
            {
                "id": record.id,
                "wallet": wallet_address,
                "strategy": record.strategy,
                "action": record.action.value,
                "status": record.status.value,
                "error": record.error,
                "latency_seconds": latency,
                "message": record.error and f"Order {record.id} failed: {record.error}",
            },
            severity=EventSeverity.ERROR if record.status == ExecutionStatus.FAILED else EventSeverity.INFO,
            correlation_id=current_correlation_id(),
        )
        return record

    def _fail(self, record: ExecutedOrder, wallet_address: str, error: str) -> None:
        record.status = ExecutionStatus.FAILED
        record.error = error
        loss = self._pricer.value_usd(record.input_token, record.input_amount)
        total = self._risk_store.record_loss(wallet_address, loss)
        self._logger.warning(
            "Order %s failed: %s (charged $%.2f, daily loss $%.2f)", record.id, error, loss, total
        )

    def _execute_swap(self, order: StrategyOrder, wallet_address: str, record: ExecutedOrder) -> None:
        result = self._gateway.prepare_swap(
            SwapRequest(
                input_token=order.input_token,
                output_token=order.output_token,
                amount=order.input_amount,
                wallet_address=wallet_address,
            )
        )
        record.estimated_output = result.estimated_output
        record.transaction = result.transaction
        record.metadata["price_impact"] = result.price_impact
        record.metadata["request_id"] = result.request_id

    def _execute_limit(self, order: StrategyOrder, wallet_address: str, record: ExecutedOrder) -> None:
        if not order.target_price:
            raise ExecutionFailure("Target price required for limit orders")
        input_token, output_token = self._resolve_pair(order)
        expires = self._clock() + timedelta(days=self._config.limit_order_expiry_days)
        submission = self._gateway.create_limit_order(
            LimitOrderRequest(
                input_mint=input_token.address,
                output_mint=output_token.address,
                maker=wallet_address,
                payer=wallet_address,
                making_amount=math.floor(order.input_amount * 10 ** input_token.decimals),
                taking_amount=math.floor(order.input_amount * order.target_price * 10 ** output_token.decimals),
                expired_at=int(expires.timestamp()),
            )
        )
        record.transaction = submission.transaction
        record.metadata["order_id"] = submission.order_id

    def _execute_dca(self, order: StrategyOrder, wallet_address: str, record: ExecutedOrder) -> None:
        input_token, output_token = self._resolve_pair(order)
        cycles = self._config.dca_cycles
        total = math.floor(order.input_amount * 10 ** input_token.decimals)
        submission = self._gateway.create_dca_order(
            DcaOrderRequest(
                input_mint=input_token.address,
                output_mint=output_token.address,
                user=wallet_address,
                in_amount=total,
                in_amount_per_cycle=math.floor(order.input_amount * 10 ** input_token.decimals / cycles),
                number_of_orders=cycles,
                interval_seconds=self._config.dca_cycle_frequency_seconds,
            )
        )
        record.transaction = submission.transaction
        record.metadata["dca_id"] = submission.order_id

    def _resolve_pair(self, order: StrategyOrder) -> Tuple[TokenInfo, TokenInfo]:
        input_token = self._registry.find_token_by_symbol(order.input_token)
        if input_token is None:
            raise TokenNotFoundError(order.input_token)
        output_token = self._registry.find_token_by_symbol(order.output_token)
        if output_token is None:
            raise TokenNotFoundError(order.output_token)
        return input_token, output_token


__all__ = ["AutopilotExecutor", "new_order_id"]
