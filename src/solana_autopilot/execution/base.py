"""Order gateway contract and its request/response records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True, slots=True)
class SwapRequest:
    input_token: str
    output_token: str
    amount: float
    wallet_address: str


@dataclass(frozen=True, slots=True)
class SwapPreparation:
    """An unsigned swap transaction plus its quoted outcome."""

    transaction: str
    estimated_output: float
    price_impact: Optional[str] = None
    request_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class LimitOrderRequest:
    input_mint: str
    output_mint: str
    maker: str
    payer: str
    making_amount: int
    taking_amount: int
    expired_at: int


@dataclass(frozen=True, slots=True)
class DcaOrderRequest:
    input_mint: str
    output_mint: str
    user: str
    in_amount: int
    in_amount_per_cycle: int
    number_of_orders: int
    interval_seconds: int


@dataclass(frozen=True, slots=True)
class OrderSubmission:
    """Unsigned transaction returned when an order is created."""

    transaction: Optional[str] = None
    order_id: Optional[str] = None


class OrderGateway(Protocol):
    """Builds unsigned transactions; raises ``ExecutionFailure`` when an order is refused."""

    def prepare_swap(self, request: SwapRequest) -> SwapPreparation:
        ...

    def create_limit_order(self, request: LimitOrderRequest) -> OrderSubmission:
        ...

    def create_dca_order(self, request: DcaOrderRequest) -> OrderSubmission:
        ...


__all__ = [
    "DcaOrderRequest",
    "LimitOrderRequest",
    "OrderGateway",
    "OrderSubmission",
    "SwapPreparation",
    "SwapRequest",
]
