"""Data models shared by the monitor, strategies, risk gate, and executor."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..utils.constants import SOL_MINT, utc_now


class OpportunityType(str, Enum):
    """Signals the monitor can raise for a wallet."""

    BUY_DIP = "buy_dip"
    TAKE_PROFIT = "take_profit"
    REBALANCE = "rebalance"
    SENTIMENT = "sentiment"


class OrderAction(str, Enum):
    """How an order is dispatched to the order gateway."""

    BUY = "buy"
    SELL = "sell"
    DCA = "dca"
    LIMIT = "limit"


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(slots=True)
class TokenHolding:
    """A single SPL token balance held by a wallet."""

    symbol: str
    balance: float
    decimals: int = 9
    value_usd: float = 0.0
    price_usd: float = 0.0
    mint: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PortfolioSnapshot:
    """Point-in-time view of a wallet's holdings."""

    wallet_address: str
    sol_balance: float
    total_value_usd: float
    tokens: List[TokenHolding] = field(default_factory=list)
    sol_price_usd: Optional[float] = None
    timestamp: datetime = field(default_factory=utc_now)

    def holding(self, symbol: str) -> Optional[TokenHolding]:
        """Return the holding for ``symbol``; native SOL resolves from the SOL balance."""

        wanted = symbol.upper()
        for token in self.tokens:
            if token.symbol.upper() == wanted:
                return token
        if wanted == "SOL" and self.sol_balance > 0:
            price = self.sol_price_usd or 0.0
            return TokenHolding(
                symbol="SOL",
                balance=self.sol_balance,
                decimals=9,
                value_usd=self.sol_balance * price,
                price_usd=price,
                mint=SOL_MINT,
            )
        return None


@dataclass(frozen=True, slots=True)
class PriceObservation:
    symbol: str
    price_usd: float
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class PriceChange:
    """A material move between two consecutive price observations."""

    symbol: str
    current_price: float
    previous_price: float
    change_percent: float
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Opportunity:
    """A typed trading signal produced by the monitor."""

    kind: OpportunityType
    token: str
    reason: str
    current_price: float
    confidence: float
    timestamp: datetime
    suggested_action: str = ""
    target_price: Optional[float] = None


@dataclass(frozen=True, slots=True)
class PortfolioChange:
    percent_change: float = 0.0
    dollar_change: float = 0.0


@dataclass(frozen=True, slots=True)
class SkippedItem:
    """An item dropped from a batch together with the reason."""

    key: str
    reason: str


@dataclass(frozen=True, slots=True)
class MonitorSnapshot:
    """Everything one monitor cycle learned about a wallet."""

    wallet_address: str
    timestamp: datetime
    portfolio: PortfolioSnapshot
    price_changes: List[PriceChange] = field(default_factory=list)
    opportunities: List[Opportunity] = field(default_factory=list)
    portfolio_change: PortfolioChange = field(default_factory=PortfolioChange)
    skipped: List[SkippedItem] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class StrategyOrder:
    """Candidate order emitted by a strategy. Rejected orders are dropped, never edited."""

    strategy: str
    token: str
    action: OrderAction
    input_token: str
    output_token: str
    input_amount: float
    reason: str
    confidence: float
    target_price: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class RiskCheckResult:
    """Outcome of a pre-trade risk assessment."""

    allowed: bool
    reason: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


@dataclass(slots=True)
class DailyLossRecord:
    loss_usd: float
    reset_at: datetime


@dataclass(slots=True)
class ExecutedOrder:
    """Audit record for one dispatched order."""

    id: str
    timestamp: datetime
    strategy: str
    action: OrderAction
    input_token: str
    output_token: str
    input_amount: float
    status: ExecutionStatus = ExecutionStatus.PENDING
    estimated_output: Optional[float] = None
    transaction: Optional[str] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class RunReport:
    """Result of one monitor -> evaluate -> gate -> execute cycle."""

    wallet_address: str
    snapshot: MonitorSnapshot
    opportunities: List[StrategyOrder] = field(default_factory=list)
    executed: List[ExecutedOrder] = field(default_factory=list)
    skipped: List[SkippedItem] = field(default_factory=list)
    message: str = ""


__all__ = [
    "DailyLossRecord",
    "ExecutedOrder",
    "ExecutionStatus",
    "MonitorSnapshot",
    "Opportunity",
    "OpportunityType",
    "OrderAction",
    "PortfolioChange",
    "PortfolioSnapshot",
    "PriceChange",
    "PriceObservation",
    "RiskCheckResult",
    "RunReport",
    "SkippedItem",
    "StrategyOrder",
    "TokenHolding",
]
