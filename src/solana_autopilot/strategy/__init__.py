"""Strategy package exports."""

from .base import Strategy
from .buy_dip import BuyDipStrategy
from .manager import StrategyEvaluator, builtin_strategies, validate_order
from .rebalance import RebalanceStrategy
from .risk import RiskGate, estimate_slippage
from .sentiment import SentimentStrategy
from .take_profit import TakeProfitStrategy

__all__ = [
    "BuyDipStrategy",
    "RebalanceStrategy",
    "RiskGate",
    "SentimentStrategy",
    "Strategy",
    "StrategyEvaluator",
    "TakeProfitStrategy",
    "builtin_strategies",
    "estimate_slippage",
    "validate_order",
]
