"""Gateway contracts consumed by the monitor and executor."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from ..datalake.schemas import PortfolioSnapshot


@dataclass(frozen=True, slots=True)
class TokenInfo:
    """Mint metadata resolved from a token symbol."""

    address: str
    symbol: str
    decimals: int
    name: str = ""


class PortfolioGateway(Protocol):
    def get_portfolio(self, wallet_address: str) -> PortfolioSnapshot:
        """Return the wallet's holdings; raise ``UpstreamError`` when unavailable."""


class PriceGateway(Protocol):
    def get_price(self, symbol: str) -> float:
        """Return the USD price for ``symbol``; raise ``UpstreamError`` when unavailable."""


class TokenRegistry(Protocol):
    def find_token_by_symbol(self, symbol: str) -> Optional[TokenInfo]:
        """Resolve a symbol to its mint, or ``None`` when unknown."""


__all__ = ["PortfolioGateway", "PriceGateway", "TokenInfo", "TokenRegistry"]
