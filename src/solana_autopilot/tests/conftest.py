from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Union

import pytest
from solders.pubkey import Pubkey

from solana_autopilot.config.settings import AppConfig
from solana_autopilot.datalake.schemas import PortfolioSnapshot, TokenHolding
from solana_autopilot.errors import UpstreamError
from solana_autopilot.execution.base import (
    DcaOrderRequest,
    LimitOrderRequest,
    OrderSubmission,
    SwapPreparation,
    SwapRequest,
)
from solana_autopilot.ingestion.base import TokenInfo
from solana_autopilot.monitoring.event_bus import EVENT_BUS
from solana_autopilot.monitoring.metrics import METRICS
from solana_autopilot.utils.constants import SOL_MINT, USDC_MINT, USDT_MINT

JUP_MINT = "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN"
BONK_MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"


def make_portfolio(
    wallet_address: str,
    *,
    sol_balance: float = 0.0,
    sol_price: float = 100.0,
    tokens: Iterable[TokenHolding] = (),
) -> PortfolioSnapshot:
    holdings = list(tokens)
    total = sol_balance * sol_price + sum(token.value_usd for token in holdings)
    return PortfolioSnapshot(
        wallet_address=wallet_address,
        sol_balance=sol_balance,
        total_value_usd=total,
        tokens=holdings,
        sol_price_usd=sol_price,
    )


def usdc(balance: float) -> TokenHolding:
    return TokenHolding(symbol="USDC", balance=balance, decimals=6, value_usd=balance, price_usd=1.0, mint=USDC_MINT)


class FakePortfolioGateway:
    def __init__(self, portfolio: PortfolioSnapshot) -> None:
        self.portfolio = portfolio
        self.error: Optional[Exception] = None
        self.calls: List[str] = []

    def get_portfolio(self, wallet_address: str) -> PortfolioSnapshot:
        self.calls.append(wallet_address)
        if self.error is not None:
            raise self.error
        return replace(self.portfolio, wallet_address=wallet_address)


class FakePriceGateway:
    """Returns scripted prices per symbol; the last price repeats once the script runs out."""

    def __init__(self, prices: Dict[str, Union[float, Sequence[float]]]) -> None:
        self._scripts: Dict[str, List[float]] = {}
        for symbol, value in prices.items():
            values = [value] if isinstance(value, (int, float)) else list(value)
            self._scripts[symbol.upper()] = [float(item) for item in values]
        self.failing: set[str] = set()

    def get_price(self, symbol: str) -> float:
        key = symbol.upper()
        if key in self.failing or key not in self._scripts:
            raise UpstreamError(f"No price available for {symbol}", source="test")
        script = self._scripts[key]
        return script.pop(0) if len(script) > 1 else script[0]


class FakeRegistry:
    def __init__(self) -> None:
        self.tokens = {
            "SOL": TokenInfo(address=SOL_MINT, symbol="SOL", decimals=9),
            "USDC": TokenInfo(address=USDC_MINT, symbol="USDC", decimals=6),
            "USDT": TokenInfo(address=USDT_MINT, symbol="USDT", decimals=6),
            "JUP": TokenInfo(address=JUP_MINT, symbol="JUP", decimals=6),
            "BONK": TokenInfo(address=BONK_MINT, symbol="BONK", decimals=5),
        }

    def find_token_by_symbol(self, symbol: str) -> Optional[TokenInfo]:
        return self.tokens.get(symbol.upper())

    def find_token_by_mint(self, mint: str) -> Optional[TokenInfo]:
        for token in self.tokens.values():
            if token.address == mint:
                return token
        return None


class FakeOrderGateway:
    def __init__(self) -> None:
        self.swaps: List[SwapRequest] = []
        self.limits: List[LimitOrderRequest] = []
        self.dcas: List[DcaOrderRequest] = []
        self.error: Optional[Exception] = None

    def prepare_swap(self, request: SwapRequest) -> SwapPreparation:
        self.swaps.append(request)
        if self.error is not None:
            raise self.error
        return SwapPreparation(transaction="c3dhcA==", estimated_output=4.2, price_impact="0.01", request_id="req-1")

    def create_limit_order(self, request: LimitOrderRequest) -> OrderSubmission:
        self.limits.append(request)
        if self.error is not None:
            raise self.error
        return OrderSubmission(transaction="bGltaXQ=", order_id="limit-1")

    def create_dca_order(self, request: DcaOrderRequest) -> OrderSubmission:
        self.dcas.append(request)
        if self.error is not None:
            raise self.error
        return OrderSubmission(transaction="ZGNh", order_id="dca-1")


@pytest.fixture
def wallet() -> str:
    return str(Pubkey.new_unique())


@pytest.fixture
def app_config(monkeypatch: pytest.MonkeyPatch, tmp_path) -> AppConfig:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("APP_CONFIG_FILE", raising=False)
    monkeypatch.delenv("AUTOPILOT_PROFILE", raising=False)
    return AppConfig()


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def order_gateway() -> FakeOrderGateway:
    return FakeOrderGateway()


@pytest.fixture(autouse=True)
def _reset_observability():
    METRICS.reset()
    EVENT_BUS.reset()
    yield
    EVENT_BUS.reset()
    METRICS.reset()
