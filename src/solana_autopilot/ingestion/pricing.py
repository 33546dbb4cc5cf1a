"""Token price lookups: live Jupiter prices and a static approximate table."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional

import requests
from cachetools import TTLCache
from tenacity import Retrying

from ..config.settings import GatewayConfig, get_app_config
from ..errors import UpstreamError
from ..monitoring.logger import get_logger
from ..utils.constants import STABLECOIN_SYMBOLS, USDC_MINT, USDT_MINT
from ..utils.retry import build_retrying
from .base import TokenRegistry
from .token_registry import JupiterTokenRegistry, jupiter_headers

STABLECOIN_MINTS = frozenset({USDC_MINT, USDT_MINT})

# Rough USD prices used for order sizing in the risk gate. Not a live quote.
STATIC_PRICE_TABLE: Dict[str, float] = {
    "SOL": 100.0,
    "USDC": 1.0,
    "USDT": 1.0,
    "BONK": 0.00003,
    "JUP": 0.5,
}
UNKNOWN_TOKEN_PRICE = 0.01


class ApproximatePricer:
    """Static symbol price table; unknown symbols fall back to a placeholder price."""

    def __init__(
        self,
        table: Optional[Mapping[str, float]] = None,
        *,
        default_price: float = UNKNOWN_TOKEN_PRICE,
    ) -> None:
        source = STATIC_PRICE_TABLE if table is None else table
        self._table = {symbol.upper(): float(price) for symbol, price in source.items()}
        self._default = default_price

    def price(self, symbol: str) -> float:
        return self._table.get(symbol.upper(), self._default)

    def value_usd(self, symbol: str, amount: float) -> float:
        return amount * self.price(symbol)


class JupiterPriceClient:
    """Live USD prices from the Jupiter Price API keyed by mint."""

    def __init__(
        self,
        registry: Optional[TokenRegistry] = None,
        config: Optional[GatewayConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or get_app_config().gateways
        self._session = session or requests.Session()
        self._registry = registry or JupiterTokenRegistry(self._config, session=self._session)
        self._cache: TTLCache[str, float] = TTLCache(maxsize=512, ttl=self._config.cache_ttl_seconds)
        self._logger = get_logger(__name__)
        self._retrying: Retrying = build_retrying(self._config.max_retry_attempts, requests.RequestException)

    def get_price(self, symbol: str) -> float:
        if symbol.upper() in STABLECOIN_SYMBOLS:
            return 1.0
        token = self._registry.find_token_by_symbol(symbol)
        if token is None:
            raise UpstreamError(f"Token not found: {symbol}", source="jupiter-price")
        prices = self.get_prices_by_mint([token.address])
        price = prices.get(token.address)
        if price is None:
            raise UpstreamError(f"No price available for {symbol}", source="jupiter-price")
        return price

    def get_prices_by_mint(self, mints: Iterable[str]) -> Dict[str, float]:
        """Return prices for the mints Jupiter knows about; unknown mints are omitted."""

        results: Dict[str, float] = {}
        missing = []
        for mint in dict.fromkeys(mints):
            if mint in STABLECOIN_MINTS:
                results[mint] = 1.0
            elif mint in self._cache:
                results[mint] = self._cache[mint]
            else:
                missing.append(mint)
        if not missing:
            return results
        try:
            payload = self._retrying(self._fetch, missing)
        except (requests.RequestException, ValueError) as exc:
            self._logger.warning("Jupiter price request failed: %s", exc)
            raise UpstreamError(f"Price request failed: {exc}", source="jupiter-price") from exc
        for mint in missing:
            price = self._extract_price(payload.get(mint))
            if price is None:
                continue
            self._cache[mint] = price
            results[mint] = price
        return results

    def _fetch(self, mints: Iterable[str]) -> Dict[str, Any]:
        response = self._session.get(
            str(self._config.jupiter_price_url),
            params={"ids": ",".join(mints)},
            headers=jupiter_headers(self._config),
            timeout=self._config.http_timeout,
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("Unexpected price payload")
        # Price v2 nests entries under "data"; v3 returns them at the top level.
        data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        return data

    def _extract_price(self, entry: Any) -> Optional[float]:
        if not isinstance(entry, dict):
            return None
        raw = entry.get("usdPrice", entry.get("price"))
        try:
            price = float(raw)
        except (TypeError, ValueError):
            return None
        return price if price > 0 else None


__all__ = [
    "ApproximatePricer",
    "JupiterPriceClient",
    "STATIC_PRICE_TABLE",
    "UNKNOWN_TOKEN_PRICE",
]
