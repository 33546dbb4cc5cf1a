"""Symbol to mint resolution backed by the Jupiter token search API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests
from cachetools import TTLCache
from tenacity import Retrying

from ..config.settings import GatewayConfig, get_app_config
from ..errors import UpstreamError
from ..monitoring.logger import get_logger
from ..utils.constants import WELL_KNOWN_TOKENS
from ..utils.retry import build_retrying
from .base import TokenInfo

DEFAULT_HEADERS = {"User-Agent": "solana-autopilot/1.0", "Accept": "application/json"}


def jupiter_headers(config: GatewayConfig) -> Dict[str, str]:
    headers = dict(DEFAULT_HEADERS)
    if config.jupiter_api_key:
        headers["x-api-key"] = config.jupiter_api_key
    return headers


class JupiterTokenRegistry:
    """Resolves token symbols and mints, caching every answer including misses."""

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or get_app_config().gateways
        self._session = session or requests.Session()
        self._cache: TTLCache[str, Optional[TokenInfo]] = TTLCache(
            maxsize=1024, ttl=self._config.token_cache_ttl_seconds
        )
        self._logger = get_logger(__name__)
        self._retrying: Retrying = build_retrying(self._config.max_retry_attempts, requests.RequestException)
        self._well_known = {
            symbol: TokenInfo(address=mint, symbol=symbol, decimals=decimals, name=symbol)
            for symbol, (mint, decimals) in WELL_KNOWN_TOKENS.items()
        }

    def _search(self, query: str) -> List[Dict[str, Any]]:
        url = f"{str(self._config.jupiter_tokens_url).rstrip('/')}/search"
        response = self._session.get(
            url,
            params={"query": query},
            headers=jupiter_headers(self._config),
            timeout=self._config.http_timeout,
        )
        response.raise_for_status()
        payload = response.json()
        if isinstance(payload, dict):
            payload = payload.get("tokens") or payload.get("data") or []
        if not isinstance(payload, list):
            raise ValueError("Unexpected token search payload")
        return [item for item in payload if isinstance(item, dict)]

    def find_token_by_symbol(self, symbol: str) -> Optional[TokenInfo]:
        wanted = symbol.strip().upper()
        if not wanted:
            return None
        if wanted in self._well_known:
            return self._well_known[wanted]
        cache_key = f"symbol:{wanted}"
        if cache_key in self._cache:
            return self._cache[cache_key]
        candidates = self._lookup(wanted)
        matches = [item for item in candidates if str(item.get("symbol", "")).upper() == wanted]
        # Verified listings win over copycat tokens that reuse a popular ticker.
        matches.sort(key=lambda item: not bool(item.get("isVerified")))
        token = self._parse(matches[0]) if matches else None
        self._cache[cache_key] = token
        if token is not None:
            self._cache[f"mint:{token.address}"] = token
        return token

    def find_token_by_mint(self, mint: str) -> Optional[TokenInfo]:
        for token in self._well_known.values():
            if token.address == mint:
                return token
        cache_key = f"mint:{mint}"
        if cache_key in self._cache:
            return self._cache[cache_key]
        matches = [item for item in self._lookup(mint) if self._mint_of(item) == mint]
        token = self._parse(matches[0]) if matches else None
        self._cache[cache_key] = token
        return token

    def _lookup(self, query: str) -> List[Dict[str, Any]]:
        try:
            return self._retrying(self._search, query)
        except (requests.RequestException, ValueError) as exc:
            self._logger.warning("Token search failed for %s: %s", query, exc)
            raise UpstreamError(f"Token search failed for {query}: {exc}", source="jupiter-tokens") from exc

    def _mint_of(self, item: Dict[str, Any]) -> str:
        return str(item.get("id") or item.get("address") or item.get("mint") or "")

    def _parse(self, item: Dict[str, Any]) -> Optional[TokenInfo]:
        mint = self._mint_of(item)
        if not mint:
            return None
        try:
            decimals = int(item.get("decimals", 9))
        except (TypeError, ValueError):
            decimals = 9
        return TokenInfo(
            address=mint,
            symbol=str(item.get("symbol", "")),
            decimals=decimals,
            name=str(item.get("name", "")),
        )


__all__ = ["JupiterTokenRegistry", "jupiter_headers"]
