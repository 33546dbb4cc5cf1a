"""Wallet holdings read from Solana RPC and valued with Jupiter prices."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solana.rpc.types import TokenAccountOpts
from solders.pubkey import Pubkey
from tenacity import Retrying

from ..config.settings import RPCConfig, get_app_config
from ..datalake.schemas import PortfolioSnapshot, TokenHolding
from ..errors import UpstreamError
from ..monitoring.logger import get_logger
from ..utils.constants import LAMPORTS_PER_SOL, SOL_MINT, TOKEN_PROGRAM_ID, utc_now
from ..utils.retry import build_retrying
from .pricing import JupiterPriceClient
from .token_registry import JupiterTokenRegistry


class SolanaPortfolioClient:
    """Builds a ``PortfolioSnapshot`` from native and SPL token balances."""

    def __init__(
        self,
        registry: JupiterTokenRegistry,
        prices: JupiterPriceClient,
        config: Optional[RPCConfig] = None,
        client: Optional[Client] = None,
    ) -> None:
        self._config = config or get_app_config().rpc
        self._client = client or Client(str(self._config.primary_url), timeout=self._config.request_timeout)
        self._registry = registry
        self._prices = prices
        self._logger = get_logger(__name__)
        self._retrying: Retrying = build_retrying(self._config.max_retry_attempts, SolanaRpcException)

    def get_portfolio(self, wallet_address: str) -> PortfolioSnapshot:
        try:
            owner = Pubkey.from_string(wallet_address)
        except ValueError as exc:
            raise UpstreamError(f"Invalid wallet address: {wallet_address}", source="rpc") from exc
        try:
            lamports = self._retrying(self._get_balance, owner)
            accounts = self._retrying(self._get_token_accounts, owner)
            balances = self._parse_token_accounts(accounts)
        except (SolanaRpcException, RPCException, AttributeError, TypeError, ValueError) as exc:
            self._logger.warning("RPC portfolio fetch failed for %s: %s", wallet_address, exc)
            raise UpstreamError(f"Portfolio fetch failed: {exc}", source="rpc") from exc

        sol_balance = lamports / LAMPORTS_PER_SOL
        prices = self._price_mints([SOL_MINT, *balances.keys()])
        sol_price = prices.get(SOL_MINT)

        tokens: List[TokenHolding] = []
        for mint, (amount, decimals) in balances.items():
            info = self._resolve(mint)
            price = prices.get(mint, 0.0)
            tokens.append(
                TokenHolding(
                    symbol=info.symbol if info and info.symbol else mint,
                    balance=amount,
                    decimals=info.decimals if info else decimals,
                    value_usd=amount * price,
                    price_usd=price,
                    mint=mint,
                )
            )
        total = sol_balance * (sol_price or 0.0) + sum(token.value_usd for token in tokens)
        return PortfolioSnapshot(
            wallet_address=wallet_address,
            sol_balance=sol_balance,
            total_value_usd=total,
            tokens=tokens,
            sol_price_usd=sol_price,
            timestamp=utc_now(),
        )

    def _get_balance(self, owner: Pubkey) -> int:
        response = self._client.get_balance(owner, commitment=Commitment(self._config.commitment))
        return int(response.value)

    def _get_token_accounts(self, owner: Pubkey) -> List[Any]:
        response = self._client.get_token_accounts_by_owner_json_parsed(
            owner,
            TokenAccountOpts(program_id=Pubkey.from_string(TOKEN_PROGRAM_ID)),
            commitment=Commitment(self._config.commitment),
        )
        return list(response.value)

    def _parse_token_accounts(self, accounts: List[Any]) -> Dict[str, tuple[float, int]]:
        balances: Dict[str, tuple[float, int]] = {}
        for account in accounts:
            parsed = getattr(account.account.data, "parsed", None)
            info = parsed.get("info", {}) if isinstance(parsed, dict) else {}
            mint = info.get("mint")
            amount = info.get("tokenAmount") or {}
            if not mint:
                continue
            decimals = int(amount.get("decimals", 0) or 0)
            ui_amount = amount.get("uiAmount")
            if ui_amount is None:
                raw = amount.get("amount") or 0
                ui_amount = int(raw) / (10 ** decimals)
            ui_amount = float(ui_amount)
            if ui_amount <= 0:
                continue
            previous, _ = balances.get(mint, (0.0, decimals))
            balances[mint] = (previous + ui_amount, decimals)
        return balances

    def _price_mints(self, mints: List[str]) -> Dict[str, float]:
        try:
            return self._prices.get_prices_by_mint(mints)
        except UpstreamError as exc:
            self._logger.warning("Portfolio valuation without prices: %s", exc)
            return {}

    def _resolve(self, mint: str):
        try:
            return self._registry.find_token_by_mint(mint)
        except UpstreamError as exc:
            self._logger.debug("Token metadata unavailable for %s: %s", mint, exc)
            return None


__all__ = ["SolanaPortfolioClient"]
