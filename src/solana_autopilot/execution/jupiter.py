"""Jupiter Ultra, Trigger and Recurring API client."""

from __future__ import annotations

import math
from typing import Any, Dict, Optional

import requests
from tenacity import Retrying

from ..config.settings import GatewayConfig, get_app_config
from ..errors import ExecutionFailure, TokenNotFoundError, UpstreamError
from ..ingestion.base import TokenRegistry
from ..ingestion.token_registry import JupiterTokenRegistry, jupiter_headers
from ..monitoring.logger import get_logger
from ..utils.retry import build_retrying
from .base import (
    DcaOrderRequest,
    LimitOrderRequest,
    OrderSubmission,
    SwapPreparation,
    SwapRequest,
)


class _TransportError(Exception):
    """Connection-level failure worth retrying."""


class JupiterOrderClient:
    """Prepares unsigned swap, limit and DCA transactions. Never signs or submits."""

    def __init__(
        self,
        registry: Optional[TokenRegistry] = None,
        config: Optional[GatewayConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or get_app_config().gateways
        self._session = session or requests.Session()
        self._registry = registry or JupiterTokenRegistry(self._config, session=self._session)
        self._logger = get_logger(__name__)
        self._retrying: Retrying = build_retrying(self._config.max_retry_attempts, _TransportError)

    def prepare_swap(self, request: SwapRequest) -> SwapPreparation:
        if request.amount <= 0:
            raise ExecutionFailure("Amount must be greater than 0")
        input_token = self._registry.find_token_by_symbol(request.input_token)
        if input_token is None:
            raise TokenNotFoundError(request.input_token)
        output_token = self._registry.find_token_by_symbol(request.output_token)
        if output_token is None:
            raise TokenNotFoundError(request.output_token)
        if input_token.address == output_token.address:
            raise ExecutionFailure("Cannot swap a token for itself")
        amount = math.floor(request.amount * 10 ** input_token.decimals)
        if amount <= 0:
            raise ExecutionFailure("Amount is too small for this token's decimal precision")

        payload = self._request(
            "GET",
            f"{str(self._config.jupiter_ultra_url).rstrip('/')}/order",
            params={
                "inputMint": input_token.address,
                "outputMint": output_token.address,
                "amount": str(amount),
                "slippageBps": str(self._config.swap_slippage_bps),
                "taker": request.wallet_address,
            },
        )
        error = payload.get("errorMessage") or payload.get("error")
        if error:
            raise ExecutionFailure(str(error))
        transaction = payload.get("transaction")
        if not transaction:
            raise ExecutionFailure("No valid swap route found for this token pair")
        try:
            out_amount = int(payload.get("outAmount", 0))
        except (TypeError, ValueError) as exc:
            raise UpstreamError(f"Malformed outAmount in order response: {payload.get('outAmount')!r}") from exc
        return SwapPreparation(
            transaction=str(transaction),
            estimated_output=out_amount / 10 ** output_token.decimals,
            price_impact=str(payload["priceImpactPct"]) if payload.get("priceImpactPct") is not None else None,
            request_id=payload.get("requestId"),
        )

    def create_limit_order(self, request: LimitOrderRequest) -> OrderSubmission:
        payload = self._request(
            "POST",
            f"{str(self._config.jupiter_trigger_url).rstrip('/')}/createOrder",
            json={
                "inputMint": request.input_mint,
                "outputMint": request.output_mint,
                "maker": request.maker,
                "payer": request.payer,
                "params": {
                    "makingAmount": str(request.making_amount),
                    "takingAmount": str(request.taking_amount),
                    "expiredAt": str(request.expired_at),
                },
                "computeUnitPrice": "auto",
            },
        )
        return self._submission(payload, "Limit order creation failed", order_key="order")

    def create_dca_order(self, request: DcaOrderRequest) -> OrderSubmission:
        payload = self._request(
            "POST",
            f"{str(self._config.jupiter_recurring_url).rstrip('/')}/createOrder",
            json={
                "user": request.user,
                "inputMint": request.input_mint,
                "outputMint": request.output_mint,
                "params": {
                    "time": {
                        "inAmount": request.in_amount,
                        "numberOfOrders": request.number_of_orders,
                        "interval": request.interval_seconds,
                        "minPrice": None,
                        "maxPrice": None,
                        "startAt": None,
                    }
                },
            },
        )
        return self._submission(payload, "DCA creation failed", order_key="requestId")

    def _submission(self, payload: Dict[str, Any], failure: str, *, order_key: str) -> OrderSubmission:
        error = payload.get("error") or payload.get("errorMessage")
        if error:
            raise ExecutionFailure(f"{failure}: {error}")
        transaction = payload.get("transaction") or payload.get("tx")
        if not transaction:
            raise ExecutionFailure(f"{failure}: response did not include a transaction")
        order_id = payload.get(order_key) or payload.get("requestId")
        return OrderSubmission(transaction=str(transaction), order_id=str(order_id) if order_id else None)

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._retrying(self._send, method, url, **kwargs)
        except _TransportError as exc:
            self._logger.warning("Jupiter request to %s failed: %s", url, exc)
            raise UpstreamError(str(exc), source="jupiter") from exc
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if response.status_code >= 400:
            message = None
            if isinstance(payload, dict):
                message = payload.get("error") or payload.get("errorMessage") or payload.get("message")
            raise ExecutionFailure(message or f"HTTP {response.status_code}: {response.text[:200]}")
        if not isinstance(payload, dict):
            raise UpstreamError(f"Unexpected response from {url}", source="jupiter")
        return payload

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        headers = jupiter_headers(self._config)
        if method == "POST":
            headers["Content-Type"] = "application/json"
        try:
            return self._session.request(
                method,
                url,
                headers=headers,
                timeout=self._config.http_timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise _TransportError(str(exc)) from exc


__all__ = ["JupiterOrderClient"]
