"""HTTP API application factory."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..config.settings import ApiAuthMode, AppConfig, get_app_config
from ..datalake.schemas import OrderAction, StrategyOrder
from ..errors import UpstreamError
from ..monitoring.event_bus import EVENT_BUS, EventType
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..orchestrator import AutopilotService
from ..utils.wallet import normalize_wallet_address
from .utils import to_serializable

_logger = get_logger(__name__)


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WalletRequest(_Payload):
    wallet_address: Optional[str] = None


class OrderPayload(_Payload):
    strategy: str = "manual"
    token: str
    action: OrderAction
    input_token: str
    output_token: str
    input_amount: float = Field(gt=0)
    reason: str = "Manual order"
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    target_price: Optional[float] = Field(default=None, gt=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_order(self) -> StrategyOrder:
        return StrategyOrder(
            strategy=self.strategy,
            token=self.token.upper(),
            action=self.action,
            input_token=self.input_token.upper(),
            output_token=self.output_token.upper(),
            input_amount=self.input_amount,
            reason=self.reason,
            confidence=self.confidence,
            target_price=self.target_price,
            metadata=dict(self.metadata),
        )


class ExecuteRequest(WalletRequest):
    order: Optional[OrderPayload] = None


class RiskLimitsRequest(WalletRequest):
    limits: Optional[Dict[str, Any]] = None
    action: Optional[str] = None


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def _wallet_or_error(value: Optional[str]) -> str | JSONResponse:
    if not value:
        return _error(400, "Wallet address is required")
    try:
        return normalize_wallet_address(value)
    except ValueError as exc:
        return _error(400, str(exc))


def create_app(service: AutopilotService, config: Optional[AppConfig] = None) -> FastAPI:
    app_config = config or get_app_config()
    app = FastAPI(title="Solana Autopilot", version="1.0.0")
    cfg = app_config.api
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def require_auth(
        token_header: Optional[str] = Header(default=None, alias="X-Auth-Token"),
        token_query: Optional[str] = Query(default=None, alias="token"),
    ) -> Optional[str]:
        token = token_header or token_query or None
        expected = cfg.auth_token
        if expected:
            if token != expected:
                raise HTTPException(status_code=401, detail="Invalid token")
        elif cfg.auth_mode == ApiAuthMode.AUTHENTICATED and not token:
            raise HTTPException(status_code=401, detail="Authentication required")
        return token

    @app.exception_handler(UpstreamError)
    async def upstream_error(_: Request, exc: UpstreamError) -> JSONResponse:
        _logger.warning("Upstream %s failure: %s", exc.source, exc)
        return _error(502, str(exc), source=exc.source)

    @app.get("/health")
    def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics", response_class=PlainTextResponse)
    def prometheus_metrics() -> str:
        return METRICS.export_prometheus()

    @app.get("/api/autopilot/monitor")
    def monitor(
        wallet: Optional[str] = Query(default=None),
        _: Optional[str] = Depends(require_auth),
    ) -> Any:
        wallet_address = _wallet_or_error(wallet)
        if isinstance(wallet_address, JSONResponse):
            return wallet_address
        return to_serializable(service.monitor(wallet_address))

    @app.post("/api/autopilot/run")
    def run(body: WalletRequest, _: Optional[str] = Depends(require_auth)) -> Any:
        wallet_address = _wallet_or_error(body.wallet_address)
        if isinstance(wallet_address, JSONResponse):
            return wallet_address
        report = service.run(wallet_address)
        return {"success": True, **to_serializable(report)}

    @app.post("/api/autopilot/execute")
    def execute(body: ExecuteRequest, _: Optional[str] = Depends(require_auth)) -> Any:
        if body.order is None or not body.wallet_address:
            return _error(400, "Order and wallet address required")
        wallet_address = _wallet_or_error(body.wallet_address)
        if isinstance(wallet_address, JSONResponse):
            return wallet_address
        outcome = service.execute_order(body.order.to_order(), wallet_address)
        if outcome.executed is None:
            return _error(403, outcome.risk.reason or "Rejected by risk gate", warnings=outcome.risk.warnings)
        return {**to_serializable(outcome.executed), "warnings": outcome.risk.warnings}

    @app.get("/api/autopilot/execute")
    def execution_log(
        action: Optional[str] = Query(default=None),
        strategy: Optional[str] = Query(default=None),
        limit: int = Query(50, ge=1, le=500),
        _: Optional[str] = Depends(require_auth),
    ) -> Any:
        if action == "stats":
            return service.execution_stats()
        return to_serializable(service.execution_log(strategy, limit))

    @app.get("/api/autopilot/risk-limits")
    def get_risk_limits(
        wallet: Optional[str] = Query(default=None),
        action: Optional[str] = Query(default=None),
        _: Optional[str] = Depends(require_auth),
    ) -> Any:
        wallet_address = _wallet_or_error(wallet)
        if isinstance(wallet_address, JSONResponse):
            return wallet_address
        if action == "daily-loss":
            return {"wallet_address": wallet_address, "daily_loss": service.daily_loss(wallet_address)}
        return to_serializable(service.get_risk_limits(wallet_address))

    @app.post("/api/autopilot/risk-limits")
    def update_risk_limits(body: RiskLimitsRequest, _: Optional[str] = Depends(require_auth)) -> Any:
        wallet_address = _wallet_or_error(body.wallet_address)
        if isinstance(wallet_address, JSONResponse):
            return wallet_address
        if body.action == "reset-daily-loss":
            service.reset_daily_loss(wallet_address)
            return {"success": True, "message": "Daily loss tracking reset"}
        if body.limits is None:
            return _error(400, "Invalid request")
        errors: List[str] = service.validate_risk_limits(body.limits)
        if errors:
            return _error(400, "Invalid limits", errors=errors)
        try:
            limits = service.update_risk_limits(wallet_address, body.limits)
        except ValidationError as exc:
            return _error(400, "Invalid limits", errors=[str(item.get("msg")) for item in exc.errors()])
        return to_serializable(limits)

    @app.post("/api/autopilot/enable")
    def enable(body: WalletRequest, _: Optional[str] = Depends(require_auth)) -> Any:
        wallet_address = _wallet_or_error(body.wallet_address)
        if isinstance(wallet_address, JSONResponse):
            return wallet_address
        limits = service.enable(wallet_address)
        return {
            "success": True,
            "message": "Autopilot enabled successfully",
            "wallet_address": wallet_address,
            "limits": to_serializable(limits),
        }

    @app.post("/api/autopilot/disable")
    def disable(body: WalletRequest, _: Optional[str] = Depends(require_auth)) -> Any:
        wallet_address = _wallet_or_error(body.wallet_address)
        if isinstance(wallet_address, JSONResponse):
            return wallet_address
        limits = service.disable(wallet_address)
        return {
            "success": True,
            "message": "Autopilot disabled successfully",
            "wallet_address": wallet_address,
            "limits": to_serializable(limits),
        }

    @app.get("/api/events")
    def events(
        limit: int = Query(200, ge=1, le=1000),
        event_type: Optional[EventType] = Query(default=None, alias="type"),
        _: Optional[str] = Depends(require_auth),
    ) -> List[Dict[str, Any]]:
        return [event.to_dict() for event in EVENT_BUS.history(limit, event_type)]

    return app


__all__ = ["create_app"]
