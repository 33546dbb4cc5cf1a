"""Configuration management for the autopilot engine."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union, cast

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_FILE = Path("config/app.toml")
CONFIG_FILE_ENV_VAR = "APP_CONFIG_FILE"
PROFILE_ENV_VAR = "AUTOPILOT_PROFILE"


class ApiAuthMode(str, Enum):
    """Authentication styles supported by the HTTP API."""

    OPEN = "open"
    AUTHENTICATED = "authenticated"


def _resolve_config_path() -> Path:
    env_value = os.getenv(CONFIG_FILE_ENV_VAR)
    if env_value:
        candidate = Path(env_value)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        return candidate
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {**base}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(cast(Dict[str, Any], result[key]), value)
        else:
            result[key] = value
    return result


def _select_profile(data: Dict[str, Any]) -> Dict[str, Any]:
    if not data:
        return {}
    base_section = cast(Dict[str, Any], data.get("default", {}))
    requested = (os.getenv(PROFILE_ENV_VAR) or "default").lower()
    if requested != "default" and requested in data:
        return _deep_merge(base_section, cast(Dict[str, Any], data[requested]))
    if base_section:
        return base_section
    return data


def _load_toml_config() -> Tuple[Dict[str, Any], Optional[Path]]:
    path = _resolve_config_path()
    if not path.exists():
        return {}, None
    with path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        return {}, path
    merged = _select_profile(payload)
    if not isinstance(merged, dict):
        return {}, path
    return dict(merged), path


class RPCConfig(BaseModel):
    """Solana JSON-RPC endpoint used for wallet balances."""

    primary_url: AnyHttpUrl = Field(default="https://api.mainnet-beta.solana.com")
    request_timeout: float = Field(default=12.0, ge=1.0, le=60.0)
    commitment: str = Field(default="confirmed")
    max_retry_attempts: int = Field(default=3, ge=1, le=10)

    @field_validator("request_timeout", mode="before")
    @classmethod
    def _parse_request_timeout(cls, value) -> float:
        if isinstance(value, str):
            return float(value)
        return value


class GatewayConfig(BaseModel):
    """Jupiter endpoints and HTTP behaviour for the gateway adapters."""

    jupiter_ultra_url: AnyHttpUrl = Field(default="https://api.jup.ag/ultra/v1")
    jupiter_price_url: AnyHttpUrl = Field(default="https://api.jup.ag/price/v3")
    jupiter_tokens_url: AnyHttpUrl = Field(default="https://api.jup.ag/tokens/v2")
    jupiter_trigger_url: AnyHttpUrl = Field(default="https://api.jup.ag/trigger/v1")
    jupiter_recurring_url: AnyHttpUrl = Field(default="https://api.jup.ag/recurring/v1")
    jupiter_api_key: Optional[str] = None
    http_timeout: float = Field(default=10.0, ge=1.0, le=45.0)
    cache_ttl_seconds: int = Field(default=60, ge=0)
    token_cache_ttl_seconds: int = Field(default=3_600, ge=0)
    swap_slippage_bps: int = Field(default=100, ge=1, le=5_000)
    max_retry_attempts: int = Field(default=3, ge=1, le=10)


class MonitorConfig(BaseModel):
    """Thresholds used when turning price moves into opportunities."""

    materiality_threshold_pct: float = Field(default=0.5, ge=0.0)
    price_history_size: int = Field(default=100, ge=2)
    dip_threshold_pct: float = Field(default=5.0, gt=0.0)
    dip_trend_threshold_pct: float = Field(default=2.0, ge=0.0)
    dip_confidence_scale: float = Field(default=20.0, gt=0.0)
    take_profit_threshold_pct: float = Field(default=10.0, gt=0.0)
    take_profit_confidence_scale: float = Field(default=30.0, gt=0.0)
    take_profit_target_ratio: float = Field(default=0.95, gt=0.0, le=1.0)
    concentration_threshold_pct: float = Field(default=70.0, gt=0.0, le=100.0)
    concentration_baseline_pct: float = Field(default=50.0, ge=0.0, lt=100.0)


class RiskLimits(BaseModel):
    """Per-wallet risk limits enforced before any autopilot order executes."""

    model_config = ConfigDict(extra="forbid")

    max_daily_loss_usd: float = Field(default=100.0, gt=0.0)
    max_order_size_usd: float = Field(default=500.0, gt=0.0)
    max_slippage_percent: float = Field(default=5.0, gt=0.0, le=50.0)
    whitelist_tokens: List[str] = Field(default_factory=list)
    blacklist_tokens: List[str] = Field(default_factory=list)
    max_portfolio_concentration: float = Field(default=50.0, gt=0.0, le=100.0)
    enable_autopilot: bool = False


class ExecutionConfig(BaseModel):
    """Order dispatch and audit log behaviour."""

    log_capacity: int = Field(default=500, ge=1)
    limit_order_expiry_days: int = Field(default=30, ge=1)
    dca_cycles: int = Field(default=10, ge=1)
    dca_cycle_frequency_seconds: int = Field(default=86_400, ge=60)
    min_order_amount: float = Field(default=0.001, ge=0.0)
    daily_loss_window_hours: int = Field(default=24, ge=1)


class BuyDipParameters(BaseModel):
    min_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    max_order_size: float = Field(default=500.0, gt=0.0)
    funding_token: str = "USDC"
    min_funding_value_usd: float = Field(default=50.0, ge=0.0)
    funding_fraction: float = Field(default=0.5, gt=0.0, le=1.0)


class TakeProfitParameters(BaseModel):
    min_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    profit_target: float = Field(default=0.95, gt=0.0)
    sell_fraction: float = Field(default=0.5, gt=0.0, le=1.0)
    proceeds_token: str = "USDC"


class RebalanceParameters(BaseModel):
    target_allocation: Dict[str, float] = Field(
        default_factory=lambda: {"SOL": 0.4, "USDC": 0.3, "JUP": 0.2, "BONK": 0.1}
    )
    imbalance_threshold: float = Field(default=0.15, ge=0.0, le=1.0)
    min_order_value: float = Field(default=100.0, ge=0.0)
    funding_token: str = "USDC"
    sell_fraction: float = Field(default=0.8, gt=0.0, le=1.0)

    @field_validator("target_allocation")
    @classmethod
    def _check_allocation(cls, value: Dict[str, float]) -> Dict[str, float]:
        for symbol, weight in value.items():
            if weight < 0 or weight > 1:
                raise ValueError(f"Allocation for {symbol} must be between 0 and 1")
        return value


class SentimentParameters(BaseModel):
    sentiment_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    action_type: Literal["buy", "sell"] = "buy"


class BuyDipStrategyConfig(BaseModel):
    """Buy tokens that are in a sustained dip using a stablecoin balance."""

    id: str = "buy-dip"
    name: Literal["buy-dip"] = "buy-dip"
    enabled: bool = True
    parameters: BuyDipParameters = Field(default_factory=BuyDipParameters)


class TakeProfitStrategyConfig(BaseModel):
    """Place limit sells after a strong pump."""

    id: str = "take-profit"
    name: Literal["take-profit"] = "take-profit"
    enabled: bool = True
    parameters: TakeProfitParameters = Field(default_factory=TakeProfitParameters)


class RebalanceStrategyConfig(BaseModel):
    """Move holdings back toward a target allocation."""

    id: str = "rebalance"
    name: Literal["rebalance"] = "rebalance"
    enabled: bool = False
    parameters: RebalanceParameters = Field(default_factory=RebalanceParameters)


class SentimentStrategyConfig(BaseModel):
    """Sentiment-driven trades. No data source is wired yet."""

    id: str = "sentiment"
    name: Literal["sentiment"] = "sentiment"
    enabled: bool = False
    parameters: SentimentParameters = Field(default_factory=SentimentParameters)


StrategyConfig = Annotated[
    Union[
        BuyDipStrategyConfig,
        TakeProfitStrategyConfig,
        RebalanceStrategyConfig,
        SentimentStrategyConfig,
    ],
    Field(discriminator="name"),
]

STRATEGY_CONFIG_ADAPTER: TypeAdapter[List[StrategyConfig]] = TypeAdapter(List[StrategyConfig])


def default_strategies() -> List[StrategyConfig]:
    """Return a fresh copy of the built-in strategy set."""

    return [
        BuyDipStrategyConfig(),
        TakeProfitStrategyConfig(),
        RebalanceStrategyConfig(),
        SentimentStrategyConfig(),
    ]


class MonitoringConfig(BaseModel):
    """Logging and alerting configuration."""

    log_level: str = Field(default="INFO")
    slack_webhook_url: Optional[AnyHttpUrl] = None
    webhook_urls: List[AnyHttpUrl] = Field(default_factory=list)
    alert_throttle_seconds: int = Field(default=60, ge=0)


class ApiConfig(BaseModel):
    """HTTP API runtime configuration."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, ge=1, le=65535)
    auth_mode: ApiAuthMode = Field(default=ApiAuthMode.OPEN)
    auth_token: Optional[str] = None
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    rpc: RPCConfig = Field(default_factory=RPCConfig)
    gateways: GatewayConfig = Field(default_factory=GatewayConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    risk: RiskLimits = Field(default_factory=RiskLimits)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    strategies: List[StrategyConfig] = Field(default_factory=default_strategies)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    config_file: Optional[Path] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def file_settings(_: Optional[BaseSettings] = None) -> Dict[str, Any]:
            payload, path = _load_toml_config()
            if path is not None:
                payload.setdefault("config_file", str(path))
            return payload

        # Runtime environment variables win over static config file defaults.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _apply_helius_override(self) -> "AppConfig":
        helius_url = os.getenv("HELIUS_RPC_URL")
        if not helius_url:
            helius_key = os.getenv("HELIUS_API_KEY")
            if helius_key:
                helius_url = f"https://mainnet.helius-rpc.com/?api-key={helius_key.strip()}"
        if helius_url:
            self.rpc.primary_url = helius_url
        if not self.gateways.jupiter_api_key:
            self.gateways.jupiter_api_key = os.getenv("JUPITER_API_KEY") or None
        return self

    def strategy(self, name: str) -> Optional[StrategyConfig]:
        for config in self.strategies:
            if config.name == name:
                return config
        return None


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object."""

    return AppConfig()


__all__ = [
    "ApiAuthMode",
    "ApiConfig",
    "AppConfig",
    "BuyDipParameters",
    "BuyDipStrategyConfig",
    "ExecutionConfig",
    "GatewayConfig",
    "MonitorConfig",
    "MonitoringConfig",
    "RPCConfig",
    "RebalanceParameters",
    "RebalanceStrategyConfig",
    "RiskLimits",
    "STRATEGY_CONFIG_ADAPTER",
    "SentimentParameters",
    "SentimentStrategyConfig",
    "StrategyConfig",
    "TakeProfitParameters",
    "TakeProfitStrategyConfig",
    "default_strategies",
    "get_app_config",
]
