"""
Configuration schema validation using Pydantic
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .dex.registry import ARBITRUM_WETH
from .types import DexFamily, DexKind
from .utils import to_checksum


def _checksum_or_raise(value: str) -> str:
    try:
        return to_checksum(value)
    except ValueError as e:
        raise ValueError(str(e)) from None


class NetworkSettings(BaseModel):
    """RPC and WebSocket endpoints plus reconnect policy"""

    rpc_urls: List[str] = Field(description="HTTP JSON-RPC endpoints, primary first")
    ws_urls: List[str] = Field(default_factory=list)
    chain_id: int = Field(default=42161, ge=1)
    request_timeout: float = Field(default=5.0, gt=0, le=120)
    heartbeat_interval: float = Field(default=30.0, gt=0)
    max_reconnect_attempts: int = Field(default=10, ge=0)
    reconnect_base_delay: float = Field(default=1.0, ge=0)
    reconnect_max_delay: float = Field(default=60.0, ge=0)

    @field_validator("rpc_urls")
    @classmethod
    def validate_rpc_urls(cls, v):
        urls = [u.strip() for u in v if u and u.strip()]
        if not urls:
            raise ValueError("rpc_urls cannot be empty")
        return urls

    @field_validator("ws_urls")
    @classmethod
    def validate_ws_urls(cls, v):
        for url in v:
            if not url.startswith(("ws://", "wss://")):
                raise ValueError(f"WebSocket URL must use ws:// or wss://: {url}")
        return v


class TokenEntry(BaseModel):
    address: str
    symbol: str
    decimals: int = Field(default=18, ge=0, le=36)

    @field_validator("address")
    @classmethod
    def validate_address(cls, v):
        return _checksum_or_raise(v)


class TokenSettings(BaseModel):
    """Base token, wrapped native token and the candidate universe"""

    base: TokenEntry
    wrapped_native: str = ARBITRUM_WETH
    universe: List[TokenEntry] = Field(default_factory=list)
    feed_url: Optional[str] = None
    feed_top_n: int = Field(default=20, ge=1, le=500)
    feed_timeout: float = Field(default=10.0, gt=0)

    @field_validator("wrapped_native")
    @classmethod
    def validate_wrapped_native(cls, v):
        return _checksum_or_raise(v)


class DexSettings(BaseModel):
    """One DEX router (or Curve pool) and how to quote it"""

    name: str
    kind: str
    router: str
    quoter: Optional[str] = None
    pool: Optional[str] = None
    fee: int = Field(default=3000, ge=0, le=1_000_000)
    coins: Optional[List[str]] = None
    quote: bool = True
    gas_estimate: Optional[int] = Field(default=None, gt=0)

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v):
        return DexKind.from_name(v).value

    @field_validator("router")
    @classmethod
    def validate_router(cls, v):
        return _checksum_or_raise(v)

    @field_validator("quoter", "pool")
    @classmethod
    def validate_optional_address(cls, v):
        return _checksum_or_raise(v) if v is not None else None

    @field_validator("coins")
    @classmethod
    def validate_coins(cls, v):
        return [_checksum_or_raise(c) for c in v] if v is not None else None

    @property
    def dex_kind(self) -> DexKind:
        return DexKind(self.kind)

    @model_validator(mode="after")
    def validate_quoting_backend(self):
        family = self.dex_kind.family
        if family is DexFamily.CURVE and not self.coins:
            raise ValueError(f"Curve pool {self.name} needs its coins list")
        if (
            self.quote
            and family is DexFamily.V3
            and self.quoter is None
            and self.pool is None
        ):
            raise ValueError(f"V3 DEX {self.name} needs a quoter or a pool to quote")
        return self


class SearchSettings(BaseModel):
    """Route search parameters; amounts are raw base-token units"""

    max_hops: int = Field(default=3, ge=2, le=5)
    amount_in: int = Field(default=10**18, gt=0)
    min_profit_threshold: int = Field(default=0, ge=0)
    quote_concurrency: int = Field(default=8, ge=1, le=256)
    branch_concurrency: int = Field(default=16, ge=1, le=1024)
    quote_timeout: float = Field(default=2.0, gt=0)
    base_gas: int = Field(default=150_000, ge=0)
    per_hop_gas: int = Field(default=100_000, ge=0)
    gas_price_gwei: Optional[float] = Field(default=None, ge=0)
    scan_interval: float = Field(default=5.0, gt=0)


class ConversionSettings(BaseModel):
    kind: str
    router: str
    fee: int = Field(default=3000, ge=0, le=1_000_000)

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v):
        return DexKind.from_name(v).value

    @field_validator("router")
    @classmethod
    def validate_router(cls, v):
        return _checksum_or_raise(v)


class ExecutionSettings(BaseModel):
    """Bundle construction, simulation and relay submission"""

    executor_address: str
    flashloan_provider: str
    flashloan_token: Optional[str] = None
    conversion: Optional[ConversionSettings] = None
    simulation_url: str
    simulation_access_key_env: Optional[str] = None
    relay_urls: List[str] = Field(default_factory=list)
    relay_auth_key_env: Optional[str] = None
    max_gas_price_gwei: float = Field(default=5.0, gt=0)
    priority_fee_gwei: float = Field(default=0.01, ge=0)
    gas_limit: int = Field(default=1_500_000, gt=21_000)
    gas_limit_margin_bps: int = Field(default=2000, ge=0, le=10_000)
    tip_bps: int = Field(default=5000, ge=0, le=10_000)
    slippage_bps: int = Field(default=50, ge=0, le=10_000)
    deadline_seconds: int = Field(default=60, ge=1)
    breaker_max_failures: int = Field(default=5, ge=1)
    breaker_reset_timeout: float = Field(default=60.0, gt=0)
    rate_limit: int = Field(default=10, ge=1)
    rate_window: float = Field(default=60.0, gt=0)
    dry_run: bool = True
    private_key_env: str = "SEARCHER_PRIVATE_KEY"

    @field_validator("executor_address", "flashloan_provider")
    @classmethod
    def validate_address(cls, v):
        return _checksum_or_raise(v)

    @field_validator("flashloan_token")
    @classmethod
    def validate_flashloan_token(cls, v):
        return _checksum_or_raise(v) if v is not None else None

    @model_validator(mode="after")
    def validate_live_requirements(self):
        if not self.dry_run and not self.relay_urls:
            raise ValueError("relay_urls are required when dry_run is false")
        return self


class MempoolSettings(BaseModel):
    enabled: bool = True
    seen_cache_size: int = Field(default=10_000, ge=1)
    fetch_timeout: float = Field(default=3.0, gt=0)
    backrun_amount: Optional[int] = Field(default=None, gt=0)


class MetricsSettings(BaseModel):
    enabled: bool = False
    port: int = Field(default=8000, ge=1, le=65535)
    host: str = "0.0.0.0"


class EngineConfig(BaseModel):
    """Complete engine configuration"""

    network: NetworkSettings
    tokens: TokenSettings
    dexes: List[DexSettings] = Field(default_factory=list)
    search: SearchSettings = Field(default_factory=SearchSettings)
    execution: ExecutionSettings
    mempool: MempoolSettings = Field(default_factory=MempoolSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)

    @field_validator("dexes")
    @classmethod
    def validate_unique_names(cls, v):
        names = [d.name for d in v]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate DEX names: {sorted(duplicates)}")
        return v

    @model_validator(mode="after")
    def validate_flashloan_conversion(self):
        token = self.execution.flashloan_token
        if (
            token is not None
            and token.lower() != self.tokens.base.address.lower()
            and self.execution.conversion is None
        ):
            raise ValueError(
                "execution.conversion is required when flashloan_token differs from the base token"
            )
        return self

    model_config = {
        "extra": "forbid",
    }


def validate_engine_config(config_dict: Dict) -> EngineConfig:
    """
    Validate an engine configuration dictionary

    Raises:
        pydantic.ValidationError: If configuration is invalid
    """
    return EngineConfig(**config_dict)
