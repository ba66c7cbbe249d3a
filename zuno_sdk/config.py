from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.retry import BackoffKind, RetryPolicy
from .providers.api_client import DEFAULT_API_BASE_URL


# Known network names and their chain ids
NETWORKS: Dict[str, int] = {
    "mainnet": 1,
    "sepolia": 11155111,
    "polygon": 137,
    "arbitrum": 42161,
    "optimism": 10,
    "base": 8453,
    "bsc": 56,
}


class CacheSettings(BaseModel):
    """TTL cache in front of the ABI service."""

    ttl_seconds: float = Field(default=300, gt=0, description="Cache TTL in seconds")
    gc_seconds: float = Field(default=600, gt=0, description="Idle time before expired entries are purged")
    max_size: int = Field(default=1000, gt=0, description="Maximum cache size")


class RetrySettings(BaseModel):
    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    initial_delay_seconds: float = Field(default=1.0, ge=0, description="Delay before the first retry")
    backoff: BackoffKind = Field(default=BackoffKind.EXPONENTIAL, description="fixed or exponential")
    max_delay_seconds: float = Field(default=30.0, gt=0, description="Upper bound for any delay")

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_delay_seconds=self.initial_delay_seconds,
            backoff=self.backoff,
            max_delay_seconds=self.max_delay_seconds,
        )


class SDKConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ZUNO_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Required
    api_key: str = Field(description="ABI service API key")
    network: str = Field(description="Network name (e.g. sepolia) or numeric chain id")

    # Endpoints
    api_base_url: str = Field(default=DEFAULT_API_BASE_URL, description="ABI service base URL")
    rpc_url: Optional[str] = Field(default=None, description="JSON-RPC endpoint override")
    request_timeout_seconds: float = Field(default=30, gt=0, description="Request timeout")

    cache: CacheSettings = Field(default_factory=CacheSettings)
    retry_policy: RetrySettings = Field(default_factory=RetrySettings)

    # Transactions
    confirmation_timeout_seconds: float = Field(default=300, gt=0, description="Max wait for a receipt")
    poll_interval_seconds: float = Field(default=2, gt=0, description="Receipt polling interval")
    batch_max_concurrency: int = Field(default=3, gt=0, description="Default concurrency for batch operations")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    configure_logging: bool = Field(default=False, description="Install structlog handlers on startup")

    @field_validator("api_key")
    @classmethod
    def _require_api_key(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("api_key is required")
        return value.strip()

    @field_validator("network", mode="before")
    @classmethod
    def _known_network(cls, value: Any) -> str:
        if isinstance(value, bool):
            raise ValueError("network must be a network name or chain id")
        text = str(value).strip().lower() if value is not None else ""
        if not text:
            raise ValueError("network is required")
        if text in NETWORKS:
            return text
        if text.isdigit() and int(text) > 0:
            return text
        raise ValueError(f"unknown network {value!r}; use one of {', '.join(NETWORKS)} or a chain id")

    @field_validator("log_level")
    @classmethod
    def _log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid log level {value!r}")
        return level

    @property
    def chain_id(self) -> int:
        if self.network in NETWORKS:
            return NETWORKS[self.network]
        return int(self.network)
