"""Client settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``DOMAIN_CLIENTS_``, nested via ``__``)
2. YAML config file (``config_path`` or ``DOMAIN_CLIENTS_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

import enum
from decimal import Decimal
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class BroadcastMode(enum.StrEnum):
    """Cosmos ``BroadcastTx`` mode."""

    SYNC = "sync"  # wait for CheckTx
    ASYNC = "async"  # fire-and-forget


# ---------------------------------------------------------------------------
# Lifecycle policy
# ---------------------------------------------------------------------------


class RetryConfig(BaseSettings):
    """Broadcast retry / backoff policy."""

    model_config = SettingsConfigDict(
        env_prefix="DOMAIN_CLIENTS_RETRY__",
        case_sensitive=False,
    )

    max_attempts: int = Field(default=3, ge=1, description="Broadcast attempts per signed tx")
    base_delay: float = Field(default=1.0, gt=0, description="First backoff delay (seconds)")
    multiplier: float = Field(default=2.0, ge=1.0)
    max_delay: float = Field(default=30.0, gt=0)


class ConfirmationConfig(BaseSettings):
    """Confirmation polling settings."""

    model_config = SettingsConfigDict(
        env_prefix="DOMAIN_CLIENTS_CONFIRMATION__",
        case_sensitive=False,
    )

    timeout: float = Field(default=60.0, gt=0)
    poll_interval: float = Field(default=2.0, gt=0)


class TransferConfig(BaseSettings):
    """Cross-chain transfer tracking settings."""

    model_config = SettingsConfigDict(
        env_prefix="DOMAIN_CLIENTS_TRANSFER__",
        case_sensitive=False,
    )

    packet_timeout: float = Field(
        default=600.0,
        gt=0,
        description="On-chain packet timeout, seconds past the source chain's block time",
    )
    relay_grace_period: float = Field(default=30.0, ge=0)
    poll_interval: float = Field(default=10.0, gt=0)


class SequencerConfig(BaseSettings):
    """Per-account sequence table settings."""

    model_config = SettingsConfigDict(
        env_prefix="DOMAIN_CLIENTS_SEQUENCER__",
        case_sensitive=False,
    )

    max_accounts: int | None = Field(
        default=None,
        ge=1,
        description="Idle accounts kept in the table; unbounded when unset",
    )
    lease_timeout: float | None = Field(default=None, gt=0)


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="DOMAIN_CLIENTS_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = True


# ---------------------------------------------------------------------------
# Per-chain endpoint models
# ---------------------------------------------------------------------------


class CosmosChainConfig(BaseModel):
    """A Cosmos-SDK chain reached over gRPC."""

    chain_id: str
    grpc_url: str = "localhost:9090"
    tls: bool = False
    address_prefix: str = "cosmos"
    denom: str = "uatom"
    gas_price: Decimal = Decimal("0.025")
    gas_adjustment: float = Field(default=1.3, ge=1.0)
    broadcast_mode: BroadcastMode = BroadcastMode.SYNC
    request_timeout: float = Field(default=15.0, gt=0)
    poll_interval: float = Field(default=1.0, gt=0)


class EvmChainConfig(BaseModel):
    """An EVM chain reached over JSON-RPC."""

    chain_id: int
    rpc_url: str = "http://localhost:8545"
    gas_multiplier: float = Field(default=1.2, ge=1.0)
    request_timeout: float = Field(default=15.0, gt=0)
    poll_interval: float = Field(default=1.0, gt=0)


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level client configuration.

    Loads settings from environment variables (``DOMAIN_CLIENTS_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="DOMAIN_CLIENTS_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    config_path: str = ""

    retry: RetryConfig = Field(default_factory=RetryConfig)
    confirmation: ConfirmationConfig = Field(default_factory=ConfirmationConfig)
    transfer: TransferConfig = Field(default_factory=TransferConfig)
    sequencer: SequencerConfig = Field(default_factory=SequencerConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    cosmos: dict[str, CosmosChainConfig] = Field(default_factory=dict)
    evm: dict[str, EvmChainConfig] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                merged = {**val, **values[key]}
                values[key] = merged
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
