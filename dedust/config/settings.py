"""Application settings and configuration management."""

from pathlib import Path
from typing import Literal

import structlog
import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from .tokens import TokenInfo

logger = structlog.get_logger(__name__)

NETWORKS = ("mainnet", "testnet")


class AppSettings(BaseSettings):
    """Connector settings with environment variable support."""

    network: Literal["mainnet", "testnet"] = Field(
        description="TON network: mainnet, testnet"
    )

    # toncenter endpoints
    toncenter_rpc_url: str = Field(
        default="https://toncenter.com/api/v2/jsonRPC",
        description="toncenter v2 JSON-RPC URL",
    )
    toncenter_index_url: str = Field(
        default="https://toncenter.com/api/v3", description="toncenter v3 base URL"
    )
    toncenter_api_key: str | None = Field(default=None, description="toncenter API key")
    request_timeout: float = Field(default=10.0, description="HTTP timeout in seconds")
    max_retries: int = Field(default=3, ge=1, description="Attempts per request")
    requests_per_minute: int = Field(
        default=60, ge=1, description="Client-side rate limit"
    )

    # DeDust
    factory_address: str = Field(description="DeDust factory contract address")

    # Router
    max_hops: int = Field(default=3, ge=1, description="Maximum hops per route")
    bridge_tokens: list[str] = Field(
        default_factory=lambda: ["TON"],
        description="Symbols or addresses routes may pass through",
    )
    default_slippage_pct: float = Field(
        default=1.0, ge=0, le=50, description="Default slippage in percent"
    )
    quote_ttl_seconds: float = Field(default=60.0, gt=0, description="Quote lifetime")
    quote_sweep_interval_seconds: float = Field(
        default=60.0, gt=0, description="Expired quote eviction interval"
    )
    gas_estimate_per_hop: int = Field(
        default=100_000_000, ge=0, description="Gas reserved per hop in nanotons"
    )
    search_multi_hop_with_direct: bool = Field(
        default=False, description="Explore bridge routes even when a direct pool exists"
    )

    # Pool state cache
    pool_cache_ttl_seconds: float = Field(
        default=30.0, gt=0, description="Pool snapshot lifetime"
    )
    pool_cache_sweep_interval_seconds: float = Field(
        default=60.0, gt=0, description="Expired pool eviction interval"
    )
    pool_fetch_timeout: float = Field(
        default=10.0, gt=0, description="Timeout of a single pool read"
    )

    tokens: list[TokenInfo] = Field(default_factory=list, description="Token list")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


def load_settings(network: str, yaml_path: str) -> AppSettings:
    """Load settings from YAML file and environment variables.

    Args:
        network: Network name (mainnet, testnet)
        yaml_path: Path to YAML configuration file

    Returns:
        AppSettings instance with loaded configuration

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValidationError: If configuration is invalid
        ValueError: If network is invalid
    """
    if network not in NETWORKS:
        raise ValueError(
            f"Invalid network: {network}. Must be one of: {', '.join(NETWORKS)}"
        )

    yaml_file = Path(yaml_path)
    if not yaml_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    try:
        with open(yaml_file, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        yaml_config["network"] = network

        logger.info("Loading configuration", network=network, yaml_path=yaml_path)

        settings = AppSettings(**yaml_config)

        logger.info(
            "Configuration loaded successfully",
            network=network,
            rpc_url=settings.toncenter_rpc_url,
            tokens=len(settings.tokens),
        )

        return settings

    except yaml.YAMLError as e:
        logger.error("Failed to parse YAML configuration", error=str(e))
        raise ValueError(f"Invalid YAML configuration: {e}") from e
    except ValidationError as e:
        logger.error("Configuration validation failed", error=str(e))
        raise
    except Exception as e:
        logger.error("Unexpected error loading configuration", error=str(e))
        raise
