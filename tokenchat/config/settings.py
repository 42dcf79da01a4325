"""Application settings and configuration management."""

from pathlib import Path
from typing import Literal

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

logger = structlog.get_logger(__name__)

SOL_MINT = "So11111111111111111111111111111111111111112"


class RiskPolicy(BaseModel):
    """Static heuristics and thresholds used by the swap validator."""

    sol_usd_price: float = Field(
        default=100.0,
        description="Fixed SOL to USD conversion used for rule notional checks",
    )
    large_swap_sol: float = Field(
        default=10.0, description="SOL amount above which explicit confirmation is required"
    )
    blacklisted_tokens: list[str] = Field(
        default_factory=lambda: [
            "FAKE1234567890abcdef1234567890abcdef12345678",
            "SCAM9876543210fedcba9876543210fedcba98765432",
        ],
        description="Mint addresses that are always flagged",
    )
    weird_pools: list[str] = Field(
        default_factory=lambda: [
            "POOLLOWLIQ1234567890abcdef1234567890abcdef12",
            "POOLRISKY9876543210fedcba9876543210fedcba98",
        ],
        description="Pools known to route meme tokens badly",
    )
    price_impact_threshold_pct: float = Field(
        default=5.0, description="Price impact percentage that triggers a warning"
    )
    price_impact_amount_threshold: float = Field(
        default=0.5, description="SOL amount above which price impact is estimated high"
    )
    high_price_impact_pct: float = Field(
        default=7.0, description="Estimated price impact for large swaps"
    )
    low_price_impact_pct: float = Field(
        default=3.0, description="Estimated price impact for small swaps"
    )
    liquidity_threshold_usd: float = Field(
        default=10000.0, description="Liquidity floor in USD"
    )
    new_token_liquidity_usd: float = Field(
        default=5000.0, description="Estimated liquidity for recently created tokens"
    )
    established_token_liquidity_usd: float = Field(
        default=20000.0, description="Estimated liquidity for established tokens"
    )
    new_coin_days: int = Field(default=7, description="Age in days below which a token is new")


class AppSettings(BaseSettings):
    """Application settings with environment variable support."""

    env: Literal["dev", "prod"] = Field(default="dev", description="Environment: dev, prod")

    # Language model and retrieval endpoints
    llm_base: str = Field(
        default="http://localhost:11434/api", description="Ollama-style LLM API base URL"
    )
    embed_base: str = Field(
        default="http://localhost:11434", description="Embedding service base URL"
    )
    qdrant_url: str = Field(default="http://localhost:6333", description="Qdrant URL")
    qdrant_collection: str = Field(
        default="jupiter_hackthon", description="Qdrant collection name"
    )
    embed_model: str = Field(default="nomic-embed-text", description="Embedding model")
    chat_model: str = Field(default="llama3.2", description="Chat/completion model")

    # Retrieval and retry policy
    retrieval_top_k: int = Field(default=4, description="Passages returned per query")
    retry_attempts: int = Field(default=3, description="Attempts for transient failures")
    retry_base_seconds: float = Field(
        default=1.0, description="Base delay for exponential backoff"
    )

    # Sampling
    intent_temperature: float = Field(default=0.1, description="Intent classifier temperature")
    intent_top_p: float = Field(default=0.9, description="Intent classifier top_p")
    query_temperature: float = Field(default=0.7, description="Token query temperature")

    # Market data
    jupiter_base: str = Field(
        default="https://lite-api.jup.ag/swap/v1", description="Jupiter swap API base URL"
    )
    jupiter_tokens_base: str = Field(
        default="https://lite-api.jup.ag/tokens/v1", description="Jupiter token API base URL"
    )
    jupiter_price_base: str = Field(
        default="https://api.jup.ag/price/v2", description="Jupiter price API base URL"
    )
    coingecko_base: str = Field(
        default="https://api.coingecko.com/api/v3", description="CoinGecko API base URL"
    )

    # Chain
    rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com", description="Solana RPC URL"
    )
    explorer_tx_url: str = Field(
        default="https://solscan.io/tx/", description="Explorer prefix for signatures"
    )

    # Swap execution
    slippage_bps: int = Field(default=50, description="Slippage tolerance in basis points")
    swap_mode: Literal["ExactIn", "ExactOut"] = Field(
        default="ExactOut", description="Jupiter swap mode"
    )
    max_priority_fee_lamports: int = Field(
        default=1_000_000, description="Priority fee ceiling in lamports"
    )
    priority_level: str = Field(default="veryHigh", description="Jupiter priority level")
    send_max_retries: int = Field(
        default=10, description="Submission retries delegated to the RPC node"
    )
    confirm_timeout_seconds: float = Field(
        default=90.0, description="Maximum wait for finalized confirmation"
    )
    wallet_sign_timeout_seconds: float | None = Field(
        default=None, description="Optional wallet signature timeout (None waits forever)"
    )
    merchant_pubkey: str | None = Field(
        default=None,
        description="Owner of the destination token account (defaults to the token address)",
    )

    # Wallet (CLI)
    keypair_path_json: str | None = Field(
        default=None, description="Path to JSON keypair file"
    )
    secret_key_env: str = Field(
        default="SOLANA_SK_B58", description="Environment variable with base58 secret key"
    )

    risk: RiskPolicy = Field(default_factory=RiskPolicy, description="Risk heuristics")

    log_level: str = Field(default="INFO", description="Log level")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "extra": "ignore",
    }


def load_settings(profile: str, yaml_path: str) -> AppSettings:
    """Load settings from YAML file and environment variables.

    Args:
        profile: Configuration profile name (dev, prod)
        yaml_path: Path to YAML configuration file

    Returns:
        AppSettings instance with loaded configuration

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValidationError: If configuration is invalid
        ValueError: If profile is invalid
    """
    if profile not in ["dev", "prod"]:
        raise ValueError(f"Invalid profile: {profile}. Must be one of: dev, prod")

    yaml_file = Path(yaml_path)
    if not yaml_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    try:
        with open(yaml_file, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        yaml_config["env"] = profile

        logger.info("Loading configuration", profile=profile, yaml_path=yaml_path)

        settings = AppSettings(**yaml_config)

        logger.info(
            "Configuration loaded successfully",
            profile=profile,
            chat_model=settings.chat_model,
            rpc_url=settings.rpc_url[:50] + "..."
            if len(settings.rpc_url) > 50
            else settings.rpc_url,
        )

        return settings

    except yaml.YAMLError as e:
        logger.error("Failed to parse YAML configuration", error=str(e))
        raise ValueError(f"Invalid YAML configuration: {e}") from e
    except ValidationError as e:
        logger.error("Configuration validation failed", error=str(e))
        raise
