"""Application configuration using pydantic-settings.

Provider endpoints, polling policy and the business constants that drive
quote eligibility and selection. The constants are calibrated values, not
derived ones; change them through the environment rather than in code.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./crossroute.db",
        description="Swap history database connection URL",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug mode")

    # ======================
    # Providers
    # ======================
    relay_api_url: str = Field(default="https://api.relay.link", description="Relay API base URL")
    relay_deposit_fee_payer: Optional[str] = Field(
        default="Av29j1oEbWAt77AzXyTA2fAzRnHytfG3mEV8kYm5E83M",
        description="Solana address that sponsors origin transaction fees for Relay",
    )
    relay_referrer: Optional[str] = Field(default=None, description="Relay referrer identifier")
    debridge_api_url: str = Field(default="https://api.dln.trade", description="deBridge DLN API base URL")
    jupiter_api_url: str = Field(
        default="https://api.jup.ag/ultra/v1", description="Jupiter Ultra API base URL"
    )
    jupiter_api_key: str = Field(default="", description="Jupiter Ultra API key")
    provider_timeout: float = Field(default=20.0, description="Timeout for provider HTTP calls (seconds)")
    quote_validity_seconds: int = Field(default=30, description="Default quote validity window")

    # ======================
    # Chain / Pricing
    # ======================
    solana_rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com", description="Solana JSON-RPC URL"
    )
    coingecko_api_url: str = Field(
        default="https://api.coingecko.com/api/v3", description="CoinGecko API base URL"
    )
    price_cache_seconds: int = Field(default=60, description="USD price cache lifetime")
    sol_price_fallback_usd: Decimal = Field(
        default=Decimal("150"), description="SOL/USD price used when lookup fails"
    )
    route_cache_seconds: int = Field(default=300, description="Route support metadata cache lifetime")

    # ======================
    # Sponsor Economics
    # ======================
    estimated_solana_tx_lamports: int = Field(
        default=15_000_000, description="Estimated lamports for one Solana origin transaction"
    )
    token_account_rent_lamports: int = Field(
        default=2_039_280, description="Rent for creating an associated token account"
    )
    price_drift_buffer: Decimal = Field(default=Decimal("0.02"), description="Price drift buffer (2%)")
    failure_gas_multiplier: int = Field(default=2, description="Failed-and-retried gas multiplier")
    fee_margin: Decimal = Field(default=Decimal("0.20"), description="Margin on worst-case cost (20%)")
    sol_fee_buffer: Decimal = Field(default=Decimal("0.10"), description="Extra buffer on SOL fees (10%)")
    sponsor_fee_tolerance_usd: Decimal = Field(
        default=Decimal("0.01"), description="Absolute USD tolerance in the sponsor solvency check"
    )
    min_sol_buffer_percent: int = Field(
        default=110, description="Required SOL as a percent of the user's estimated SOL cost"
    )

    # ======================
    # Selection
    # ======================
    close_threshold_usd_ratio: Decimal = Field(
        default=Decimal("0.001"), description="Net USD closeness for tie-breaks (0.1%)"
    )
    close_threshold_bps: int = Field(
        default=10, description="Effective-receive closeness for tie-breaks (basis points)"
    )

    # ======================
    # Execution
    # ======================
    debridge_max_quote_age: float = Field(default=30.0, description="Max deBridge quote age (seconds)")
    debridge_warn_quote_age: float = Field(default=25.0, description="deBridge quote age warning (seconds)")
    retry_attempts: int = Field(default=3, description="Attempts for transient submission failures")
    retry_delay: float = Field(default=1.0, description="Fixed backoff between retries (seconds)")
    tx_poll_attempts: int = Field(default=30, description="Transaction status poll attempts")
    tx_poll_interval: float = Field(default=1.0, description="Transaction status poll interval (seconds)")
    bridge_poll_attempts: int = Field(default=60, description="Bridge status poll attempts")
    bridge_poll_interval: float = Field(default=3.0, description="Bridge status poll interval (seconds)")

    # ======================
    # Audit Log
    # ======================
    quote_accounting_log_path: str = Field(
        default="logs/quotes-accounting.jsonl", description="Append-only quote evaluation log"
    )
    audit_queue_size: int = Field(default=1000, description="Max pending audit records")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_jupiter(self) -> bool:
        """Check if the Jupiter API key is configured."""
        return bool(self.jupiter_api_key.strip())

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "providers": {
                "relay": self.relay_api_url,
                "debridge": self.debridge_api_url,
                "jupiter": self.jupiter_api_url,
                "jupiter_api_key": "***" if self.has_jupiter else "(not set)",
            },
            "solana_rpc": self._redact_url(self.solana_rpc_url),
            "selection": {
                "close_threshold_usd_ratio": str(self.close_threshold_usd_ratio),
                "close_threshold_bps": self.close_threshold_bps,
            },
            "sponsor": {
                "fee_margin": str(self.fee_margin),
                "sol_fee_buffer": str(self.sol_fee_buffer),
                "price_drift_buffer": str(self.price_drift_buffer),
                "failure_gas_multiplier": self.failure_gas_multiplier,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of a URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
