"""Terminal settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewayConfig(BaseModel):
    """Static configuration of one payment gateway."""

    id: str = Field(..., description="Gateway identifier")
    name: str = Field(..., description="Display name")
    tier: Literal["primary", "secondary", "backup"] = Field(default="primary")
    priority: int = Field(default=1, description="Lower priority is tried first")
    max_retries: int = Field(default=2, ge=0, description="Retries after the first attempt")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Per-attempt timeout")
    adapter: Literal["stripe", "http", "simulated"] = Field(
        default="simulated", description="Adapter used to reach the gateway"
    )
    endpoint_url: Optional[str] = Field(default=None, description="Base URL for http gateways")
    api_key: Optional[str] = Field(default=None, description="Credential for http gateways")
    success_rate: float = Field(
        default=0.9, ge=0, le=1, description="Approval rate of simulated gateways"
    )


def _default_gateways() -> List[GatewayConfig]:
    return [
        GatewayConfig(
            id="stripe_terminal",
            name="Stripe Terminal",
            tier="primary",
            priority=1,
            max_retries=3,
            timeout_seconds=30.0,
            success_rate=0.95,
        ),
        GatewayConfig(
            id="square_pos",
            name="Square POS",
            tier="secondary",
            priority=2,
            max_retries=2,
            timeout_seconds=25.0,
            success_rate=0.92,
        ),
        GatewayConfig(
            id="paypal_zettle",
            name="PayPal Zettle",
            tier="backup",
            priority=3,
            max_retries=2,
            timeout_seconds=20.0,
            success_rate=0.88,
        ),
    ]


class Settings(BaseSettings):
    """Terminal settings loaded from environment variables."""

    # Application Configuration
    app_name: str = Field(default="pos-resilience", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="127.0.0.1", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_workers: int = Field(default=1, description="Number of API workers")
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:8080",
        description="CORS allowed origins (comma-separated)"
    )

    # Local durable store
    database_url: str = Field(
        default="sqlite+aiosqlite:///./pos_offline.db",
        description="Async SQLAlchemy URL of the on-device store",
    )
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Payment dispatch
    payment_gateways: List[GatewayConfig] = Field(
        default_factory=_default_gateways,
        description="Configured gateways (JSON list in the environment)",
    )
    payment_failure_threshold: int = Field(
        default=3, ge=1, description="Consecutive failures that open a gateway circuit"
    )
    payment_circuit_cooldown_seconds: float = Field(
        default=300.0, ge=0, description="Seconds an open circuit stays open"
    )
    payment_retry_base_delay: float = Field(
        default=1.0, ge=0, description="Base delay for retry backoff (seconds)"
    )
    payment_currency: str = Field(default="USD", description="Terminal currency code")

    # Stripe Configuration
    stripe_secret_key: Optional[str] = Field(
        default=None, description="Stripe secret API key (sk_test_... or sk_live_...)"
    )
    stripe_api_version: str = Field(default="2023-10-16", description="Stripe API version")

    # Remote order ledger
    ledger_base_url: str = Field(
        default="http://localhost:54321/rest/v1", description="Order ledger base URL"
    )
    ledger_api_key: Optional[str] = Field(default=None, description="Order ledger API key")
    ledger_timeout_seconds: float = Field(default=15.0, gt=0, description="Ledger request timeout")
    ledger_health_path: str = Field(default="/", description="Path probed for connectivity")

    # Reconciliation
    sync_enabled: bool = Field(default=True, description="Run the auto-sync worker in the API")
    sync_interval_seconds: float = Field(
        default=300.0, gt=0, description="Periodic sync interval while online"
    )
    sync_reconnect_delay_seconds: float = Field(
        default=1.0, ge=0, description="Delay before syncing after connectivity returns"
    )
    connectivity_poll_seconds: float = Field(
        default=10.0, gt=0, description="Connectivity probe interval"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("stripe_secret_key")
    @classmethod
    def validate_stripe_key(cls, v: Optional[str]) -> Optional[str]:
        """Validate Stripe secret key format when one is configured."""
        if v is None:
            return v
        if not v.startswith("sk_test_") and not v.startswith("sk_live_"):
            raise ValueError(
                "Invalid Stripe secret key format. Must start with 'sk_test_' or 'sk_live_'"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("payment_gateways")
    @classmethod
    def validate_gateways(cls, v: List[GatewayConfig]) -> List[GatewayConfig]:
        """Gateway ids must be unique."""
        ids = [gateway.id for gateway in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Gateway ids must be unique")
        return v

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"

    @property
    def is_test_mode(self) -> bool:
        """Check if using Stripe test mode."""
        return bool(self.stripe_secret_key) and self.stripe_secret_key.startswith("sk_test_")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
