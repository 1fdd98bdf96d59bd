"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "certikas"
    postgres_password: str = "certikas_dev_password"
    postgres_host: str = "localhost"
    postgres_db: str = "certikas"
    postgres_port: int = 5432

    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Certification policy
    eligibility_threshold: float = 50.0
    confirmation_threshold: int = 6
    poll_interval_seconds: float = 30.0
    max_poll_attempts: int = 40
    bulk_issue_concurrency: int = 1

    # Ledger
    ledger_network: str = "mainnet"  # mainnet, testnet
    large_content_bytes: int = 50 * 1024 * 1024
    large_content_premium: float = 0.0005

    # Rewards
    rewards_enabled: bool = False  # engine default: in-memory payout ledger when on, disabled when off
    reward_base_amounts: dict[str, int] = {
        "article": 10,
        "video": 15,
        "image": 5,
        "document": 8,
        "audio": 7,
        "short_post": 3,
        "generic_post": 5,
    }

    # Public verification links
    verification_base_url: str = "https://certikas.org"

    # Webhooks
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None
    webhook_timeout_seconds: int = 10
    webhook_max_retries: int = 3

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    def validate_production_settings(self):
        """Validate settings for non-development environments."""
        env = self.environment.lower()
        if env in ("development", "test", "dev"):
            return
        if self.webhook_url and not self.webhook_secret:
            raise ValueError(
                "WEBHOOK_SECRET is required when WEBHOOK_URL is set outside development."
            )
        if self.confirmation_threshold < 1:
            raise ValueError("CONFIRMATION_THRESHOLD must be at least 1.")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
