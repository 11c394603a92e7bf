"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from decimal import Decimal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Redis (for Dramatiq)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    # Referral settings
    referral_expiry_days: int = Field(
        default=30, gt=0,
        description="Days a PENDING referral stays acceptable before it expires"
    )
    referral_bonus_rate: Decimal = Field(
        default=Decimal("0.10"), gt=0, le=1,
        description="Share of the first approved deposit paid to the referrer"
    )
    referral_max_per_user: int = Field(
        default=1000, gt=0,
        description="Maximum accepted referrals a single referrer may collect"
    )
    referral_max_daily: int = Field(
        default=10, gt=0,
        description="Referral rows per referrer per 24h before flagging abuse"
    )

    # Per-user lock settings
    lock_timeout_seconds: float = Field(
        default=5.0, gt=0,
        description="Bounded wait for the per-user lock"
    )
    lock_sweep_threshold: int = Field(
        default=1000, gt=0,
        description="Idle locks are swept once the lock map grows past this size"
    )

    # Daily accrual schedule
    accrual_hour_utc: int = Field(default=0, ge=0, le=23)
    accrual_catchup_hours: int = Field(
        default=6, gt=0,
        description="Interval of the catch-up accrual run"
    )

    # Gift codes
    gift_code_default_max_uses: int = Field(default=1000, gt=0)
    gift_code_max_amount: Decimal = Field(default=Decimal("100000"), gt=0)
    gift_code_max_duration_minutes: int = Field(default=43200, gt=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode='after')
    def validate_production(self) -> 'Settings':
        """Validate production-specific requirements."""
        if self.environment == 'production':
            if self.debug:
                raise ValueError(
                    'DEBUG must be False in production environment. '
                    'Set DEBUG=false in your .env file.'
                )
            if self.database_url.startswith('sqlite'):
                raise ValueError(
                    'SQLite is only supported outside production. '
                    'Set DATABASE_URL to a postgresql+asyncpg:// URL.'
                )
        return self

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith(('postgresql+asyncpg://', 'sqlite+aiosqlite://')):
            raise ValueError(
                'DATABASE_URL must start with postgresql+asyncpg:// '
                'or sqlite+aiosqlite://'
            )
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level name."""
        level = v.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f'Unknown log level: {v}')
        return level

    @property
    def is_sqlite(self) -> bool:
        """True when running against SQLite (tests, local dev)."""
        return self.database_url.startswith('sqlite')


# Global settings instance
settings = Settings()
