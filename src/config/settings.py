"""
Configuration Management for the Finance Tracker backend

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here, one settings class per external
collaborator, so it is easy to see what the service talks to and every
group is validated when first used.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_IP_HASH_SALT = "default-salt"


class DatabaseSettings(BaseSettings):
    """Relational store configuration (used when STORAGE_BACKEND=sql)."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite:///./finance.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging only)"
    )
    connect_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times to try the initial connection"
    )


class AuthSettings(BaseSettings):
    """Authentication provider configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    provider: str = Field(
        default="static",
        description="Which provider resolves bearer tokens: 'static' or 'supabase'"
    )
    supabase_url: str = Field(
        default="",
        description="Project URL of the hosted auth service"
    )
    service_key: str = Field(
        default="",
        description="Service role key sent as the apikey header"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for token lookups"
    )
    # Format: "token1:user-id-1,token2:user-id-2"
    static_tokens: str = Field(
        default="",
        description="Static token map for local development"
    )

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("static", "supabase"):
            raise ValueError(f"Unknown auth provider: {v}")
        return v

    @property
    def static_token_map(self) -> dict[str, str]:
        """Parse the static token map into {token: user_id}."""
        tokens = {}
        for pair in self.static_tokens.split(","):
            token, sep, user_id = pair.strip().partition(":")
            if sep and token and user_id:
                tokens[token.strip()] = user_id.strip()
        return tokens


class ExchangeRateSettings(BaseSettings):
    """Public exchange-rate API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EXCHANGE_RATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_url: str = Field(
        default="https://api.exchangerate-api.com/v4",
        description="Base URL; rates are read from {api_url}/latest/{currency}"
    )
    timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for a rate lookup before giving up on conversion"
    )


class MarketDataSettings(BaseSettings):
    """Crypto price API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MARKET_DATA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_url: str = Field(
        default="https://api.coingecko.com/api/v3",
        description="Base URL of the price API"
    )
    timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout per symbol lookup"
    )
    usd_to_inr_rate: float = Field(
        default=83.0,
        gt=0,
        description="Fallback rate when a coin has no INR quote"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Currency normalization
    base_currency: str = Field(
        default="INR",
        min_length=3,
        max_length=10,
        description="Currency all amounts are normalized toward"
    )

    # Input bounds
    max_merchant_length: int = Field(default=255, ge=1)
    max_notes_length: int = Field(default=1000, ge=1)
    max_description_length: int = Field(default=1000, ge=1)

    # Privacy
    ip_hash_salt: str = Field(
        default=DEFAULT_IP_HASH_SALT,
        description="Server-side salt mixed into client address hashes"
    )

    # Storage
    storage_backend: str = Field(
        default="memory",
        description="Where rows are written: 'memory' or 'sql'"
    )

    # HTTP
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins"
    )

    @field_validator("base_currency")
    @classmethod
    def normalize_base_currency(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("memory", "sql"):
            raise ValueError(f"Unknown storage backend: {v}")
        return v

    @field_validator("ip_hash_salt")
    @classmethod
    def warn_on_default_salt(cls, v: str) -> str:
        """Warn if the salt was left at its default (but don't fail)."""
        if v == DEFAULT_IP_HASH_SALT:
            import warnings
            warnings.warn(
                "IP_HASH_SALT is not set; client address hashes use the default salt. "
                "Set it before running in production."
            )
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def auth(self) -> AuthSettings:
        return AuthSettings()

    @property
    def exchange_rate(self) -> ExchangeRateSettings:
        return ExchangeRateSettings()

    @property
    def market_data(self) -> MarketDataSettings:
        return MarketDataSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus "<name>_error"
    entries describing failures. Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("app", "database", "auth", "exchange_rate", "market_data"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
