"""Configuration loading and validation.

This module is responsible for:

- Loading `.env` into the process environment (without overriding existing vars).
- Converting environment variables into strongly-typed Pydantic models.
- Validating credentials and providing actionable error messages.
"""

import os
from typing import TypeVar

import dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

_T = TypeVar("_T", int, float)


def _get_optional_env(name: str) -> str | None:
    """Read an optional env var, returning None when unset or blank."""
    value = os.getenv(name, "").strip()
    return value or None


def _get_env_number(name: str, default: _T, cast: type[_T]) -> _T:
    """Read an int/float env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a {cast.__name__}. Got: {raw!r}") from exc


def _is_placeholder(value: str) -> bool:
    return value.startswith("your_") and value.endswith("_here")


class LiquiConfig(BaseModel):
    """Configuration for interacting with the Liqui API.

    Credentials are optional: public endpoints (markets, tickers, order book,
    trades) work without them, private calls fail fast with an authentication
    error when they are missing.
    """

    api_key: str | None = Field(default=None, description="Liqui API key")
    secret: str | None = Field(default=None, description="Liqui API secret (HMAC-SHA512 key)")

    public_url: str = Field(default="https://api.liqui.io/api", description="Public API root")
    private_url: str = Field(default="https://api.liqui.io/tapi", description="Private (trade) API endpoint")
    api_version: str = Field(default="3", description="Public API version segment")

    # Transport tuning knobs
    rate_limit: float = Field(default=0.33, description="Max requests per second")
    max_attempt: int = Field(default=3, description="Max attempts per request")
    base_delay: float = Field(default=0.5, description="Initial retry delay (seconds)")
    backoff_multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")
    max_delay: float = Field(default=30.0, description="Max total delay before failing (seconds)")
    timeout: float = Field(default=30.0, description="HTTP timeout per request (seconds)")

    @property
    def public_base_url(self) -> str:
        """Public URL including the version segment, e.g. `.../api/3`."""
        return f"{self.public_url.rstrip('/')}/{self.api_version}"

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.secret)

    @field_validator("api_key", "secret")
    def validate_credential(cls, v: str | None) -> str | None:
        """Reject placeholder values copied from the example env file."""
        if v is None:
            return None
        v = v.strip()
        if not v:
            return None
        if _is_placeholder(v):
            raise ValueError("Liqui credentials still contain a placeholder value. Please set them in your .env file.")
        return v

    @field_validator("rate_limit")
    def validate_rate_limit(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"rate_limit must be > 0. Got: {v}")
        return v

    @field_validator("max_attempt")
    def validate_max_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_attempt must be >= 1. Got: {v}")
        return v

    @model_validator(mode="after")
    def validate_credential_pair(self) -> "LiquiConfig":
        """An API key is useless without its secret, and vice versa."""
        if bool(self.api_key) != bool(self.secret):
            raise ValueError("LIQUI_API_KEY and LIQUI_SECRET must be set together.")
        return self


class Config(BaseModel):
    """Top-level application configuration."""

    liqui: LiquiConfig = Field(default_factory=LiquiConfig, description="Liqui configuration")


def load_config() -> Config:
    """Load application configuration from environment variables.

    Notes:
    - Calls `dotenv.load_dotenv()` so local `.env` values are visible to the process.
    - Raises `ValueError` with actionable messages when configuration is
      inconsistent or still contains placeholder values.
    """
    # Load variables from `.env` into the process environment (without overriding
    # already-set env vars).
    dotenv.load_dotenv()

    defaults = LiquiConfig()
    liqui = LiquiConfig(
        api_key=_get_optional_env("LIQUI_API_KEY"),
        secret=_get_optional_env("LIQUI_SECRET"),
        public_url=_get_optional_env("LIQUI_PUBLIC_URL") or defaults.public_url,
        private_url=_get_optional_env("LIQUI_PRIVATE_URL") or defaults.private_url,
        api_version=_get_optional_env("LIQUI_API_VERSION") or defaults.api_version,
        rate_limit=_get_env_number("LIQUI_RATE_LIMIT", defaults.rate_limit, float),
        max_attempt=_get_env_number("LIQUI_MAX_ATTEMPT", defaults.max_attempt, int),
        base_delay=_get_env_number("LIQUI_BASE_DELAY", defaults.base_delay, float),
        backoff_multiplier=_get_env_number("LIQUI_BACKOFF_MULTIPLIER", defaults.backoff_multiplier, float),
        max_delay=_get_env_number("LIQUI_MAX_DELAY", defaults.max_delay, float),
        timeout=_get_env_number("LIQUI_TIMEOUT", defaults.timeout, float),
    )
    return Config(liqui=liqui)
