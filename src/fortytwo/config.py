"""Configuration management with pydantic-settings for the fortytwo client.

Loads from (in order of precedence):
1. Environment variables prefixed with FORTYTWO_ (highest priority)
2. .env file in the working directory
3. Default values (lowest priority)

The config is frozen once loaded and the client secret is kept as SecretStr.
"""

from functools import lru_cache
from typing import Annotated

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_RATE_WINDOW",
    "DEFAULT_TOKEN_URL",
    "FortyTwoConfig",
    "get_config",
    "reset_config",
]


DEFAULT_BASE_URL = "https://api.intra.42.fr/v2/"
DEFAULT_TOKEN_URL = "https://api.intra.42.fr/oauth/token"

# Slightly over one second to absorb clock skew against the per-second quota
DEFAULT_RATE_WINDOW = 1.1


class FortyTwoConfig(BaseSettings):
    """Configuration for a FortyTwoClient.

    Attributes:
        client_id: OAuth application UID
        client_secret: OAuth application secret
        scopes: OAuth scopes requested by the client-credentials grant
        base_url: API root that relative endpoints are joined onto
        token_url: OAuth token endpoint
        rate: Requests admitted per rate window
        rate_window: Rate window length in seconds
        max_retry: Retry ceiling for 401/429 responses (0 disables retries)
        retry_server_errors: Also retry 5xx responses within the same budget
        log_requests: Emit a log line for every successful request
        timeout: httpx read timeout in seconds
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format (json or text)
    """

    model_config = SettingsConfigDict(
        env_prefix="FORTYTWO_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        validate_default=True,
        frozen=True,
        extra="ignore",
    )

    client_id: str = Field(
        default="",
        description="OAuth application UID",
    )
    client_secret: SecretStr = Field(
        default=SecretStr(""),
        description="OAuth application secret",
    )
    scopes: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["public"],
        description="OAuth scopes (comma or space separated in the environment)",
    )

    base_url: str = Field(default=DEFAULT_BASE_URL)
    token_url: str = Field(default=DEFAULT_TOKEN_URL)

    rate: int = Field(
        default=2,
        ge=1,
        le=100,
        description="Requests admitted per rate window",
    )
    rate_window: float = Field(
        default=DEFAULT_RATE_WINDOW,
        gt=0.0,
        le=60.0,
        description="Rate window length in seconds",
    )
    max_retry: int = Field(
        default=5,
        ge=0,
        le=20,
        description="Retry ceiling for retryable responses. 0 disables retries.",
    )
    retry_server_errors: bool = Field(
        default=False,
        description="Treat 5xx responses as retryable",
    )
    log_requests: bool = Field(
        default=False,
        description="Log status, method and URL of every successful request",
    )
    timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Read timeout for API calls in seconds",
    )

    log_level: str = Field(default="WARNING")
    log_format: str = Field(default="json")

    @field_validator("scopes", mode="before")
    @classmethod
    def parse_scopes(cls, v):
        """Split a comma or space separated scope string into a list."""
        if isinstance(v, str):
            return [s for s in v.replace(",", " ").split() if s]
        return v

    @field_validator("base_url")
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        """Relative endpoints are joined onto base_url, so keep it a directory."""
        return v if v.endswith("/") else v + "/"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: '{v}'")
        return level

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        fmt = v.lower()
        if fmt not in {"json", "text"}:
            raise ValueError(f"Invalid log format: '{v}'. Expected 'json' or 'text'.")
        return fmt

    @model_validator(mode="after")
    def validate_credentials(self) -> "FortyTwoConfig":
        """A secret without an id (or the reverse) is always a mistake."""
        has_id = bool(self.client_id)
        has_secret = bool(self.client_secret.get_secret_value())
        if has_id != has_secret:
            raise ValueError(
                "FORTYTWO_CLIENT_ID and FORTYTWO_CLIENT_SECRET must be set together"
            )
        return self

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id)


@lru_cache(maxsize=1)
def get_config() -> FortyTwoConfig:
    """Get global configuration singleton.

    First call loads from environment + .env file, subsequent calls return
    the cached instance.

    Raises:
        ValidationError: If configuration values are invalid.
    """
    return FortyTwoConfig()


def reset_config() -> None:
    """Clear the cached configuration. Only meant for tests."""
    get_config.cache_clear()
