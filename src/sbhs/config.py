"""SBHS client configuration loaded from environment variables."""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class SbhsConfig(BaseSettings):
    """Configuration for the SBHS OAuth app and API client.

    Settings are loaded from environment variables with sensible defaults.
    For local development, create a .env file in the project root.
    """

    # OAuth app registration
    sbhs_client_id: str = Field(
        default="",
        validation_alias=AliasChoices("sbhs_app_id", "sbhs_client_id"),
        description="OAuth client id issued by the SBHS student portal",
    )
    sbhs_client_secret: str = Field(
        default="",
        validation_alias=AliasChoices("sbhs_app_secret", "sbhs_client_secret"),
        description="OAuth client secret",
    )
    sbhs_redirect_uri: str = Field(
        default="http://localhost:3000/auth/callback",
        description="Redirect URI registered with the OAuth app",
    )
    sbhs_authorization_endpoint: str = Field(
        default="https://auth.sbhs.net.au/authorize",
        description="OAuth authorization endpoint",
    )
    sbhs_token_endpoint: str = Field(
        default="https://auth.sbhs.net.au/token",
        description="OAuth token endpoint",
    )
    sbhs_scope: str = Field(
        default="all-ro",
        description="OAuth scope (read-only access to all student APIs)",
    )

    # API hosts, tried in order until one answers with JSON
    sbhs_api_hosts: list[str] = Field(
        default=["https://student.sbhs.net.au", "https://api.sbhs.net.au"],
        description="Ordered SBHS API hosts",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for every upstream HTTP request",
    )
    max_redirects: int = Field(
        default=5,
        description="Redirects followed before giving up on an upstream URL",
    )

    # Local state
    state_dir: str = Field(
        default="data/state",
        description="Directory for stored tokens and the week selection",
    )
    refresh_token_max_age_days: int = Field(
        default=30,
        description="Age after which a stored refresh token is discarded",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }


# Singleton pattern
_config: SbhsConfig | None = None


def get_config() -> SbhsConfig:
    """Get the SBHS configuration singleton.

    Returns:
        SbhsConfig: Configuration instance
    """
    global _config
    if _config is None:
        _config = SbhsConfig()
    return _config


def reset_config() -> None:
    """Forget the cached configuration so the next call re-reads the environment."""
    global _config
    _config = None
