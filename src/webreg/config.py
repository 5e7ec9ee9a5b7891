"""Client configuration loaded from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, "
    "like Gecko) Chrome/97.0.4692.71 Safari/537.36"
)


class ClientConfig(BaseSettings):
    """WebReg client configuration loaded from environment variables.

    Settings are loaded from ``WEBREG_*`` environment variables with sensible
    defaults. For local development, create a .env file in the project root.
    The session cookie is deliberately not a setting; it is passed to the client.
    """

    # Service
    base_url: str = Field(
        default="https://act.ucsd.edu/webreg2",
        description="Base URL of the enrollment service",
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent header sent with every request",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        description="Per-request timeout applied to every call",
    )
    close_after_request: bool = Field(
        default=False,
        description="Send 'Connection: close' instead of reusing connections",
    )

    # Self-throttling (courtesy delay, not error recovery)
    throttle_every: int = Field(
        default=25,
        ge=0,
        description="Pause before every Nth request; 0 disables throttling",
    )
    throttle_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Length of the courtesy pause",
    )

    # Opt-in retry for read-only requests
    read_attempts: int = Field(
        default=1,
        ge=1,
        description="Total attempts for GET requests; 1 means never retry",
    )
    read_retry_wait_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Fixed wait between GET attempts",
    )

    # Guardrails
    read_only: bool = Field(
        default=False,
        description="Refuse committing POSTs; dry-run validation is still allowed",
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
        "env_prefix": "WEBREG_",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton pattern
_config: ClientConfig | None = None


def get_config() -> ClientConfig:
    """Get the client configuration singleton.

    Returns:
        ClientConfig: Client configuration instance
    """
    global _config
    if _config is None:
        _config = ClientConfig()
    return _config
