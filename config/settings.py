"""
Application settings and environment configuration.

Purpose:
- Centralize all config (summarizer, weather provider, Web Push/VAPID, DB, scheduling)
- Load from environment variables (and an optional .env file) for 12-factor app compliance
- Provide sensible defaults for local development

A Settings instance is created once by the entry point and handed to
core.container.build_container; tests construct their own.
"""
from typing import List, Optional

from pydantic_settings import BaseSettings

# Keys the service cannot run without (checked at startup by main.py)
REQUIRED_KEYS = (
    "GROQ_API_KEY",
    "MET_API_USER_AGENT",
    "VAPID_SUBJECT",
    "VAPID_PRIVATE_KEY_BASE64",
    "VAPID_PUBLIC_KEY_BASE64",
)


class Settings(BaseSettings):
    # API Configuration
    API_TITLE: str = "7am weather summaries"
    API_VERSION: str = "0.3"
    DEBUG: bool = False

    # Summarization (Groq chat completions)
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.3-70b-versatile"
    SUMMARY_TEMPERATURE: float = 0.3
    SUMMARY_MAX_TOKENS: int = 400

    # Weather provider: met.no requires an identifying User-Agent
    # Example: "7am/0.3 github.com/you/7am"
    MET_API_USER_AGENT: Optional[str] = None
    MET_API_URL: str = "https://api.met.no/weatherapi/locationforecast/2.0/compact"
    WEATHER_TIMEOUT_SEC: float = 10.0
    USE_PLACEHOLDER: bool = False

    # Web Push: VAPID keys are base64url encoded (see `python main.py --generate-vapid-keys`)
    # VAPID_SUBJECT must be a mailto: or https: URL
    VAPID_SUBJECT: Optional[str] = None
    VAPID_PUBLIC_KEY_BASE64: Optional[str] = None
    VAPID_PRIVATE_KEY_BASE64: Optional[str] = None
    PUSH_TTL_SEC: int = 30
    PUSH_TIMEOUT_SEC: float = 10.0
    PUSH_MAX_CONCURRENCY: int = 32
    PRUNE_EXPIRED_SUBSCRIPTIONS: bool = False

    # Daily update time, evaluated in each location's own time zone
    UPDATE_HOUR: int = 7
    UPDATE_MINUTE: int = 0

    # Database: async SQLAlchemy URL
    # Format: sqlite+aiosqlite:///path/to/file.sqlite
    DATABASE_URL: str = "sqlite+aiosqlite:///data/data.sqlite"
    DATA_DIR: str = "data"

    # Graceful shutdown: seconds in-flight fan-out rounds may keep running
    SHUTDOWN_GRACE_SEC: float = 30.0

    # Rate Limiter: registration mutations per client per period (seconds)
    RATE_LIMIT_CALLS: int = 30
    RATE_LIMIT_PERIOD: int = 60

    # Logging: DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"  # Load from .env file if present
        extra = "ignore"

    def missing_required(self) -> List[str]:
        """Names of required settings that are unset or empty."""
        return [key for key in REQUIRED_KEYS if not getattr(self, key)]
