import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False
    LOG_LEVEL: str = "INFO"

    # Generative backend (Groq)
    GROQ_API_KEY: Optional[str] = None
    HOOKS_DRAFT_MODEL: str = "llama-3.1-8b-instant"
    HOOKS_PREMIUM_MODEL: str = "llama-3.3-70b-versatile"
    HOOKS_TEMPERATURE: float = 0.8
    HOOKS_MAX_TOKENS: int = 4000
    HOOKS_PER_GENERATION: int = 6
    BACKEND_TIMEOUT_SECONDS: float = 30.0
    BACKEND_MAX_RETRIES: int = 2

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Entitlement policy (product numbers, not invariants)
    FREE_MONTHLY_DRAFT_LIMIT: int = 5
    FREE_CREDITS_DEFAULT: int = 5
    STARTER_PREMIUM_CAP: Optional[int] = 100
    CREATOR_PREMIUM_CAP: Optional[int] = 200
    PRO_PREMIUM_CAP: Optional[int] = 400
    TEAMS_PREMIUM_CAP: Optional[int] = None  # None = unlimited
    USAGE_PERIOD_DAYS: int = 30
    ALLOW_FREE_PREMIUM_DOWNGRADE: bool = False

    # HTTP
    CORS_ALLOWED_ORIGINS: str = "http://localhost:3000"  # comma-separated

    # Observability / Tracing
    OTEL_ENABLED: bool = False
    OTEL_EXPORTER: str = "console"  # console | memory

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("hooksmith")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "GROQ_API_KEY",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    if cfg.FREE_MONTHLY_DRAFT_LIMIT < 0 or cfg.USAGE_PERIOD_DAYS <= 0:
        message = "Entitlement policy limits must be non-negative and the usage period positive"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
