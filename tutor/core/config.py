import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Content producer (Groq)
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.1-8b-instant"
    GROQ_TEMPERATURE: float = 0.4
    GROQ_MAX_TOKENS: int = 2048
    DEFAULT_LANGUAGE: str = "English"

    # Primary document store & secondary realtime store
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None
    REDIS_URL: str = "redis://localhost:6379"
    REALTIME_ENABLED: bool = True
    CONTENT_NAMESPACE: str = "nst_content"
    SETTINGS_PATH: str = "nst_system_settings"

    # Credential service
    JWT_SECRET: Optional[str] = None
    JWT_ALG: str = "HS256"
    JWT_EXPIRES_MINUTES: int = 60 * 24 * 30  # 30 days
    ADMIN_EMAIL: Optional[str] = None
    # X-User-Id is honoured only outside production
    ALLOW_USER_ID_HEADER: bool = True

    # Entitlements & activity
    LIFETIME_DAYS_SENTINEL: int = 9999
    ACTIVITY_LOG_LIMIT: int = 500

    # HTTP
    CORS_ORIGINS: str = "http://localhost:5173"  # comma-separated

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
    log = logger or logging.getLogger("nst")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = ["DATABASE_URL", "GROQ_API_KEY", "JWT_SECRET"]
    if cfg.REALTIME_ENABLED:
        required_keys.append("REDIS_URL")

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
