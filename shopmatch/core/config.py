import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database & Cache
    DATABASE_URL: str = "sqlite:///./shopmatch.db"
    REDIS_URL: str = "redis://localhost:6379/0"

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_PRICE_ID_PRO: Optional[str] = None
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300

    # App URLs
    APP_BASE_URL: str = "http://localhost:3000"

    # Auth (identity platform issues HS256 ID tokens)
    AUTH_JWT_SECRET: Optional[str] = None
    AUTH_JWT_ALGORITHMS: str = "HS256"  # comma-separated

    # Export rate limiting
    RATE_LIMIT_BACKEND: str = "memory"  # memory | redis
    EXPORT_RATE_LIMIT_MAX_REQUESTS: int = 5
    EXPORT_RATE_LIMIT_WINDOW_SECONDS: int = 3600
    EXPORT_RATE_LIMIT_MAX_KEYS: int = 1000

    # Job creation duplicate window
    JOB_DUPLICATE_WINDOW_SECONDS: int = 300

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def jwt_algorithms(self) -> list[str]:
        return [alg.strip() for alg in self.AUTH_JWT_ALGORITHMS.split(",") if alg.strip()]


settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("shopmatch")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
        "AUTH_JWT_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    if cfg.RATE_LIMIT_BACKEND not in {"memory", "redis"}:
        message = f"Unknown RATE_LIMIT_BACKEND: {cfg.RATE_LIMIT_BACKEND}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
