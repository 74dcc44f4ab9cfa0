import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Bearer auth (identity provider JWTs)
    AUTH_JWT_SECRET: Optional[str] = None
    AUTH_JWT_AUDIENCE: Optional[str] = None
    AUTH_JWT_ALGORITHMS: str = "HS256"  # comma-separated

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_PRODUCT_CREATOR: str = "prod_SSZaHsLaFBxkx5"
    STRIPE_PRODUCT_PRO: str = "prod_SSZbNGxuZMlP2M"

    # Completion providers
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.1-8b-instant"
    AI_GATEWAY_URL: Optional[str] = None  # OpenAI-compatible /v1 base
    AI_GATEWAY_API_KEY: Optional[str] = None
    AI_IMAGE_MODEL: str = "google/gemini-2.5-flash-image-preview"
    AI_REQUEST_TIMEOUT_SECONDS: float = 60.0

    # Token accounting
    UPSTREAM_FAILURE_POLICY: str = "keep"  # keep | refund
    TOKEN_RESET_CYCLE_DAYS: int = 30

    # HTTP
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"  # comma-separated

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
    log = logger or logging.getLogger("creatorai")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "AUTH_JWT_SECRET",
        "GROQ_API_KEY",
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    policy = getattr(cfg, "UPSTREAM_FAILURE_POLICY", "keep")
    if policy not in ("keep", "refund"):
        message = f"UPSTREAM_FAILURE_POLICY must be 'keep' or 'refund', got {policy!r}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
