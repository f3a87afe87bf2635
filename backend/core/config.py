import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Clerk Auth
    CLERK_JWT_KEY: Optional[str] = None  # HS256 signing key (dev/test tokens)
    CLERK_ISSUER: Optional[str] = None  # e.g. https://your-instance.clerk.accounts.dev
    CLERK_JWKS_URL: Optional[str] = None  # e.g. https://your-instance.clerk.accounts.dev/.well-known/jwks.json
    CLERK_WEBHOOK_SECRET: Optional[str] = None
    WEBHOOK_SIGNATURE_SCHEME: str = "svix"  # svix | hex
    ALLOW_HEADER_AUTH: bool = True  # X-User-Id fallback (dev/test only)

    # Database & Cache
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None
    REDIS_URL: Optional[str] = "redis://localhost:6379"
    CACHE_ENABLED: bool = True
    VOICES_CACHE_TTL_SECONDS: int = 3600

    # Avatar synthesis provider (Azure batch avatar synthesis)
    AVATAR_API_BASE_URL: str = "https://ai-vidifyai-8342.cognitiveservices.azure.com/"
    AVATAR_SUBSCRIPTION_KEY: Optional[str] = None
    AVATAR_API_VERSION: str = "2024-08-01"
    AVATAR_TIMEOUT_SECONDS: float = 15.0
    AVATAR_DEFAULT_CHARACTER: str = "lisa"
    AVATAR_DEFAULT_STYLE: str = "casual-sitting"
    AVATAR_WATERMARK_TEXT: str = "Vidify"
    PROCESSING_AUDIO_THRESHOLD_SECONDS: int = 60

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None

    # App URLs
    FRONTEND_URL: str = "http://localhost:3000"
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

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
    log = logger or logging.getLogger("vidify")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "AVATAR_SUBSCRIPTION_KEY",
        "CLERK_WEBHOOK_SECRET",
        "STRIPE_SECRET_KEY",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True


def cors_origins(settings_obj: Optional[Settings] = None) -> list[str]:
    cfg = settings_obj or settings
    return [origin.strip() for origin in (cfg.CORS_ORIGINS or "").split(",") if origin.strip()]
