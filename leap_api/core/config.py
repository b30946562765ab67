from functools import lru_cache
from typing import List, Optional
import os

from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if it exists, for local development
# In production, environment variables should be set directly.
if os.path.exists(".env"):
    from dotenv import load_dotenv
    load_dotenv()


class Settings(BaseSettings):
    """Service configuration. Every field can be overridden with a LEAP_* variable."""

    database_url: str = "sqlite+aiosqlite:///./leap.db"
    redis_url: str = "redis://localhost:6379/0"

    # Bearer credentials issued by the auth provider (HS256 shared secret)
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"
    jwt_issuer: Optional[str] = None

    # Bot verification
    hcaptcha_secret_key: Optional[str] = None
    hcaptcha_verify_url: str = "https://hcaptcha.com/siteverify"
    require_captcha_for_anonymous: bool = True

    # Anonymous callers may read a result for this long after it was created
    anonymous_view_window_seconds: int = 600

    # Fixed-window limits per client address
    rate_limit_window_seconds: int = 60
    submit_rate_limit: int = 20
    results_rate_limit: int = 30
    user_exists_rate_limit: int = 10

    # Outbound HTTP calls (verification provider)
    http_timeout_seconds: float = 10.0
    http_retry_attempts: int = 3
    http_retry_wait_seconds: float = 1.0

    allowed_origins: List[str] = ["*"]
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="LEAP_")


@lru_cache
def get_settings() -> Settings:
    return Settings()
