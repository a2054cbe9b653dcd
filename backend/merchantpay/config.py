"""Application configuration."""
from collections import Counter
from functools import lru_cache
import math

from pydantic import field_validator
from pydantic_settings import BaseSettings

ALLOWED_ALGORITHMS = {"HS256", "HS384", "HS512"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "MerchantPay"
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]

    # Database
    database_url: str = "sqlite:///./merchantpay.db"

    # Auth
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    cookie_secure: bool = True
    cookie_samesite: str = "strict"
    cookie_path: str = "/"

    # Payment gateway callers
    payment_api_key: str | None = None

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_window_ms: int = 15 * 60 * 1000
    rate_limit_max_requests: int = 100
    rate_limit_cleanup_interval_seconds: int = 60
    trust_forwarded_for: bool = False

    # Bootstrap account
    seed_superadmin_email: str | None = None
    seed_superadmin_password: str | None = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, value: str) -> str:
        """Fail closed if SECRET_KEY is weak or placeholder quality."""
        if not value:
            raise ValueError("SECRET_KEY must be set.")

        if len(value) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        weak_values = {"changeme", "changeme-in-production", "secret", "password", "test"}
        lowered = value.lower()
        if lowered in weak_values or "changeme" in lowered or "change-in-production" in lowered:
            raise ValueError("SECRET_KEY must not be a placeholder value.")

        counts = Counter(value)
        entropy_per_char = -sum((count / len(value)) * math.log2(count / len(value)) for count in counts.values())
        estimated_entropy_bits = entropy_per_char * len(value)
        if estimated_entropy_bits < 100:
            raise ValueError("SECRET_KEY entropy is too low; use a cryptographically random value.")

        return value

    @field_validator("algorithm")
    @classmethod
    def validate_algorithm(cls, value: str) -> str:
        """Only HMAC algorithms are accepted; 'none' is never valid."""
        normalized = value.upper()
        if normalized not in ALLOWED_ALGORITHMS:
            raise ValueError(f"ALGORITHM must be one of {sorted(ALLOWED_ALGORITHMS)}.")
        return normalized

    @field_validator("access_token_expire_minutes", "refresh_token_expire_days", "rate_limit_max_requests")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("value must be positive")
        return value

    @field_validator("rate_limit_window_ms")
    @classmethod
    def validate_window(cls, value: int) -> int:
        if value < 1000:
            raise ValueError("RATE_LIMIT_WINDOW_MS must be at least 1000.")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
