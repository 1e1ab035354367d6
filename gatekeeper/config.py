"""Configuration settings for Gatekeeper."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

DEFAULT_CSRF_SECRET = "change-me-in-production"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./gatekeeper.db")

    # Sessions
    SESSION_TTL_MINUTES: int = int(os.getenv("SESSION_TTL_MINUTES", "120"))
    TEMP_TOKEN_TTL_MINUTES: int = int(os.getenv("TEMP_TOKEN_TTL_MINUTES", "5"))

    # Passwords
    BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))
    PASSWORD_MAX_BYTES: int = int(os.getenv("PASSWORD_MAX_BYTES", "1024"))
    PASSWORD_MIN_LENGTH: int = int(os.getenv("PASSWORD_MIN_LENGTH", "8"))
    PASSWORD_REQUIRE_UPPERCASE: bool = _env_bool("PASSWORD_REQUIRE_UPPERCASE", "true")
    PASSWORD_REQUIRE_LOWERCASE: bool = _env_bool("PASSWORD_REQUIRE_LOWERCASE", "true")
    PASSWORD_REQUIRE_DIGIT: bool = _env_bool("PASSWORD_REQUIRE_DIGIT", "true")
    PASSWORD_REQUIRE_SYMBOL: bool = _env_bool("PASSWORD_REQUIRE_SYMBOL", "true")

    # Brute-force policy
    MAX_LOGIN_ATTEMPTS: int = int(os.getenv("MAX_LOGIN_ATTEMPTS", "5"))
    LOCKOUT_MINUTES: int = int(os.getenv("LOCKOUT_MINUTES", "15"))
    MAX_IP_FAILURES: int = int(os.getenv("MAX_IP_FAILURES", "20"))
    IP_BLOCK_WINDOW_MINUTES: int = int(os.getenv("IP_BLOCK_WINDOW_MINUTES", "60"))
    DELAY_STEP_MS: int = int(os.getenv("DELAY_STEP_MS", "500"))
    MAX_DELAY_MS: int = int(os.getenv("MAX_DELAY_MS", "5000"))

    # Two-factor
    TOTP_ISSUER: str = os.getenv("TOTP_ISSUER", "Gatekeeper")
    TOTP_VALID_WINDOW: int = int(os.getenv("TOTP_VALID_WINDOW", "1"))
    MAX_TWO_FACTOR_ATTEMPTS: int = int(os.getenv("MAX_TWO_FACTOR_ATTEMPTS", "5"))

    # Coarse per-IP API limits
    LOGIN_RATE_LIMIT: str = os.getenv("LOGIN_RATE_LIMIT", "10/minute")

    # CSRF
    CSRF_SECRET: str = os.getenv("CSRF_SECRET", DEFAULT_CSRF_SECRET)

    # Application
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = _env_bool("DEBUG", "false")

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    def validate(self) -> list[str]:
        """Validate settings and return list of warnings."""
        errors = []
        if self.is_production and self.BCRYPT_ROUNDS < 12:
            errors.append(f"BCRYPT_ROUNDS={self.BCRYPT_ROUNDS} is below the production minimum of 12")
        if self.MAX_DELAY_MS > 5000:
            errors.append("MAX_DELAY_MS above 5000 lets failing clients hold request workers for long periods")
        if self.DATABASE_URL.startswith("sqlite") and self.is_production:
            errors.append("DATABASE_URL points at SQLite in production")
        if self.is_production and self.CSRF_SECRET == DEFAULT_CSRF_SECRET:
            errors.append("CSRF_SECRET is still the default value")
        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
