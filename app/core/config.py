"""Application configuration loaded from environment variables.

Settings for database, session tokens, one-time codes, password hashing,
OAuth providers and email. Uses pydantic-settings for validation and .env
file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "accounts_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32

# bcrypt accepts cost factors 4..31
_MIN_BCRYPT_ROUNDS = 4
_MAX_BCRYPT_ROUNDS = 31


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "accounts"
    database_user: str = "accounts_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD
    # Full async URL override (e.g. sqlite+aiosqlite:///./dev.db)
    database_url_override: str = ""
    # Connection pool (ignored for SQLite)
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Session tokens
    # No usable default: create_app() refuses to start with an empty secret.
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "accounts-service"
    auth_audience: str = "accounts-api"
    session_token_ttl_minutes: int = 60 * 24 * 7
    auth_cookie_name: str = "accounts.session-token"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    auth_cookie_domain: str = ""

    # One-time codes
    code_length: int = 6
    code_ttl_minutes: int = 10
    code_cooldown_minutes: int = 10

    # Hashing
    password_hash_rounds: int = 12
    # Codes live for minutes, so a low work factor is enough
    code_hash_rounds: int = 6
    password_min_length: int = 6

    # OAuth Providers
    google_client_id: str = ""
    google_client_secret: SecretStr = SecretStr("")
    facebook_client_id: str = ""
    facebook_client_secret: SecretStr = SecretStr("")

    # Email
    email_from: str = "noreply@example.com"
    resend_api_key: SecretStr = SecretStr("")

    # Frontend URL (for OAuth redirect back to frontend)
    frontend_url: str = "http://localhost:3000"

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "10/minute", "100/hour")
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate security and consistency requirements.

        Checks:
        - SameSite=None requires Secure flag (browser requirement)
        - Code length, TTL and cooldown must be positive (all environments)
        - bcrypt rounds must be in bcrypt's accepted range (all environments)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        """
        # Cookie security invariant: SameSite=None requires Secure (all environments)
        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            msg = (
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        for name in ("code_length", "code_ttl_minutes", "session_token_ttl_minutes"):
            if getattr(self, name) <= 0:
                msg = f"{name.upper()} must be positive. Got: {getattr(self, name)}"
                raise ValueError(msg)
        if self.code_cooldown_minutes < 0:
            msg = (
                "CODE_COOLDOWN_MINUTES cannot be negative. "
                f"Got: {self.code_cooldown_minutes}"
            )
            raise ValueError(msg)

        for name in ("password_hash_rounds", "code_hash_rounds"):
            rounds = getattr(self, name)
            if not _MIN_BCRYPT_ROUNDS <= rounds <= _MAX_BCRYPT_ROUNDS:
                msg = (
                    f"{name.upper()} must be between {_MIN_BCRYPT_ROUNDS} and "
                    f"{_MAX_BCRYPT_ROUNDS}. Got: {rounds}"
                )
                raise ValueError(msg)

        if self.environment == "production":
            if (
                not self.database_url_override
                and self.database_password == _INSECURE_DEFAULT_PASSWORD
            ):
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "AUTH_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

        return self


settings = Settings()
