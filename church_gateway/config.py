"""
Configuration module for the Church Gateway.

This module uses Pydantic Settings to load and validate environment variables
for backend proxy targets, Supabase access, the RLS bootstrap secret,
password hashing and CORS settings.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every field has a default so the application can be imported without a
    populated environment; validate_configuration() reports what is missing.
    """

    # =========================================================================
    # Backend Proxy Targets
    # =========================================================================

    API_URL: HttpUrl = Field(
        default="http://localhost:3001",
        description="Base URL that /api-proxy/* image requests are forwarded to",
    )

    BACKEND_API_URL: HttpUrl = Field(
        default="http://localhost:3001",
        validation_alias=AliasChoices("BACKEND_API_URL", "NEXT_PUBLIC_API_URL"),
        description="Base URL of the JSON backend API (files, members)",
    )

    HTTP_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Timeout for outbound proxy requests in seconds",
        gt=0,
        le=300,
    )

    # =========================================================================
    # Supabase (identity provider and database RPCs)
    # =========================================================================

    SUPABASE_URL: str = Field(
        default="",
        description="Supabase project URL (e.g., https://xyz.supabase.co)",
    )

    SUPABASE_ANON_KEY: str = Field(
        default="",
        description="Anon key; user-scoped clients are built from it",
    )

    SUPABASE_SERVICE_ROLE_KEY: str = Field(
        default="",
        description="Service role key for privileged calls (bypasses RLS)",
    )

    SESSION_COOKIE_NAME: str = Field(
        default="sb-access-token",
        description="Cookie holding the Supabase access token when no Authorization header is sent",
        min_length=1,
    )

    # =========================================================================
    # Credentials
    # =========================================================================

    RLS_SETUP_KEY: Optional[str] = Field(
        None,
        description="Shared secret for /api/auth/disable-rls (endpoint is closed when unset)",
    )

    BCRYPT_ROUNDS: int = Field(
        default=10,
        description="bcrypt cost factor for member password hashes",
        ge=4,
        le=16,
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the gateway server",
    )

    PORT: int = Field(
        default=3000,
        description="Port to bind the gateway server",
        ge=1,
        le=65535,
    )

    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def allowed_origins_list(self) -> List[str]:
        """
        Parse and return ALLOWED_ORIGINS as a list.

        Returns:
            List of allowed origin URLs, or empty list if not configured.
        """
        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    @property
    def api_url_str(self) -> str:
        """Image backend URL as string without trailing slash."""
        return str(self.API_URL).rstrip("/")

    @property
    def backend_api_url_str(self) -> str:
        """JSON backend URL as string without trailing slash."""
        return str(self.BACKEND_API_URL).rstrip("/")

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """
        Validate LOG_LEVEL is a standard logging level name.

        Raises:
            ValueError: If the level is not recognised
        """
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = v.upper().strip()

        if level not in allowed_levels:
            raise ValueError(
                f"LOG_LEVEL must be one of {allowed_levels}, got: {v}"
            )

        return level

    @field_validator("SUPABASE_URL")
    @classmethod
    def validate_supabase_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if v and not v.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid SUPABASE_URL: '{v}'. Expected an http(s) URL"
            )
        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Cached so the environment is read once per process. Tests build their own
    Settings and hand them to create_app() instead.

    Raises:
        ValidationError: If an environment variable is present but invalid.
    """
    return Settings()


def validate_configuration(settings: Settings) -> dict:
    """
    Validate critical configuration settings and return a status report.

    Called during application startup; errors do not stop the process but
    the affected routes will answer 500.

    Example:
        >>> status = validate_configuration(get_settings())
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    errors = []
    warnings = []

    if not settings.SUPABASE_URL:
        errors.append("SUPABASE_URL is not set")

    if not settings.SUPABASE_ANON_KEY:
        errors.append("SUPABASE_ANON_KEY is not set (sessions cannot be resolved)")

    if not settings.SUPABASE_SERVICE_ROLE_KEY:
        warnings.append(
            "SUPABASE_SERVICE_ROLE_KEY is not set (password, role and RLS routes will fail)"
        )

    if not settings.RLS_SETUP_KEY:
        warnings.append("RLS_SETUP_KEY is not set (RLS bootstrap endpoint is closed)")
    elif len(settings.RLS_SETUP_KEY) < 32:
        warnings.append("RLS_SETUP_KEY is shorter than recommended (32+ chars)")

    for name, url in (
        ("API_URL", settings.api_url_str),
        ("BACKEND_API_URL", settings.backend_api_url_str),
    ):
        if "localhost" in url or "127.0.0.1" in url:
            warnings.append(f"{name} points to localhost (may cause issues in containers)")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
    }


if __name__ == "__main__":
    """
    Validate the current .env configuration:
        python -m church_gateway.config
    """
    config = get_settings()

    print("Backend Configuration:")
    print(f"  Image API URL:   {config.api_url_str}")
    print(f"  Backend API URL: {config.backend_api_url_str}")
    print(f"  Supabase URL:    {config.SUPABASE_URL or '(not set)'}")

    status = validate_configuration(config)
    for error in status["errors"]:
        print(f"  ERROR:   {error}")
    for warning in status["warnings"]:
        print(f"  WARNING: {warning}")
