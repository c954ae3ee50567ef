"""
Settings for Cassius Calendar Sync.

Everything is read from the environment (or a .env file) once per process;
.env.example lists every variable.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STATE_SECRET = "cassius-oauth-state-secret"


class Settings(BaseSettings):
    """
    Process configuration.

    Field names map to upper-case environment variables (DATABASE_URL,
    GOOGLE_OAUTH_CLIENT_ID, ...).
    """

    # Python & Application
    python_env: Literal["development", "production"] = Field(
        default="development",
        description="development or production"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./data/cassius_sync.db",
        description="Sync database URL (sqlite:/// or postgresql://)"
    )

    # API Configuration
    api_host: str = Field(
        default="0.0.0.0",
        description="Bind address for uvicorn"
    )
    api_port: int = Field(
        default=8000,
        description="Bind port for uvicorn"
    )
    api_reload: bool = Field(
        default=True,
        description="uvicorn auto-reload (development only)"
    )
    app_base_url: str = Field(
        default="http://localhost:5000",
        description="Base URL of the web application (OAuth callback redirects land here)"
    )

    # Google OAuth Configuration (per-organisation calendars)
    google_oauth_client_id: str = Field(
        default="",
        description="OAuth client ID of the Cassius Google Cloud project"
    )
    google_oauth_client_secret: str = Field(
        default="",
        description="OAuth client secret of the Cassius Google Cloud project"
    )
    google_oauth_redirect_uri: str = Field(
        default="http://localhost:8000/api/integrations/google/callback",
        description="Callback URL registered for the OAuth client"
    )

    # OAuth state signing
    oauth_state_secret: str = Field(
        default=DEFAULT_STATE_SECRET,
        description="Server-held secret used to sign OAuth state parameters"
    )
    oauth_state_max_age_seconds: int = Field(
        default=15 * 60,
        description="Maximum age of a signed OAuth state"
    )

    # Token lifecycle
    token_refresh_margin_seconds: int = Field(
        default=5 * 60,
        description="Refresh access tokens expiring within this many seconds"
    )

    # Calendar sync behaviour
    calendar_timezone: str = Field(
        default="Europe/Paris",
        description="IANA time zone written on provider events"
    )
    default_appointment_minutes: int = Field(
        default=30,
        description="Event duration used when an appointment has no end date"
    )
    import_window_past_days: int = Field(
        default=30,
        description="Default import window start (days before now)"
    )
    import_window_future_days: int = Field(
        default=90,
        description="Default import window end (days after now)"
    )
    google_api_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for a single Google Calendar API call"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def is_development(self) -> bool:
        """Development mode (tables are created at startup)."""
        return self.python_env == "development"

    @property
    def is_production(self) -> bool:
        """Production mode."""
        return self.python_env == "production"

    @property
    def uses_postgresql(self) -> bool:
        """Whether DATABASE_URL points at PostgreSQL."""
        return "postgresql" in self.database_url.lower()

    @property
    def uses_google_oauth(self) -> bool:
        """Whether the OAuth client is fully configured."""
        return bool(
            self.google_oauth_client_id
            and self.google_oauth_client_secret
            and self.google_oauth_redirect_uri
        )

    def missing_oauth_variables(self) -> list[str]:
        """
        List the OAuth-related environment variables that are not set.

        Returns:
            Environment variable names, empty when fully configured
        """
        missing = []
        if not self.google_oauth_client_id:
            missing.append("GOOGLE_OAUTH_CLIENT_ID")
        if not self.google_oauth_client_secret:
            missing.append("GOOGLE_OAUTH_CLIENT_SECRET")
        if not self.google_oauth_redirect_uri:
            missing.append("GOOGLE_OAUTH_REDIRECT_URI")
        if not self.app_base_url:
            missing.append("APP_BASE_URL")
        if not self.oauth_state_secret or self.oauth_state_secret == DEFAULT_STATE_SECRET:
            missing.append("OAUTH_STATE_SECRET")
        return missing

    def validate_production_config(self) -> None:
        """
        Refuse unsafe settings in production.

        Raises:
            ValueError: Listing every problem found
        """
        if not self.is_production:
            return

        errors = []

        if not self.uses_postgresql:
            errors.append("DATABASE_URL must point at PostgreSQL in production.")

        if self.oauth_state_secret == DEFAULT_STATE_SECRET:
            errors.append("OAUTH_STATE_SECRET must be set in production.")

        if errors:
            raise ValueError("Invalid production configuration:\n- " + "\n- ".join(errors))


@lru_cache()
def get_settings() -> Settings:
    """
    Settings for this process, loaded on first use.

    Tests that need different values construct Settings directly and inject
    them through the FastAPI dependency overrides.
    """
    return Settings()
