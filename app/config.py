"""Application configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
    )

    # Application
    app_name: str = Field(default="Portal Scheduling API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Upstream system of record
    portal_api_base_url: str = Field(..., alias="PORTAL_API_BASE_URL")
    portal_api_timeout: float = Field(default=10.0, alias="PORTAL_API_TIMEOUT")

    # JWT (tokens are issued by the auth service, only verified here)
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Scheduling
    slot_interval_minutes: int = Field(default=30, ge=1, alias="SLOT_INTERVAL_MINUTES")
    appointment_duration_minutes: int = Field(
        default=30,
        ge=1,
        alias="APPOINTMENT_DURATION_MINUTES",
    )
    booking_verify_slot: bool = Field(
        default=True,
        alias="BOOKING_VERIFY_SLOT",
        description="Re-resolve the doctor's slots before submitting a booking",
    )
    # Upstream links follow-ups asynchronously; ~2s observed
    followup_refresh_delay_seconds: float = Field(
        default=2.0,
        ge=0,
        alias="FOLLOWUP_REFRESH_DELAY_SECONDS",
    )

    # CORS
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as a list."""
        if isinstance(self.cors_origins_str, str):
            return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]
        return [self.cors_origins_str]

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance
settings = get_settings()
