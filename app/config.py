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
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="Ledgerly Access API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    api_prefix: str = Field(default="/api", alias="API_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Redis
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_username: str = Field(default="default", alias="REDIS_USERNAME")
    redis_password: str = Field(default="", alias="REDIS_PASSWORD")
    redis_decode_responses: bool = Field(default=True, alias="REDIS_DECODE_RESPONSES")

    # Firebase
    firebase_credentials_path: str | None = Field(
        default=None,
        alias="FIREBASE_CREDENTIALS_PATH",
        description="Path to Firebase service account JSON file",
    )

    firebase_config_json: str | None = Field(
        default=None,
        alias="FIREBASE_CONFIG_JSON",
        description="Raw JSON string of the Firebase service account",
    )

    # Firestore collections
    users_collection: str = Field(default="users", alias="USERS_COLLECTION")
    businesses_collection: str = Field(default="businesses", alias="BUSINESSES_COLLECTION")
    audit_logs_collection: str = Field(default="auditLogs", alias="AUDIT_LOGS_COLLECTION")

    # User listing
    list_users_page_size: int = Field(default=1000, alias="LIST_USERS_PAGE_SIZE")

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

    # Rate Limiting
    enable_rate_limit: bool = Field(
        default=False,
        alias="ENABLE_RATE_LIMIT",
        description="Force rate limiting on outside production",
    )
    rate_limit_backend: str = Field(
        default="memory",
        alias="RATE_LIMIT_BACKEND",
        description="Counter store: 'memory' (per process) or 'redis' (shared)",
    )
    rate_limit_points: int = Field(default=60, alias="RATE_LIMIT_POINTS")
    rate_limit_window_seconds: int = Field(default=60, alias="RATE_LIMIT_WINDOW_SECONDS")
    strict_rate_limit_points: int = Field(default=5, alias="STRICT_RATE_LIMIT_POINTS")
    strict_rate_limit_window_seconds: int = Field(
        default=300, alias="STRICT_RATE_LIMIT_WINDOW_SECONDS"
    )

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def rate_limit_enabled(self) -> bool:
        """Rate limiting runs in production or when explicitly enabled."""
        return self.is_production or self.enable_rate_limit


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
