"""
Configuration management using Pydantic Settings.
"""
from typing import Literal, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True
    )
    
    # Application Configuration
    app_name: str = Field(default="keyhub-gateway", alias="APP_NAME")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    app_env: Literal["development", "production", "testing"] = Field(
        default="development", alias="APP_ENV"
    )
    app_debug: bool = Field(default=False, alias="APP_DEBUG")
    
    # Database Configuration
    database_type: Literal["sqlite", "mysql", "postgresql"] = Field(
        default="sqlite", alias="DATABASE_TYPE"
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/keyhub.db",
        alias="DATABASE_URL"
    )
    
    # Redis Configuration (settings cache and dashboard events)
    redis_enabled: bool = Field(default=False, alias="REDIS_ENABLED")
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    redis_cache_ttl: int = Field(default=30, alias="REDIS_CACHE_TTL")
    
    # Logging Configuration
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: str = Field(default="./logs/app.log", alias="LOG_FILE")
    log_format: Literal["json", "text"] = Field(default="json", alias="LOG_FORMAT")
    
    # Upstream Configuration
    upstream_timeout: float = Field(default=30.0, alias="UPSTREAM_TIMEOUT")
    default_model: Optional[str] = Field(default=None, alias="DEFAULT_MODEL")
    anthropic_default_max_tokens: int = Field(default=1024, alias="ANTHROPIC_DEFAULT_MAX_TOKENS")
    
    # Health Policy
    demotion_step: int = Field(default=1, ge=1, alias="DEMOTION_STEP")
    priority_floor: int = Field(default=0, alias="PRIORITY_FLOOR")
    severe_demotion_to_floor: bool = Field(default=True, alias="SEVERE_DEMOTION_TO_FLOOR")
    provider_demotion_step: int = Field(default=1, ge=1, alias="PROVIDER_DEMOTION_STEP")
    
    # Recovery Policy
    recovery_enabled: bool = Field(default=False, alias="RECOVERY_ENABLED")
    recovery_interval: int = Field(default=600, alias="RECOVERY_INTERVAL")
    recovery_priority: int = Field(default=10, alias="RECOVERY_PRIORITY")
    
    # Caller Authentication
    api_keys: list[str] = Field(
        default_factory=list,
        alias="API_KEYS",
        description="Static caller keys accepted besides unified keys"
    )
    admin_key: str = Field(
        default="admin-secret-key-change-this",
        alias="ADMIN_KEY",
        description="Admin key for management endpoints"
    )
    
    # CORS Configuration
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")
    
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"
    
    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"
    
    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]
    
    @property
    def host(self) -> str:
        return self.app_host
    
    @property
    def port(self) -> int:
        return self.app_port
    
    @property
    def debug(self) -> bool:
        return self.app_debug
    
    @property
    def environment(self) -> str:
        return self.app_env


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """
    Get settings instance.
    
    Returns:
        Settings instance
    """
    return settings
