"""Configuration settings for FleetOps."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_prefix="FLEETOPS_", env_file=".env")

    # Server
    host: str = "127.0.0.1"  # Use FLEETOPS_HOST=0.0.0.0 for Docker
    port: int = 8080
    debug: bool = False

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0
    redis_pool_size: int = 50

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_capacity: int = 10
    rate_limit_refill_period_seconds: float = 60.0
    rate_limit_whitelist: list[str] = [
        "/actuator/health",
        "/swagger-ui",
        "/v3/api-docs",
        "/metrics",
    ]
    rate_limit_idle_eviction_periods: int | None = 10
    rate_limit_sweep_interval_seconds: float = 300.0

    # Security
    jwt_secret: str = "fleetops-development-secret-change-me-now"
    jwt_algorithm: str = "HS256"
    hsts_enabled: bool = False
    hsts_max_age: int = 0
    hsts_include_subdomains: bool = False
    hsts_preload: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
