"""API configuration from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://directory:directory@db:5432/directory"
    STORAGE_BACKEND: str = "sql"  # sql | memory
    REDIS_URL: str = "redis://redis:6379/0"

    GEOAPIFY_API_KEY: str | None = None
    GEOCODING_ENABLED: bool = True
    GEOCODE_COUNTRY_CODES: str = "us"

    JWT_SECRET: str = "changeme"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 24
    MANAGER_USERNAME: str | None = None
    MANAGER_PASSWORD: str | None = None

    SEED_DEMO_DATA: bool = False
    DEFAULT_BILLING_CYCLE_DAYS: int = 30

    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    class Config:
        env_file = ".env"
        extra = "allow"


settings = Settings()
