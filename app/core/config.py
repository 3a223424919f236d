from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'invoicing_user'
    POSTGRES_PASSWORD: str = 'invoicing_pass'
    POSTGRES_DB: str = 'invoicing_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    # Full URL override (e.g. sqlite for tests)
    DATABASE_URL: Optional[str] = None

    # Redis settings
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # JWT settings
    APP_SECRET_STRING: str = 'your-super-secret-key-here-change-in-production-2024'
    ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Pagination
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # Invoice status automation
    DUE_SOON_THRESHOLD_DAYS_DEFAULT: int = 7
    STATUS_SWEEP_INTERVAL_SECONDS: float = 3600.0  # hourly
    STATUS_SWEEP_LOCK_BACKEND: str = 'local'  # local | redis
    STATUS_SWEEP_LOCK_TIMEOUT: int = 15 * 60
    INVOICE_NUMBER_PREFIX: str = 'INV-'

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("STATUS_SWEEP_LOCK_BACKEND", mode="before")
    @classmethod
    def parse_lock_backend(cls, v):
        value = str(v).lower().strip('"').strip("'")
        if value not in ("local", "redis"):
            raise ValueError("STATUS_SWEEP_LOCK_BACKEND must be 'local' or 'redis'")
        return value

    @field_validator("DUE_SOON_THRESHOLD_DAYS_DEFAULT")
    @classmethod
    def validate_threshold_default(cls, v):
        if v < 1:
            raise ValueError("DUE_SOON_THRESHOLD_DAYS_DEFAULT must be a positive integer")
        return v

settings = Settings()
