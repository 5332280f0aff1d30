from typing import List, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "Entity Renewal Jobs"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    """Pydantic v2 doesn't support parsing List[str] from a plain comma-separated string by default anymore."""
    ALLOWED_HOSTS: Union[str, List[str]] = "http://localhost:5173"
    APP_BASE_URL: str = "http://localhost:5173"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = ""
    LOG_FILENAME: str = "entity-renewal-jobs.log"
    LOG_ROTATION: str = "20 MB"
    LOG_RETENTION: str = "14 days"
    LOG_JSON: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./entity_renewal.db"

    # Redis & Celery
    REDIS_PASSWORD: str = ""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    CELERY_TIMEZONE: str = "UTC"

    # Email (SendGrid)
    SENDGRID_API_KEY: str = ""
    EMAIL_FROM_ADDRESS: str = "notifications@entityrenewal.pro"
    EMAIL_FROM_NAME: str = "Entity Renewal Pro"

    # Cron endpoint protection, empty disables the check
    CRON_SECRET: str = ""

    # Scheduled notifications
    NOTIFICATION_BATCH_SIZE: int = 500
    NOTIFICATION_CLAIM_TIMEOUT_MINUTES: int = 30
    NOTIFICATION_RETENTION_DAYS: int = 90
    FAILED_NOTIFICATION_RETENTION_DAYS: int = 180

    # Trials
    TRIAL_LENGTH_DAYS: int = 14

    # Security monitoring
    SECURITY_MONITOR_WINDOW_MINUTES: int = 60
    SECURITY_IP_BLOCK_THRESHOLD: int = 10
    SECURITY_ALERT_EMAIL: str = ""

    @field_validator("ALLOWED_HOSTS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if not v:
            return []
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        return v

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
