from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "ClinicToken"
    API_V1_STR: str = "/api/v1"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "password"
    POSTGRES_DB: str = "clinictoken"
    DATABASE_URL: Optional[str] = None
    DATABASE_ECHO: bool = False
    LOG_LEVEL: str = "INFO"

    # Cross-worker change fan-out is disabled when unset
    REDIS_URL: Optional[str] = None
    CHANGE_CHANNEL: str = "clinictoken:changes"
    CHANGE_RELAY_RETRY_SECONDS: float = 1.0

    # Token dates are stamped by the server in this zone
    CLINIC_TIMEZONE: str = "UTC"

    ALLOCATION_MAX_ATTEMPTS: int = 3
    ALLOCATION_RETRY_BACKOFF_SECONDS: float = 0.05

    class Config:
        case_sensitive = True
        env_file = ".env"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if not self.DATABASE_URL:
            self.DATABASE_URL = f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}/{self.POSTGRES_DB}"

settings = Settings()
