from typing import List, Union
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    # App Info
    APP_NAME: str = "HUVR Export API"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"

    # Database (export templates)
    DATABASE_URL: str = "sqlite:///./huvr_export.db"

    # CORS
    CORS_ORIGINS: Union[str, List[str]] = "http://localhost:3000"

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',')]
        return v

    # HUVR Data API
    HUVR_BASE_URL: str = "https://api.huvrdata.app"
    HUVR_CLIENT_ID: str = ""  # API client id issued by HUVR
    HUVR_CLIENT_SECRET: str = ""
    HUVR_TIMEOUT_SECONDS: int = 30
    HUVR_TOKEN_REFRESH_BUFFER_MINUTES: int = 5
    HUVR_AUTO_RETRY_ON_TOKEN_EXPIRATION: bool = True
    HUVR_PAGE_SIZE: int = 100

    @field_validator('HUVR_TIMEOUT_SECONDS')
    @classmethod
    def check_timeout(cls, v):
        if v <= 0:
            raise ValueError("HUVR_TIMEOUT_SECONDS must be greater than 0")
        return v

    @field_validator('HUVR_TOKEN_REFRESH_BUFFER_MINUTES')
    @classmethod
    def check_refresh_buffer(cls, v):
        if v < 0 or v > 60:
            raise ValueError("HUVR_TOKEN_REFRESH_BUFFER_MINUTES must be between 0 and 60")
        return v

    # Snapshot gathering
    GATHER_MAX_CONCURRENCY: int = 5

    # Media downloads (images, zip bundles)
    MEDIA_DOWNLOAD_TIMEOUT_SECONDS: int = 300

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def huvr_configured(self) -> bool:
        """True if HUVR client credentials are set (HUVR_CLIENT_ID and HUVR_CLIENT_SECRET)."""
        return bool(self.HUVR_CLIENT_ID and self.HUVR_CLIENT_SECRET)


# Create settings instance
settings = Settings()
