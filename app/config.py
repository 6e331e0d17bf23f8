from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application Config
    PROJECT_NAME: str = Field(default="HemoTrack API")
    PROJECT_DESCRIPTION: str = Field(
        default="Blood unit lifecycle and donor matching service"
    )
    VERSION: str = Field(default="1.0.0")
    API_PREFIX: str = Field(default="/api")
    DOCS_URL: str = Field(default="/docs")

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=True)

    # Database
    DATABASE_URL: str = Field(default="")
    DATABASE_POOL_SIZE: int = Field(default=5)
    DATABASE_MAX_OVERFLOW: int = Field(default=10)

    # Development database fallback
    DEV_DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./db.sqlite3")

    # CORS Configuration
    BACKEND_CORS_ORIGINS: list[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:4200",
            "http://localhost",
        ]
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_TO_FILE: bool = Field(default=True)
    LOG_DIR: str = Field(default="logs")

    # Donor eligibility and contact rules
    DONATION_GAP_DAYS: int = Field(default=90)
    DAILY_REQUEST_LIMIT: int = Field(default=10)
    CONTACT_COOLDOWN_DAYS: int = Field(default=7)
    REQUEST_TTL_HOURS: int = Field(default=24)
    DEFAULT_COUNTRY_CODE: str = Field(default="91")

    # Inventory
    INVENTORY_SHELF_LIFE_DAYS: int = Field(default=42)
    LOW_STOCK_THRESHOLD: int = Field(default=5)
    EXPIRY_HORIZON_DAYS: int = Field(default=7)

    # Outbound notifications (empty URL keeps messages in the log only)
    NOTIFICATION_SERVICE_URL: str = Field(default="")
    NOTIFICATION_TIMEOUT_SECONDS: float = Field(default=10.0)

    # Scheduler
    SCHEDULER_ENABLED: bool = Field(default=True)
    DAILY_JOB_HOUR: int = Field(default=9, ge=0, le=23)

    # Pydantic v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def model_post_init(self, __context) -> None:
        """Post-initialization validation and setup"""
        # Handle CORS origins from comma-separated string
        if isinstance(self.BACKEND_CORS_ORIGINS, str):
            self.BACKEND_CORS_ORIGINS = [
                origin.strip() for origin in self.BACKEND_CORS_ORIGINS.split(",")
            ]

        if self.ENVIRONMENT.lower() == "production":
            # In production, require DATABASE_URL to be explicitly set
            if not self.DATABASE_URL:
                raise ValueError("DATABASE_URL must be set in production!")
        else:
            # In development, use DATABASE_URL if provided, otherwise fall back to DEV_DATABASE_URL
            if not self.DATABASE_URL:
                self.DATABASE_URL = self.DEV_DATABASE_URL


# Instantiate settings
settings = Settings()
