import os
from dotenv import load_dotenv
from pydantic import BaseModel

# Load environment variables from .env file
load_dotenv()

class Settings(BaseModel):
    """Application settings."""
    APP_NAME: str = "Dibs Calendar Sync"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = os.getenv("SECRET_KEY", "your-secret-key-here")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://localhost:5432/calsync")
    SQL_ECHO: bool = os.getenv("SQL_ECHO", "false").lower() == "true"
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "your-jwt-secret-key-here")
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", 30))

    # Cal.com platform (managed users)
    CAL_API_BASE_URL: str = os.getenv("CAL_API_BASE_URL", "https://api.cal.com/v2")
    CAL_API_VERSION: str = os.getenv("CAL_API_VERSION", "2024-08-13")
    CAL_CLIENT_ID: str = os.getenv("CAL_CLIENT_ID", "")
    CAL_CLIENT_SECRET: str = os.getenv("CAL_CLIENT_SECRET", "")
    CAL_WEBHOOK_SECRET: str = os.getenv("CAL_WEBHOOK_SECRET", "")
    CAL_TOKEN_EXPIRY_MARGIN_MINUTES: int = int(os.getenv("CAL_TOKEN_EXPIRY_MARGIN_MINUTES", "5"))
    CAL_HTTP_TIMEOUT_SECONDS: float = float(os.getenv("CAL_HTTP_TIMEOUT_SECONDS", "30"))

    # Scheduling defaults
    BUSY_TIMES_WINDOW_DAYS: int = int(os.getenv("BUSY_TIMES_WINDOW_DAYS", "1"))
    SLOT_BUMP_MINUTES: int = int(os.getenv("SLOT_BUMP_MINUTES", "30"))
    DEFAULT_TIMEZONE: str = os.getenv("DEFAULT_TIMEZONE", "America/New_York")
    DEFAULT_EVENT_LOCATION_URL: str = os.getenv("DEFAULT_EVENT_LOCATION_URL", "https://dibs.coach/call/session")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR: str = os.getenv("LOG_DIR", "")

    # Frontend URL, also the public base for the webhook receiver
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "https://dibs.coach")
    CORS_ORIGINS: list[str] = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:8000").split(",")
        if origin.strip()
    ]

settings = Settings()
