from pydantic_settings import BaseSettings
from typing import List
import os


class Settings(BaseSettings):
    # App Configuration
    APP_NAME: str = "Tutoring Booking API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS
    ALLOWED_HOSTS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:3001", "http://127.0.0.1:3001"]

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./tutoring.db")
    USE_DATABASE_STORE: bool = False  # False keeps bookings in process memory

    # Reservation lock
    RESERVATION_LOCK_TTL_SECONDS: int = 30
    LOCK_SWEEP_INTERVAL_SECONDS: int = 10

    # Booking policy
    CANCELLATION_LEAD_MINUTES: int = 120
    MIN_BOOKING_NOTICE_MINUTES: int = 0
    MAX_SESSION_MINUTES: int = 240
    SLOT_STEP_MINUTES: int = 30
    AVAILABILITY_MAX_RANGE_DAYS: int = 92
    BOOKING_ADVANCE_INTERVAL_SECONDS: int = 60

    # Notifications
    NOTIFICATION_MAX_ATTEMPTS: int = 3
    NOTIFICATION_RETRY_BACKOFF_SECONDS: float = 0.5

    class Config:
        env_file = ".env"
        case_sensitive = True


# Create settings instance
settings = Settings()

# Update allowed hosts for production
if os.getenv("ENVIRONMENT") == "production":
    settings.ALLOWED_HOSTS.extend([
        "https://your-frontend-domain.com",
    ])
