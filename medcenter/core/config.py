from datetime import time
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root so it loads regardless of cwd
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str
    database_ssl: bool = False

    # JWT
    secret_key: str
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    algorithm: str = "HS256"

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Clinic calendar. Slot times are wall-clock times in app_timezone.
    app_timezone: str = "Asia/Kolkata"
    midday_boundary: time = time(13, 0)  # MORNING leave ends / AFTERNOON leave starts here
    default_slot_duration_minutes: int = 30
    default_work_start: time = time(9, 0)
    default_work_end: time = time(17, 0)  # exclusive, so last slot ends at 17:00

    # How long a HELD reservation blocks its slot before patient details/payment
    reservation_hold_minutes: int = 10

    # Env
    env: str = "development"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.app_timezone)


settings = Settings()
