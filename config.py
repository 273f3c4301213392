import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        csrf_secret: str,
        push_timeout_secs: float,
        reminder_interval_minutes: int,
        user_id: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.csrf_secret = csrf_secret
        self.push_timeout_secs = push_timeout_secs
        self.reminder_interval_minutes = reminder_interval_minutes
        self.user_id = user_id


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BILLS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "bills.db"
    database_url = os.getenv("BILLS_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BILLS_TIMEZONE", "Europe/Berlin")
    csrf_secret = os.getenv(
        "BILLS_CSRF_SECRET",
        "4c1f0b8e2d9a7356e1b0c4d8f2a69e37b5d1c0f8a4e2b6d9c3f7a1e5b8d2c6f0",
    )
    push_timeout_secs = float(os.getenv("BILLS_PUSH_TIMEOUT_SECS", "10"))
    reminder_interval_minutes = int(
        os.getenv("BILLS_REMINDER_INTERVAL_MINUTES", "60")
    )
    user_id = int(os.getenv("BILLS_USER_ID", "1"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        csrf_secret=csrf_secret,
        push_timeout_secs=push_timeout_secs,
        reminder_interval_minutes=reminder_interval_minutes,
        user_id=user_id,
    )
