import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        operation_timeout_secs: float,
        auth_username: str = "",
        auth_password: str = "",
        app_name: str = "ledger",
        log_level: str = "INFO",
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.operation_timeout_secs = operation_timeout_secs
        self.auth_username = auth_username
        self.auth_password = auth_password
        self.app_name = app_name
        self.log_level = log_level

    @property
    def auth_enabled(self) -> bool:
        return bool(self.auth_password)


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("LEDGER_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "ledger.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("LEDGER_TIMEZONE", "UTC")
    operation_timeout_secs = float(os.getenv("LEDGER_OPERATION_TIMEOUT_SECS", "5"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        operation_timeout_secs=operation_timeout_secs,
        auth_username=os.getenv("LEDGER_AUTH_USERNAME", ""),
        auth_password=os.getenv("LEDGER_AUTH_PASSWORD", ""),
        app_name=os.getenv("LEDGER_APP_NAME", "ledger"),
        log_level=os.getenv("LEDGER_LOG_LEVEL", "INFO"),
    )
