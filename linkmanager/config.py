import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

DEFAULT_PASSWORD = "linkmanager"
AUTH_COOKIE = "LM_AUTH"
SESSION_MAX_AGE = 60 * 60 * 24 * 30  # 30 days
SAVE_DELAY_SECONDS = 0.5


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off", ""}


class Settings:
    def __init__(self) -> None:
        self.data_dir = Path(os.environ.get("LINKMANAGER_DATA_DIR", "./data"))
        self.static_dir = Path(os.environ.get("LINKMANAGER_STATIC_DIR", "frontend"))
        self.secret_key: Optional[str] = os.environ.get("LINKMANAGER_SECRET_KEY") or None
        self.cookie_secure = _env_flag("LINKMANAGER_COOKIE_SECURE", True)
        self.session_max_age = SESSION_MAX_AGE
        self.host = os.environ.get("LINKMANAGER_HOST", "127.0.0.1")
        self.port = int(os.environ.get("LINKMANAGER_PORT", "8765"))


@lru_cache
def get_settings() -> Settings:
    return Settings()
