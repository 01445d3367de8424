# vaultaudit/config.py
from functools import lru_cache
from pathlib import Path
import sys
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_app_data_path() -> Path:
    app_name = "VaultAudit"
    home = Path.home()

    if sys.platform == "win32":
        # Windows: C:\Users\Name\AppData\Roaming\VaultAudit
        return home / "AppData" / "Roaming" / app_name
    # Linux/Mac: /home/name/.local/share/VaultAudit
    return home / ".local" / "share" / app_name


DATA_DIR = get_app_data_path()


class Settings(BaseSettings):
    # --- Basic ---
    PROJECT_NAME: str = "VaultAudit"
    LOG_LEVEL: str = "INFO"

    # --- Breach services ---
    PWNED_PASSWORDS_API_URL: str = "https://api.pwnedpasswords.com/range"
    HIBP_API_URL: str = "https://haveibeenpwned.com/api/v3"
    # Only the breached-account endpoints need a key; the range API is open.
    HIBP_API_KEY: str | None = None
    USER_AGENT: str = "VaultAudit Password Manager"
    REQUEST_TIMEOUT_SECONDS: float = 10.0
    # Minimum gap between two range requests in a batch
    BREACH_REQUEST_DELAY_SECONDS: float = 0.2

    # --- Health thresholds ---
    OLD_PASSWORD_DAYS: int = 90
    EXPIRY_WARNING_DAYS: int = 14
    DEFAULT_EXPIRY_PERIOD_DAYS: int = 90
    # Adds PasswordHealth.is_expired; metrics and alerts are unchanged
    TRACK_EXPIRED_PASSWORDS: bool = False

    # --- Notifications ---
    NOTIFICATION_COOLDOWN_HOURS: int = 24

    # --- Local storage ---
    DATABASE_URL: str = f"sqlite:///{(DATA_DIR / 'vault.db').as_posix()}"
    SETTINGS_FILE: str = str(DATA_DIR / "settings.json")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


# Cached so every component sees the same values without re-reading .env
@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
