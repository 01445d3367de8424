# vaultaudit/client/preferences.py
import json
import logging
import os
from pathlib import Path
from pydantic import BaseModel, Field, ValidationError

from vaultaudit.config import settings
from vaultaudit.core.models import DailyDigestSettings, ExpirySettings, NotificationPreferences

logger = logging.getLogger(__name__)


class UserSettings(BaseModel):
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    expiry: ExpirySettings = Field(default_factory=ExpirySettings)
    daily_digest: DailyDigestSettings = Field(default_factory=DailyDigestSettings)


class SettingsStore:
    """Per-user toggles kept in a JSON file next to the local database."""

    def __init__(self, path: str | None = None):
        self.path = Path(path or settings.SETTINGS_FILE)
        self.settings = UserSettings()
        self.load()

    def load(self) -> UserSettings:
        if not os.path.exists(self.path):
            self.settings = UserSettings()
            self.save()
            return self.settings

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                self.settings = UserSettings.model_validate(json.load(f))
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Failed to load settings file {self.path}, using defaults: {e}")
            self.settings = UserSettings()
        return self.settings

    def save(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self.settings.model_dump(mode="json"), f, indent=2, ensure_ascii=False)

    @property
    def notifications(self) -> NotificationPreferences:
        return self.settings.notifications

    @property
    def expiry(self) -> ExpirySettings:
        return self.settings.expiry

    @property
    def daily_digest(self) -> DailyDigestSettings:
        return self.settings.daily_digest

    def update_notifications(self, **kwargs) -> NotificationPreferences:
        self.settings.notifications = self.settings.notifications.model_copy(update=_known(kwargs, NotificationPreferences))
        self.save()
        return self.settings.notifications

    def update_expiry(self, **kwargs) -> ExpirySettings:
        self.settings.expiry = self.settings.expiry.model_copy(update=_known(kwargs, ExpirySettings))
        self.save()
        return self.settings.expiry

    def update_daily_digest(self, **kwargs) -> DailyDigestSettings:
        merged = self.settings.daily_digest.model_dump() | _known(kwargs, DailyDigestSettings)
        # Re-validate so a bad "HH:MM" never reaches the file
        self.settings.daily_digest = DailyDigestSettings.model_validate(merged)
        self.save()
        return self.settings.daily_digest


def _known(values: dict, model: type[BaseModel]) -> dict:
    return {key: value for key, value in values.items() if key in model.model_fields}
