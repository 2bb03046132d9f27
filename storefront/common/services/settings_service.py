from typing import Dict, Optional

from ..models.setting import Setting


TRUTHY = {"1", "true", "yes", "on"}

DEFAULTS: Dict[str, str] = {
    "email_notifications_enabled": "true",
    "email_wishlist_reminders": "true",
    "email_cart_abandonment": "true",
}


class SettingsService:
    """Feature toggles kept in the settings table."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self._session_factory() as session:
            row = session.query(Setting).filter(Setting.key == key).first()
            if row is None or row.value is None:
                return default if default is not None else DEFAULTS.get(key)
            return row.value

    def is_enabled(self, key: str) -> bool:
        value = self.get(key)
        return str(value or "").strip().lower() in TRUTHY

    def set(self, key: str, value: str) -> None:
        with self._session_factory() as session:
            row = session.query(Setting).filter(Setting.key == key).first()
            if row is None:
                session.add(Setting(key=key, value=value))
            else:
                row.value = value
