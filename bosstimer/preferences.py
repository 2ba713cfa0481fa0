"""Переключатели уведомлений. Отсутствующее значение = включено."""
import logging

from .kv import PersistenceError

logger = logging.getLogger(__name__)

REMINDER = "reminder"
SPAWN_BROADCAST = "spawn"
GUILD_EVENTS = "events"

KEYS = {
    REMINDER: "reminder_notifications_enabled",
    SPAWN_BROADCAST: "boss_spawn_notifications_enabled",
    GUILD_EVENTS: "guild_event_notifications_enabled",
}


class NotificationPreferences:
    def __init__(self, kv):
        self.kv = kv

    def is_enabled(self, name: str) -> bool:
        key = KEYS[name]
        try:
            value = self.kv.get(key)
        except PersistenceError as e:
            logger.error(f"Не удалось прочитать настройку {key}: {e}")
            return True
        return value is None or value == "true"

    def set_enabled(self, name: str, enabled: bool) -> None:
        key = KEYS[name]
        try:
            self.kv.set(key, "true" if enabled else "false")
        except PersistenceError as e:
            logger.error(f"Не удалось сохранить настройку {key}: {e}")

    def as_dict(self) -> dict[str, bool]:
        return {name: self.is_enabled(name) for name in KEYS}
