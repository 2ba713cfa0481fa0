"""Связка: anchor -> план -> планировщик, с учётом настроек уведомлений."""
import logging

from .alerts import BOSS_SPAWN_CHANNEL, BOSS_TIMER_CHANNEL, GUILD_EVENTS_CHANNEL, build_plan, spawn_alert
from .clock import compute_remaining, now_ms, RemainingTime
from .events import GuildEvents, build_event_plan
from .kv import PersistenceError
from .preferences import GUILD_EVENTS, REMINDER, SPAWN_BROADCAST, NotificationPreferences
from .records import RecordStoreError
from .scheduler import AlertScheduler, RescheduleResult
from .state import SpawnStateStore

logger = logging.getLogger(__name__)


class TimerService:
    def __init__(self, state: SpawnStateStore, scheduler: AlertScheduler, preferences: NotificationPreferences,
                 events: GuildEvents, kv, clock=now_ms):
        self.state = state
        self.scheduler = scheduler
        self.preferences = preferences
        self.events = events
        self.kv = kv
        self.clock = clock

    def remaining(self) -> RemainingTime | None:
        return compute_remaining(self.state.anchor, self.clock())

    def refresh_spawn_alerts(self) -> RescheduleResult:
        """Пересобрать план для текущего anchor (или снять его, если напоминания выключены)."""
        anchor = self.state.anchor
        if anchor is None or not self.preferences.is_enabled(REMINDER):
            self.scheduler.cancel(BOSS_TIMER_CHANNEL)
            return RescheduleResult()
        return self.scheduler.reschedule(build_plan(anchor, self.clock()), BOSS_TIMER_CHANNEL)

    def refresh_event_alerts(self) -> RescheduleResult:
        if not self.preferences.is_enabled(GUILD_EVENTS):
            self.scheduler.cancel(GUILD_EVENTS_CHANNEL)
            return RescheduleResult()
        try:
            events = self.events.upcoming()
        except RecordStoreError as e:
            logger.error(f"Не удалось загрузить события гильдии: {e}")
            return RescheduleResult()
        return self.scheduler.reschedule(build_event_plan(events, self.clock()), GUILD_EVENTS_CHANNEL)

    def announce_spawn(self, spawned_at: int) -> bool:
        if not self.preferences.is_enabled(SPAWN_BROADCAST):
            logger.info("Уведомления о спауне выключены, мгновенное уведомление пропущено")
            return False
        return self.scheduler.notify_now(spawn_alert(spawned_at), BOSS_SPAWN_CHANNEL)

    def set_preference(self, name: str, enabled: bool) -> None:
        self.preferences.set_enabled(name, enabled)
        if name == REMINDER:
            self.refresh_spawn_alerts()
        elif name == GUILD_EVENTS:
            self.refresh_event_alerts()

    def pending_counts(self) -> dict[str, int]:
        return {ch: len(self.scheduler.pending(ch))
                for ch in (BOSS_TIMER_CHANNEL, BOSS_SPAWN_CHANNEL, GUILD_EVENTS_CHANNEL)}

    def clear_alerts(self) -> int:
        return self.scheduler.cancel()

    def reset(self) -> None:
        """Полный сброс: все локальные настройки, все уведомления, anchor."""
        try:
            self.kv.clear()
        except PersistenceError as e:
            logger.error(f"Не удалось очистить локальное хранилище: {e}")
        self.scheduler.cancel()
        self.state.clear()
        logger.info("Локальные данные сброшены")
