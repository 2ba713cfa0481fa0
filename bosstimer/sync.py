"""Синхронизация с общей базой: anchor (последний спаун, лента спаунов, отчёт о спауне) и события гильдии."""
import logging
from enum import Enum
from typing import Callable

from .clock import now_ms
from .feed import FeedStatus, FeedSubscription, PollingChangeFeed
from .models import SpawnReport
from .records import RecordStoreError, SqlRecordStore
from .services import TimerService
from .state import SpawnStateStore

logger = logging.getLogger(__name__)

TABLE = SpawnReport.__tablename__
FEED_CHANNEL = "boss:spawns"
EVENTS_FEED_CHANNEL = "guild:events"


class SyncState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    ERROR = "error"


STATUS_MAP = {
    FeedStatus.SUBSCRIBED: SyncState.SUBSCRIBED,
    FeedStatus.CHANNEL_ERROR: SyncState.ERROR,
    FeedStatus.TIMED_OUT: SyncState.ERROR,
    FeedStatus.CLOSED: SyncState.DISCONNECTED,
}


class StaleSpawnError(ValueError):
    """Отчёт о спауне старше текущего anchor."""


class RemoteSpawnSync:
    def __init__(self, state: SpawnStateStore, records: SqlRecordStore, feed: PollingChangeFeed,
                 service: TimerService, clock=now_ms):
        self.state = state
        self.records = records
        self.feed = feed
        self.service = service
        self.clock = clock
        self.status = SyncState.DISCONNECTED
        self._subscription: FeedSubscription | None = None
        self._callbacks: list[Callable[[int], None]] = []

    def on_spawn(self, callback: Callable[[int], None]) -> None:
        self._callbacks.append(callback)

    def start(self) -> None:
        """Подписка на ленту, затем догрузка последнего спауна и перепланирование."""
        self.status = SyncState.CONNECTING
        # Курсор ленты фиксируется до чтения последнего спауна, чтобы не потерять запись между ними
        self._subscription = self.feed.subscribe(FEED_CHANNEL, self.apply_record, self._on_status)
        self.fetch_latest()
        # Задачи JobQueue живут только в памяти процесса: план всегда восстанавливаем
        self.service.refresh_spawn_alerts()

    def stop(self) -> None:
        if self._subscription is not None:
            self.feed.unsubscribe(self._subscription)
            self._subscription = None
        self.status = SyncState.DISCONNECTED

    def fetch_latest(self) -> int | None:
        try:
            latest = self.records.select_latest(TABLE, "spawned_at")
        except RecordStoreError as e:
            logger.error(f"Не удалось получить последний спаун: {e}")
            return None
        if latest is None:
            logger.info("В общей базе нет спаунов")
            return None
        spawned_at = int(latest["spawned_at"])
        if self.state.adopt(spawned_at):
            logger.info(f"Принят спаун из общей базы: {spawned_at}")
        return spawned_at

    def apply_record(self, record: dict) -> None:
        spawned_at = int(record["spawned_at"])
        current = self.state.anchor
        if current is not None and spawned_at < current:
            logger.info(f"Спаун {spawned_at} старше текущего {current}, пропускаем")
            return

        is_new = self.state.adopt(spawned_at)
        if is_new:
            self.service.announce_spawn(spawned_at)
        # Повторная доставка того же спауна безопасна: план заменяется целиком
        self.service.refresh_spawn_alerts()
        if is_new:
            for callback in list(self._callbacks):
                callback(spawned_at)

    def report_spawn(self, spawned_at: int | None = None) -> bool:
        """
        Записать спаун в общую базу. Локальный anchor сдвигается только после
        успешной записи; при ошибке возвращается False и ничего не меняется.
        """
        if spawned_at is None:
            spawned_at = self.clock()
        current = self.state.anchor
        if current is not None and spawned_at < current:
            raise StaleSpawnError(f"Спаун {spawned_at} старше текущего {current}")

        try:
            self.records.insert(TABLE, {"spawned_at": spawned_at})
        except RecordStoreError as e:
            logger.error(f"Не удалось записать спаун: {e}")
            return False

        if self.state.adopt(spawned_at):
            self.service.announce_spawn(spawned_at)
        self.service.refresh_spawn_alerts()
        logger.info(f"Спаун {spawned_at} записан")
        return True

    def _on_status(self, status: FeedStatus, error: Exception | None) -> None:
        if error is not None:
            logger.error(f"Лента спаунов: {status.value}: {error}")
        else:
            logger.info(f"Лента спаунов: {status.value}")
        self.status = STATUS_MAP[status]


class GuildEventSync:
    """Пересборка напоминаний о событиях при любом изменении таблицы событий в общей базе."""

    def __init__(self, feed: PollingChangeFeed, service: TimerService):
        self.feed = feed
        self.service = service
        self.status = SyncState.DISCONNECTED
        self._subscription: FeedSubscription | None = None

    def start(self) -> None:
        self.status = SyncState.CONNECTING
        self._subscription = self.feed.subscribe(EVENTS_FEED_CHANNEL, self._on_change, self._on_status,
                                                 watch_all=True)
        self.service.refresh_event_alerts()

    def stop(self) -> None:
        if self._subscription is not None:
            self.feed.unsubscribe(self._subscription)
            self._subscription = None
        self.status = SyncState.DISCONNECTED

    def _on_change(self, change: dict) -> None:
        logger.info(f"События гильдии изменились ({len(change['rows'])} в базе), пересобираем напоминания")
        self.service.refresh_event_alerts()

    def _on_status(self, status: FeedStatus, error: Exception | None) -> None:
        if error is not None:
            logger.error(f"Лента событий: {status.value}: {error}")
        else:
            logger.info(f"Лента событий: {status.value}")
        self.status = STATUS_MAP[status]
