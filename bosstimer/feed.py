"""Лента изменений общей базы: опрос новых записей по id через JobQueue."""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from telegram.ext import ContextTypes, JobQueue

from .records import RecordStoreError, SqlRecordStore

logger = logging.getLogger(__name__)


class FeedStatus(str, Enum):
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"


@dataclass
class FeedSubscription:
    name: str
    table: str
    on_event: Callable[[dict], None]
    on_status: Callable[[FeedStatus, Exception | None], None]
    cursor: int | None = None
    watch_all: bool = False
    snapshot: tuple | None = None
    failing: bool = False
    job: object = field(default=None, repr=False)


def snapshot_of(rows: list[dict]) -> tuple:
    return tuple(tuple(sorted(row.items())) for row in rows)


class PollingChangeFeed:
    """
    Доставка at-least-once: курсор сдвигается только после того,
    как on_event отработал без исключения. Упавшая запись придёт снова.

    С watch_all=True лента следит за всей таблицей: любое добавление,
    изменение или удаление даёт одно событие {"rows": [...]} с текущим содержимым.
    Если при подписке база была недоступна, первое успешное чтение тоже считается изменением.
    """

    def __init__(self, job_queue: JobQueue, records: SqlRecordStore, table: str,
                 interval: float = 5, timeout: float | None = None):
        self.job_queue = job_queue
        self.records = records
        self.table = table
        self.interval = interval
        self.timeout = timeout if timeout is not None else interval

    def subscribe(self, channel_name: str, on_event, on_status, watch_all: bool = False) -> FeedSubscription:
        sub = FeedSubscription(name=f"feed:{channel_name}", table=self.table, on_event=on_event,
                               on_status=on_status, watch_all=watch_all)
        try:
            if watch_all:
                sub.snapshot = snapshot_of(self.records.select_all(self.table))
            else:
                sub.cursor = self.records.max_id(self.table)
            on_status(FeedStatus.SUBSCRIBED, None)
        except RecordStoreError as e:
            sub.failing = True
            on_status(FeedStatus.CHANNEL_ERROR, e)
        sub.job = self.job_queue.run_repeating(self._job, interval=self.interval, first=self.interval,
                                               data=sub, name=sub.name)
        return sub

    def unsubscribe(self, sub: FeedSubscription) -> None:
        if sub.job is not None:
            sub.job.schedule_removal()
            sub.job = None
            sub.on_status(FeedStatus.CLOSED, None)

    async def _job(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        self.poll(context.job.data)

    def _read(self, sub: FeedSubscription) -> list[dict]:
        if sub.watch_all:
            return self.records.select_all(sub.table)
        if sub.cursor is None:
            sub.cursor = self.records.max_id(sub.table)
            return []
        return self.records.select_all(sub.table, order_field="id", after_id=sub.cursor)

    def poll(self, sub: FeedSubscription) -> int:
        """Один цикл опроса. Возвращает число доставленных событий."""
        started = time.monotonic()
        try:
            rows = self._read(sub)
        except RecordStoreError as e:
            if not sub.failing:
                sub.failing = True
                sub.on_status(FeedStatus.CHANNEL_ERROR, e)
            return 0

        if time.monotonic() - started > self.timeout:
            # Следующий быстрый опрос вернёт SUBSCRIBED
            sub.failing = True
            sub.on_status(FeedStatus.TIMED_OUT, None)
        elif sub.failing:
            sub.failing = False
            sub.on_status(FeedStatus.SUBSCRIBED, None)

        if sub.watch_all:
            return self._deliver_snapshot(sub, rows)

        delivered = 0
        for row in rows:
            try:
                sub.on_event(row)
            except Exception as e:
                logger.error(f"[{sub.name}] ошибка обработки записи {row.get('id')}: {e}", exc_info=True)
                break
            sub.cursor = row["id"]
            delivered += 1
        return delivered

    def _deliver_snapshot(self, sub: FeedSubscription, rows: list[dict]) -> int:
        snapshot = snapshot_of(rows)
        if snapshot == sub.snapshot:
            return 0
        try:
            sub.on_event({"rows": rows})
        except Exception as e:
            logger.error(f"[{sub.name}] ошибка обработки изменений: {e}", exc_info=True)
            return 0
        sub.snapshot = snapshot
        return 1
