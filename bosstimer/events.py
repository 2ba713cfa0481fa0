"""Напоминания о гильдейских событиях: за час до начала."""
import logging

from .alerts import Alert, Priority
from .clock import HOUR, now_ms
from .models import GuildEvent
from .records import SqlRecordStore

logger = logging.getLogger(__name__)

TABLE = GuildEvent.__tablename__
REMIND_BEFORE = HOUR


def event_reminder(name: str, event_at: int) -> Alert:
    return Alert(
        fire_at=event_at - REMIND_BEFORE,
        title="Guild Event Reminder",
        body=f'"{name}" starts in 1 hour!',
        priority=Priority.HIGH,
    )


def build_event_plan(events: list[dict], now: int) -> list[Alert]:
    plan = [event_reminder(e["event_name"], e["event_date_time"]) for e in events]
    return sorted((a for a in plan if a.fire_at > now), key=lambda a: a.fire_at)


class GuildEvents:
    def __init__(self, records: SqlRecordStore, clock=now_ms):
        self.records = records
        self.clock = clock

    def add(self, name: str, event_at: int) -> dict:
        name = name.strip()
        if not name:
            raise ValueError("Пустое название события")
        if event_at <= self.clock():
            raise ValueError("Событие должно быть в будущем")
        return self.records.insert(TABLE, {"event_name": name, "event_date_time": event_at})

    def delete(self, event_id: int) -> None:
        self.records.delete(TABLE, event_id)

    def upcoming(self) -> list[dict]:
        now = self.clock()
        return [e for e in self.records.select_all(TABLE, order_field="event_date_time")
                if e["event_date_time"] > now]
