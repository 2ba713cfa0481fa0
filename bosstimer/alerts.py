"""Генерация плана уведомлений по времени спауна."""
from dataclasses import dataclass
from enum import Enum

from .clock import HOUR, MINUTE, QUIET_DURATION, WINDOW_END

BOSS_TIMER_CHANNEL = "boss-timer"
BOSS_SPAWN_CHANNEL = "boss-spawn"
GUILD_EVENTS_CHANNEL = "guild-events"

FINAL_HOUR_STEP = 15 * MINUTE


class Priority(str, Enum):
    HIGH = "high"
    MAX = "max"


@dataclass(frozen=True)
class Alert:
    fire_at: int  # мс с эпохи
    title: str
    body: str
    priority: Priority


def hourly_alert(fire_at: int, hours_left: int) -> Alert:
    return Alert(
        fire_at=fire_at,
        title="Boss Spawn Alert",
        body=f"Boss can spawn! {hours_left} hour{'s' if hours_left != 1 else ''} left in window.",
        priority=Priority.HIGH,
    )


def final_hour_alert(fire_at: int, minutes_left: int) -> Alert:
    return Alert(
        fire_at=fire_at,
        title="Boss Spawn Alert - Final Hour!",
        body=f"Boss can spawn! Only {minutes_left} minutes left in window!",
        priority=Priority.MAX,
    )


def spawn_alert(fire_at: int) -> Alert:
    """Мгновенное уведомление «босс только что появился»."""
    return Alert(
        fire_at=fire_at,
        title="🔥 Boss Spawned!",
        body="The contested boss has spawned! Get ready!",
        priority=Priority.MAX,
    )


def build_plan(anchor: int, now: int) -> list[Alert]:
    """
    План уведомлений для спауна `anchor`:
    - каждый час с 12-го по 23-й (сколько часов осталось в окне),
    - каждые 15 минут в последний час окна.
    Прошедшие (fire_at <= now) отбрасываются. Результат отсортирован по fire_at.
    """
    plan = []

    for i in range(QUIET_DURATION // HOUR, WINDOW_END // HOUR):
        fire_at = anchor + i * HOUR
        if fire_at > now:
            plan.append(hourly_alert(fire_at, WINDOW_END // HOUR - i))

    final_hour_start = anchor + WINDOW_END - HOUR
    for j in range(HOUR // FINAL_HOUR_STEP):
        fire_at = final_hour_start + j * FINAL_HOUR_STEP
        if fire_at > now:
            plan.append(final_hour_alert(fire_at, (HOUR - j * FINAL_HOUR_STEP) // MINUTE))

    # Часовое уведомление на 23-м часу совпадает по времени с первым 15-минутным;
    # стабильная сортировка сохраняет порядок генерации
    plan.sort(key=lambda a: a.fire_at)
    return plan
