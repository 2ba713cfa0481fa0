"""Модель окна респауна. Все времена в миллисекундах с эпохи (int)."""
import logging
import time
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

SECOND = 1000
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE

QUIET_DURATION = 12 * HOUR  # босс гарантированно не появится
WINDOW_END = 24 * HOUR  # конец окна появления, считая от спауна
OPEN_DURATION = WINDOW_END - QUIET_DURATION


class Phase(str, Enum):
    QUIET = "quiet"
    OPEN = "open"
    EXPIRED = "expired"


@dataclass(frozen=True)
class RemainingTime:
    hours: int
    minutes: int
    seconds: int
    phase: Phase

    @property
    def total_ms(self) -> int:
        return self.hours * HOUR + self.minutes * MINUTE + self.seconds * SECOND


def now_ms() -> int:
    """Единственный источник времени для всех компонентов (wall clock)."""
    return int(time.time() * 1000)


def phase_at(anchor: int | None, now: int) -> Phase:
    if anchor is None:
        return Phase.EXPIRED
    elapsed = now - anchor
    if elapsed < QUIET_DURATION:
        return Phase.QUIET
    if elapsed < WINDOW_END:
        return Phase.OPEN
    return Phase.EXPIRED


def compute_remaining(anchor: int | None, now: int) -> RemainingTime | None:
    """
    Остаток текущей фазы для спауна `anchor` на момент `now`.

    quiet: до конца 12-часовой паузы, open: до конца 24-часового окна.
    None, если таймера нет или окно уже закрылось.
    """
    phase = phase_at(anchor, now)
    if phase == Phase.EXPIRED:
        return None

    end = QUIET_DURATION if phase == Phase.QUIET else WINDOW_END
    remaining = end - (now - anchor)
    if remaining <= 0:
        logger.error(f"Неположительный остаток {remaining} для anchor={anchor}, now={now}")
        return None

    hours, rest = divmod(remaining, HOUR)
    minutes, rest = divmod(rest, MINUTE)
    seconds = rest // SECOND
    return RemainingTime(hours=hours, minutes=minutes, seconds=seconds, phase=phase)
