"""Перепланирование уведомлений: cancel-all, затем schedule каждого пункта плана."""
import logging
from dataclasses import dataclass
from typing import Protocol

from .alerts import Alert, Priority

logger = logging.getLogger(__name__)


class SchedulingError(Exception):
    """Внешний планировщик отклонил запрос на уведомление."""


class Notifier(Protocol):
    def cancel_all(self, channel: str | None = None) -> int: ...

    def schedule_at(self, fire_at: int, title: str, body: str, priority: Priority, channel: str) -> str: ...

    def list_scheduled(self, channel: str | None = None) -> list[Alert]: ...

    def notify_now(self, alert: Alert, channel: str) -> None: ...


@dataclass
class RescheduleResult:
    scheduled: int = 0
    failed: int = 0

    @property
    def ok(self) -> bool:
        return self.failed == 0


class AlertScheduler:
    """
    Заменяет все отложенные уведомления канала новым планом.

    Повторный вызов с тем же планом даёт тот же набор уведомлений,
    потому что шаг 1 безусловно снимает всё, что было в канале.
    Ошибка одного пункта логируется и пропускается, отката нет.
    """

    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    def reschedule(self, plan: list[Alert], channel: str) -> RescheduleResult:
        removed = self.notifier.cancel_all(channel)
        logger.debug(f"[{channel}] снято уведомлений: {removed}")

        result = RescheduleResult()
        for alert in plan:
            try:
                self.notifier.schedule_at(alert.fire_at, alert.title, alert.body, alert.priority, channel)
                result.scheduled += 1
            except SchedulingError as e:
                result.failed += 1
                logger.error(f"[{channel}] не удалось запланировать {alert.title!r} на {alert.fire_at}: {e}")

        logger.info(f"[{channel}] запланировано {result.scheduled}, ошибок {result.failed}")
        return result

    def cancel(self, channel: str | None = None) -> int:
        return self.notifier.cancel_all(channel)

    def pending(self, channel: str | None = None) -> list[Alert]:
        return self.notifier.list_scheduled(channel)

    def notify_now(self, alert: Alert, channel: str) -> bool:
        try:
            self.notifier.notify_now(alert, channel)
            return True
        except SchedulingError as e:
            logger.error(f"[{channel}] не удалось отправить {alert.title!r}: {e}")
            return False
