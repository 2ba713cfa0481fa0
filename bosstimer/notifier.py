"""Внешний планировщик уведомлений поверх JobQueue python-telegram-bot."""
import logging
from datetime import datetime, timezone

from telegram.error import Forbidden, TelegramError
from telegram.ext import ContextTypes, JobQueue

from .alerts import Alert, Priority
from .scheduler import SchedulingError
from .subscribers import SubscriberRegistry

logger = logging.getLogger(__name__)

MARKERS = {
    Priority.MAX: "🔴",
    Priority.HIGH: "⚠️",
}


def ms_to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def render_alert(alert: Alert) -> str:
    return f"{MARKERS.get(alert.priority, '🔔')} {alert.title}\n{alert.body}"


class JobQueueNotifier:
    """
    Каждое уведомление = одна run_once задача с именем канала.
    Отмена по каналу не трогает задачи других каналов (и служебные задачи).
    """

    def __init__(self, job_queue: JobQueue, subscribers: SubscriberRegistry, channels: tuple[str, ...]):
        self.job_queue = job_queue
        self.subscribers = subscribers
        self.channels = channels

    def _jobs(self, channel: str | None = None):
        names = (channel,) if channel else self.channels
        jobs = []
        for name in names:
            jobs.extend(j for j in self.job_queue.get_jobs_by_name(name) if not j.removed)
        return jobs

    def cancel_all(self, channel: str | None = None) -> int:
        jobs = self._jobs(channel)
        for job in jobs:
            job.schedule_removal()
        return len(jobs)

    def schedule_at(self, fire_at: int, title: str, body: str, priority: Priority, channel: str) -> str:
        alert = Alert(fire_at=fire_at, title=title, body=body, priority=priority)
        try:
            job = self.job_queue.run_once(self._deliver, when=ms_to_datetime(fire_at), data=alert, name=channel)
        except Exception as e:
            raise SchedulingError(str(e)) from e
        return job.job.id

    def notify_now(self, alert: Alert, channel: str) -> None:
        try:
            self.job_queue.run_once(self._deliver, when=0, data=alert, name=channel)
        except Exception as e:
            raise SchedulingError(str(e)) from e

    def list_scheduled(self, channel: str | None = None) -> list[Alert]:
        alerts = [job.data for job in self._jobs(channel)]
        return sorted(alerts, key=lambda a: a.fire_at)

    async def _deliver(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        alert: Alert = context.job.data
        chat_ids = self.subscribers.all()
        if not chat_ids:
            logger.info(f"Нет подписчиков, уведомление {alert.title!r} пропущено")
            return

        text = render_alert(alert)
        for chat_id in chat_ids:
            try:
                await context.bot.send_message(chat_id=chat_id, text=text)
            except Forbidden as e:
                logger.warning(f"Чат {chat_id} запретил сообщения ({e}), отписываем")
                self.subscribers.remove(chat_id)
            except TelegramError as e:
                logger.error(f"Не удалось отправить в {chat_id}: {e}")
