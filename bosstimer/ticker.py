"""Секундный тик: пересчёт остатка и рассылка слушателям (живые сообщения с таймером)."""
import inspect
import logging
from typing import Awaitable, Callable

from telegram.ext import ContextTypes, JobQueue

from .clock import RemainingTime, compute_remaining, now_ms
from .state import SpawnStateStore

logger = logging.getLogger(__name__)

TICK_JOB = "tick"
TickListener = Callable[[RemainingTime | None], Awaitable[None] | None]


class Ticker:
    """
    Пока есть anchor и окно не закрылось, каждую секунду считает RemainingTime.
    Изменение anchor сразу запускает внеочередной тик, не дожидаясь следующей секунды.
    """

    def __init__(self, job_queue: JobQueue, state: SpawnStateStore, clock=now_ms, interval: float = 1):
        self.job_queue = job_queue
        self.state = state
        self.clock = clock
        self.interval = interval
        self.current: RemainingTime | None = None
        self._listeners: list[TickListener] = []
        self._job = None
        state.subscribe(self._on_anchor)

    def add_listener(self, listener: TickListener) -> None:
        self._listeners.append(listener)

    @property
    def running(self) -> bool:
        return self._job is not None

    def start(self) -> None:
        if self._job is None:
            self._job = self.job_queue.run_repeating(self._tick_job, interval=self.interval, first=self.interval,
                                                     name=TICK_JOB)

    def stop(self) -> None:
        if self._job is not None:
            self._job.schedule_removal()
            self._job = None

    def refresh(self) -> None:
        self._on_anchor(self.state.anchor)

    def _on_anchor(self, anchor: int | None) -> None:
        if anchor is None:
            self.stop()
        else:
            self.start()
        self.job_queue.run_once(self._tick_job, when=0, name=TICK_JOB)

    async def _tick_job(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self.tick()

    async def tick(self) -> RemainingTime | None:
        self.current = compute_remaining(self.state.anchor, self.clock())
        if self.current is None:
            self.stop()
        for listener in list(self._listeners):
            try:
                result = listener(self.current)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Ошибка в слушателе тика: {e}", exc_info=True)
        return self.current
