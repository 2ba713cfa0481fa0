"""Текущее время спауна (anchor): память + локальное хранилище + подписчики на изменения."""
import logging
from typing import Callable

from .kv import PersistenceError

logger = logging.getLogger(__name__)

ANCHOR_KEY = "boss_timer_last_spawn"

Listener = Callable[[int | None], None]


def parse_anchor(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


class SpawnStateStore:
    """
    Единственный владелец anchor. Все записи идут через set/adopt/clear,
    каждое изменение сразу передаётся слушателям (тикер, UI).

    Память и диск не транзакционны: если запись на диск упала,
    значение остаётся только в памяти до конца сессии.
    """

    def __init__(self, kv):
        self.kv = kv
        self._anchor: int | None = None
        self._listeners: list[Listener] = []

    @property
    def anchor(self) -> int | None:
        return self._anchor

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def load(self) -> int | None:
        try:
            raw = self.kv.get(ANCHOR_KEY)
        except PersistenceError as e:
            logger.error(f"Не удалось прочитать время спауна: {e}")
            raw = None
        self._anchor = parse_anchor(raw)
        if raw is not None and self._anchor is None:
            logger.warning(f"Некорректное сохранённое время спауна {raw!r}, игнорируем")
        return self._anchor

    def set(self, anchor: int) -> None:
        self._anchor = anchor
        try:
            self.kv.set(ANCHOR_KEY, str(anchor))
        except PersistenceError as e:
            logger.error(f"Не удалось сохранить время спауна: {e}")
        self._notify()

    def adopt(self, anchor: int) -> bool:
        """Принять значение, только если оно новее текущего (newest wins)."""
        if self._anchor is not None and anchor <= self._anchor:
            return False
        self.set(anchor)
        return True

    def clear(self) -> None:
        self._anchor = None
        try:
            self.kv.remove(ANCHOR_KEY)
        except PersistenceError as e:
            logger.error(f"Не удалось удалить время спауна: {e}")
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._anchor)
            except Exception as e:
                logger.error(f"Ошибка в слушателе anchor: {e}", exc_info=True)
