"""Общие фикстуры: SQLite в памяти, фейковый планировщик уведомлений, ручные часы."""
import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bosstimer import models  # noqa: F401  регистрируем таблицы
from bosstimer.alerts import Alert
from bosstimer.db import Base, LocalBase, make_engine
from bosstimer.kv import SqlKeyValueStore
from bosstimer.scheduler import SchedulingError

T = 1_700_000_000_000


class ManualClock:
    def __init__(self, now: int = T):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeNotifier:
    """Планировщик в памяти: channel -> список Alert."""

    def __init__(self):
        self.jobs: dict[str, list[Alert]] = {}
        self.sent: list[tuple[str, Alert]] = []
        self.fail_at: set[int] = set()
        self.fail_now = False

    def cancel_all(self, channel=None) -> int:
        channels = [channel] if channel else list(self.jobs)
        removed = 0
        for ch in channels:
            removed += len(self.jobs.pop(ch, []))
        return removed

    def schedule_at(self, fire_at, title, body, priority, channel) -> str:
        if fire_at in self.fail_at:
            raise SchedulingError("rejected")
        self.jobs.setdefault(channel, []).append(Alert(fire_at, title, body, priority))
        return f"{channel}-{len(self.jobs[channel])}"

    def list_scheduled(self, channel=None) -> list[Alert]:
        channels = [channel] if channel else list(self.jobs)
        return sorted((a for ch in channels for a in self.jobs.get(ch, [])), key=lambda a: a.fire_at)

    def notify_now(self, alert, channel) -> None:
        if self.fail_now:
            raise SchedulingError("rejected")
        self.sent.append((channel, alert))


def _sessionmaker(base):
    engine = make_engine("sqlite://", poolclass=StaticPool)
    base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def local_session():
    return _sessionmaker(LocalBase)


@pytest.fixture
def remote_session():
    return _sessionmaker(Base)


@pytest.fixture
def kv(local_session):
    return SqlKeyValueStore(local_session)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def notifier():
    return FakeNotifier()
