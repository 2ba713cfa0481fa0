from sqlalchemy import BigInteger, Integer, String, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone

from .db import Base, LocalBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SpawnReport(Base):
    __tablename__ = "boss_spawns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    spawned_at: Mapped[int] = mapped_column(BigInteger, index=True)  # мс с эпохи
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


class GuildEvent(Base):
    __tablename__ = "guild_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    event_name: Mapped[str] = mapped_column(String)
    event_date_time: Mapped[int] = mapped_column(BigInteger, index=True)  # мс с эпохи
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class Setting(LocalBase):
    """Локальное key-value хранилище инстанса."""
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(String)


class Subscriber(LocalBase):
    """Чаты, которым рассылаются уведомления."""
    __tablename__ = "subscribers"

    chat_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    subscribed_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
