from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from .config import REMOTE_DB_URL, LOCAL_DB_URL


class Base(DeclarativeBase):
    """Таблицы общей базы (spawn reports, guild events)."""


class LocalBase(DeclarativeBase):
    """Таблицы локальной базы инстанса (настройки, подписчики)."""


def make_engine(url: str, **kwargs):
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, **kwargs)


remote_engine = make_engine(REMOTE_DB_URL)
local_engine = make_engine(LOCAL_DB_URL)

RemoteSession = sessionmaker(bind=remote_engine, autocommit=False, autoflush=False)
LocalSession = sessionmaker(bind=local_engine, autocommit=False, autoflush=False)


def ensure_db_exists(remote=remote_engine, local=local_engine):
    """Создаёт файлы БД и таблицы, если их ещё нет."""
    from . import models  # noqa: F401  регистрируем таблицы
    Base.metadata.create_all(bind=remote)
    LocalBase.metadata.create_all(bind=local)
