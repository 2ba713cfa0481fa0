"""Локальное key-value хранилище (таблица settings)."""
from sqlalchemy.exc import SQLAlchemyError

from .models import Setting


class PersistenceError(Exception):
    pass


class SqlKeyValueStore:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    def get(self, key: str) -> str | None:
        db = self.session_factory()
        try:
            row = db.get(Setting, key)
            return row.value if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"get {key}: {e}") from e
        finally:
            db.close()

    def set(self, key: str, value: str) -> None:
        db = self.session_factory()
        try:
            row = db.get(Setting, key)
            if row:
                row.value = value
            else:
                db.add(Setting(key=key, value=value))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"set {key}: {e}") from e
        finally:
            db.close()

    def remove(self, key: str) -> None:
        db = self.session_factory()
        try:
            db.query(Setting).filter(Setting.key == key).delete()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"remove {key}: {e}") from e
        finally:
            db.close()

    def clear(self) -> None:
        db = self.session_factory()
        try:
            db.query(Setting).delete()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"clear: {e}") from e
        finally:
            db.close()
