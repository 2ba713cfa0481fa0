"""Общее хранилище записей (spawn reports, guild events) поверх SQLAlchemy."""
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .models import GuildEvent, SpawnReport

TABLES = {
    SpawnReport.__tablename__: SpawnReport,
    GuildEvent.__tablename__: GuildEvent,
}


class RecordStoreError(Exception):
    pass


def to_record(row) -> dict:
    return {c.key: getattr(row, c.key) for c in row.__table__.columns}


class SqlRecordStore:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    def _model(self, table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise RecordStoreError(f"Неизвестная таблица {table}") from None

    def insert(self, table: str, fields: dict) -> dict:
        model = self._model(table)
        db = self.session_factory()
        try:
            row = model(**fields)
            db.add(row)
            db.commit()
            db.refresh(row)
            return to_record(row)
        except SQLAlchemyError as e:
            db.rollback()
            raise RecordStoreError(f"insert {table}: {e}") from e
        finally:
            db.close()

    def select_latest(self, table: str, order_field: str) -> dict | None:
        model = self._model(table)
        db = self.session_factory()
        try:
            row = db.scalars(select(model).order_by(getattr(model, order_field).desc()).limit(1)).first()
            return to_record(row) if row else None
        except SQLAlchemyError as e:
            raise RecordStoreError(f"select {table}: {e}") from e
        finally:
            db.close()

    def select_all(self, table: str, order_field: str = "id", after_id: int | None = None) -> list[dict]:
        model = self._model(table)
        db = self.session_factory()
        try:
            query = select(model)
            if after_id is not None:
                query = query.where(model.id > after_id)
            rows = db.scalars(query.order_by(getattr(model, order_field))).all()
            return [to_record(r) for r in rows]
        except SQLAlchemyError as e:
            raise RecordStoreError(f"select {table}: {e}") from e
        finally:
            db.close()

    def max_id(self, table: str) -> int:
        latest = self.select_latest(table, "id")
        return latest["id"] if latest else 0

    def update(self, table: str, record_id: int, fields: dict) -> dict:
        model = self._model(table)
        db = self.session_factory()
        try:
            row = db.get(model, record_id)
            if row is None:
                raise RecordStoreError(f"{table}: запись {record_id} не найдена")
            for key, value in fields.items():
                setattr(row, key, value)
            db.commit()
            db.refresh(row)
            return to_record(row)
        except SQLAlchemyError as e:
            db.rollback()
            raise RecordStoreError(f"update {table}: {e}") from e
        finally:
            db.close()

    def delete(self, table: str, record_id: int) -> None:
        model = self._model(table)
        db = self.session_factory()
        try:
            row = db.get(model, record_id)
            if row is None:
                raise RecordStoreError(f"{table}: запись {record_id} не найдена")
            db.delete(row)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise RecordStoreError(f"delete {table}: {e}") from e
        finally:
            db.close()
