import logging

from sqlalchemy.exc import SQLAlchemyError

from .models import Subscriber

logger = logging.getLogger(__name__)


class SubscriberRegistry:
    """Чаты, подписанные на уведомления (локальная база)."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def add(self, chat_id: int) -> bool:
        db = self.session_factory()
        try:
            if db.get(Subscriber, chat_id):
                return False
            db.add(Subscriber(chat_id=chat_id))
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Не удалось подписать {chat_id}: {e}", exc_info=True)
            return False
        finally:
            db.close()

    def remove(self, chat_id: int) -> bool:
        db = self.session_factory()
        try:
            row = db.get(Subscriber, chat_id)
            if not row:
                return False
            db.delete(row)
            db.commit()
            return True
        except SQLAlchemyError as e:
            logger.error(f"Не удалось отписать {chat_id}: {e}", exc_info=True)
            return False
        finally:
            db.close()

    def all(self) -> list[int]:
        db = self.session_factory()
        try:
            return [row.chat_id for row in db.query(Subscriber).order_by(Subscriber.chat_id).all()]
        except SQLAlchemyError as e:
            logger.error(f"Не удалось прочитать подписчиков: {e}", exc_info=True)
            return []
        finally:
            db.close()
