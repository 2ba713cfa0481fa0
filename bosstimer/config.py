"""Настройки бота. Всё читается из окружения / .env файла."""
import os
import logging
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Некорректное значение {name}={raw!r}, используется {default}")
        return default


BOT_TOKEN = os.environ.get("BOT_TOKEN")

# Общая база (источник правды для всех инстансов бота)
REMOTE_DB_URL = os.environ.get("REMOTE_DB_URL") or f"sqlite:///{PROJECT_ROOT / 'remote.db'}"
# Локальная база инстанса: настройки и подписчики
LOCAL_DB_URL = os.environ.get("LOCAL_DB_URL") or f"sqlite:///{PROJECT_ROOT / 'local.db'}"

TIMEZONE = os.environ.get("TIMEZONE") or "America/New_York"
FEED_POLL_SECONDS = _int_env("FEED_POLL_SECONDS", 5)
ADMINS_FILE = Path(os.environ.get("ADMINS_FILE") or PROJECT_ROOT / "admins.txt")
