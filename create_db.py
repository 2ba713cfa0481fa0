#!/usr/bin/env python3
"""Создаёт общую и локальную БД со всеми таблицами (по REMOTE_DB_URL / LOCAL_DB_URL)."""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from bosstimer.config import REMOTE_DB_URL, LOCAL_DB_URL
from bosstimer.db import ensure_db_exists

if __name__ == "__main__":
    ensure_db_exists()
    print(f"Общая БД: {REMOTE_DB_URL}")
    print(f"Локальная БД: {LOCAL_DB_URL}")
