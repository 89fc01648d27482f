"""Persistence and default-filling for per-device settings."""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from .config import DEFAULT_API_KEYS, DEFAULT_SETTINGS
from .errors import StoreUnavailableError

logger = logging.getLogger("describer.app")


def merge_settings(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Shallow-merge request settings over the defaults.

    ``apiKeys`` is only present when the caller supplied it.
    """
    settings: Dict[str, Any] = dict(DEFAULT_SETTINGS)
    if isinstance(payload, dict):
        settings.update(payload)
    return settings


def fill_settings_defaults(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge with defaults, including an ``apiKeys`` block with every provider."""
    settings = merge_settings(payload)
    api_keys = dict(DEFAULT_API_KEYS)
    stored_keys = settings.get("apiKeys")
    if isinstance(stored_keys, dict):
        api_keys.update(stored_keys)
    settings["apiKeys"] = api_keys
    return settings


class SettingsStore:
    """One JSON blob per device id in a single SQLite table."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._write_lock = threading.Lock()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=30.0)
            self._setup_database()
        except (OSError, sqlite3.Error) as exc:
            logger.error("DB_INIT_ERROR opening settings database %s: %s", self.db_path, exc)
            raise StoreUnavailableError() from exc

    def _setup_database(self) -> None:
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS user_settings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                device_id TEXT UNIQUE NOT NULL,
                settings TEXT NOT NULL,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        self.conn.commit()

    def get(self, device_id: str) -> Optional[str]:
        cur = self.conn.execute("SELECT settings FROM user_settings WHERE device_id = ?", (device_id,))
        row = cur.fetchone()
        return row[0] if row else None

    def upsert(self, device_id: str, serialized: str) -> None:
        with self._write_lock:
            self.conn.execute(
                """
                INSERT INTO user_settings (device_id, settings) VALUES (?, ?)
                ON CONFLICT(device_id) DO UPDATE SET
                    settings = excluded.settings,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (device_id, serialized),
            )
            self.conn.commit()

    def close(self) -> None:
        self.conn.close()


def load_device_settings(store: SettingsStore, device_id: str) -> Optional[Dict[str, Any]]:
    raw = store.get(device_id)
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Stored settings for device %s could not be parsed, ignoring them.", device_id)
        return None
    if not isinstance(data, dict):
        logger.warning("Stored settings for device %s are not an object, ignoring them.", device_id)
        return None
    return fill_settings_defaults(data)


def save_device_settings(store: SettingsStore, device_id: str, settings: Dict[str, Any]) -> None:
    store.upsert(device_id, json.dumps(settings, ensure_ascii=False))
    logger.info("Settings saved for device %s.", device_id)
