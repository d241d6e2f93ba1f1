from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


class SQLiteRecordDB:
    def __init__(self, db_path: str) -> None:
        self._path = Path(db_path).expanduser().resolve()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

    @property
    def path(self) -> str:
        return str(self._path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._path), timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._lock, self.connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                  id TEXT PRIMARY KEY,
                  name TEXT NOT NULL,
                  email TEXT NOT NULL UNIQUE,
                  password_hash TEXT NOT NULL,
                  created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS records (
                  id TEXT PRIMARY KEY,
                  user_id TEXT NOT NULL,
                  created_at TEXT NOT NULL,
                  data_enc BLOB NOT NULL
                );

                CREATE TABLE IF NOT EXISTS predictions (
                  id TEXT PRIMARY KEY,
                  user_id TEXT NOT NULL,
                  created_at TEXT NOT NULL,
                  input_json TEXT NOT NULL,
                  result_json TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS assistant_chats (
                  id TEXT PRIMARY KEY,
                  user_id TEXT NOT NULL,
                  created_at TEXT NOT NULL,
                  seq INTEGER NOT NULL,
                  role TEXT NOT NULL,
                  message TEXT NOT NULL,
                  language TEXT
                );

                CREATE TABLE IF NOT EXISTS emergency_info (
                  user_id TEXT PRIMARY KEY,
                  data_enc BLOB NOT NULL,
                  updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS medical_summaries (
                  id TEXT PRIMARY KEY,
                  user_id TEXT NOT NULL,
                  created_at TEXT NOT NULL,
                  summary_json TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_records_user_created
                  ON records(user_id, created_at DESC, id DESC);
                CREATE INDEX IF NOT EXISTS idx_predictions_user_created
                  ON predictions(user_id, created_at DESC);
                CREATE INDEX IF NOT EXISTS idx_assistant_chats_user_seq
                  ON assistant_chats(user_id, seq);
                CREATE INDEX IF NOT EXISTS idx_summaries_user_created
                  ON medical_summaries(user_id, created_at DESC);
                """
            )
