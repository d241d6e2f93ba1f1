from __future__ import annotations

import sqlite3
import uuid
from typing import Any

from .database import SQLiteRecordDB
from .time_utils import to_iso, utc_now


class DuplicateAccountError(Exception):
    pass


class AccountStore:
    def __init__(self, db: SQLiteRecordDB) -> None:
        self._db = db

    def create_user(self, *, name: str, email: str, password_hash: str) -> dict[str, Any]:
        user_id = str(uuid.uuid4())
        created_at = to_iso(utc_now())
        try:
            with self._db.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO users (id, name, email, password_hash, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (user_id, name, email, password_hash, created_at),
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateAccountError("Email already registered") from exc
        return {"id": user_id, "email": email, "name": name, "created_at": created_at}

    def get_by_email(self, email: str) -> dict[str, Any] | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT id, name, email, password_hash, created_at
                FROM users
                WHERE email = ?
                """,
                (email,),
            ).fetchone()
        return dict(row) if row else None

    def email_exists(self, email: str) -> bool:
        with self._db.connection() as conn:
            row = conn.execute("SELECT id FROM users WHERE email = ?", (email,)).fetchone()
        return row is not None
