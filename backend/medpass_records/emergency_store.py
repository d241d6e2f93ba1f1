from __future__ import annotations

from .database import SQLiteRecordDB


class EmergencyStore:
    def __init__(self, db: SQLiteRecordDB) -> None:
        self._db = db

    def upsert(self, *, user_id: str, data_enc: bytes, updated_at: str) -> None:
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO emergency_info (user_id, data_enc, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                  data_enc = excluded.data_enc,
                  updated_at = excluded.updated_at
                """,
                (user_id, data_enc, updated_at),
            )

    def get(self, user_id: str) -> tuple[bytes, str] | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT data_enc, updated_at FROM emergency_info WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if not row:
            return None
        return bytes(row["data_enc"]), row["updated_at"]
