from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .database import SQLiteRecordDB


@dataclass(frozen=True)
class StoredRecord:
    id: str
    owner_id: str
    created_at: str
    data_enc: bytes


def _row_to_record(row) -> StoredRecord:
    return StoredRecord(
        id=row["id"],
        owner_id=row["user_id"],
        created_at=row["created_at"],
        data_enc=bytes(row["data_enc"]),
    )


class RecordStore:
    """Owner-scoped persistence of encrypted record blobs.

    Rows are only ever inserted or deleted; there is no update path.
    """

    def __init__(self, db: SQLiteRecordDB) -> None:
        self._db = db

    def insert(self, record: StoredRecord) -> None:
        self.insert_many([record])

    def insert_many(self, records: Iterable[StoredRecord]) -> int:
        rows = [(r.id, r.owner_id, r.created_at, r.data_enc) for r in records]
        if not rows:
            return 0
        with self._db.connection() as conn:
            conn.executemany(
                """
                INSERT INTO records (id, user_id, created_at, data_enc)
                VALUES (?, ?, ?, ?)
                """,
                rows,
            )
        return len(rows)

    def list_by_owner(self, owner_id: str) -> list[StoredRecord]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT id, user_id, created_at, data_enc
                FROM records
                WHERE user_id = ?
                ORDER BY created_at DESC, id DESC
                """,
                (owner_id,),
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def get_one_owned(self, record_id: str, owner_id: str) -> StoredRecord | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT id, user_id, created_at, data_enc
                FROM records
                WHERE id = ? AND user_id = ?
                """,
                (record_id, owner_id),
            ).fetchone()
        return _row_to_record(row) if row else None

    def delete(self, record_id: str, owner_id: str) -> bool:
        with self._db.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM records WHERE id = ? AND user_id = ?",
                (record_id, owner_id),
            )
            return cursor.rowcount > 0

    def count_for_owner(self, owner_id: str) -> int:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS count FROM records WHERE user_id = ?",
                (owner_id,),
            ).fetchone()
        return int(row["count"]) if row else 0
