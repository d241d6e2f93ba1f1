from __future__ import annotations

import json
import uuid
from typing import Any

from .database import SQLiteRecordDB
from .time_utils import to_iso, utc_now


def _json_dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


class InsightStore:
    """Predictions, generated summaries and assistant chat turns, all per user."""

    def __init__(self, db: SQLiteRecordDB) -> None:
        self._db = db

    def add_prediction(self, *, user_id: str, input_payload: dict[str, Any], result: dict[str, Any]) -> dict[str, Any]:
        prediction_id = str(uuid.uuid4())
        created_at = to_iso(utc_now())
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO predictions (id, user_id, created_at, input_json, result_json)
                VALUES (?, ?, ?, ?, ?)
                """,
                (prediction_id, user_id, created_at, _json_dumps(input_payload), _json_dumps(result)),
            )
        return {"id": prediction_id, "created_at": created_at, "input": input_payload, "result": result}

    def list_predictions(self, user_id: str, limit: int = 20) -> list[dict[str, Any]]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT id, created_at, input_json, result_json
                FROM predictions
                WHERE user_id = ?
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (user_id, max(1, limit)),
            ).fetchall()
        return [
            {
                "id": row["id"],
                "created_at": row["created_at"],
                "input": json.loads(row["input_json"]),
                "result": json.loads(row["result_json"]),
            }
            for row in rows
        ]

    def add_summary(self, *, user_id: str, summary: dict[str, Any]) -> dict[str, Any]:
        summary_id = str(uuid.uuid4())
        created_at = to_iso(utc_now())
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO medical_summaries (id, user_id, created_at, summary_json)
                VALUES (?, ?, ?, ?)
                """,
                (summary_id, user_id, created_at, _json_dumps(summary)),
            )
        return {"id": summary_id, "created_at": created_at, "summary": summary}

    def latest_summary(self, user_id: str) -> dict[str, Any] | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT id, created_at, summary_json
                FROM medical_summaries
                WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (user_id,),
            ).fetchone()
        if not row:
            return None
        return {"id": row["id"], "created_at": row["created_at"], "summary": json.loads(row["summary_json"])}

    def append_chat_turn(self, *, user_id: str, role: str, message: str, language: str | None) -> dict[str, Any]:
        if role not in {"user", "assistant"}:
            raise ValueError(f"Unsupported chat role: {role}")
        turn_id = str(uuid.uuid4())
        created_at = to_iso(utc_now())
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(seq), 0) AS last_seq FROM assistant_chats WHERE user_id = ?",
                (user_id,),
            ).fetchone()
            seq = int(row["last_seq"]) + 1
            conn.execute(
                """
                INSERT INTO assistant_chats (id, user_id, created_at, seq, role, message, language)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (turn_id, user_id, created_at, seq, role, message, language),
            )
        return {"id": turn_id, "created_at": created_at, "role": role, "message": message, "language": language}

    def chat_history(self, user_id: str, limit: int = 200) -> list[dict[str, Any]]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT id, created_at, role, message, language
                FROM assistant_chats
                WHERE user_id = ?
                ORDER BY seq ASC
                LIMIT ?
                """,
                (user_id, max(1, limit)),
            ).fetchall()
        return [dict(row) for row in rows]
