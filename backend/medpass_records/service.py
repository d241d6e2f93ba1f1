from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .account_store import AccountStore
from .cipher import EnvelopeCipher, EnvelopeIntegrityError
from .database import SQLiteRecordDB
from .emergency_store import EmergencyStore
from .insight_store import InsightStore
from .record_policy_guard import RecordPolicyGuard
from .record_store import RecordStore, StoredRecord
from .time_utils import to_iso, utc_now

logger = logging.getLogger(__name__)


def new_record_id() -> str:
    return f"rec_{uuid.uuid4().hex}"


@dataclass(frozen=True)
class Record:
    id: str
    owner_id: str
    created_at: str
    payload: Any

    def as_response(self) -> dict[str, Any]:
        return {"id": self.id, "created_at": self.created_at, "data": self.payload}


class RecordService:
    def __init__(self, db: SQLiteRecordDB, cipher: EnvelopeCipher, uploads_dir: str | Path) -> None:
        self.db = db
        self.cipher = cipher
        self.guard = RecordPolicyGuard(uploads_dir)
        self.records = RecordStore(db)
        self.accounts = AccountStore(db)
        self.insights = InsightStore(db)
        self.emergency = EmergencyStore(db)

    @property
    def uploads_dir(self) -> Path:
        return self.guard.uploads_dir

    def seal_record(
        self,
        *,
        owner_id: str,
        payload: Any,
        record_id: str | None = None,
        created_at: str | None = None,
    ) -> tuple[StoredRecord, Record]:
        owner = self.guard.ensure_owner(owner_id)
        record = Record(
            id=record_id or new_record_id(),
            owner_id=owner,
            created_at=created_at or to_iso(utc_now()),
            payload=payload,
        )
        stored = StoredRecord(
            id=record.id,
            owner_id=record.owner_id,
            created_at=record.created_at,
            data_enc=self.cipher.seal(payload),
        )
        return stored, record

    def store_sealed(self, stored: list[StoredRecord]) -> int:
        return self.records.insert_many(stored)

    def save_payload(self, owner_id: str, payload: dict[str, Any]) -> Record:
        stored, record = self.seal_record(owner_id=owner_id, payload=payload)
        self.records.insert(stored)
        return record

    def _open(self, stored: StoredRecord) -> Record:
        return Record(
            id=stored.id,
            owner_id=stored.owner_id,
            created_at=stored.created_at,
            payload=self.cipher.open(stored.data_enc),
        )

    def list_records(self, owner_id: str) -> list[Record]:
        owner = self.guard.ensure_owner(owner_id)
        return [self._open(stored) for stored in self.records.list_by_owner(owner)]

    def get_record(self, record_id: str, owner_id: str) -> Record | None:
        owner = self.guard.ensure_owner(owner_id)
        stored = self.records.get_one_owned(record_id, owner)
        if stored is None:
            return None
        self.guard.ensure_owner_scope(stored.owner_id, owner)
        return self._open(stored)

    def delete_record(self, record_id: str, owner_id: str) -> bool:
        owner = self.guard.ensure_owner(owner_id)
        stored = self.records.get_one_owned(record_id, owner)
        if stored is None:
            return False
        upload_path = self._upload_path_for(stored)
        deleted = self.records.delete(record_id, owner)
        if deleted and upload_path is not None:
            self.remove_upload(upload_path)
        return deleted

    def _upload_path_for(self, stored: StoredRecord) -> Path | None:
        try:
            payload = self.cipher.open(stored.data_enc)
        except EnvelopeIntegrityError:
            logger.warning("record %s could not be decrypted; skipping upload cleanup", stored.id)
            return None
        if not isinstance(payload, dict):
            return None
        file_url = payload.get("file_url")
        path = self.guard.resolve_upload_url(file_url)
        if file_url and path is None:
            logger.warning("record %s references a file outside the uploads directory", stored.id)
        return path

    def remove_upload(self, path: Path) -> bool:
        if not path.resolve().is_relative_to(self.uploads_dir):
            logger.warning("refusing to remove %s outside the uploads directory", path)
            return False
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("could not remove upload %s: %s", path.name, exc)
            return False
        return True

    def decrypted_payloads(self, owner_id: str) -> list[Any]:
        return [record.payload for record in self.list_records(owner_id)]

    def save_emergency_info(self, user_id: str, info: dict[str, Any]) -> tuple[dict[str, Any], bytes]:
        owner = self.guard.ensure_owner(user_id)
        data_enc = self.cipher.seal(info)
        self.emergency.upsert(user_id=owner, data_enc=data_enc, updated_at=str(info.get("updated_at") or to_iso(utc_now())))
        return info, data_enc

    def get_emergency_info(self, user_id: str) -> tuple[dict[str, Any], str] | None:
        owner = self.guard.ensure_owner(user_id)
        row = self.emergency.get(owner)
        if row is None:
            return None
        data_enc, updated_at = row
        return self.cipher.open(data_enc), updated_at
