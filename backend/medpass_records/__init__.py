from .account_store import AccountStore, DuplicateAccountError
from .cipher import EnvelopeCipher, EnvelopeIntegrityError, KeyConfigError, canonical_json, resolve_encryption_key
from .database import SQLiteRecordDB
from .record_policy_guard import RecordPolicyError, RecordPolicyGuard
from .record_store import RecordStore, StoredRecord
from .service import Record, RecordService, new_record_id

__all__ = [
    "AccountStore",
    "DuplicateAccountError",
    "EnvelopeCipher",
    "EnvelopeIntegrityError",
    "KeyConfigError",
    "Record",
    "RecordPolicyError",
    "RecordPolicyGuard",
    "RecordService",
    "RecordStore",
    "SQLiteRecordDB",
    "StoredRecord",
    "canonical_json",
    "new_record_id",
    "resolve_encryption_key",
]
