from __future__ import annotations

import importlib
import sys
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from medpass_ingest import IngestionOrchestrator, TextExtractor  # noqa: E402
from medpass_records import EnvelopeCipher, RecordService, SQLiteRecordDB  # noqa: E402

TEST_ENC_KEY_HEX = "11" * 32


@pytest.fixture
def backend_module(tmp_path, monkeypatch):
    monkeypatch.setenv("MEDPASS_DB_PATH", str(tmp_path / "medpass-test.sqlite"))
    monkeypatch.setenv("MEDPASS_UPLOADS_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("MEDPASS_ENC_KEY", TEST_ENC_KEY_HEX)
    monkeypatch.setenv("MEDPASS_JWT_SECRET", "medpass-test-jwt-secret-with-enough-bytes")
    monkeypatch.setenv("MEDPASS_BCRYPT_ROUNDS", "4")
    # Keep CI deterministic; provider-backed paths fall back to their local rules.
    monkeypatch.setenv("OPENAI_API_KEY", "")
    for name in ("TWILIO_SID", "TWILIO_TOKEN", "TWILIO_FROM"):
        monkeypatch.setenv(name, "")

    if "main" in sys.modules:
        module = importlib.reload(sys.modules["main"])
    else:
        module = importlib.import_module("main")
    return module


@pytest.fixture
def client(backend_module):
    with TestClient(backend_module.app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(backend_module) -> Callable[[str], dict[str, str]]:
    def _make(user_id: str) -> dict[str, str]:
        token = backend_module.container.issue_session_token(
            {"id": user_id, "email": f"{user_id}@example.com", "name": user_id}
        )
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def record_service(tmp_path) -> RecordService:
    uploads_dir = tmp_path / "uploads"
    uploads_dir.mkdir()
    db = SQLiteRecordDB(str(tmp_path / "records.sqlite"))
    return RecordService(db, EnvelopeCipher(bytes.fromhex(TEST_ENC_KEY_HEX)), uploads_dir)


@pytest.fixture
def orchestrator(record_service) -> IngestionOrchestrator:
    return IngestionOrchestrator(record_service, TextExtractor())
