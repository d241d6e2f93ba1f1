from __future__ import annotations

import pytest

from medpass_records import EnvelopeIntegrityError, RecordPolicyError


def test_records_are_scoped_to_their_owner(record_service):
    mine = record_service.save_payload("user-a", {"file_name": "a.txt"})
    theirs = record_service.save_payload("user-b", {"file_name": "b.txt"})

    assert [record.id for record in record_service.list_records("user-a")] == [mine.id]
    assert record_service.get_record(theirs.id, "user-a") is None
    assert record_service.delete_record(theirs.id, "user-a") is False
    assert record_service.get_record(theirs.id, "user-b").payload == {"file_name": "b.txt"}


def test_list_is_newest_first(record_service):
    batch = [
        record_service.seal_record(owner_id="user-a", payload={"n": n}, created_at=created_at)[0]
        for n, created_at in enumerate(
            ["2024-01-01T00:00:00.000Z", "2024-03-01T00:00:00.000Z", "2024-02-01T00:00:00.000Z"]
        )
    ]
    assert record_service.store_sealed(batch) == 3

    listed = record_service.list_records("user-a")

    assert [record.payload["n"] for record in listed] == [1, 2, 0]
    assert record_service.records.count_for_owner("user-a") == 3


def test_stored_blob_is_not_plaintext(record_service):
    record = record_service.save_payload("user-a", {"diagnosis": "Hypertension"})

    with record_service.db.connection() as conn:
        row = conn.execute("SELECT data_enc FROM records WHERE id = ?", (record.id,)).fetchone()

    assert b"Hypertension" not in bytes(row["data_enc"])


def test_delete_removes_row_and_backing_upload(record_service):
    upload = record_service.uploads_dir / "1700000000000-42-lab.txt"
    upload.write_text("Diagnosis: Anemia", encoding="utf-8")
    record = record_service.save_payload(
        "user-a",
        {"file_name": "lab.txt", "file_url": record_service.guard.upload_url_for(upload)},
    )

    assert record_service.delete_record(record.id, "user-a") is True
    assert not upload.exists()
    assert record_service.get_record(record.id, "user-a") is None
    assert record_service.delete_record(record.id, "user-a") is False


def test_delete_never_touches_files_outside_uploads(record_service, tmp_path):
    outside = tmp_path / "keep.txt"
    outside.write_text("do not delete", encoding="utf-8")
    record = record_service.save_payload("user-a", {"file_url": "/uploads/../keep.txt"})

    assert record_service.delete_record(record.id, "user-a") is True
    assert outside.exists()


def test_tampered_row_surfaces_integrity_error(record_service):
    record = record_service.save_payload("user-a", {"diagnosis": "Asthma"})
    with record_service.db.connection() as conn:
        blob = bytearray(conn.execute("SELECT data_enc FROM records WHERE id = ?", (record.id,)).fetchone()[0])
        blob[-1] ^= 0xFF
        conn.execute("UPDATE records SET data_enc = ? WHERE id = ?", (bytes(blob), record.id))

    with pytest.raises(EnvelopeIntegrityError):
        record_service.list_records("user-a")
    with pytest.raises(EnvelopeIntegrityError):
        record_service.get_record(record.id, "user-a")


def test_invalid_owner_ids_are_rejected(record_service):
    with pytest.raises(RecordPolicyError):
        record_service.save_payload("", {"x": 1})
    with pytest.raises(RecordPolicyError):
        record_service.list_records("../etc")


def test_emergency_info_is_sealed_and_upserted(record_service):
    record_service.save_emergency_info("user-a", {"blood_group": "O+", "updated_at": "2024-01-01T00:00:00.000Z"})
    record_service.save_emergency_info("user-a", {"blood_group": "B-", "updated_at": "2024-02-01T00:00:00.000Z"})

    data, updated_at = record_service.get_emergency_info("user-a")

    assert data == {"blood_group": "B-", "updated_at": "2024-02-01T00:00:00.000Z"}
    assert updated_at == "2024-02-01T00:00:00.000Z"
    assert record_service.get_emergency_info("user-b") is None


def test_delete_succeeds_when_upload_cannot_be_removed(record_service):
    # A directory in place of the upload makes unlink fail with an OSError.
    blocked = record_service.uploads_dir / "1700000000000-7-locked.txt"
    blocked.mkdir()
    record = record_service.save_payload(
        "user-a",
        {"file_name": "locked.txt", "file_url": record_service.guard.upload_url_for(blocked)},
    )

    assert record_service.delete_record(record.id, "user-a") is True
    assert record_service.get_record(record.id, "user-a") is None
    assert record_service.records.count_for_owner("user-a") == 0
    assert blocked.is_dir()
