from __future__ import annotations

import pytest

from medpass_ingest import IngestionError, UnsupportedFileType, UploadedFile
from medpass_ingest import text_extractor


def _write_upload(service, name: str, body: bytes) -> UploadedFile:
    path = service.uploads_dir / f"1700000000000-1-{name}"
    path.write_bytes(body)
    return UploadedFile(path=path, original_name=name, size=len(body))


def test_batch_creates_one_record_per_file(orchestrator, record_service):
    files = [
        _write_upload(record_service, "visit.txt", b"Visit on 12/05/2023. Diagnosis: Hypertension. Rx: Amlodipine 5mg."),
        _write_upload(record_service, "notes.bin", b"\x00\x01"),
    ]

    records = orchestrator.ingest("user-a", files)

    assert len(records) == 2
    visit, other = (record.payload for record in records)
    assert visit["file_name"] == "visit.txt"
    assert visit["file_url"] == "/uploads/1700000000000-1-visit.txt"
    assert visit["record_type"] == "Prescription"
    assert visit["summary"] == "Hypertension."
    assert visit["fields"]["medicines"] == "Amlodipine 5mg."
    assert visit["uploaded_at"] == records[0].created_at
    # Unknown types are kept with empty text rather than aborting the batch.
    assert other["fields"]["raw_text"] == ""
    assert other["record_type"] == "Other"
    assert record_service.records.count_for_owner("user-a") == 2


def test_failed_file_aborts_the_whole_batch(orchestrator, record_service, monkeypatch):
    def broken_pdf(path):
        raise RuntimeError("corrupt xref table")

    monkeypatch.setattr(text_extractor, "extract_pdf_text", broken_pdf)
    first = _write_upload(record_service, "ok.txt", b"Diagnosis: Flu")
    second = _write_upload(record_service, "broken.pdf", b"%PDF-1.4 garbage")

    with pytest.raises(IngestionError, match="Upload failed"):
        orchestrator.ingest("user-a", [first, second])

    assert record_service.records.count_for_owner("user-a") == 0
    assert not first.path.exists()
    assert not second.path.exists()


def test_empty_batch_is_rejected(orchestrator):
    with pytest.raises(IngestionError):
        orchestrator.ingest("user-a", [])


def test_manual_entry_is_categorized_from_its_title(orchestrator):
    record = orchestrator.ingest_manual("user-a", "Blood report", "Hemoglobin 11.2")

    assert record.payload["file_name"] == "Blood report"
    assert record.payload["file_url"] is None
    assert record.payload["record_type"] == "Report"
    assert record.payload["fields"]["raw_text"] == "Hemoglobin 11.2"


def test_manual_entry_without_title_uses_default_name(orchestrator):
    record = orchestrator.ingest_manual("user-a", None, None)

    assert record.payload["file_name"] == "Manual Entry"
    assert record.payload["record_type"] == "Other"
    assert record.payload["summary"] == ""


def test_structured_payload_is_stored_verbatim(orchestrator, record_service):
    payload = {"file_name": "imported.json", "fields": {"diagnosis": "Asthma"}, "tags": ["import"]}

    record = orchestrator.save_structured("user-a", payload)

    assert record_service.get_record(record.id, "user-a").payload == payload


def test_preview_extracts_fields_without_storing(orchestrator, record_service, tmp_path):
    path = tmp_path / "preview.txt"
    path.write_text("Dr. Sara Khan\nDiagnosis: Migraine", encoding="utf-8")

    fields = orchestrator.preview(UploadedFile(path=path, original_name="note.txt"))

    assert fields.doctor == "Dr. Sara Khan"
    assert fields.diagnosis == "Migraine"
    assert record_service.records.count_for_owner("user-a") == 0


def test_preview_rejects_unsupported_types_and_wraps_ocr_failures(orchestrator, tmp_path, monkeypatch):
    path = tmp_path / "photo.gif"
    path.write_bytes(b"GIF89a")
    with pytest.raises(UnsupportedFileType):
        orchestrator.preview(UploadedFile(path=path, original_name="photo.gif"))

    def broken_ocr(path, *, lang, timeout_seconds):
        raise RuntimeError("tesseract missing")

    monkeypatch.setattr(text_extractor, "extract_image_text", broken_ocr)
    with pytest.raises(IngestionError, match="OCR failed"):
        orchestrator.preview(UploadedFile(path=tmp_path / "photo.png", original_name="photo.png"))
