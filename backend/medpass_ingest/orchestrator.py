from __future__ import annotations

import logging
from typing import Any

from medpass_records.record_store import StoredRecord
from medpass_records.service import Record, RecordService
from medpass_records.time_utils import to_iso, utc_now

from .field_extractor import build_summary, categorize, extract_fields
from .models import ExtractionError, FieldRecord, IngestionError, RecordPayload, UploadedFile
from .text_extractor import TextExtractor

logger = logging.getLogger(__name__)

MANUAL_ENTRY_NAME = "Manual Entry"


class IngestionOrchestrator:
    """Runs uploaded files and manual text through extraction, sealing and storage.

    A batch is all-or-nothing: every file is extracted and sealed before the
    single insert transaction, and a failure anywhere discards the batch
    (including the files already written to the uploads directory).
    """

    def __init__(self, records: RecordService, extractor: TextExtractor) -> None:
        self.records = records
        self.extractor = extractor

    def _build(
        self,
        *,
        owner_id: str,
        file_name: str,
        file_url: str | None,
        text: str,
        category_hint: str | None = None,
    ) -> tuple[StoredRecord, Record]:
        fields = extract_fields(text)
        uploaded_at = to_iso(utc_now())
        payload = RecordPayload(
            file_name=file_name,
            file_url=file_url,
            record_type=categorize(category_hint or file_name, text),
            summary=build_summary(fields, text),
            uploaded_at=uploaded_at,
            fields=fields,
        )
        return self.records.seal_record(owner_id=owner_id, payload=payload.as_dict(), created_at=uploaded_at)

    def ingest(self, owner_id: str, files: list[UploadedFile]) -> list[Record]:
        if not files:
            raise IngestionError("No files")
        sealed: list[StoredRecord] = []
        results: list[Record] = []
        try:
            for upload in files:
                # Unknown extensions yield empty text here; only extraction errors abort.
                text = self.extractor.extract(upload.path, upload.extension, strict=False)
                stored, record = self._build(
                    owner_id=owner_id,
                    file_name=upload.original_name,
                    file_url=self.records.guard.upload_url_for(upload.path),
                    text=text,
                )
                sealed.append(stored)
                results.append(record)
            self.records.store_sealed(sealed)
        except Exception as exc:
            logger.exception("batch upload failed for owner %s after %d of %d files", owner_id, len(sealed), len(files))
            for upload in files:
                self.records.remove_upload(upload.path)
            raise IngestionError("Upload failed") from exc
        logger.info("stored %d records for owner %s", len(results), owner_id)
        return results

    def ingest_manual(self, owner_id: str, title: str | None, text: str | None) -> Record:
        body = text or ""
        try:
            stored, record = self._build(
                owner_id=owner_id,
                file_name=title or MANUAL_ENTRY_NAME,
                file_url=None,
                text=body,
                category_hint=title or "manual.txt",
            )
            self.records.store_sealed([stored])
        except Exception as exc:
            logger.exception("manual record save failed for owner %s", owner_id)
            raise IngestionError("Save failed") from exc
        return record

    def save_structured(self, owner_id: str, payload: dict[str, Any]) -> Record:
        try:
            return self.records.save_payload(owner_id, payload)
        except Exception as exc:
            logger.exception("structured record save failed for owner %s", owner_id)
            raise IngestionError("Save failed") from exc

    def preview(self, upload: UploadedFile) -> FieldRecord:
        """Extract fields from a single file without storing anything.

        Raises UnsupportedFileType for extensions outside the dispatch table.
        """
        try:
            text = self.extractor.extract(upload.path, upload.extension, strict=True)
        except ExtractionError as exc:
            raise IngestionError("OCR failed") from exc
        return extract_fields(text)
