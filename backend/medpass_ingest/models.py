from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any


RECORD_TYPES = ("Prescription", "Report", "Scan", "Other")


class UnsupportedFileType(Exception):
    pass


class ExtractionError(Exception):
    pass


class IngestionError(Exception):
    pass


@dataclass(frozen=True)
class UploadedFile:
    path: Path
    original_name: str
    size: int = 0

    @property
    def extension(self) -> str:
        return Path(self.original_name).suffix.lower().strip()


@dataclass
class FieldRecord:
    patient_name: str = ""
    doctor: str = ""
    hospital: str = ""
    date: str = ""
    diagnosis: str = ""
    medicines: str = ""
    follow_up: str = ""
    raw_text: str = ""

    def as_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class RecordPayload:
    file_name: str
    file_url: str | None
    record_type: str
    summary: str
    uploaded_at: str
    fields: FieldRecord

    def as_dict(self) -> dict[str, Any]:
        return {
            "file_name": self.file_name,
            "file_url": self.file_url,
            "record_type": self.record_type,
            "summary": self.summary,
            "uploaded_at": self.uploaded_at,
            "fields": self.fields.as_dict(),
        }
