from .field_extractor import FIELD_RULES, build_summary, categorize, clean_text, extract_fields
from .models import (
    RECORD_TYPES,
    ExtractionError,
    FieldRecord,
    IngestionError,
    RecordPayload,
    UnsupportedFileType,
    UploadedFile,
)
from .orchestrator import IngestionOrchestrator
from .text_extractor import ExtractionStrategy, TextExtractor

__all__ = [
    "FIELD_RULES",
    "RECORD_TYPES",
    "ExtractionError",
    "ExtractionStrategy",
    "FieldRecord",
    "IngestionError",
    "IngestionOrchestrator",
    "RecordPayload",
    "TextExtractor",
    "UnsupportedFileType",
    "UploadedFile",
    "build_summary",
    "categorize",
    "clean_text",
    "extract_fields",
]
