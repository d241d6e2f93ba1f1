"""
Deterministic field scraping for uploaded medical documents.

Each field is filled by exactly one rule in ``FIELD_RULES``; rules are
independent and the first match in the text wins. Everything here is a pure
function of its inputs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .models import FieldRecord

SUMMARY_MAX_CHARS = 200

_TABS_RE = re.compile(r"\t")
_SPACES_RE = re.compile(r" +")

# A labelled value runs to end of line, or up to the next "<label>:" on the same line.
_LABEL_NAMES = r"Diagnosis|Rx|Prescription|Medicines?|Follow\s?up|Next Visit|Review"
_VALUE_END = rf"(?=\s+(?:{_LABEL_NAMES})\s*[:\-]|\n|$)"


@dataclass(frozen=True)
class FieldRule:
    field: str
    pattern: re.Pattern[str]
    group: int | str = 0

    def apply(self, text: str) -> str:
        match = self.pattern.search(text)
        if not match:
            return ""
        return (match.group(self.group) or "").strip()


FIELD_RULES: tuple[FieldRule, ...] = (
    FieldRule(
        "date",
        re.compile(r"(\b\d{1,2}[/-]\d{1,2}[/-]\d{2,4}\b|\b\d{4}[/-]\d{1,2}[/-]\d{1,2}\b)"),
    ),
    FieldRule("doctor", re.compile(r"Dr\.?\s+[A-Z][a-zA-Z]+(?:\s[A-Z][a-z]*)?")),
    FieldRule("hospital", re.compile(r"Hospital|Clinic|Medical Center|Med Centre", re.IGNORECASE)),
    FieldRule(
        "diagnosis",
        re.compile(rf"Diagnosis\s*[:\-]\s*(?P<value>[^\n]+?){_VALUE_END}", re.IGNORECASE),
        "value",
    ),
    FieldRule(
        "medicines",
        re.compile(rf"(?:Rx|Prescription|Medicines?)\s*[:\-]?\s*(?P<value>[^\n]+?){_VALUE_END}", re.IGNORECASE),
        "value",
    ),
    FieldRule(
        "follow_up",
        re.compile(rf"(?:Follow\s?up|Next Visit|Review)\s*[:\-]?\s*(?P<value>[^\n]+?){_VALUE_END}", re.IGNORECASE),
        "value",
    ),
)

_CATEGORY_RULES: tuple[tuple[str, tuple[str, ...], re.Pattern[str]], ...] = (
    ("Prescription", ("rx", "prescrip"), re.compile(r"rx|prescrip")),
    ("Report", ("report",), re.compile(r"report|result")),
    ("Scan", ("scan",), re.compile(r"mri|ct|x-?ray|ultra")),
)


def clean_text(text: str | None) -> str:
    # Lone surrogates (valid in JSON strings) become U+FFFD.
    cleaned = (text or "").encode("utf-8", "surrogatepass").decode("utf-8", "replace")
    cleaned = _TABS_RE.sub(" ", cleaned)
    cleaned = _SPACES_RE.sub(" ", cleaned)
    return cleaned.strip()


def extract_fields(text: str | None) -> FieldRecord:
    cleaned = clean_text(text)
    record = FieldRecord(raw_text=cleaned)
    for rule in FIELD_RULES:
        setattr(record, rule.field, rule.apply(cleaned))
    return record


def categorize(file_name: str | None, text: str | None) -> str:
    name = (file_name or "").lower()
    lowered = (text or "").lower()
    for record_type, name_markers, text_pattern in _CATEGORY_RULES:
        if any(marker in name for marker in name_markers) or text_pattern.search(lowered):
            return record_type
    return "Other"


def build_summary(fields: FieldRecord, text: str | None) -> str:
    return fields.diagnosis[:SUMMARY_MAX_CHARS] or clean_text(text)[:SUMMARY_MAX_CHARS]
