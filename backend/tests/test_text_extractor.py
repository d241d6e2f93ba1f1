from __future__ import annotations

import docx
import pytest

from medpass_ingest import ExtractionError, ExtractionStrategy, TextExtractor, UnsupportedFileType
from medpass_ingest import text_extractor


def test_supported_extensions_cover_documents_and_images():
    assert TextExtractor().supported_extensions() == [".docx", ".jpeg", ".jpg", ".pdf", ".png", ".txt"]


def test_txt_is_decoded_as_utf8_with_replacement(tmp_path):
    path = tmp_path / "note.txt"
    path.write_bytes("Diagnosis: Fièvre\n".encode("utf-8") + b"\xff")

    text = TextExtractor().extract(path, ".TXT")

    assert text.startswith("Diagnosis: Fièvre\n")
    assert text.endswith("�")


def test_docx_text_includes_paragraphs_and_table_rows(tmp_path):
    document = docx.Document()
    document.add_paragraph("Dr. Anand Kumar")
    document.add_paragraph("Diagnosis: Migraine")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Rx:"
    table.rows[0].cells[1].text = "Sumatriptan 50mg"
    path = tmp_path / "visit.docx"
    document.save(str(path))

    text = TextExtractor().extract(path, ".docx")

    assert "Dr. Anand Kumar" in text
    assert "Diagnosis: Migraine" in text
    assert "Rx: Sumatriptan 50mg" in text


def test_unknown_extension_is_rejected_when_strict(tmp_path):
    path = tmp_path / "scan.gif"
    path.write_bytes(b"GIF89a")

    with pytest.raises(UnsupportedFileType):
        TextExtractor().extract(path, ".gif")


def test_unknown_extension_yields_empty_text_when_lenient(tmp_path):
    path = tmp_path / "archive.zip"
    path.write_bytes(b"PK")

    assert TextExtractor().extract(path, ".zip", strict=False) == ""


def test_pdf_and_image_dispatch_to_their_handlers(tmp_path, monkeypatch):
    calls: list[tuple[str, dict]] = []

    def fake_pdf(path):
        calls.append(("pdf", {}))
        return "pdf text"

    def fake_image(path, *, lang, timeout_seconds):
        calls.append(("image", {"lang": lang, "timeout_seconds": timeout_seconds}))
        return "ocr text"

    monkeypatch.setattr(text_extractor, "extract_pdf_text", fake_pdf)
    monkeypatch.setattr(text_extractor, "extract_image_text", fake_image)
    extractor = TextExtractor(ocr_lang="eng+hin", ocr_timeout_seconds=12)

    assert extractor.extract(tmp_path / "a.pdf", ".pdf") == "pdf text"
    assert extractor.extract(tmp_path / "b.jpeg", ".jpeg") == "ocr text"
    assert calls == [("pdf", {}), ("image", {"lang": "eng+hin", "timeout_seconds": 12})]


def test_handler_failure_is_wrapped_as_extraction_error(tmp_path, monkeypatch):
    def broken_ocr(path, *, lang, timeout_seconds):
        raise RuntimeError("tesseract is not installed")

    monkeypatch.setattr(text_extractor, "extract_image_text", broken_ocr)

    with pytest.raises(ExtractionError):
        TextExtractor().extract(tmp_path / "photo.png", ".png", strict=False)


def test_registered_strategy_extends_the_dispatch_table(tmp_path):
    extractor = TextExtractor()
    extractor.register(".md", ExtractionStrategy("markdown", lambda path: "# heading"))

    assert extractor.resolve(".MD") is not None
    assert extractor.extract(tmp_path / "x.md", ".md") == "# heading"
