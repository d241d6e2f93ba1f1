from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .models import ExtractionError, UnsupportedFileType

logger = logging.getLogger(__name__)

ExtractionHandler = Callable[[Path], str]


def extract_pdf_text(path: Path) -> str:
    from pypdf import PdfReader

    reader = PdfReader(str(path))
    pages = [(page.extract_text() or "") for page in reader.pages]
    return "\n".join(pages).strip()


def extract_image_text(path: Path, *, lang: str = "eng", timeout_seconds: float = 0) -> str:
    import pytesseract
    from PIL import Image

    with Image.open(path) as image:
        text = pytesseract.image_to_string(image, lang=lang, timeout=timeout_seconds)
    return text or ""


def extract_docx_text(path: Path) -> str:
    import docx

    document = docx.Document(str(path))
    lines = [paragraph.text for paragraph in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                lines.append(" ".join(cells))
    return "\n".join(lines)


def extract_txt_text(path: Path) -> str:
    return Path(path).read_bytes().decode("utf-8", errors="replace")


@dataclass
class ExtractionStrategy:
    name: str
    handler: ExtractionHandler


class TextExtractor:
    def __init__(self, *, ocr_lang: str = "eng", ocr_timeout_seconds: float = 60.0) -> None:
        self.ocr_lang = ocr_lang
        self.ocr_timeout_seconds = ocr_timeout_seconds
        self._strategies: dict[str, ExtractionStrategy] = {}
        self.register(".pdf", ExtractionStrategy("pdf_text_layer", lambda path: extract_pdf_text(path)))
        image_strategy = ExtractionStrategy("image_ocr", self._extract_image)
        for ext in (".jpg", ".jpeg", ".png"):
            self.register(ext, image_strategy)
        self.register(".docx", ExtractionStrategy("docx_raw_text", lambda path: extract_docx_text(path)))
        self.register(".txt", ExtractionStrategy("plain_text", lambda path: extract_txt_text(path)))

    def _extract_image(self, path: Path) -> str:
        return extract_image_text(path, lang=self.ocr_lang, timeout_seconds=self.ocr_timeout_seconds)

    def register(self, extension: str, strategy: ExtractionStrategy) -> None:
        self._strategies[extension.lower()] = strategy

    def supported_extensions(self) -> list[str]:
        return sorted(self._strategies.keys())

    def resolve(self, extension: str) -> ExtractionStrategy | None:
        return self._strategies.get((extension or "").lower().strip())

    def extract(self, file_path: str | Path, declared_extension: str, *, strict: bool = True) -> str:
        strategy = self.resolve(declared_extension)
        if strategy is None:
            if strict:
                raise UnsupportedFileType(f"Unsupported file type: {declared_extension or '(none)'}")
            return ""
        try:
            return strategy.handler(Path(file_path))
        except Exception as exc:
            logger.exception("%s extraction failed for %s", strategy.name, Path(file_path).name)
            raise ExtractionError(f"{strategy.name} extraction failed") from exc
