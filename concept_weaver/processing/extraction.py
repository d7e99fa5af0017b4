from __future__ import annotations

import html
import logging
import re
import zipfile
from io import BytesIO
from pathlib import PurePath
from typing import Dict, Iterable, List, Optional, Tuple

import pytesseract
from PIL import Image
from pypdf import PdfReader

from .errors import ExtractionError, InsufficientContentError, PipelineError
from .models import ExtractionResult
from .storage import ByteStore

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 20

INSUFFICIENT_CONTENT_MESSAGE = (
    "Not enough readable text found in this file to generate a meaningful summary."
)

_MIME_EXTENSIONS = {
    "application/pdf": ".pdf",
    "application/vnd.ms-powerpoint": ".ppt",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": ".pptx",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "text/plain": ".txt",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


def normalize_declared_type(declared: Optional[str]) -> str:
    """
    Map a declared type to a lowercase extension with a leading dot.
    Accepts `.pdf`, `pdf`, `notes.pdf` or a MIME type; unknown MIME types map to "".
    """
    value = (declared or "").strip().lower()
    if not value:
        return ""
    if "/" in value:
        return _MIME_EXTENSIONS.get(value.split(";")[0].strip(), "")
    if value.startswith("."):
        return value
    suffix = PurePath(value).suffix
    return suffix if suffix else f".{value}"


class Extractor:
    """
    One document format. Implementations are stateless apart from lazily built
    third-party converters and only read the bytes they are given.
    """

    name = "base"
    extensions: Tuple[str, ...] = ()

    def extract_text(self, data: bytes, filename: str) -> str:
        raise NotImplementedError


class PdfExtractor(Extractor):
    name = "pdf"
    extensions = (".pdf",)

    def extract_text(self, data: bytes, filename: str) -> str:
        reader = PdfReader(BytesIO(data))
        parts: List[str] = []
        for page in reader.pages:
            page_text = (page.extract_text() or "").strip()
            if page_text:
                parts.append(page_text)
        return "\n\n".join(parts)


_SLIDE_PART = re.compile(r"^ppt/slides/slide(\d+)\.xml$")
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


class PptxExtractor(Extractor):
    """
    Reads slide XML straight out of the package. Slides are ordered by the
    number in their part name and keep that number in the output, so a slide
    with no text leaves a gap instead of shifting the ones after it.
    """

    name = "pptx"
    extensions = (".pptx",)

    def extract_text(self, data: bytes, filename: str) -> str:
        paragraphs: List[str] = []
        with zipfile.ZipFile(BytesIO(data)) as archive:
            for number, part in self._slide_parts(archive.namelist()):
                xml = archive.read(part).decode("utf-8", errors="replace")
                cleaned = self._clean(xml)
                if cleaned:
                    paragraphs.append(f"Slide {number}: {cleaned}")
        return "\n\n".join(paragraphs)

    @staticmethod
    def _slide_parts(names: Iterable[str]) -> List[Tuple[int, str]]:
        parts = []
        for name in names:
            match = _SLIDE_PART.match(name)
            if match:
                parts.append((int(match.group(1)), name))
        return sorted(parts)

    @staticmethod
    def _clean(xml: str) -> str:
        text = _TAG.sub(" ", xml)
        text = html.unescape(text)
        return _WHITESPACE.sub(" ", text).strip()


class DocxExtractor(Extractor):
    """
    Docling-based Word reader. Only the plain text of each text item is kept,
    in reading order; styling, tables and pictures are discarded.
    """

    name = "docx"
    extensions = (".docx",)

    def __init__(self):
        self._converter = None

    @property
    def converter(self):
        if self._converter is None:
            from docling.datamodel.base_models import InputFormat
            from docling.document_converter import DocumentConverter

            self._converter = DocumentConverter(allowed_formats=[InputFormat.DOCX])
        return self._converter

    def extract_text(self, data: bytes, filename: str) -> str:
        from docling.datamodel.base_models import DocumentStream
        from docling_core.types.doc.document import TextItem

        name = filename if filename.lower().endswith(".docx") else f"{filename}.docx"
        result = self.converter.convert(DocumentStream(name=name, stream=BytesIO(data)))
        paragraphs = []
        for item, _level in result.document.iterate_items():
            if isinstance(item, TextItem):
                text = (item.text or "").strip()
                if text:
                    paragraphs.append(text)
        return "\n".join(paragraphs)


class ImageExtractor(Extractor):
    name = "image"
    extensions = (".png", ".jpg", ".jpeg")

    def __init__(self, language: str = "eng"):
        self.language = language

    def extract_text(self, data: bytes, filename: str) -> str:
        with Image.open(BytesIO(data)) as image:
            return pytesseract.image_to_string(image, lang=self.language) or ""


class PlainTextExtractor(Extractor):
    name = "text"
    extensions = (".txt",)

    def extract_text(self, data: bytes, filename: str) -> str:
        return data.decode("utf-8", errors="replace")


class FallbackExtractor(Extractor):
    """
    Used for any extension without a dedicated reader. Produces a short
    description of the file so enrichment can still return a generic summary.
    """

    name = "fallback"

    def extract_text(self, data: bytes, filename: str) -> str:
        extension = PurePath(filename).suffix or "unknown"
        return (
            f'This document is of type "{extension}".\n'
            "It likely contains educational or structured content.\n\n"
            "Generate a clear academic-style summary and key concepts based on this context.\n"
        )


def default_extractors() -> List[Extractor]:
    return [PdfExtractor(), PptxExtractor(), DocxExtractor(), ImageExtractor(), PlainTextExtractor()]


class TextExtractor:
    """
    Selects an extractor by declared type, runs it over the stored bytes and
    applies the minimum-length guard to whatever comes back.
    """

    def __init__(
        self,
        store: ByteStore,
        extractors: Optional[Iterable[Extractor]] = None,
        fallback: Optional[Extractor] = None,
        min_text_length: int = MIN_TEXT_LENGTH,
    ):
        self.store = store
        self.fallback = fallback or FallbackExtractor()
        self.min_text_length = min_text_length
        self._registry: Dict[str, Extractor] = {}
        for extractor in default_extractors() if extractors is None else extractors:
            self.register(extractor)

    def register(self, extractor: Extractor) -> None:
        for extension in extractor.extensions:
            self._registry[extension.lower()] = extractor

    def handles(self, declared_type: Optional[str]) -> bool:
        return normalize_declared_type(declared_type) in self._registry

    def select(self, declared_type: Optional[str]) -> Extractor:
        return self._registry.get(normalize_declared_type(declared_type), self.fallback)

    def extract(self, ref: str, declared_type: Optional[str]) -> ExtractionResult:
        extension = normalize_declared_type(declared_type)
        extractor = self.select(extension)
        filename = PurePath(ref).name
        if extension and not filename.lower().endswith(extension):
            filename = f"{filename}{extension}"

        try:
            data = self.store.read(ref)
            text = extractor.extract_text(data, filename)
        except PipelineError:
            raise
        except Exception as exc:
            logger.warning("%s extraction failed for %s: %s", extractor.name, ref, exc)
            raise ExtractionError(f"Could not read {extractor.name} content from {filename}: {exc}") from exc

        text = text or ""
        if len(text.strip()) < self.min_text_length:
            raise InsufficientContentError(INSUFFICIENT_CONTENT_MESSAGE)
        logger.info("Extracted %d characters from %s using %s", len(text), filename, extractor.name)
        return ExtractionResult(text=text, source_type=extractor.name)
