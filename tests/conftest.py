import io
import threading
import time
import zipfile
from typing import Dict, List, Optional

import pytest

from concept_weaver.processing import (
    ConceptMap,
    InMemoryJobRepository,
    JobDispatcher,
    StoredFile,
    TextExtractor,
    parse_concept_map,
)


class MemoryStore:
    """Byte store kept in a dict; refs are the saved names."""

    def __init__(self):
        self.files: Dict[str, bytes] = {}

    def save(self, data: bytes, filename: str) -> StoredFile:
        self.files[filename] = data
        return StoredFile(path=filename, url="")

    def read(self, ref: str) -> bytes:
        if ref not in self.files:
            raise FileNotFoundError(ref)
        return self.files[ref]


class FakeEnricher:
    def __init__(
        self,
        summary: str = "Summary text",
        concept_response: str = '{"nodes": [{"id": "a", "label": "A"}], "edges": []}',
        summary_error: Optional[Exception] = None,
        concept_error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.summary = summary
        self.concept_response = concept_response
        self.summary_error = summary_error
        self.concept_error = concept_error
        self.delay = delay
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def summarize(self, text: str) -> str:
        with self._lock:
            self.calls.append(f"summarize:{text[:20]}")
        if self.delay:
            time.sleep(self.delay)
        if self.summary_error:
            raise self.summary_error
        return self.summary

    def map_concepts(self, text: str) -> ConceptMap:
        with self._lock:
            self.calls.append(f"map_concepts:{text[:20]}")
        if self.concept_error:
            raise self.concept_error
        return parse_concept_map(self.concept_response)


class RecordingRepository(InMemoryJobRepository):
    """Keeps the status sequence each job went through."""

    def __init__(self):
        super().__init__()
        self.history: Dict[str, List[str]] = {}

    def create(self, meta, job_id=None):
        job = super().create(meta, job_id=job_id)
        self.history[job.id] = [job.status.value]
        return job

    def transition(self, job_id, fn):
        job = super().transition(job_id, fn)
        self.history[job_id].append(job.status.value)
        return job


def make_pptx(slides: List[Optional[str]]) -> bytes:
    """
    Minimal pptx-shaped zip. A None entry is a slide with only a picture.
    Parts are written in reverse order so sorting is actually exercised.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("[Content_Types].xml", "<Types/>")
        archive.writestr("ppt/presentation.xml", "<p:presentation>Deck title</p:presentation>")
        for number in range(len(slides), 0, -1):
            text = slides[number - 1]
            if text is None:
                body = '<p:sld><p:cSld><p:spTree><p:pic><a:blip r:embed="rId2"/></p:pic></p:spTree></p:cSld></p:sld>'
            else:
                body = f"<p:sld><p:cSld><p:spTree><a:p><a:r><a:t>{text}</a:t></a:r></a:p></p:spTree></p:cSld></p:sld>"
            archive.writestr(f"ppt/slides/slide{number}.xml", body)
            archive.writestr(f"ppt/slides/_rels/slide{number}.xml.rels", "<Relationships/>")
    return buffer.getvalue()


def make_pdf(page_texts: List[str]) -> bytes:
    """Single-font PDF with one text line per page and a valid xref table."""
    objects: List[bytes] = []
    page_ids = [4 + 2 * i for i in range(len(page_texts))]
    kids = " ".join(f"{pid} 0 R" for pid in page_ids)
    objects.append(b"<< /Type /Catalog /Pages 2 0 R >>")
    objects.append(f"<< /Type /Pages /Kids [{kids}] /Count {len(page_ids)} >>".encode())
    objects.append(b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>")
    for pid, text in zip(page_ids, page_texts):
        stream = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode()
        objects.append(
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            f"/Resources << /Font << /F1 3 0 R >> >> /Contents {pid + 1} 0 R >>".encode()
        )
        objects.append(b"<< /Length " + str(len(stream)).encode() + b" >>\nstream\n" + stream + b"\nendstream")

    out = io.BytesIO()
    out.write(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(out.tell())
        out.write(f"{number} 0 obj\n".encode() + body + b"\nendobj\n")
    xref_at = out.tell()
    out.write(f"xref\n0 {len(objects) + 1}\n".encode())
    out.write(b"0000000000 65535 f \n")
    for offset in offsets:
        out.write(f"{offset:010d} 00000 n \n".encode())
    out.write(f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{xref_at}\n%%EOF\n".encode())
    return out.getvalue()


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def repo():
    return RecordingRepository()


@pytest.fixture
def enricher():
    return FakeEnricher()


@pytest.fixture
def make_dispatcher(store, repo):
    def _make(enricher, extraction_timeout=None, enrichment_timeout=None, min_text_length=20):
        return JobDispatcher(
            repository=repo,
            extractor=TextExtractor(store, min_text_length=min_text_length),
            enricher=enricher,
            extraction_timeout=extraction_timeout,
            enrichment_timeout=enrichment_timeout,
            continuation_delay=0.01,
        )

    return _make
