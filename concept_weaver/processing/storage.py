from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from urllib.parse import quote, unquote

logger = logging.getLogger(__name__)

UPLOAD_URL_PREFIX = "/uploads/"


@dataclass
class StoredFile:
    path: Path
    url: str

    @property
    def ref(self) -> str:
        return self.url or str(self.path)


class ByteStore(Protocol):
    def save(self, data: bytes, filename: str) -> StoredFile:
        ...

    def read(self, ref: str) -> bytes:
        ...


def safe_filename(job_id: str, original_name: str) -> str:
    """
    Unique on-disk name for an upload: job id prefix, whitespace collapsed to
    underscores, path separators removed.
    """
    name = re.sub(r"\s+", "_", (original_name or "file").strip()) or "file"
    name = name.replace("/", "_").replace("\\", "_")
    return f"{job_id}-{name}"


@dataclass
class StoragePaths:
    root: Path

    def upload_dir(self) -> Path:
        return self.root

    def file_path(self, filename: str) -> Path:
        return self.root / filename


class LocalFileStorage:
    """
    Keeps uploaded bytes on the local filesystem. References handed back to
    the pipeline are the dev URL (`/uploads/<name>`) served by the API; the
    absolute path is accepted as well.
    """

    def __init__(self, storage_paths: StoragePaths):
        self.paths = storage_paths

    def ensure_base_dirs(self) -> None:
        upload_dir = self.paths.upload_dir()
        if not upload_dir.exists():
            upload_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Created upload directory: %s", upload_dir.resolve())

    def save(self, data: bytes, filename: str) -> StoredFile:
        self.ensure_base_dirs()
        target = self.paths.file_path(filename)
        target.write_bytes(data)
        return StoredFile(path=target.resolve(), url=f"{UPLOAD_URL_PREFIX}{quote(filename)}")

    def resolve(self, ref: str) -> Path:
        if ref.startswith(UPLOAD_URL_PREFIX):
            return self.paths.file_path(Path(unquote(ref[len(UPLOAD_URL_PREFIX):])).name)
        return Path(ref)

    def read(self, ref: str) -> bytes:
        path = self.resolve(ref)
        if not path.exists():
            raise FileNotFoundError(f"Stored file not found: {ref}")
        return path.read_bytes()
