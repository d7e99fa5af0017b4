from __future__ import annotations

import logging
from typing import Optional, Tuple

from .config import PipelineConfig
from .dispatcher import JobDispatcher
from .errors import ValidationError
from .models import JobRecord, UploadMeta
from .repository import JobRepository
from .storage import ByteStore, safe_filename

logger = logging.getLogger(__name__)


def validate_upload(config: PipelineConfig, content_type: Optional[str], size: int) -> None:
    media_type = (content_type or "").split(";")[0].strip().lower()
    if media_type not in config.allowed_mime_types:
        raise ValidationError(f"File type not allowed: {content_type or 'unknown'}", reason="type")
    if size <= 0:
        raise ValidationError("Uploaded file is empty", reason="empty")
    if size > config.max_file_size:
        raise ValidationError(
            f"File too large: {size} bytes exceeds the {config.max_file_size} byte limit", reason="size"
        )


def store_upload(
    store: ByteStore,
    config: PipelineConfig,
    data: bytes,
    original_name: Optional[str],
    content_type: Optional[str],
) -> Tuple[str, UploadMeta]:
    """
    Validate an upload and persist its bytes under a fresh job id.

    Touches only the byte store, so it can run off the event loop. Raises
    ValidationError before anything is stored.
    """
    validate_upload(config, content_type, len(data))
    name = original_name or "file"
    job_id = JobRepository.new_job_id()
    stored = store.save(data, safe_filename(job_id, name))
    meta = UploadMeta(original_name=name, stored_ref=stored.ref, size=len(data), content_type=content_type)
    return job_id, meta


def submit_upload(
    dispatcher: JobDispatcher,
    store: ByteStore,
    config: PipelineConfig,
    data: bytes,
    original_name: Optional[str],
    content_type: Optional[str],
) -> JobRecord:
    """Store an upload and queue a job for it."""
    job_id, meta = store_upload(store, config, data, original_name, content_type)
    return dispatcher.submit(meta, job_id=job_id)
