from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse

from concept_weaver.processing import (
    JobDispatcher,
    LocalFileStorage,
    PipelineConfig,
    ValidationError,
    store_upload,
)

from api.dependencies import get_config, get_dispatcher, get_storage, require_api_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["uploads"], dependencies=[Depends(require_api_token)])


def _rejected(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "status": "error", "id": None, "message": message},
    )


@router.post("/upload")
async def upload_file(
    file: Optional[UploadFile] = File(None),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
    storage: LocalFileStorage = Depends(get_storage),
    config: PipelineConfig = Depends(get_config),
):
    if file is None:
        return _rejected(400, "No file provided")
    # one byte over the limit is enough to reject
    payload = await file.read(config.max_file_size + 1)
    try:
        job_id, meta = await asyncio.to_thread(
            store_upload, storage, config, payload, file.filename, file.content_type
        )
    except ValidationError as exc:
        logger.info("Upload rejected (%s): %s", exc.reason, exc)
        return _rejected(413 if exc.reason == "size" else 400, str(exc))
    job = dispatcher.submit(meta, job_id=job_id)

    return {
        "success": True,
        "status": job.status.value,
        "id": job.id,
        "file": {
            "originalName": job.original_name,
            "size": job.size,
            "location": job.stored_ref,
        },
    }
