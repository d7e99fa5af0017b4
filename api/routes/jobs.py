from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from concept_weaver.processing import JobRepository

from api.dependencies import get_repo, require_api_token

router = APIRouter(prefix="/api", tags=["jobs"], dependencies=[Depends(require_api_token)])


@router.get("/status/{job_id}")
def get_status(job_id: str, repo: JobRepository = Depends(get_repo)):
    job = repo.get(job_id)
    if not job:
        return JSONResponse(status_code=404, content={"success": False, "status": "not_found", "id": job_id})
    return {"success": True, **job.to_snapshot()}
