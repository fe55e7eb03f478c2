from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_pipeline, get_user_id, serialize, verify_worker_token
from draft_intake.intake import IntakePipeline

router = APIRouter(prefix="/jobs", tags=["jobs"])


class QueueExtractionRequest(BaseModel):
    reference_id: str
    job_type: str


class CompletionRequest(BaseModel):
    job_id: str
    status: str
    extracted_text: Optional[str] = None
    error_message: Optional[str] = None
    worker_response: Optional[Dict[str, Any]] = None
    extracted_chunks: Optional[List[Any]] = None


@router.post("")
def queue_extraction(
    body: QueueExtractionRequest,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    job = pipeline.queue.enqueue(body.reference_id, body.job_type, user_id)
    return {"job_id": job.id, "queued": True}


@router.post("/callback", dependencies=[Depends(verify_worker_token)])
def worker_callback(body: CompletionRequest, pipeline: IntakePipeline = Depends(get_pipeline)):
    applied = pipeline.completion.complete(
        body.job_id,
        body.status,
        extracted_text=body.extracted_text,
        error_message=body.error_message,
        worker_response=body.worker_response,
        extracted_chunks=body.extracted_chunks,
    )
    return {"job_id": body.job_id, "applied": applied}


@router.get("/{job_id}")
def get_job(
    job_id: str,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    return serialize(pipeline.queue.get_job(job_id, user_id))
