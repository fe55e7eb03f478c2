from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel

from api.dependencies import get_pipeline, get_user_id, serialize
from draft_intake.intake import IntakePipeline, IntakeResult

router = APIRouter(tags=["references"])


class FileReferenceRequest(BaseModel):
    storage_path: str
    file_name: str
    file_type: Optional[str] = None
    size_bytes: Optional[int] = None


class LinkRequest(BaseModel):
    url: str


class TextRequest(BaseModel):
    text: str
    name: Optional[str] = None


class NotesRequest(BaseModel):
    notes: Optional[str] = None


class RetryRequest(BaseModel):
    job_type: Optional[str] = None


def _result(result: IntakeResult) -> dict:
    return {"reference_id": result.reference_id, "job_id": result.job_id}


def _reference(reference) -> dict:
    payload = serialize(reference)
    payload["extracted_chars"] = len(reference.extracted_text or "")
    payload.pop("extracted_text", None)
    payload.pop("extracted_chunks", None)
    return payload


@router.get("/projects/{project_id}/references")
def list_references(
    project_id: str,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    return [_reference(r) for r in pipeline.intake.list_references(project_id, user_id)]


@router.post("/projects/{project_id}/references/file")
def add_file(
    project_id: str,
    body: FileReferenceRequest,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    result = pipeline.intake.add_file(
        project_id, user_id, body.storage_path, body.file_name, body.file_type, body.size_bytes
    )
    return _result(result)


@router.post("/projects/{project_id}/references/upload")
def upload_file(
    project_id: str,
    file: UploadFile = File(...),
    file_type: Optional[str] = Form(None),
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    payload = file.file.read()
    result = pipeline.intake.upload_file(
        project_id, user_id, file.filename or "upload", payload, file_type or file.content_type
    )
    return _result(result)


@router.post("/projects/{project_id}/references/youtube")
def add_youtube(
    project_id: str,
    body: LinkRequest,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    return _result(pipeline.intake.add_youtube(project_id, user_id, body.url))


@router.post("/projects/{project_id}/references/url")
def add_url(
    project_id: str,
    body: LinkRequest,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    return _result(pipeline.intake.add_link(project_id, user_id, body.url))


@router.post("/projects/{project_id}/references/text")
def add_text(
    project_id: str,
    body: TextRequest,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    return _result(pipeline.intake.add_text(project_id, user_id, body.text, body.name))


@router.get("/references/{reference_id}")
def get_reference(
    reference_id: str,
    include_text: bool = False,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    reference = pipeline.intake.get_reference(reference_id, user_id)
    payload = _reference(reference)
    if include_text:
        payload["extracted_text"] = reference.extracted_text
    return payload


@router.patch("/references/{reference_id}/notes")
def update_notes(
    reference_id: str,
    body: NotesRequest,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    return _reference(pipeline.intake.update_notes(reference_id, user_id, body.notes))


@router.delete("/references/{reference_id}")
def delete_reference(
    reference_id: str,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    pipeline.intake.delete_reference(reference_id, user_id)
    return {"status": "deleted", "reference_id": reference_id}


@router.post("/references/{reference_id}/retry")
def retry_reference(
    reference_id: str,
    body: Optional[RetryRequest] = None,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    job = pipeline.queue.retry(reference_id, user_id, body.job_type if body else None)
    return {"job_id": job.id, "queued": True}
