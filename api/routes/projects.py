from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.dependencies import get_pipeline, get_user_id, serialize
from draft_intake.intake import IntakePipeline

router = APIRouter(prefix="/projects", tags=["projects"])


class CreateProjectRequest(BaseModel):
    title: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AddMemberRequest(BaseModel):
    user_id: str


@router.post("")
def create_project(
    body: CreateProjectRequest,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    project = pipeline.projects.create_project(user_id, body.title, body.metadata)
    return serialize(project)


@router.get("/{project_id}")
def get_project(
    project_id: str,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    return serialize(pipeline.projects.get_project(project_id, user_id))


@router.post("/{project_id}/members")
def add_member(
    project_id: str,
    body: AddMemberRequest,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    pipeline.projects.add_member(project_id, body.user_id, requested_by=user_id)
    return {"project_id": project_id, "user_id": body.user_id}


@router.get("/{project_id}/status")
def get_status(
    project_id: str,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    pipeline.projects.get_project(project_id, user_id)
    return pipeline.aggregator.snapshot(project_id).to_dict()


@router.get("/{project_id}/jobs")
def list_jobs(
    project_id: str,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    return [serialize(job) for job in pipeline.queue.list_jobs(project_id, user_id)]


@router.get("/{project_id}/timeline")
def list_timeline(
    project_id: str,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    return [serialize(event) for event in pipeline.generator.list_timeline(project_id, user_id)]
