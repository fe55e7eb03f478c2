from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.dependencies import get_pipeline, get_user_id, serialize
from draft_intake.intake import IntakePipeline

router = APIRouter(prefix="/projects/{project_id}/versions", tags=["versions"])


class GenerateRequest(BaseModel):
    goal: str
    llm_chat: str = ""
    vocabulary: List[str] = Field(default_factory=list)
    reference_ids: List[str] = Field(default_factory=list)
    target_language: Optional[str] = None


class RegenerateRequest(BaseModel):
    consolidated_text: str
    extra_instructions: str = ""


class AugmentRequest(BaseModel):
    reference_id: str


@router.get("")
def list_versions(
    project_id: str,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    return [serialize(v) for v in pipeline.generator.list_versions(project_id, user_id)]


@router.post("/generate")
def generate_versions(
    project_id: str,
    body: GenerateRequest,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    result = pipeline.generator.generate_versions(
        project_id,
        user_id,
        body.goal,
        llm_chat=body.llm_chat,
        vocabulary=body.vocabulary,
        reference_ids=body.reference_ids,
        target_language=body.target_language,
    )
    return {
        "raw_version_id": result.raw_version_id,
        "draft_version_id": result.draft_version_id,
        "status": result.status,
        "v1_version_id": result.raw_version_id,
        "v2_version_id": result.draft_version_id,
    }


@router.post("/regenerate")
def regenerate(
    project_id: str,
    body: RegenerateRequest,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    version = pipeline.generator.regenerate(project_id, user_id, body.consolidated_text, body.extra_instructions)
    return serialize(version)


@router.post("/augment")
def augment_raw_version(
    project_id: str,
    body: AugmentRequest,
    user_id: str = Depends(get_user_id),
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    version_id = pipeline.generator.augment_raw_version(project_id, user_id, body.reference_id)
    return {"version_id": version_id}
