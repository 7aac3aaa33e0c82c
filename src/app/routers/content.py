# src/app/routers/content.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from src.app.deps import CurrentUser, get_content_generator, get_content_repository, get_current_user, get_quota_service
from src.app.infra.db.base import ContentRepository
from src.app.schemas.content import ArtifactOut, GenerateContentRequest, GenerateContentResponse, QuotaOut
from src.app.services.content_generator import ContentGenerator
from src.app.services.quota_service import QuotaService

router = APIRouter(prefix="/v1", tags=["content"])


@router.post("/content", response_model=GenerateContentResponse)
async def generate_content(
    body: GenerateContentRequest,
    user: CurrentUser = Depends(get_current_user),
    generator: ContentGenerator = Depends(get_content_generator),
) -> GenerateContentResponse:
    result = await run_in_threadpool(
        generator.generate_for_media,
        body.media_id,
        user.id,
        body.platforms,
        body.tone,
        body.persona,
    )
    return GenerateContentResponse(
        generated=result.generated,
        artifacts=[ArtifactOut.from_domain(a) for a in result.artifacts],
        diagnostics=result.diagnostics,
    )


@router.get("/content", response_model=list[ArtifactOut])
async def list_content(
    media_id: str = Query(..., min_length=1),
    user: CurrentUser = Depends(get_current_user),
    contents: ContentRepository = Depends(get_content_repository),
) -> list[ArtifactOut]:
    artifacts = await run_in_threadpool(contents.list_artifacts, media_id, user.id)
    return [ArtifactOut.from_domain(a) for a in artifacts]


@router.get("/quota", response_model=QuotaOut)
async def get_quota(
    user: CurrentUser = Depends(get_current_user),
    quota: QuotaService = Depends(get_quota_service),
) -> QuotaOut:
    check = await run_in_threadpool(quota.check, user.id)
    return QuotaOut(
        allowed=check.allowed,
        current_plan=check.tier,
        monthly_limit=check.monthly_limit,
        clips_generated_this_month=check.clips_generated,
        remaining=check.remaining,
    )
