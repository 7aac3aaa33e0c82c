# src/app/routers/clips.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from starlette.concurrency import run_in_threadpool

from src.app.deps import CurrentUser, get_clip_repository, get_current_user, get_highlight_suggester, get_storage
from src.app.domain.errors import RecordNotFoundError
from src.app.domain.models import SuggestionMode
from src.app.infra.db.base import ClipRepository
from src.app.infra.storage.base import StorageProvider
from src.app.schemas.clips import (
    AutoTagRequest,
    AutoTagResponse,
    ClipOut,
    SmartClipsRequest,
    SuggestHighlightsRequest,
    SuggestionOut,
)
from src.app.services.highlight_suggester import HighlightSuggester, SuggestionResult

log = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/clips", tags=["clips"])


def _suggestion_out(result: SuggestionResult) -> SuggestionOut:
    if result.mode == SuggestionMode.SMART:
        message = f"{result.count} smart clips generated! Video processing started in background."
    else:
        message = f"{result.count} highlights suggested"
    return SuggestionOut(
        mode=result.mode,
        count=result.count,
        clips=[ClipOut.from_domain(c) for c in result.clips],
        remaining_quota=result.remaining_quota,
        message=message,
    )


@router.post("/suggest", response_model=SuggestionOut)
async def suggest_highlights(
    body: SuggestHighlightsRequest,
    user: CurrentUser = Depends(get_current_user),
    suggester: HighlightSuggester = Depends(get_highlight_suggester),
) -> SuggestionOut:
    result = await run_in_threadpool(suggester.suggest, body.media_id, user.id, body.mode, body.context)
    return _suggestion_out(result)


@router.post("/smart", response_model=SuggestionOut)
async def generate_smart_clips(
    body: SmartClipsRequest,
    user: CurrentUser = Depends(get_current_user),
    suggester: HighlightSuggester = Depends(get_highlight_suggester),
) -> SuggestionOut:
    result = await run_in_threadpool(suggester.generate_smart_clips, body.media_id, user.id, body.context)
    return _suggestion_out(result)


@router.post("/auto-tag", response_model=AutoTagResponse)
async def auto_tag_clips(
    body: AutoTagRequest,
    user: CurrentUser = Depends(get_current_user),
    suggester: HighlightSuggester = Depends(get_highlight_suggester),
) -> AutoTagResponse:
    tagged = await run_in_threadpool(suggester.auto_tag_clips, body.clip_ids, user.id)
    return AutoTagResponse(tagged=tagged)


@router.get("", response_model=list[ClipOut])
async def list_clips(
    media_id: Optional[str] = Query(default=None),
    user: CurrentUser = Depends(get_current_user),
    clips: ClipRepository = Depends(get_clip_repository),
) -> list[ClipOut]:
    items = await run_in_threadpool(clips.list_clips, user.id, media_id)
    return [ClipOut.from_domain(c) for c in items]


@router.delete("/{clip_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_clip(
    clip_id: str,
    user: CurrentUser = Depends(get_current_user),
    clips: ClipRepository = Depends(get_clip_repository),
    storage: StorageProvider = Depends(get_storage),
) -> Response:
    """Delete a clip row and, once rendered, its video in the media store."""
    found = await run_in_threadpool(clips.get_clips, [clip_id], user.id)
    if not found or not await run_in_threadpool(clips.delete_clip, clip_id, user.id):
        raise RecordNotFoundError("clip", clip_id)

    clip = found[0]
    if clip.rendered_url:
        object_key = storage.clip_object_key(clip.id, clip.start_time, clip.end_time)
        if not await run_in_threadpool(storage.delete_object, object_key):
            log.warning("clips.render_not_removed clip=%s key=%s", clip_id, object_key)
    log.info("clips.deleted clip=%s owner=%s rendered=%s", clip_id, user.id, bool(clip.rendered_url))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
