# src/app/routers/media.py
"""
Media upload and listing.
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from starlette.concurrency import run_in_threadpool

from src.app.deps import CurrentUser, get_current_user, get_media_service
from src.app.schemas.media import MediaOut
from src.app.services.media_service import MediaService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/media", tags=["media"])


def _spool_to_disk(upload: UploadFile) -> Path:
    suffix = Path(upload.filename or "").suffix
    fd, name = tempfile.mkstemp(prefix="upload_", suffix=suffix)
    with os.fdopen(fd, "wb") as target:
        upload.file.seek(0)
        shutil.copyfileobj(upload.file, target, length=1024 * 1024)
    return Path(name)


@router.post("", response_model=MediaOut, status_code=status.HTTP_201_CREATED)
async def upload_media(
    title: str = Form(...),
    file: UploadFile = File(...),
    user: CurrentUser = Depends(get_current_user),
    media_service: MediaService = Depends(get_media_service),
) -> MediaOut:
    local_path = await run_in_threadpool(_spool_to_disk, file)
    try:
        media = await run_in_threadpool(
            media_service.upload,
            user.id,
            title,
            file.filename or local_path.name,
            local_path,
            file.content_type,
        )
    finally:
        local_path.unlink(missing_ok=True)
        await file.close()
    return MediaOut.from_domain(media)


@router.get("", response_model=list[MediaOut])
async def list_media(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    media_service: MediaService = Depends(get_media_service),
) -> list[MediaOut]:
    items = await run_in_threadpool(media_service.list, user.id, limit, offset)
    return [MediaOut.from_domain(m) for m in items]


@router.get("/{media_id}", response_model=MediaOut)
async def get_media(
    media_id: str,
    user: CurrentUser = Depends(get_current_user),
    media_service: MediaService = Depends(get_media_service),
) -> MediaOut:
    media = await run_in_threadpool(media_service.get, media_id, user.id)
    return MediaOut.from_domain(media)
