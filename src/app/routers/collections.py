# src/app/routers/collections.py
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from starlette.concurrency import run_in_threadpool

from src.app.deps import CurrentUser, get_clip_repository, get_collection_repository, get_current_user
from src.app.domain.errors import RecordNotFoundError
from src.app.infra.db.base import ClipRepository, CollectionRepository
from src.app.schemas.clips import ClipOut, CollectionAppendRequest, CollectionCreate, CollectionOut

router = APIRouter(prefix="/v1/collections", tags=["collections"])


@router.get("", response_model=list[CollectionOut])
async def list_collections(
    user: CurrentUser = Depends(get_current_user),
    collections: CollectionRepository = Depends(get_collection_repository),
) -> list[CollectionOut]:
    items = await run_in_threadpool(collections.list_collections, user.id)
    return [CollectionOut.from_domain(c) for c in items]


@router.post("", response_model=CollectionOut, status_code=status.HTTP_201_CREATED)
async def create_collection(
    payload: CollectionCreate,
    user: CurrentUser = Depends(get_current_user),
    collections: CollectionRepository = Depends(get_collection_repository),
) -> CollectionOut:
    collection = await run_in_threadpool(collections.create_collection, user.id, payload.name.strip())
    return CollectionOut.from_domain(collection)


@router.get("/{collection_id}/clips", response_model=list[ClipOut])
async def list_collection_clips(
    collection_id: str,
    user: CurrentUser = Depends(get_current_user),
    collections: CollectionRepository = Depends(get_collection_repository),
    clips: ClipRepository = Depends(get_clip_repository),
) -> list[ClipOut]:
    collection = await run_in_threadpool(collections.get_collection, collection_id, user.id)
    if collection is None:
        raise RecordNotFoundError("collection", collection_id)
    items = await run_in_threadpool(clips.get_clips, collection.clip_ids, user.id)
    return [ClipOut.from_domain(c) for c in items]


@router.post("/{collection_id}/clips", response_model=CollectionOut)
async def add_clip_to_collection(
    collection_id: str,
    payload: CollectionAppendRequest,
    user: CurrentUser = Depends(get_current_user),
    collections: CollectionRepository = Depends(get_collection_repository),
    clips: ClipRepository = Depends(get_clip_repository),
) -> CollectionOut:
    collection = await run_in_threadpool(collections.get_collection, collection_id, user.id)
    if collection is None:
        raise RecordNotFoundError("collection", collection_id)
    found = await run_in_threadpool(clips.get_clips, [payload.clip_id], user.id)
    if not found:
        raise RecordNotFoundError("clip", payload.clip_id)

    if payload.clip_id not in collection.clip_ids:
        await run_in_threadpool(collections.add_clip, collection_id, payload.clip_id)
        collection.clip_ids.append(payload.clip_id)
    return CollectionOut.from_domain(collection)
