# src/app/schemas/clips.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.app.domain.models import Clip, ClipStatus, Collection, SuggestionMode


class ClipOut(BaseModel):
    id: str
    media_id: str
    start_time: float
    end_time: float
    reason: str
    transcript_excerpt: str
    tags: list[str] = Field(default_factory=list)
    status: ClipStatus
    rendered_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, clip: Clip) -> "ClipOut":
        return cls(
            id=clip.id,
            media_id=clip.media_id,
            start_time=clip.start_time,
            end_time=clip.end_time,
            reason=clip.reason,
            transcript_excerpt=clip.transcript_excerpt,
            tags=list(clip.tags),
            status=clip.status,
            rendered_url=clip.rendered_url,
            thumbnail_url=clip.thumbnail_url,
            created_at=clip.created_at,
        )


class SuggestHighlightsRequest(BaseModel):
    media_id: str = Field(..., min_length=1)
    mode: SuggestionMode = SuggestionMode.HEURISTIC
    context: Optional[str] = Field(default=None, max_length=200)


class SmartClipsRequest(BaseModel):
    media_id: str = Field(..., min_length=1)
    context: Optional[str] = Field(default=None, max_length=200)


class SuggestionOut(BaseModel):
    success: bool = True
    mode: SuggestionMode
    count: int
    clips: list[ClipOut] = Field(default_factory=list)
    remaining_quota: Optional[int] = None
    message: str


class AutoTagRequest(BaseModel):
    clip_ids: list[str] = Field(..., min_length=1)


class AutoTagResponse(BaseModel):
    success: bool = True
    tagged: dict[str, list[str]] = Field(default_factory=dict)


class CollectionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)


class CollectionAppendRequest(BaseModel):
    clip_id: str = Field(..., min_length=1)


class CollectionOut(BaseModel):
    id: str
    name: str
    clip_ids: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, collection: Collection) -> "CollectionOut":
        return cls(
            id=collection.id,
            name=collection.name,
            clip_ids=list(collection.clip_ids),
            created_at=collection.created_at,
        )
