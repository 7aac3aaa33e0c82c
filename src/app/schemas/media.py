# src/app/schemas/media.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.app.domain.models import Media, MediaStatus, TranscriptStatus


class MediaOut(BaseModel):
    id: str
    owner_id: str
    title: str
    source_url: str
    size_bytes: int
    mime_type: str
    status: MediaStatus
    duration_seconds: Optional[float] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, media: Media) -> "MediaOut":
        return cls(
            id=media.id,
            owner_id=media.owner_id,
            title=media.title,
            source_url=media.source_url,
            size_bytes=media.size_bytes,
            mime_type=media.mime_type,
            status=media.status,
            duration_seconds=media.duration_seconds,
            created_at=media.created_at,
        )


class StartTranscriptionRequest(BaseModel):
    media_id: str = Field(..., min_length=1)


class StartTranscriptionResponse(BaseModel):
    status: str = "success"
    job_id: str
    transcript_id: str
    diagnostics: dict[str, Any] = Field(default_factory=dict)


class PollTranscriptionRequest(BaseModel):
    job_id: str = Field(..., min_length=1)


class PollTranscriptionResponse(BaseModel):
    status: TranscriptStatus
    text: Optional[str] = None
