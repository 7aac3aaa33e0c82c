# src/app/schemas/content.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.app.domain.models import ContentArtifact, ContentType, Platform, SubscriptionTier


class GenerateContentRequest(BaseModel):
    media_id: str = Field(..., min_length=1)
    platforms: list[str] = Field(..., min_length=1)
    tone: str = Field(default="professional", min_length=1, max_length=50)
    persona: Optional[str] = Field(default=None, max_length=200)


class ArtifactOut(BaseModel):
    id: str
    media_id: str
    content_type: ContentType
    platform: Platform
    tone: str
    persona: Optional[str] = None
    body: str
    model_id: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, artifact: ContentArtifact) -> "ArtifactOut":
        return cls(
            id=artifact.id,
            media_id=artifact.media_id,
            content_type=artifact.content_type,
            platform=artifact.platform,
            tone=artifact.tone,
            persona=artifact.persona,
            body=artifact.body,
            model_id=artifact.model_id,
            created_at=artifact.created_at,
        )


class GenerateContentResponse(BaseModel):
    status: str = "success"
    generated: dict[str, str]
    artifacts: list[ArtifactOut] = Field(default_factory=list)
    diagnostics: dict[str, Any] = Field(default_factory=dict)


class QuotaOut(BaseModel):
    allowed: bool
    current_plan: SubscriptionTier
    monthly_limit: int
    clips_generated_this_month: int
    remaining: int
