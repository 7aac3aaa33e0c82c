# src/app/infra/db/base.py
"""
Abstract repositories for the pipeline's persisted records.
This interface allows easy swapping between different persistence backends.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from src.app.domain.models import (
    Clip,
    ClipDraft,
    Collection,
    ContentArtifact,
    Media,
    MediaStatus,
    NormalizedTranscript,
    QuotaCounter,
    SubscriptionTier,
    Transcript,
)


class MediaRepository(ABC):
    """
    Uploaded source recordings.

    Implementations:
    - SupabaseMediaRepository: `webinars` table
    """

    @abstractmethod
    def create_media(
        self,
        owner_id: str,
        title: str,
        source_url: str,
        size_bytes: int,
        mime_type: str,
    ) -> Media:
        """
        Create a Media row in `uploaded` status.

        Args:
            owner_id: Owner of the media
            title: User-facing title
            source_url: Public URL of the stored bytes
            size_bytes: Size of the upload
            mime_type: Content type reported by the client

        Returns:
            The created Media
        """
        pass

    @abstractmethod
    def get_media(self, media_id: str, owner_id: Optional[str] = None) -> Optional[Media]:
        """Get a media by ID, optionally restricted to an owner."""
        pass

    @abstractmethod
    def list_media(self, owner_id: str, limit: int = 20, offset: int = 0) -> list[Media]:
        """Media for an owner, newest first."""
        pass

    @abstractmethod
    def update_status(
        self,
        media_id: str,
        status: MediaStatus,
        duration_seconds: Optional[float] = None,
    ) -> bool:
        pass


class TranscriptRepository(ABC):
    """
    Transcripts, 1:1 with Media.

    Implementations:
    - SupabaseTranscriptRepository: `transcripts` table
    """

    @abstractmethod
    def create_transcript(self, media_id: str, owner_id: str, external_job_id: str) -> Transcript:
        """Create a transcript in `processing` status for a submitted job."""
        pass

    @abstractmethod
    def get_by_external_id(self, external_job_id: str, owner_id: Optional[str] = None) -> Optional[Transcript]:
        pass

    @abstractmethod
    def get_by_media(self, media_id: str, owner_id: Optional[str] = None) -> Optional[Transcript]:
        pass

    @abstractmethod
    def mark_completed(self, transcript_id: str, result: NormalizedTranscript) -> bool:
        """
        Store the enrichment fields and flip status to `completed`.

        Args:
            transcript_id: The transcript to update
            result: Normalized transcription payload

        Returns:
            True if successful
        """
        pass

    @abstractmethod
    def mark_error(self, transcript_id: str) -> bool:
        """Flip status to `error`, clearing any text."""
        pass


class ClipRepository(ABC):
    """
    Clip suggestions and rendered clips.

    Implementations:
    - SupabaseClipRepository: `snippets` table
    """

    @abstractmethod
    def insert_clips(self, media_id: str, owner_id: str, drafts: list[ClipDraft]) -> list[Clip]:
        """
        Persist drafts as `suggested` clips with no rendered URL.

        Returns:
            The inserted clips, in draft order
        """
        pass

    @abstractmethod
    def get_clips(self, clip_ids: list[str], owner_id: Optional[str] = None) -> list[Clip]:
        pass

    @abstractmethod
    def list_clips(self, owner_id: str, media_id: Optional[str] = None) -> list[Clip]:
        pass

    @abstractmethod
    def mark_rendered(self, clip_id: str, rendered_url: str) -> bool:
        """Set the rendered URL and flip status to `created`."""
        pass

    @abstractmethod
    def update_tags(self, clip_id: str, tags: list[str]) -> bool:
        pass

    @abstractmethod
    def delete_clip(self, clip_id: str, owner_id: str) -> bool:
        pass


class ContentRepository(ABC):
    """
    Generated text artifacts.

    Implementations:
    - SupabaseContentRepository: `ai_content` table
    """

    @abstractmethod
    def insert_artifacts(self, artifacts: list[ContentArtifact]) -> list[ContentArtifact]:
        pass

    @abstractmethod
    def list_artifacts(self, media_id: str, owner_id: str) -> list[ContentArtifact]:
        pass


class QuotaRepository(ABC):
    """
    Per-user monthly clip counter and subscription tier.

    Implementations:
    - SupabaseQuotaRepository: `profiles` and `user_roles` tables
    """

    @abstractmethod
    def get_counter(self, user_id: str) -> QuotaCounter:
        """Current counter; a user without a row has a zero counter."""
        pass

    @abstractmethod
    def get_tier(self, user_id: str) -> SubscriptionTier:
        pass

    @abstractmethod
    def reset_counter(self, user_id: str, reset_at: datetime) -> None:
        """Set the counter to 0 and the last reset date to ``reset_at``."""
        pass

    @abstractmethod
    def set_clips_generated(self, user_id: str, clips_generated: int) -> None:
        pass


class CollectionRepository(ABC):
    """
    User-defined clip collections.

    Implementations:
    - SupabaseCollectionRepository: `collections` and `collection_snippets` tables
    """

    @abstractmethod
    def create_collection(self, owner_id: str, name: str) -> Collection:
        pass

    @abstractmethod
    def list_collections(self, owner_id: str) -> list[Collection]:
        pass

    @abstractmethod
    def get_collection(self, collection_id: str, owner_id: str) -> Optional[Collection]:
        pass

    @abstractmethod
    def add_clip(self, collection_id: str, clip_id: str) -> bool:
        pass
