from __future__ import annotations

import logging
import os
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from src.app.domain.errors import UpstreamUnavailableError
from src.app.domain.models import (
    Clip,
    ClipDraft,
    ClipStatus,
    Collection,
    ContentArtifact,
    ContentType,
    Media,
    MediaStatus,
    NormalizedTranscript,
    Platform,
    QuotaCounter,
    SentimentSegment,
    SpeakerSegment,
    SubscriptionTier,
    Transcript,
    TranscriptStatus,
    WordTimestamp,
)
from src.app.infra.db.base import (
    ClipRepository,
    CollectionRepository,
    ContentRepository,
    MediaRepository,
    QuotaRepository,
    TranscriptRepository,
)

logger = logging.getLogger(__name__)

_NETWORK_ERRORS = (httpx.HTTPError, ConnectionError, TimeoutError)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None

    try:
        normalized = value.replace("Z", "+00:00") if value.endswith("Z") else value
        return datetime.fromisoformat(normalized)
    except ValueError:
        return None


def _safe_int(value: object, default: int = 0) -> int:
    return int(value) if value else default


def _safe_float(value: object) -> float | None:
    return float(value) if value is not None else None


def _safe_str(value: object) -> str | None:
    return str(value) if value else None


def _list_of_dicts(value: object) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _execute(query, operation: str):
    try:
        return query.execute()
    except APIError as error:
        logger.error("Database error during %s: %s", operation, error)
        raise UpstreamUnavailableError("database", f"{operation}: {error}", step="persist") from error
    except _NETWORK_ERRORS as error:
        logger.error("Network error during %s: %s", operation, error)
        raise UpstreamUnavailableError("database", f"{operation}: {error}", step="persist") from error


def _first(result) -> dict[str, Any] | None:
    data = result.data or []
    if isinstance(data, dict):
        return data
    return data[0] if data else None


def _row_to_media(row: dict[str, Any]) -> Media:
    return Media(
        id=str(row["id"]),
        owner_id=str(row["user_id"]),
        title=str(row.get("title") or ""),
        source_url=str(row.get("file_url") or ""),
        size_bytes=_safe_int(row.get("file_size")),
        mime_type=str(row.get("file_type") or ""),
        status=MediaStatus(str(row.get("status") or MediaStatus.UPLOADED.value)),
        duration_seconds=_safe_float(row.get("duration")),
        created_at=_parse_datetime(row.get("created_at")),
    )


def _row_to_transcript(row: dict[str, Any]) -> Transcript:
    return Transcript(
        id=str(row["id"]),
        media_id=str(row["webinar_id"]),
        owner_id=str(row.get("user_id") or ""),
        external_job_id=str(row.get("assembly_ai_id") or ""),
        status=TranscriptStatus(str(row.get("status") or TranscriptStatus.PROCESSING.value)),
        full_text=None if row.get("full_text") is None else str(row["full_text"]),
        word_timestamps=[
            WordTimestamp(
                start=float(item.get("start", 0)),
                end=float(item.get("end", 0)),
                text=str(item.get("text", "")),
                confidence=_safe_float(item.get("confidence")),
            )
            for item in _list_of_dicts(row.get("timestamps"))
        ],
        speaker_segments=[
            SpeakerSegment(name=str(item.get("name", "")), segments=_safe_int(item.get("segments")))
            for item in _list_of_dicts(row.get("speakers"))
        ],
        keywords=[str(k) for k in row.get("keywords") or []],
        quotes=[str(q) for q in row.get("quotes") or []],
        sentiment_timeline=[
            SentimentSegment(
                start=float(item.get("start", 0)),
                end=float(item.get("end", 0)),
                sentiment=str(item.get("sentiment", "NEUTRAL")),
                score=float(item.get("score") or 0),
            )
            for item in _list_of_dicts(row.get("sentiment_timeline"))
        ],
        created_at=_parse_datetime(row.get("created_at")),
    )


def _row_to_clip(row: dict[str, Any]) -> Clip:
    return Clip(
        id=str(row["id"]),
        media_id=str(row["webinar_id"]),
        owner_id=str(row.get("user_id") or ""),
        start_time=float(row.get("start_time") or 0),
        end_time=float(row.get("end_time") or 0),
        reason=str(row.get("reason") or ""),
        transcript_excerpt=str(row.get("transcript_chunk") or ""),
        tags=[str(t) for t in row.get("tags") or []],
        status=ClipStatus(str(row.get("status") or ClipStatus.SUGGESTED.value)),
        rendered_url=_safe_str(row.get("url")),
        thumbnail_url=_safe_str(row.get("thumbnail_url")),
        created_at=_parse_datetime(row.get("created_at")),
    )


def _row_to_artifact(row: dict[str, Any]) -> ContentArtifact:
    return ContentArtifact(
        id=str(row["id"]),
        media_id=str(row["webinar_id"]),
        owner_id=str(row.get("user_id") or ""),
        content_type=ContentType(str(row["content_type"])),
        platform=Platform(str(row["platform"])),
        tone=str(row.get("tone") or ""),
        body=str(row.get("content") or ""),
        prompt_used=str(row.get("prompt_used") or ""),
        model_id=str(row.get("model_used") or ""),
        persona=_safe_str(row.get("persona")),
        created_at=_parse_datetime(row.get("created_at")),
    )


def _create_supabase_client() -> Client:
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY required")
    return create_client(url, key)


class SupabaseMediaRepository(MediaRepository):
    TABLE_NAME = "webinars"

    def __init__(self, client: Client | None = None):
        self._client = client or _create_supabase_client()

    def create_media(
        self,
        owner_id: str,
        title: str,
        source_url: str,
        size_bytes: int,
        mime_type: str,
    ) -> Media:
        row = {
            "id": str(uuid4()),
            "user_id": owner_id,
            "title": title,
            "file_url": source_url,
            "file_size": size_bytes,
            "file_type": mime_type,
            "status": MediaStatus.UPLOADED.value,
            "created_at": _now_utc().isoformat(),
        }
        result = _execute(self._client.table(self.TABLE_NAME).insert(row), "create_media")
        inserted = _first(result)
        if not inserted:
            raise UpstreamUnavailableError("database", "media insert returned no rows", step="persist")

        media = _row_to_media(inserted)
        logger.info("Created media: id=%s, owner=%s, size=%d", media.id, owner_id, size_bytes)
        return media

    def get_media(self, media_id: str, owner_id: str | None = None) -> Media | None:
        query = self._client.table(self.TABLE_NAME).select("*").eq("id", media_id)
        if owner_id:
            query = query.eq("user_id", owner_id)
        row = _first(_execute(query.limit(1), "get_media"))
        return _row_to_media(row) if row else None

    def list_media(self, owner_id: str, limit: int = 20, offset: int = 0) -> list[Media]:
        result = _execute(
            self._client.table(self.TABLE_NAME)
            .select("*")
            .eq("user_id", owner_id)
            .order("created_at", desc=True)
            .range(offset, offset + limit - 1),
            "list_media",
        )
        return [_row_to_media(row) for row in (result.data or [])]

    def update_status(
        self,
        media_id: str,
        status: MediaStatus,
        duration_seconds: float | None = None,
    ) -> bool:
        update_data: dict[str, Any] = {"status": status.value}
        if duration_seconds is not None:
            update_data["duration"] = duration_seconds

        result = _execute(
            self._client.table(self.TABLE_NAME).update(update_data).eq("id", media_id),
            "update_media_status",
        )
        logger.info("Media status updated: id=%s, status=%s", media_id, status.value)
        return bool(result.data)


class SupabaseTranscriptRepository(TranscriptRepository):
    TABLE_NAME = "transcripts"

    def __init__(self, client: Client | None = None):
        self._client = client or _create_supabase_client()

    def create_transcript(self, media_id: str, owner_id: str, external_job_id: str) -> Transcript:
        now = _now_utc().isoformat()
        row = {
            "id": str(uuid4()),
            "webinar_id": media_id,
            "user_id": owner_id,
            "assembly_ai_id": external_job_id,
            "status": TranscriptStatus.PROCESSING.value,
            "created_at": now,
            "updated_at": now,
        }
        inserted = _first(_execute(self._client.table(self.TABLE_NAME).insert(row), "create_transcript"))
        if not inserted:
            raise UpstreamUnavailableError("database", "transcript insert returned no rows", step="persist")

        transcript = _row_to_transcript(inserted)
        logger.info(
            "Created transcript: id=%s, media=%s, job=%s",
            transcript.id, media_id, external_job_id,
        )
        return transcript

    def get_by_external_id(self, external_job_id: str, owner_id: str | None = None) -> Transcript | None:
        query = self._client.table(self.TABLE_NAME).select("*").eq("assembly_ai_id", external_job_id)
        if owner_id:
            query = query.eq("user_id", owner_id)
        row = _first(_execute(query.limit(1), "get_transcript_by_job"))
        return _row_to_transcript(row) if row else None

    def get_by_media(self, media_id: str, owner_id: str | None = None) -> Transcript | None:
        query = self._client.table(self.TABLE_NAME).select("*").eq("webinar_id", media_id)
        if owner_id:
            query = query.eq("user_id", owner_id)
        row = _first(_execute(query.order("created_at", desc=True).limit(1), "get_transcript_by_media"))
        return _row_to_transcript(row) if row else None

    def mark_completed(self, transcript_id: str, result: NormalizedTranscript) -> bool:
        update_data = {
            "full_text": result.full_text,
            "timestamps": [asdict(word) for word in result.word_timestamps],
            "speakers": [asdict(speaker) for speaker in result.speaker_segments],
            "keywords": result.keywords,
            "quotes": result.quotes,
            "sentiment_timeline": [asdict(segment) for segment in result.sentiment_timeline],
            "status": TranscriptStatus.COMPLETED.value,
            "updated_at": _now_utc().isoformat(),
        }
        updated = _execute(
            self._client.table(self.TABLE_NAME).update(update_data).eq("id", transcript_id),
            "mark_transcript_completed",
        )
        logger.info("Transcript completed: id=%s, chars=%d", transcript_id, len(result.full_text))
        return bool(updated.data)

    def mark_error(self, transcript_id: str) -> bool:
        updated = _execute(
            self._client.table(self.TABLE_NAME)
            .update({
                "status": TranscriptStatus.ERROR.value,
                "full_text": None,
                "updated_at": _now_utc().isoformat(),
            })
            .eq("id", transcript_id),
            "mark_transcript_error",
        )
        logger.warning("Transcript marked as error: id=%s", transcript_id)
        return bool(updated.data)


class SupabaseClipRepository(ClipRepository):
    TABLE_NAME = "snippets"

    def __init__(self, client: Client | None = None):
        self._client = client or _create_supabase_client()

    def insert_clips(self, media_id: str, owner_id: str, drafts: list[ClipDraft]) -> list[Clip]:
        if not drafts:
            return []

        rows = [
            {
                "id": str(uuid4()),
                "webinar_id": media_id,
                "user_id": owner_id,
                "start_time": draft.start_time,
                "end_time": draft.end_time,
                "reason": draft.reason,
                "transcript_chunk": draft.transcript_excerpt,
                "tags": draft.tags,
                "status": ClipStatus.SUGGESTED.value,
                "url": None,
                "thumbnail_url": None,
                "created_at": _now_utc().isoformat(),
            }
            for draft in drafts
        ]
        result = _execute(self._client.table(self.TABLE_NAME).insert(rows), "insert_clips")
        clips = [_row_to_clip(row) for row in (result.data or [])]
        logger.info("Inserted clips: media=%s, count=%d", media_id, len(clips))
        return clips

    def get_clips(self, clip_ids: list[str], owner_id: str | None = None) -> list[Clip]:
        if not clip_ids:
            return []
        query = self._client.table(self.TABLE_NAME).select("*").in_("id", clip_ids)
        if owner_id:
            query = query.eq("user_id", owner_id)
        result = _execute(query, "get_clips")
        return [_row_to_clip(row) for row in (result.data or [])]

    def list_clips(self, owner_id: str, media_id: str | None = None) -> list[Clip]:
        query = self._client.table(self.TABLE_NAME).select("*").eq("user_id", owner_id)
        if media_id:
            query = query.eq("webinar_id", media_id)
        result = _execute(query.order("created_at", desc=True), "list_clips")
        return [_row_to_clip(row) for row in (result.data or [])]

    def mark_rendered(self, clip_id: str, rendered_url: str) -> bool:
        result = _execute(
            self._client.table(self.TABLE_NAME)
            .update({"url": rendered_url, "status": ClipStatus.CREATED.value})
            .eq("id", clip_id),
            "mark_clip_rendered",
        )
        return bool(result.data)

    def update_tags(self, clip_id: str, tags: list[str]) -> bool:
        result = _execute(
            self._client.table(self.TABLE_NAME).update({"tags": tags}).eq("id", clip_id),
            "update_clip_tags",
        )
        return bool(result.data)

    def delete_clip(self, clip_id: str, owner_id: str) -> bool:
        result = _execute(
            self._client.table(self.TABLE_NAME).delete().eq("id", clip_id).eq("user_id", owner_id),
            "delete_clip",
        )
        if result.data:
            logger.info("Clip deleted: id=%s, owner=%s", clip_id, owner_id)
            return True
        return False


class SupabaseContentRepository(ContentRepository):
    TABLE_NAME = "ai_content"

    def __init__(self, client: Client | None = None):
        self._client = client or _create_supabase_client()

    def insert_artifacts(self, artifacts: list[ContentArtifact]) -> list[ContentArtifact]:
        if not artifacts:
            return []

        rows = [
            {
                "id": artifact.id,
                "webinar_id": artifact.media_id,
                "user_id": artifact.owner_id,
                "content_type": artifact.content_type.value,
                "platform": artifact.platform.value,
                "tone": artifact.tone,
                "persona": artifact.persona,
                "content": artifact.body,
                "prompt_used": artifact.prompt_used,
                "model_used": artifact.model_id,
                "created_at": (artifact.created_at or _now_utc()).isoformat(),
            }
            for artifact in artifacts
        ]
        result = _execute(self._client.table(self.TABLE_NAME).insert(rows), "insert_artifacts")
        return [_row_to_artifact(row) for row in (result.data or [])]

    def list_artifacts(self, media_id: str, owner_id: str) -> list[ContentArtifact]:
        result = _execute(
            self._client.table(self.TABLE_NAME)
            .select("*")
            .eq("webinar_id", media_id)
            .eq("user_id", owner_id)
            .order("created_at", desc=True),
            "list_artifacts",
        )
        return [_row_to_artifact(row) for row in (result.data or [])]


class SupabaseQuotaRepository(QuotaRepository):
    PROFILES_TABLE = "profiles"
    ROLES_TABLE = "user_roles"

    def __init__(self, client: Client | None = None):
        self._client = client or _create_supabase_client()

    def get_counter(self, user_id: str) -> QuotaCounter:
        row = _first(_execute(
            self._client.table(self.PROFILES_TABLE)
            .select("clips_generated_this_month, last_clip_reset_date")
            .eq("id", user_id)
            .limit(1),
            "get_quota_counter",
        ))
        if not row:
            return QuotaCounter(user_id=user_id)

        return QuotaCounter(
            user_id=user_id,
            clips_generated_this_month=_safe_int(row.get("clips_generated_this_month")),
            last_reset_date=_parse_datetime(row.get("last_clip_reset_date")),
        )

    def get_tier(self, user_id: str) -> SubscriptionTier:
        row = _first(_execute(
            self._client.table(self.ROLES_TABLE).select("role").eq("user_id", user_id).limit(1),
            "get_user_role",
        ))
        role = str(row.get("role")) if row else SubscriptionTier.FREE.value
        try:
            return SubscriptionTier(role)
        except ValueError:
            logger.warning("Unknown role for user=%s: %s, treating as free", user_id, role)
            return SubscriptionTier.FREE

    def reset_counter(self, user_id: str, reset_at: datetime) -> None:
        _execute(
            self._client.table(self.PROFILES_TABLE)
            .update({"clips_generated_this_month": 0, "last_clip_reset_date": reset_at.isoformat()})
            .eq("id", user_id),
            "reset_quota_counter",
        )
        logger.info("Quota counter reset: user=%s", user_id)

    def set_clips_generated(self, user_id: str, clips_generated: int) -> None:
        _execute(
            self._client.table(self.PROFILES_TABLE)
            .update({"clips_generated_this_month": clips_generated})
            .eq("id", user_id),
            "set_clips_generated",
        )


class SupabaseCollectionRepository(CollectionRepository):
    TABLE_NAME = "collections"
    JOIN_TABLE = "collection_snippets"

    def __init__(self, client: Client | None = None):
        self._client = client or _create_supabase_client()

    def create_collection(self, owner_id: str, name: str) -> Collection:
        row = {"id": str(uuid4()), "user_id": owner_id, "name": name, "created_at": _now_utc().isoformat()}
        inserted = _first(_execute(self._client.table(self.TABLE_NAME).insert(row), "create_collection"))
        if not inserted:
            raise UpstreamUnavailableError("database", "collection insert returned no rows", step="persist")
        return Collection(
            id=str(inserted["id"]),
            owner_id=owner_id,
            name=str(inserted.get("name") or name),
            created_at=_parse_datetime(inserted.get("created_at")),
        )

    def list_collections(self, owner_id: str) -> list[Collection]:
        result = _execute(
            self._client.table(self.TABLE_NAME)
            .select("id, name, created_at, collection_snippets(snippet_id)")
            .eq("user_id", owner_id)
            .order("created_at", desc=True),
            "list_collections",
        )
        return [self._row_to_collection(row, owner_id) for row in (result.data or [])]

    def get_collection(self, collection_id: str, owner_id: str) -> Collection | None:
        row = _first(_execute(
            self._client.table(self.TABLE_NAME)
            .select("id, name, created_at, collection_snippets(snippet_id)")
            .eq("id", collection_id)
            .eq("user_id", owner_id)
            .limit(1),
            "get_collection",
        ))
        return self._row_to_collection(row, owner_id) if row else None

    def add_clip(self, collection_id: str, clip_id: str) -> bool:
        result = _execute(
            self._client.table(self.JOIN_TABLE).insert({"collection_id": collection_id, "snippet_id": clip_id}),
            "add_clip_to_collection",
        )
        return bool(result.data)

    @staticmethod
    def _row_to_collection(row: dict[str, Any], owner_id: str) -> Collection:
        return Collection(
            id=str(row["id"]),
            owner_id=owner_id,
            name=str(row.get("name") or ""),
            clip_ids=[str(item["snippet_id"]) for item in _list_of_dicts(row.get("collection_snippets"))],
            created_at=_parse_datetime(row.get("created_at")),
        )
