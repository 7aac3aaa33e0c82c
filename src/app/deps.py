# src/app/deps.py (singletons exposed as FastAPI dependencies)

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from supabase import Client, create_client

from src.app.config import settings
from src.app.domain.errors import PipelineError
from src.app.domain.models import Clip
from src.app.infra.db.supabase_repo import (
    SupabaseClipRepository,
    SupabaseCollectionRepository,
    SupabaseContentRepository,
    SupabaseMediaRepository,
    SupabaseQuotaRepository,
    SupabaseTranscriptRepository,
)
from src.app.infra.llm.base import GenerativeTextClient
from src.app.infra.llm.gateway import GatewayTextClient
from src.app.infra.llm.gemini import GeminiTextClient
from src.app.infra.media.ffmpeg import ClipExtractor
from src.app.infra.storage.base import StorageProvider
from src.app.infra.storage.r2_provider import R2StorageProvider
from src.app.infra.storage.supabase_provider import SupabaseStorageProvider
from src.app.infra.transcription.assemblyai import AssemblyAIClient
from src.app.services.clip_render_queue import ClipRenderQueue
from src.app.services.clip_renderer import ClipRenderer
from src.app.services.content_generator import ContentGenerator
from src.app.services.highlight_suggester import HighlightSuggester
from src.app.services.media_service import MediaService
from src.app.services.quota_service import QuotaService
from src.app.services.response_cache import InMemoryTTLCache
from src.app.services.transcription_service import TranscriptionService

logger = logging.getLogger(__name__)

_client: Client | None = None
_render_queue: ClipRenderQueue | None = None
_llm: GenerativeTextClient | None = None
_speech_client: AssemblyAIClient | None = None
_r2_storage: R2StorageProvider | None = None
_content_cache = InMemoryTTLCache(
    ttl_seconds=settings.CONTENT_CACHE_TTL_SECONDS,
    max_entries=settings.CONTENT_CACHE_MAX_ENTRIES,
)


def get_supabase() -> Client:
    global _client
    if _client is None:
        _client = create_client(str(settings.SUPABASE_URL),
                                settings.SUPABASE_SERVICE_ROLE_KEY)
    return _client


auth_scheme = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None


async def get_current_user(
    cred: HTTPAuthorizationCredentials | None = Depends(auth_scheme),
    supa: Client = Depends(get_supabase),
) -> CurrentUser:
    """
    Takes `Authorization: Bearer <access_token>` issued by Supabase,
    validates it against GoTrue and returns the minimal user data.
    """
    if cred is None or cred.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")

    token = cred.credentials
    try:
        res = supa.auth.get_user(token)
        user = res.user
        if not user:
            raise HTTPException(status_code=401, detail="Invalid token")

        name = None
        meta = getattr(user, "user_metadata", None) or {}
        if isinstance(meta, dict):
            name = meta.get("name")

        return CurrentUser(id=str(user.id), email=user.email, name=name)
    except HTTPException:
        raise
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid/expired token")


def get_storage(supa: Client = Depends(get_supabase)) -> StorageProvider:
    global _r2_storage
    if settings.STORAGE_BACKEND == "r2":
        if _r2_storage is None:
            _r2_storage = R2StorageProvider()
        return _r2_storage
    return SupabaseStorageProvider(supa, bucket_name=settings.STORAGE_BUCKET)


def get_llm() -> GenerativeTextClient:
    global _llm
    if _llm is None:
        try:
            if settings.LLM_PROVIDER == "gemini":
                _llm = GeminiTextClient(api_key=settings.GEMINI_API_KEY or "", model_id=settings.GEMINI_MODEL)
            else:
                _llm = GatewayTextClient(
                    api_key=settings.AI_GATEWAY_API_KEY or "",
                    url=settings.AI_GATEWAY_URL,
                    model_id=settings.AI_MODEL,
                )
        except ValueError as exc:
            raise PipelineError(f"Generative text service is not configured: {exc}", step="config") from exc
    return _llm


def get_speech_client() -> AssemblyAIClient:
    global _speech_client
    if _speech_client is None:
        if not settings.ASSEMBLYAI_API_KEY:
            raise PipelineError("AssemblyAI API key not configured", step="config")
        _speech_client = AssemblyAIClient(api_key=settings.ASSEMBLYAI_API_KEY, base_url=settings.ASSEMBLYAI_BASE_URL)
    return _speech_client


def close_clients() -> None:
    """Close the shared outbound HTTP clients; the next request recreates them."""
    global _llm, _speech_client
    for client in (_llm, _speech_client):
        if client is not None:
            client.close()
    _llm = None
    _speech_client = None


def get_render_queue() -> ClipRenderQueue:
    global _render_queue
    if _render_queue is None:
        supa = get_supabase()
        renderer = ClipRenderer(
            clip_repository=SupabaseClipRepository(supa),
            storage=get_storage(supa),
            extractor=ClipExtractor(binary=settings.FFMPEG_BINARY),
            temp_dir=settings.CLIP_RENDER_TEMP_DIR,
        )
        _render_queue = ClipRenderQueue(renderer)
    return _render_queue


def schedule_render(source_url: str, clips: list[Clip]) -> None:
    queue = get_render_queue()
    if not queue.running:
        logger.warning("render.queue_not_running clips=%d", len(clips))
        return
    queue.submit(source_url, clips)


def get_media_service(
    supa: Client = Depends(get_supabase),
    storage: StorageProvider = Depends(get_storage),
) -> MediaService:
    return MediaService(SupabaseMediaRepository(supa), storage, max_upload_bytes=settings.MAX_UPLOAD_BYTES)


def get_transcription_service(
    supa: Client = Depends(get_supabase),
    speech: AssemblyAIClient = Depends(get_speech_client),
) -> TranscriptionService:
    return TranscriptionService(speech, SupabaseMediaRepository(supa), SupabaseTranscriptRepository(supa))


def get_quota_service(supa: Client = Depends(get_supabase)) -> QuotaService:
    return QuotaService(SupabaseQuotaRepository(supa))


def _optional_llm() -> Optional[GenerativeTextClient]:
    try:
        return get_llm()
    except PipelineError:
        # heuristic suggestions and listing work without a text service
        return None


def get_highlight_suggester(
    supa: Client = Depends(get_supabase),
    quota: QuotaService = Depends(get_quota_service),
) -> HighlightSuggester:
    return HighlightSuggester(
        media=SupabaseMediaRepository(supa),
        transcripts=SupabaseTranscriptRepository(supa),
        clips=SupabaseClipRepository(supa),
        llm=_optional_llm(),
        quota=quota,
        schedule_render=schedule_render,
    )


def get_clip_repository(supa: Client = Depends(get_supabase)) -> SupabaseClipRepository:
    return SupabaseClipRepository(supa)


def get_content_repository(supa: Client = Depends(get_supabase)) -> SupabaseContentRepository:
    return SupabaseContentRepository(supa)


def get_collection_repository(supa: Client = Depends(get_supabase)) -> SupabaseCollectionRepository:
    return SupabaseCollectionRepository(supa)


def get_content_generator(supa: Client = Depends(get_supabase)) -> ContentGenerator:
    return ContentGenerator(
        llm=get_llm(),
        transcripts=SupabaseTranscriptRepository(supa),
        contents=SupabaseContentRepository(supa),
        cache=_content_cache,
    )
