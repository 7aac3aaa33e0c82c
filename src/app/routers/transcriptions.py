# src/app/routers/transcriptions.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from src.app.deps import CurrentUser, get_current_user, get_transcription_service
from src.app.schemas.media import (
    PollTranscriptionRequest,
    PollTranscriptionResponse,
    StartTranscriptionRequest,
    StartTranscriptionResponse,
)
from src.app.services.transcription_service import TranscriptionService

router = APIRouter(prefix="/v1/transcriptions", tags=["transcriptions"])


@router.post("", response_model=StartTranscriptionResponse)
async def start_transcription(
    body: StartTranscriptionRequest,
    user: CurrentUser = Depends(get_current_user),
    service: TranscriptionService = Depends(get_transcription_service),
) -> StartTranscriptionResponse:
    started = await run_in_threadpool(service.start_transcription, body.media_id, user.id)
    return StartTranscriptionResponse(
        job_id=started.job_id,
        transcript_id=started.transcript_id,
        diagnostics=started.diagnostics,
    )


@router.post("/poll", response_model=PollTranscriptionResponse)
async def poll_transcription(
    body: PollTranscriptionRequest,
    user: CurrentUser = Depends(get_current_user),
    service: TranscriptionService = Depends(get_transcription_service),
) -> PollTranscriptionResponse:
    result = await run_in_threadpool(service.poll_transcription, body.job_id, user.id)
    return PollTranscriptionResponse(status=result.status, text=result.text)
