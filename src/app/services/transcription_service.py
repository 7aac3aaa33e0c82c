# src/app/services/transcription_service.py
"""
Transcription service.
Submits media to the speech API and persists the polled results.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from src.app.domain.errors import PipelineError, RecordNotFoundError, TranscriptionFailedError
from src.app.domain.models import MediaStatus, Transcript, TranscriptStatus
from src.app.infra.db.base import MediaRepository, TranscriptRepository
from src.app.infra.transcription.assemblyai import AssemblyAIClient

logger = logging.getLogger(__name__)


@dataclass
class StartedTranscription:
    job_id: str
    transcript_id: str
    diagnostics: dict[str, Any] = field(default_factory=dict)


@dataclass
class TranscriptionStatus:
    status: TranscriptStatus
    text: Optional[str] = None
    transcript: Optional[Transcript] = None


class TranscriptionService:
    def __init__(
        self,
        client: AssemblyAIClient,
        media: MediaRepository,
        transcripts: TranscriptRepository,
    ):
        self.client = client
        self.media = media
        self.transcripts = transcripts

    def start_transcription(self, media_id: str, owner_id: str) -> StartedTranscription:
        """
        Submit a media's stored file for transcription.

        The media is marked ``transcribing`` before the job is submitted and
        ``error`` if submission fails.

        Raises:
            RecordNotFoundError: Unknown media for this owner
            ValidationError / UploadError / TranscriptionStartError: From the speech API client
        """
        started = time.perf_counter()
        media = self.media.get_media(media_id, owner_id=owner_id)
        if media is None:
            raise RecordNotFoundError("media", media_id)

        self.media.update_status(media_id, MediaStatus.TRANSCRIBING)
        try:
            job = self.client.start_job(media.source_url)
        except PipelineError:
            self.media.update_status(media_id, MediaStatus.ERROR)
            logger.warning("transcription.start_failed media=%s", media_id)
            raise

        transcript = self.transcripts.create_transcript(media_id, owner_id, job.job_id)
        diagnostics = dict(job.diagnostics)
        diagnostics["total_time_ms"] = int((time.perf_counter() - started) * 1000)

        logger.info("transcription.started media=%s job=%s transcript=%s", media_id, job.job_id, transcript.id)
        return StartedTranscription(job_id=job.job_id, transcript_id=transcript.id, diagnostics=diagnostics)

    def poll_transcription(self, job_id: str, owner_id: str) -> TranscriptionStatus:
        """
        Check a submitted job once and persist a terminal result.

        Raises:
            RecordNotFoundError: No transcript for this job and owner
            TranscriptionFailedError: The speech API reported an error
        """
        transcript = self.transcripts.get_by_external_id(job_id, owner_id=owner_id)
        if transcript is None:
            raise RecordNotFoundError("transcript", job_id)

        if transcript.is_terminal:
            # settled jobs are answered from the stored row
            if transcript.status == TranscriptStatus.ERROR:
                raise TranscriptionFailedError()
            return TranscriptionStatus(status=transcript.status, text=transcript.full_text, transcript=transcript)

        result = self.client.poll_job(job_id)

        if result.status == TranscriptStatus.COMPLETED and result.transcript is not None:
            normalized = result.transcript
            self.transcripts.mark_completed(transcript.id, normalized)
            self.media.update_status(
                transcript.media_id,
                MediaStatus.TRANSCRIBED,
                duration_seconds=normalized.duration_seconds,
            )
            logger.info(
                "transcription.completed job=%s media=%s chars=%d",
                job_id,
                transcript.media_id,
                len(normalized.full_text),
            )
            return TranscriptionStatus(status=TranscriptStatus.COMPLETED, text=normalized.full_text)

        if result.status == TranscriptStatus.ERROR:
            self.transcripts.mark_error(transcript.id)
            self.media.update_status(transcript.media_id, MediaStatus.ERROR)
            logger.warning("transcription.failed job=%s error=%s", job_id, result.error)
            raise TranscriptionFailedError(result.error or "Transcription failed")

        return TranscriptionStatus(status=TranscriptStatus.PROCESSING)
