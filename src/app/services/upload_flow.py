# src/app/services/upload_flow.py
"""
Client-side orchestration of one upload.

upload -> start transcription -> poll until done -> heuristic highlights
-> default content, reporting a coarse stage and a progress percentage
along the way.
"""
from __future__ import annotations

import logging
import mimetypes
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from src.app.domain.errors import PipelineError, PollingTimeoutError, TranscriptionFailedError, ValidationError
from src.app.domain.models import (
    ACCEPTED_EXTENSIONS,
    ACCEPTED_MIME_TYPES,
    Media,
    SuggestionMode,
    TranscriptStatus,
    UploadJob,
    UploadStage,
)

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 1024 * 1024 * 1024
POLL_INTERVAL_SECONDS = 5.0
MAX_POLL_ATTEMPTS = 120
DEFAULT_PLATFORMS = ("linkedin", "twitter")
DEFAULT_TONE = "professional"


@dataclass
class SourceFile:
    title: str
    path: Path
    size_bytes: int
    mime_type: str


@dataclass
class PollResponse:
    status: TranscriptStatus
    text: Optional[str] = None


@dataclass
class SuggestionResponse:
    count: int
    remaining_quota: Optional[int] = None


@dataclass
class ContentResponse:
    generated: dict[str, str]
    diagnostics: dict[str, Any] = field(default_factory=dict)


@dataclass
class UploadOutcome:
    media_id: str
    clip_count: int
    generated_platforms: list[str]
    diagnostics: dict[str, Any] = field(default_factory=dict)


class PipelineBackend(ABC):
    """
    Server operations the upload flow drives.

    Implementations:
    - HttpPipelineBackend: this service's HTTP API (src/app/client/api_client.py)
    """

    @abstractmethod
    def upload_media(self, title: str, path: Path, mime_type: str, size_bytes: int) -> Media:
        pass

    @abstractmethod
    def start_transcription(self, media_id: str) -> str:
        """Returns the external job id to poll."""
        pass

    @abstractmethod
    def poll_transcription(self, job_id: str) -> PollResponse:
        pass

    @abstractmethod
    def suggest_highlights(
        self,
        media_id: str,
        mode: SuggestionMode = SuggestionMode.HEURISTIC,
        context: Optional[str] = None,
    ) -> SuggestionResponse:
        pass

    @abstractmethod
    def generate_content(
        self,
        media_id: str,
        platforms: Sequence[str],
        tone: str = DEFAULT_TONE,
        persona: Optional[str] = None,
    ) -> ContentResponse:
        pass


def guess_mime_type(path: Path) -> Optional[str]:
    suffix = path.suffix.lower()
    if suffix in ACCEPTED_EXTENSIONS:
        return ACCEPTED_EXTENSIONS[suffix]
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed


def validate_source(
    title: str,
    path: str | Path,
    size_bytes: Optional[int] = None,
    mime_type: Optional[str] = None,
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> SourceFile:
    """
    Check a local file before anything is sent over the network.

    ``size_bytes`` and ``mime_type`` default to the file's size on disk and
    the type guessed from its extension.

    Raises:
        ValidationError: Empty title, unreadable file, too large or unsupported type
    """
    title = (title or "").strip()
    if not title:
        raise ValidationError("Please provide a title", step="checking")

    source = Path(path)
    if size_bytes is None:
        try:
            size_bytes = source.stat().st_size
        except OSError as error:
            raise ValidationError(f"Cannot read file: {source}", step="checking") from error

    if size_bytes <= 0:
        raise ValidationError("File is empty", step="checking")
    if size_bytes > max_bytes:
        raise ValidationError(
            "File size must be at most 1GB",
            step="checking",
            diagnostics={"size_bytes": size_bytes, "max_bytes": max_bytes},
        )

    resolved_type = (mime_type or guess_mime_type(source) or "").lower()
    if resolved_type not in ACCEPTED_MIME_TYPES and source.suffix.lower() not in ACCEPTED_EXTENSIONS:
        raise ValidationError(
            "Unsupported file type. Upload an audio or video file "
            "(mp4, mov, webm, mkv, mp3, wav, m4a, ogg, flac)",
            step="checking",
            diagnostics={"mime_type": resolved_type or None, "extension": source.suffix.lower() or None},
        )
    if resolved_type not in ACCEPTED_MIME_TYPES:
        resolved_type = ACCEPTED_EXTENSIONS[source.suffix.lower()]

    return SourceFile(title=title, path=source, size_bytes=size_bytes, mime_type=resolved_type)


class UploadFlow:
    """
    State machine over ``UploadStage``.

    Stages only move forward during a run; any failure resets the job to
    ``upload`` with progress 0 and re-raises a ``PipelineError``. There is
    no partial resume: rows created before the failure stay as they are.
    """

    def __init__(
        self,
        backend: PipelineBackend,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        poll_interval_seconds: float = POLL_INTERVAL_SECONDS,
        max_poll_attempts: int = MAX_POLL_ATTEMPTS,
        platforms: Sequence[str] = DEFAULT_PLATFORMS,
        tone: str = DEFAULT_TONE,
        on_change: Optional[Callable[[UploadJob], None]] = None,
    ):
        self.backend = backend
        self._sleep = sleep
        self._clock = clock
        self.poll_interval_seconds = poll_interval_seconds
        self.max_poll_attempts = max_poll_attempts
        self.platforms = list(platforms)
        self.tone = tone
        self._on_change = on_change
        self.job: Optional[UploadJob] = None
        self.history: list[tuple[UploadStage, float]] = []

    def run(
        self,
        title: str,
        path: str | Path,
        mime_type: Optional[str] = None,
        size_bytes: Optional[int] = None,
    ) -> UploadOutcome:
        self.job = UploadJob(title=title, source_path=str(path))
        self.history = []
        timings: dict[str, int] = {}
        self.job.diagnostics["timings_ms"] = timings

        try:
            step_started = self._clock()
            self._advance(UploadStage.CHECKING, 5)
            source = validate_source(title, path, size_bytes=size_bytes, mime_type=mime_type)
            timings["checking"] = self._ms_since(step_started)

            step_started = self._clock()
            self._advance(UploadStage.PREPARING, 10)
            media = self.backend.upload_media(source.title, source.path, source.mime_type, source.size_bytes)
            self.job.media_id = media.id
            self._advance(UploadStage.PREPARING, 30)
            timings["preparing"] = self._ms_since(step_started)

            step_started = self._clock()
            self._advance(UploadStage.PROCESSING, 50)
            job_id = self.backend.start_transcription(media.id)
            self.job.diagnostics["job_id"] = job_id
            self._advance(UploadStage.PROCESSING, 60)
            timings["processing"] = self._ms_since(step_started)

            step_started = self._clock()
            self._advance(UploadStage.TRANSCRIBING, 60)
            self._wait_for_transcript(job_id)
            timings["transcribing"] = self._ms_since(step_started)

            step_started = self._clock()
            self._advance(UploadStage.ANALYZING, 75)
            suggestion = self.backend.suggest_highlights(media.id, SuggestionMode.HEURISTIC)
            timings["analyzing"] = self._ms_since(step_started)

            step_started = self._clock()
            self._advance(UploadStage.GENERATING, 85)
            content = self.backend.generate_content(media.id, self.platforms, tone=self.tone)
            timings["generating"] = self._ms_since(step_started)

            self._advance(UploadStage.SUCCESS, 100)
        except PipelineError as exc:
            raise self._fail(exc)
        except Exception as exc:
            raise self._fail(exc) from exc

        logger.info("upload_flow.success media=%s clips=%d", media.id, suggestion.count)
        return UploadOutcome(
            media_id=media.id,
            clip_count=suggestion.count,
            generated_platforms=sorted(content.generated),
            diagnostics=dict(self.job.diagnostics),
        )

    def _wait_for_transcript(self, job_id: str) -> PollResponse:
        for attempt in range(self.max_poll_attempts):
            response = self.backend.poll_transcription(job_id)
            self.job.diagnostics["poll_attempts"] = attempt + 1

            if response.status == TranscriptStatus.COMPLETED:
                return response
            if response.status == TranscriptStatus.ERROR:
                raise TranscriptionFailedError()

            self._advance(UploadStage.TRANSCRIBING, min(70.0, 60 + attempt * 0.5))
            self._sleep(self.poll_interval_seconds)

        raise PollingTimeoutError(self.max_poll_attempts, self.poll_interval_seconds)

    def _advance(self, stage: UploadStage, progress: float) -> None:
        job = self.job
        if stage.order < job.stage.order:
            raise RuntimeError(f"stage cannot move back from {job.stage.value} to {stage.value}")

        changed = stage != job.stage or progress != job.progress_percent
        job.stage = stage
        job.progress_percent = progress
        if changed:
            self.history.append((stage, progress))
            logger.debug("upload_flow.stage stage=%s progress=%s", stage.value, progress)
            if self._on_change is not None:
                self._on_change(job)

    def _fail(self, exc: Exception) -> PipelineError:
        job = self.job
        failed_stage = job.stage

        error = exc if isinstance(exc, PipelineError) else PipelineError(str(exc) or type(exc).__name__, step=failed_stage.value)
        job.diagnostics["failed_step"] = failed_stage.value
        job.diagnostics["error"] = error.message
        error.diagnostics.setdefault("failed_step", failed_stage.value)
        error.diagnostics.setdefault("timings_ms", dict(job.diagnostics["timings_ms"]))

        logger.warning("upload_flow.failed stage=%s error=%s", failed_stage.value, error.message)

        job.stage = UploadStage.UPLOAD
        job.progress_percent = 0
        self.history.append((UploadStage.UPLOAD, 0))
        if self._on_change is not None:
            self._on_change(job)
        return error

    def _ms_since(self, started: float) -> int:
        return int((self._clock() - started) * 1000)
