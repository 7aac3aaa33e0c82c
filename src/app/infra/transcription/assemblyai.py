# src/app/infra/transcription/assemblyai.py
"""
AssemblyAI transcription client.
Wraps the submit/poll contract of the speech API behind two operations.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from src.app.domain.errors import (
    TranscriptionStartError,
    UploadError,
    UpstreamUnavailableError,
    ValidationError,
)
from src.app.domain.models import (
    ACCEPTED_EXTENSIONS,
    NormalizedTranscript,
    SentimentSegment,
    SpeakerSegment,
    TranscriptStatus,
    WordTimestamp,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.assemblyai.com/v2"
SUPPORTED_EXTENSIONS = tuple(ACCEPTED_EXTENSIONS)
SIGNED_URL_MARKER = "/storage/v1/object/sign/"

MAX_WORD_TIMESTAMPS = 100
MAX_KEYWORDS = 10
MAX_QUOTES = 5
UPLOAD_CHUNK_SIZE = 1024 * 1024


@dataclass
class StartJobResult:
    job_id: str
    audio_url: str
    diagnostics: dict[str, int] = field(default_factory=dict)


@dataclass
class PollResult:
    status: TranscriptStatus
    transcript: Optional[NormalizedTranscript] = None
    error: Optional[str] = None


def _ms_to_seconds(value: Any) -> float:
    return round(float(value or 0) / 1000, 3)


def _extension_of(url: str) -> str:
    path = urlparse(url).path.lower()
    dot = path.rfind(".")
    return path[dot:] if dot != -1 and "/" not in path[dot:] else ""


def normalize_transcript(payload: dict[str, Any]) -> NormalizedTranscript:
    """
    Convert a completed AssemblyAI transcript payload into the stored shape.

    Word timestamps are capped at MAX_WORD_TIMESTAMPS entries to bound the
    row size; times are converted from milliseconds to seconds.
    """
    words = [
        WordTimestamp(
            start=_ms_to_seconds(word.get("start")),
            end=_ms_to_seconds(word.get("end")),
            text=str(word.get("text", "")),
            confidence=word.get("confidence"),
        )
        for word in (payload.get("words") or [])[:MAX_WORD_TIMESTAMPS]
    ]

    speaker_counts: dict[str, int] = {}
    for utterance in payload.get("utterances") or []:
        name = f"Speaker {utterance.get('speaker')}"
        speaker_counts[name] = speaker_counts.get(name, 0) + 1
    speakers = [SpeakerSegment(name=name, segments=count) for name, count in speaker_counts.items()]

    sentiment_results = payload.get("sentiment_analysis_results") or []
    sentiment_timeline = [
        SentimentSegment(
            start=_ms_to_seconds(item.get("start")),
            end=_ms_to_seconds(item.get("end")),
            sentiment=str(item.get("sentiment", "NEUTRAL")),
            score=float(item.get("confidence") or 0),
        )
        for item in sentiment_results
    ]

    highlights = (payload.get("auto_highlights_result") or {}).get("results") or []
    keywords = [str(h.get("text")) for h in highlights[:MAX_KEYWORDS] if h.get("text")]

    # Strongly non-neutral sentences make the best standalone quotes
    quotable = sorted(
        (item for item in sentiment_results if item.get("sentiment") != "NEUTRAL" and item.get("text")),
        key=lambda item: float(item.get("confidence") or 0),
        reverse=True,
    )
    quotes = [str(item["text"]).strip() for item in quotable[:MAX_QUOTES]]

    duration = payload.get("audio_duration")
    return NormalizedTranscript(
        full_text=str(payload.get("text") or ""),
        word_timestamps=words,
        speaker_segments=speakers,
        keywords=keywords,
        quotes=quotes,
        sentiment_timeline=sentiment_timeline,
        duration_seconds=float(duration) if duration is not None else None,
    )


class AssemblyAIClient:
    """
    Client for the AssemblyAI v2 REST API.

    - start_job(media_url): optional re-upload + create transcription
    - poll_job(job_id): side-effect-free status check
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        http_client: Optional[httpx.Client] = None,
        timeout_seconds: float = 60.0,
    ):
        if not api_key:
            raise ValueError("Missing AssemblyAI API key")
        self.base_url = base_url.rstrip("/")
        self._headers = {"authorization": api_key}
        self._http = http_client or httpx.Client(timeout=timeout_seconds)

    def close(self) -> None:
        self._http.close()

    def start_job(self, media_url: str) -> StartJobResult:
        extension = _extension_of(media_url)
        if extension not in SUPPORTED_EXTENSIONS:
            raise ValidationError(
                f"Unsupported file format. Supported formats: {', '.join(SUPPORTED_EXTENSIONS)}",
                step="validation",
            )

        diagnostics: dict[str, int] = {}
        if SIGNED_URL_MARKER in media_url:
            audio_url = self._reupload(media_url, diagnostics)
        else:
            logger.info("transcription.direct_url url=%s", media_url)
            audio_url = media_url
            diagnostics["upload_time_ms"] = 0

        started = time.monotonic()
        try:
            response = self._http.post(
                f"{self.base_url}/transcript",
                headers={**self._headers, "content-type": "application/json"},
                json={
                    "audio_url": audio_url,
                    "speaker_labels": True,
                    "sentiment_analysis": True,
                    "auto_highlights": True,
                    "auto_chapters": True,
                    "entity_detection": True,
                },
            )
        except httpx.HTTPError as error:
            raise TranscriptionStartError(
                f"Failed to start transcription: {error}",
                diagnostics=diagnostics,
            ) from error

        if response.status_code >= 400:
            logger.error(
                "transcription.start_failed status=%s body=%s",
                response.status_code,
                response.text[:500],
            )
            raise TranscriptionStartError(
                f"Failed to start transcription: {response.status_code} - {response.text[:500]}",
                upstream_status=response.status_code,
                diagnostics=diagnostics,
            )

        job_id = response.json().get("id")
        if not job_id:
            raise TranscriptionStartError("Transcription response missing ID", diagnostics=diagnostics)

        diagnostics["api_response_ms"] = int((time.monotonic() - started) * 1000)
        logger.info("transcription.started job=%s api_ms=%d", job_id, diagnostics["api_response_ms"])
        return StartJobResult(job_id=str(job_id), audio_url=audio_url, diagnostics=diagnostics)

    def _reupload(self, media_url: str, diagnostics: dict[str, int]) -> str:
        """Stream a non-public object into the service's ingestion endpoint."""
        started = time.monotonic()
        try:
            with self._http.stream("GET", media_url) as source:
                if source.status_code >= 400:
                    raise UploadError(
                        f"Failed to fetch file: {source.status_code}",
                        diagnostics=diagnostics,
                    )
                diagnostics["fetch_time_ms"] = int((time.monotonic() - started) * 1000)

                upload_started = time.monotonic()
                response = self._http.post(
                    f"{self.base_url}/upload",
                    headers=self._headers,
                    content=source.iter_bytes(UPLOAD_CHUNK_SIZE),
                )
        except httpx.HTTPError as error:
            raise UploadError(f"Failed to upload file to transcription service: {error}", diagnostics=diagnostics) from error

        if response.status_code >= 400:
            raise UploadError(
                f"Upload failed: {response.status_code} - {response.text[:500]}",
                diagnostics=diagnostics,
            )

        upload_url = response.json().get("upload_url")
        if not upload_url:
            raise UploadError("Upload response missing upload_url", diagnostics=diagnostics)

        diagnostics["upload_time_ms"] = int((time.monotonic() - upload_started) * 1000)
        logger.info("transcription.reuploaded upload_ms=%d", diagnostics["upload_time_ms"])
        return str(upload_url)

    def poll_job(self, job_id: str) -> PollResult:
        try:
            response = self._http.get(f"{self.base_url}/transcript/{job_id}", headers=self._headers)
        except httpx.HTTPError as error:
            raise UpstreamUnavailableError("AssemblyAI", str(error), step="poll") from error

        if response.status_code >= 400:
            raise UpstreamUnavailableError(
                "AssemblyAI",
                f"status {response.status_code}: {response.text[:200]}",
                step="poll",
            )

        payload = response.json()
        status = payload.get("status")
        logger.debug("transcription.poll job=%s status=%s", job_id, status)

        if status == "completed":
            return PollResult(status=TranscriptStatus.COMPLETED, transcript=normalize_transcript(payload))
        if status == "error":
            return PollResult(
                status=TranscriptStatus.ERROR,
                error=str(payload.get("error") or "Transcription failed"),
            )
        return PollResult(status=TranscriptStatus.PROCESSING)
