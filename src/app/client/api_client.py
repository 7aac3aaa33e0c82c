"""HTTP client for this service's API, used by the upload flow."""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Sequence

import httpx

from src.app.domain.errors import (
    PipelineError,
    QuotaExhaustedError,
    QuotaLimitReachedError,
    RateLimitedError,
    TranscriptionFailedError,
    TranscriptionStartError,
    UpstreamUnavailableError,
    ValidationError,
)
from src.app.domain.models import Media, MediaStatus, SuggestionMode, TranscriptStatus
from src.app.services.upload_flow import (
    DEFAULT_TONE,
    ContentResponse,
    PipelineBackend,
    PollResponse,
    SuggestionResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(60.0, read=300.0)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def media_from_json(data: dict[str, Any]) -> Media:
    return Media(
        id=str(data["id"]),
        owner_id=str(data.get("owner_id") or ""),
        title=data.get("title") or "",
        source_url=data.get("source_url") or "",
        size_bytes=int(data.get("size_bytes") or 0),
        mime_type=data.get("mime_type") or "",
        status=MediaStatus(data.get("status") or MediaStatus.UPLOADED.value),
        duration_seconds=data.get("duration_seconds"),
        created_at=_parse_datetime(data.get("created_at")),
    )


def error_from_response(response: httpx.Response) -> PipelineError:
    """Rebuild the domain error from a ``{"status": "failed", ...}`` body."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    message = str(body.get("error") or body.get("detail") or f"Request failed with status {response.status_code}")
    step = str(body.get("step") or "unknown")
    diagnostics = body.get("diagnostics") if isinstance(body.get("diagnostics"), dict) else {}
    status = response.status_code

    if status == 400:
        return ValidationError(message, step=step, diagnostics=diagnostics)
    if status == 402:
        return QuotaExhaustedError(message, step=step)
    if status == 429 and body.get("limit_reached"):
        return QuotaLimitReachedError(
            tier=str(body.get("current_plan") or "free"),
            monthly_limit=int(diagnostics.get("monthly_limit") or 0),
            clips_generated=int(diagnostics.get("clips_generated_this_month") or 0),
        )
    if status == 429:
        return RateLimitedError(message, step=step)
    if step == "transcribe" and status == 502:
        return TranscriptionStartError(message, upstream_status=diagnostics.get("upstream_status"), diagnostics=diagnostics)
    if step == "transcribe":
        return TranscriptionFailedError(message)

    error = PipelineError(message, step=step, diagnostics=diagnostics)
    error.status_code = status
    return error


class HttpPipelineBackend(PipelineBackend):
    def __init__(
        self,
        base_url: str,
        access_token: str,
        http_client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._http = http_client or httpx.Client(timeout=DEFAULT_TIMEOUT)

    def close(self) -> None:
        self._http.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self._http.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as error:
            raise UpstreamUnavailableError("API", str(error), step="network") from error

        if response.status_code >= 400:
            error = error_from_response(response)
            logger.warning("api.request_failed method=%s path=%s status=%s error=%s", method, path, response.status_code, error.message)
            raise error
        return response.json()

    def upload_media(self, title: str, path: Path, mime_type: str, size_bytes: int) -> Media:
        with open(path, "rb") as handle:
            data = self._request(
                "POST",
                "/v1/media",
                data={"title": title},
                files={"file": (path.name, handle, mime_type)},
            )
        media = media_from_json(data)
        logger.info("api.uploaded media=%s size=%d", media.id, size_bytes)
        return media

    def start_transcription(self, media_id: str) -> str:
        data = self._request("POST", "/v1/transcriptions", json={"media_id": media_id})
        return str(data["job_id"])

    def poll_transcription(self, job_id: str) -> PollResponse:
        data = self._request("POST", "/v1/transcriptions/poll", json={"job_id": job_id})
        return PollResponse(status=TranscriptStatus(data["status"]), text=data.get("text"))

    def suggest_highlights(
        self,
        media_id: str,
        mode: SuggestionMode = SuggestionMode.HEURISTIC,
        context: Optional[str] = None,
    ) -> SuggestionResponse:
        data = self._request(
            "POST",
            "/v1/clips/suggest",
            json={"media_id": media_id, "mode": mode.value, "context": context},
        )
        return SuggestionResponse(count=int(data.get("count") or 0), remaining_quota=data.get("remaining_quota"))

    def generate_content(
        self,
        media_id: str,
        platforms: Sequence[str],
        tone: str = DEFAULT_TONE,
        persona: Optional[str] = None,
    ) -> ContentResponse:
        data = self._request(
            "POST",
            "/v1/content",
            json={"media_id": media_id, "platforms": list(platforms), "tone": tone, "persona": persona},
        )
        return ContentResponse(generated=dict(data.get("generated") or {}), diagnostics=dict(data.get("diagnostics") or {}))
