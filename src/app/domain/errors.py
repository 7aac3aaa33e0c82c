from __future__ import annotations

from typing import Any, Optional


class PipelineError(Exception):
    """Base error for the media pipeline.

    ``message`` is the single human-readable text shown to the caller;
    ``step`` and ``diagnostics`` carry structured detail alongside it.
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        step: str = "unknown",
        diagnostics: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.step = step
        self.diagnostics = dict(diagnostics or {})

    def to_payload(self) -> dict[str, Any]:
        return {
            "status": "failed",
            "step": self.step,
            "error": self.message,
            "diagnostics": self.diagnostics,
        }


class ValidationError(PipelineError):
    status_code = 400

    def __init__(self, message: str, step: str = "input", diagnostics: Optional[dict[str, Any]] = None):
        super().__init__(message, step=step, diagnostics=diagnostics)


class RecordNotFoundError(PipelineError):
    status_code = 404

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found: {record_id}", step="lookup")
        self.kind = kind
        self.record_id = record_id


class UpstreamUnavailableError(PipelineError):
    status_code = 502

    def __init__(self, service: str, reason: str, step: str = "upstream"):
        super().__init__(f"{service} unavailable: {reason}", step=step)
        self.service = service
        self.reason = reason


class UploadError(PipelineError):
    status_code = 502

    def __init__(self, message: str, diagnostics: Optional[dict[str, Any]] = None):
        super().__init__(message, step="upload", diagnostics=diagnostics)


class TranscriptionStartError(PipelineError):
    status_code = 502

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        diagnostics: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, step="transcribe", diagnostics=diagnostics)
        self.upstream_status = upstream_status


class TranscriptionFailedError(PipelineError):
    def __init__(self, message: str = "Transcription failed"):
        super().__init__(message, step="transcribe")


class PollingTimeoutError(PipelineError):
    status_code = 504

    def __init__(self, attempts: int, interval_seconds: float):
        super().__init__(
            f"Transcription timeout after {attempts} polls",
            step="poll",
            diagnostics={"attempts": attempts, "interval_seconds": interval_seconds},
        )
        self.attempts = attempts


class RateLimitedError(PipelineError):
    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded. Please try again later.", step: str = "generation"):
        super().__init__(message, step=step)


class QuotaExhaustedError(PipelineError):
    status_code = 402

    def __init__(self, message: str = "AI credits exhausted. Please add credits to continue.", step: str = "generation"):
        super().__init__(message, step=step)


class QuotaLimitReachedError(PipelineError):
    status_code = 429

    def __init__(self, tier: str, monthly_limit: int, clips_generated: int = 0):
        super().__init__(
            f"Monthly clip limit reached ({monthly_limit}). Upgrade to Pro for more clips.",
            step="quota",
            diagnostics={
                "limit_reached": True,
                "current_plan": tier,
                "monthly_limit": monthly_limit,
                "clips_generated_this_month": clips_generated,
            },
        )
        self.tier = tier
        self.monthly_limit = monthly_limit

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["limit_reached"] = True
        payload["current_plan"] = self.tier
        return payload


class StructuredOutputError(PipelineError):
    status_code = 502

    def __init__(self, message: str, step: str = "generation"):
        super().__init__(message, step=step)


class GenerationError(PipelineError):
    def __init__(self, message: str, platforms: Optional[list[str]] = None):
        super().__init__(message, step="generation")
        self.platforms = list(platforms or [])


class StorageError(PipelineError):
    status_code = 502

    def __init__(self, message: str):
        super().__init__(message, step="storage")


class RenderError(PipelineError):
    def __init__(self, clip_id: str, reason: str):
        super().__init__(f"Failed to render clip {clip_id}: {reason}", step="render")
        self.clip_id = clip_id
        self.reason = reason
