from __future__ import annotations

import json

import httpx
import pytest

from src.app.domain.errors import TranscriptionStartError, UploadError, UpstreamUnavailableError, ValidationError
from src.app.domain.models import TranscriptStatus
from src.app.infra.transcription.assemblyai import (
    MAX_WORD_TIMESTAMPS,
    AssemblyAIClient,
    normalize_transcript,
)

BASE = "https://api.assemblyai.test/v2"
PUBLIC_URL = "https://cdn.example.com/uploads/webinar.mp4"
SIGNED_URL = "https://project.supabase.co/storage/v1/object/sign/media/webinar.mp3?token=abc"

COMPLETED_PAYLOAD = {
    "id": "job-1",
    "status": "completed",
    "text": "Hello and welcome. Pricing is a product.",
    "audio_duration": 1830.5,
    "words": [{"start": 1200, "end": 1500, "text": "Hello", "confidence": 0.98}],
    "utterances": [{"speaker": "A"}, {"speaker": "B"}, {"speaker": "A"}],
    "sentiment_analysis_results": [
        {"start": 0, "end": 4000, "sentiment": "NEUTRAL", "confidence": 0.99, "text": "Hello and welcome."},
        {"start": 4000, "end": 9000, "sentiment": "POSITIVE", "confidence": 0.91, "text": " Pricing is a product. "},
        {"start": 9000, "end": 12000, "sentiment": "NEGATIVE", "confidence": 0.72, "text": "Discounts hurt."},
    ],
    "auto_highlights_result": {"results": [{"text": "pricing"}, {"text": "growth"}]},
}


def make_client(handler) -> AssemblyAIClient:
    return AssemblyAIClient("test-key", base_url=BASE, http_client=httpx.Client(transport=httpx.MockTransport(handler)))


class TestNormalizeTranscript:
    def test_converts_milliseconds_and_counts_speakers(self) -> None:
        result = normalize_transcript(COMPLETED_PAYLOAD)

        assert result.full_text == COMPLETED_PAYLOAD["text"]
        assert result.word_timestamps[0].start == 1.2
        assert result.word_timestamps[0].end == 1.5
        assert [(s.name, s.segments) for s in result.speaker_segments] == [("Speaker A", 2), ("Speaker B", 1)]
        assert result.sentiment_timeline[1].start == 4.0
        assert result.sentiment_timeline[1].score == 0.91
        assert result.keywords == ["pricing", "growth"]
        assert result.duration_seconds == 1830.5

    def test_quotes_are_confident_non_neutral_sentences(self) -> None:
        result = normalize_transcript(COMPLETED_PAYLOAD)
        assert result.quotes == ["Pricing is a product.", "Discounts hurt."]

    def test_word_timestamps_capped(self) -> None:
        payload = {"words": [{"start": i, "end": i + 1, "text": "w"} for i in range(MAX_WORD_TIMESTAMPS + 20)]}
        assert len(normalize_transcript(payload).word_timestamps) == MAX_WORD_TIMESTAMPS

    def test_empty_payload(self) -> None:
        result = normalize_transcript({})
        assert result.full_text == ""
        assert result.quotes == []
        assert result.duration_seconds is None


class TestStartJob:
    def test_public_url_sent_directly(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "job-42"})

        result = make_client(handler).start_job(PUBLIC_URL)

        assert result.job_id == "job-42"
        assert result.audio_url == PUBLIC_URL
        assert result.diagnostics["upload_time_ms"] == 0
        assert len(seen) == 1

        body = json.loads(seen[0].content)
        assert seen[0].url == f"{BASE}/transcript"
        assert seen[0].headers["authorization"] == "test-key"
        assert body["audio_url"] == PUBLIC_URL
        assert body["speaker_labels"] is True
        assert body["sentiment_analysis"] is True
        assert body["auto_highlights"] is True

    def test_signed_url_is_reuploaded(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, str(request.url)))
            if request.method == "GET":
                return httpx.Response(200, content=b"media-bytes")
            if request.url.path.endswith("/upload"):
                assert request.content == b"media-bytes"
                return httpx.Response(200, json={"upload_url": "https://cdn.assemblyai.test/upload/1"})
            return httpx.Response(200, json={"id": "job-7"})

        result = make_client(handler).start_job(SIGNED_URL)

        assert result.audio_url == "https://cdn.assemblyai.test/upload/1"
        assert [m for m, _ in seen] == ["GET", "POST", "POST"]
        assert "fetch_time_ms" in result.diagnostics

    def test_signed_url_fetch_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403)

        with pytest.raises(UploadError):
            make_client(handler).start_job(SIGNED_URL)

    def test_unsupported_extension_rejected_before_network(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        with pytest.raises(ValidationError):
            make_client(handler).start_job("https://cdn.example.com/notes.pdf")

    def test_upstream_rejection_keeps_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="Invalid API key")

        with pytest.raises(TranscriptionStartError) as excinfo:
            make_client(handler).start_job(PUBLIC_URL)

        assert excinfo.value.upstream_status == 401
        assert "401" in excinfo.value.message

    def test_missing_id(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={})

        with pytest.raises(TranscriptionStartError):
            make_client(handler).start_job(PUBLIC_URL)

    def test_missing_api_key(self) -> None:
        with pytest.raises(ValueError):
            AssemblyAIClient("")


class TestPollJob:
    @staticmethod
    def answer(payload: dict, status: int = 200) -> AssemblyAIClient:
        return make_client(lambda request: httpx.Response(status, json=payload))

    def test_completed(self) -> None:
        result = self.answer(COMPLETED_PAYLOAD).poll_job("job-1")
        assert result.status == TranscriptStatus.COMPLETED
        assert result.transcript.keywords == ["pricing", "growth"]

    def test_error(self) -> None:
        result = self.answer({"status": "error", "error": "Audio file is corrupted"}).poll_job("job-1")
        assert result.status == TranscriptStatus.ERROR
        assert result.error == "Audio file is corrupted"

    @pytest.mark.parametrize("status", ["queued", "processing"])
    def test_in_progress(self, status: str) -> None:
        result = self.answer({"status": status}).poll_job("job-1")
        assert result.status == TranscriptStatus.PROCESSING
        assert result.transcript is None

    def test_upstream_failure(self) -> None:
        with pytest.raises(UpstreamUnavailableError) as excinfo:
            self.answer({"error": "down"}, status=503).poll_job("job-1")
        assert excinfo.value.step == "poll"

    def test_transport_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamUnavailableError):
            make_client(handler).poll_job("job-1")
