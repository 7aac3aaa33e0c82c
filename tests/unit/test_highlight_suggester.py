from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.app.domain.errors import QuotaLimitReachedError, RecordNotFoundError, StructuredOutputError, ValidationError
from src.app.domain.models import (
    ClipStatus,
    QuotaCounter,
    SentimentSegment,
    SuggestionMode,
    Transcript,
    TranscriptStatus,
    WordTimestamp,
)
from src.app.services.highlight_suggester import HighlightSuggester, heuristic_drafts
from src.app.services.quota_service import QuotaService
from tests.unit.stubs import (
    ClipRepositoryStub,
    MediaRepositoryStub,
    QuotaRepositoryStub,
    TextClientStub,
    TranscriptRepositoryStub,
)

NOW = datetime(2024, 5, 10, tzinfo=timezone.utc)
OWNER = "user-1"


def smart_clip(start: float, end: float, category: str = "Insightful", title: str = "A moment worth sharing") -> dict:
    return {
        "start_time": start,
        "end_time": end,
        "title": title,
        "category": category,
        "reason": "Clear takeaway",
        "transcript_excerpt": "the key insight is...",
    }


VALID_SMART_PAYLOAD = {
    "clips": [
        smart_clip(10, 55, "Motivational"),
        smart_clip(120, 180, "Educational"),
        smart_clip(300, 390, "Funny"),
    ],
}


class RenderSchedulerStub:
    def __init__(self) -> None:
        self.calls: list[tuple[str, list]] = []

    def __call__(self, source_url, clips) -> None:
        self.calls.append((source_url, list(clips)))


class Fixture:
    def __init__(self, *llm_responses, clips_used: int = 0) -> None:
        self.media = MediaRepositoryStub()
        self.transcripts = TranscriptRepositoryStub()
        self.clips = ClipRepositoryStub()
        self.quota_repo = QuotaRepositoryStub()
        self.quota_repo.counters[OWNER] = QuotaCounter(OWNER, clips_used, NOW)
        self.llm = TextClientStub(*llm_responses) if llm_responses else TextClientStub({})
        self.scheduler = RenderSchedulerStub()
        self.suggester = HighlightSuggester(
            media=self.media,
            transcripts=self.transcripts,
            clips=self.clips,
            llm=self.llm,
            quota=QuotaService(self.quota_repo, clock=lambda: NOW),
            schedule_render=self.scheduler,
        )

        media = self.media.create_media(OWNER, "Webinar", "https://cdn.example.com/u/webinar.mp4", 1000, "video/mp4")
        self.media_id = media.id
        self.transcript = self.transcripts.add(Transcript(
            id="t-1",
            media_id=media.id,
            owner_id=OWNER,
            external_job_id="job-1",
            status=TranscriptStatus.COMPLETED,
            full_text="word " * 2000,
            sentiment_timeline=[
                SentimentSegment(start=0.0, end=20.0, sentiment="POSITIVE", score=0.7),
                SentimentSegment(start=30.0, end=120.0, sentiment="NEGATIVE", score=0.95),
                SentimentSegment(start=200.0, end=230.0, sentiment="POSITIVE", score=0.8),
            ],
            quotes=["Quote one", "Quote two", "Quote three", "Quote four"],
            keywords=["pricing", "growth"],
        ))


class TestHeuristic:
    def test_sentiment_peaks_then_quotes(self) -> None:
        fx = Fixture()
        drafts = heuristic_drafts(fx.transcript)

        assert len(drafts) == 6
        peaks, quotes = drafts[:3], drafts[3:]

        assert [d.start_time for d in peaks] == [30.0, 200.0, 0.0]
        assert all(d.duration <= 60 for d in peaks)
        assert peaks[0].end_time == 90.0
        assert peaks[0].reason == "High NEGATIVE sentiment (score: 0.95)"
        assert peaks[0].tags == ["negative", "auto-suggested"]

        assert [(q.start_time, q.end_time) for q in quotes] == [(0, 30), (60, 90), (120, 150)]
        assert [q.transcript_excerpt for q in quotes] == ["Quote one", "Quote two", "Quote three"]
        assert all(q.tags == ["quote", "auto-suggested"] for q in quotes)

    def test_top_five_only(self) -> None:
        fx = Fixture()
        fx.transcript.quotes = []
        fx.transcript.sentiment_timeline = [
            SentimentSegment(start=i * 10.0, end=i * 10.0 + 5, sentiment="POSITIVE", score=i / 10)
            for i in range(8)
        ]
        drafts = heuristic_drafts(fx.transcript)
        assert [d.start_time for d in drafts] == [70.0, 60.0, 50.0, 40.0, 30.0]

    def test_degenerate_segments_skipped(self) -> None:
        fx = Fixture()
        fx.transcript.quotes = []
        fx.transcript.sentiment_timeline = [SentimentSegment(start=10.0, end=10.0, sentiment="POSITIVE", score=0.99)]
        assert heuristic_drafts(fx.transcript) == []

    def test_excerpt_prefers_words_in_window(self) -> None:
        fx = Fixture()
        fx.transcript.quotes = []
        fx.transcript.sentiment_timeline = [SentimentSegment(start=1.0, end=3.0, sentiment="POSITIVE", score=0.9)]
        fx.transcript.word_timestamps = [
            WordTimestamp(start=0.2, end=0.8, text="before"),
            WordTimestamp(start=1.1, end=1.5, text="hello"),
            WordTimestamp(start=1.6, end=2.4, text="world"),
        ]
        assert heuristic_drafts(fx.transcript)[0].transcript_excerpt == "hello world"

    def test_persists_suggested_clips(self) -> None:
        fx = Fixture()
        result = fx.suggester.suggest(fx.media_id, OWNER, SuggestionMode.HEURISTIC)

        assert result.count == 6
        assert all(c.status == ClipStatus.SUGGESTED and c.rendered_url is None for c in fx.clips.items.values())
        assert fx.llm.calls == []
        assert fx.scheduler.calls == []

    def test_repeated_runs_append(self) -> None:
        fx = Fixture()
        fx.suggester.suggest_heuristic(fx.media_id, OWNER)
        fx.suggester.suggest_heuristic(fx.media_id, OWNER)
        assert len(fx.clips.items) == 12

    def test_incomplete_transcript_rejected(self) -> None:
        fx = Fixture()
        fx.transcript.status = TranscriptStatus.PROCESSING
        with pytest.raises(ValidationError):
            fx.suggester.suggest_heuristic(fx.media_id, OWNER)

    def test_unknown_media(self) -> None:
        fx = Fixture()
        with pytest.raises(RecordNotFoundError):
            fx.suggester.suggest_heuristic("missing", OWNER)


class TestSmart:
    def test_inserts_records_usage_and_schedules_render(self) -> None:
        fx = Fixture(VALID_SMART_PAYLOAD)
        result = fx.suggester.generate_smart_clips(fx.media_id, OWNER)

        assert result.count == 3
        assert result.remaining_quota == 2
        assert fx.quota_repo.counters[OWNER].clips_generated_this_month == 3
        assert [c.reason for c in result.clips] == ["A moment worth sharing"] * 3
        assert result.clips[0].tags == ["motivational", "ai-generated"]

        assert len(fx.scheduler.calls) == 1
        source_url, scheduled = fx.scheduler.calls[0]
        assert source_url == "https://cdn.example.com/u/webinar.mp4"
        assert [c.id for c in scheduled] == [c.id for c in result.clips]

    def test_context_becomes_tag_and_prompt(self) -> None:
        fx = Fixture(VALID_SMART_PAYLOAD)
        result = fx.suggester.generate_smart_clips(fx.media_id, OWNER, context="LinkedIn Reels")

        assert result.clips[0].tags == ["motivational", "ai-generated", "linkedin reels"]
        system_prompt, user_prompt, tool = fx.llm.calls[0]
        assert "User context: LinkedIn Reels" in system_prompt
        assert "pricing" in user_prompt
        assert tool.name == "suggest_clips"

    def test_quota_exhausted_creates_nothing(self) -> None:
        fx = Fixture(VALID_SMART_PAYLOAD, clips_used=5)

        with pytest.raises(QuotaLimitReachedError) as excinfo:
            fx.suggester.generate_smart_clips(fx.media_id, OWNER)

        assert excinfo.value.monthly_limit == 5
        assert fx.llm.calls == []
        assert fx.clips.items == {}
        assert fx.scheduler.calls == []

    def test_sixth_request_after_five_clips_rejected(self) -> None:
        three_clips = {"clips": [smart_clip(0, 40), smart_clip(100, 140), smart_clip(200, 240)]}
        fx = Fixture(three_clips, clips_used=2)

        fx.suggester.generate_smart_clips(fx.media_id, OWNER)
        assert fx.quota_repo.counters[OWNER].clips_generated_this_month == 5

        with pytest.raises(QuotaLimitReachedError):
            fx.suggester.generate_smart_clips(fx.media_id, OWNER)
        assert len(fx.clips.items) == 3

    @pytest.mark.parametrize(
        "payload",
        [
            {"clips": [smart_clip(0, 40), smart_clip(100, 140)]},
            {"clips": [smart_clip(0, 40), smart_clip(100, 140), smart_clip(200, 320)]},
            {"clips": [smart_clip(0, 40), smart_clip(100, 140), smart_clip(200, 210)]},
            {"clips": [smart_clip(0, 40), smart_clip(100, 140), smart_clip(200, 240, category="Boring")]},
            {"clips": [smart_clip(-5, 40), smart_clip(100, 140), smart_clip(200, 240)]},
            {"clips": [smart_clip(i * 100, i * 100 + 40) for i in range(8)]},
            {"suggestions": []},
        ],
    )
    def test_schema_mismatch_rejected(self, payload) -> None:
        fx = Fixture(payload)

        with pytest.raises(StructuredOutputError):
            fx.suggester.generate_smart_clips(fx.media_id, OWNER)

        assert fx.clips.items == {}
        assert fx.quota_repo.counters[OWNER].clips_generated_this_month == 0

    def test_suggest_dispatches_smart_mode(self) -> None:
        fx = Fixture(VALID_SMART_PAYLOAD)
        result = fx.suggester.suggest(fx.media_id, OWNER, SuggestionMode.SMART)
        assert result.mode == SuggestionMode.SMART
        assert result.count == 3


class TestAutoTag:
    def test_failure_on_one_clip_is_skipped(self) -> None:
        fx = Fixture(
            {"tags": ["Leadership", "Inspiring", "Leadership", " ", "Growth", "Sales", "Demo", "Extra"]},
            StructuredOutputError("AI did not return a tool call"),
        )
        first, second = fx.clips.insert_clips(fx.media_id, OWNER, heuristic_drafts(fx.transcript)[:2])

        tagged = fx.suggester.auto_tag_clips([first.id, second.id], OWNER)

        assert tagged == {first.id: ["Leadership", "Inspiring", "Growth", "Sales", "Demo"]}
        assert fx.clips.items[first.id].tags == ["Leadership", "Inspiring", "Growth", "Sales", "Demo"]
        assert fx.clips.items[second.id].tags == ["positive", "auto-suggested"]

    def test_invalid_payload_skipped(self) -> None:
        fx = Fixture({"labels": ["x"]})
        clip = fx.clips.insert_clips(fx.media_id, OWNER, heuristic_drafts(fx.transcript)[:1])[0]

        assert fx.suggester.auto_tag_clips([clip.id], OWNER) == {}
        assert fx.clips.tag_updates == []

    def test_other_owners_clips_ignored(self) -> None:
        fx = Fixture({"tags": ["Leadership"]})
        clip = fx.clips.insert_clips(fx.media_id, "someone-else", heuristic_drafts(fx.transcript)[:1])[0]

        assert fx.suggester.auto_tag_clips([clip.id], OWNER) == {}
        assert fx.llm.calls == []
