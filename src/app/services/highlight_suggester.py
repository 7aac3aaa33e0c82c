# src/app/services/highlight_suggester.py
"""
Clip suggestions from a completed transcript.

Two modes:
- heuristic: sentiment peaks plus the stored quotes, no external calls
- smart: one structured call to the generative text service, quota bound
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic import ValidationError as SchemaValidationError

from src.app.domain.errors import PipelineError, RecordNotFoundError, StructuredOutputError, ValidationError
from src.app.domain.models import (
    Clip,
    ClipDraft,
    Media,
    SentimentSegment,
    SuggestionMode,
    Transcript,
    TranscriptStatus,
)
from src.app.infra.db.base import ClipRepository, MediaRepository, TranscriptRepository
from src.app.infra.llm.base import GenerativeTextClient, ToolSpec
from src.app.services.quota_service import QuotaService

logger = logging.getLogger(__name__)

TOP_SENTIMENT_PEAKS = 5
MAX_HEURISTIC_CLIP_SECONDS = 60.0
MAX_QUOTE_CLIPS = 3
QUOTE_SLOT_SECONDS = 60.0
QUOTE_CLIP_SECONDS = 30.0
EXCERPT_CHARS_PER_SECOND = 10

SMART_MIN_CLIPS = 3
SMART_MAX_CLIPS = 7
SMART_MIN_SECONDS = 30.0
SMART_MAX_SECONDS = 90.0
MAX_AUTO_TAGS = 5

RenderScheduler = Callable[[str, list[Clip]], None]


class ClipCategory(str, Enum):
    MOTIVATIONAL = "Motivational"
    INSIGHTFUL = "Insightful"
    FUNNY = "Funny"
    EDUCATIONAL = "Educational"
    STORY = "Story"
    QUOTE = "Quote"


class SuggestedClip(BaseModel):
    start_time: float = Field(ge=0)
    end_time: float
    title: str = Field(min_length=1)
    category: ClipCategory
    reason: str = ""
    transcript_excerpt: str = ""

    @model_validator(mode="after")
    def _check_span(self) -> "SuggestedClip":
        span = self.end_time - self.start_time
        if not SMART_MIN_SECONDS <= span <= SMART_MAX_SECONDS:
            raise ValueError(
                f"clip must span {SMART_MIN_SECONDS:g}-{SMART_MAX_SECONDS:g}s, got {span:g}s"
            )
        return self


class ClipSuggestionPayload(BaseModel):
    clips: list[SuggestedClip] = Field(min_length=SMART_MIN_CLIPS, max_length=SMART_MAX_CLIPS)


class ClipTagPayload(BaseModel):
    tags: list[str] = Field(min_length=1)


SUGGEST_CLIPS_TOOL = ToolSpec(
    name="suggest_clips",
    description="Return 3-7 video clip suggestions from transcript",
    parameters={
        "type": "object",
        "properties": {
            "clips": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "start_time": {"type": "number", "description": "Start time in seconds"},
                        "end_time": {"type": "number", "description": "End time in seconds (30-90s duration)"},
                        "title": {"type": "string", "description": "Catchy title, 5-8 words"},
                        "category": {"type": "string", "enum": [c.value for c in ClipCategory]},
                        "reason": {"type": "string", "description": "Why this moment is valuable"},
                        "transcript_excerpt": {"type": "string", "description": "Key part of transcript"},
                    },
                    "required": ["start_time", "end_time", "title", "category", "reason", "transcript_excerpt"],
                },
            },
        },
        "required": ["clips"],
    },
)

TAG_CLIP_TOOL = ToolSpec(
    name="tag_clip",
    description="Return up to 5 tags describing a video clip",
    parameters={
        "type": "object",
        "properties": {
            "tags": {
                "type": "array",
                "items": {"type": "string"},
                "maxItems": MAX_AUTO_TAGS,
                "description": "Themes, emotions and topics of the clip",
            },
        },
        "required": ["tags"],
    },
)

SMART_SYSTEM_PROMPT = """You are an expert video editor who identifies the most engaging and valuable moments from transcripts.

Analyze the transcript and identify 3-7 key moments that would make excellent short video clips (30-90 seconds each).

Focus on:
- Emotional peaks (inspiration, humor, insight)
- Key takeaways or actionable advice
- Quotable moments
- Story highlights
- Surprising facts or revelations
{context}
For each clip, provide start_time and end_time in seconds, a catchy 5-8 word title,
a category (Motivational, Insightful, Funny, Educational, Story, or Quote), the reason
this moment is valuable and the key transcript excerpt."""

TAG_SYSTEM_PROMPT = "You are an expert content analyst."

TAG_USER_PROMPT = """Analyze this video clip transcript and generate tags.

Transcript: {excerpt}

Generate tags in these categories:
1. Themes (e.g., "Leadership", "Innovation", "Sales Strategy")
2. Emotions (e.g., "Inspiring", "Urgent", "Educational")
3. Topics (e.g., "Product Demo", "Customer Success", "Market Trends")

Limit to 5 most relevant tags."""


@dataclass
class SuggestionResult:
    mode: SuggestionMode
    clips: list[Clip] = field(default_factory=list)
    remaining_quota: Optional[int] = None

    @property
    def count(self) -> int:
        return len(self.clips)


def _excerpt(transcript: Transcript, start: float, end: float) -> str:
    words = [w.text for w in transcript.word_timestamps if w.start >= start and w.end <= end]
    if words:
        return " ".join(words)
    text = transcript.full_text or ""
    return text[int(max(0.0, start) * EXCERPT_CHARS_PER_SECOND):int(end * EXCERPT_CHARS_PER_SECOND)]


def heuristic_drafts(transcript: Transcript) -> list[ClipDraft]:
    """Top sentiment peaks (max 60 s each) followed by up to 3 quote clips."""
    drafts: list[ClipDraft] = []

    segments: list[SentimentSegment] = [s for s in transcript.sentiment_timeline if s.end > s.start and s.start >= 0]
    peaks = sorted(segments, key=lambda s: s.score, reverse=True)[:TOP_SENTIMENT_PEAKS]
    for segment in peaks:
        end = segment.start + min(MAX_HEURISTIC_CLIP_SECONDS, segment.end - segment.start)
        drafts.append(ClipDraft(
            start_time=segment.start,
            end_time=end,
            reason=f"High {segment.sentiment} sentiment (score: {segment.score:.2f})",
            transcript_excerpt=_excerpt(transcript, segment.start, end),
            tags=[segment.sentiment.lower(), "auto-suggested"],
        ))

    # quotes carry no timing, so they get fixed placeholder windows
    for i, quote in enumerate(transcript.quotes[:MAX_QUOTE_CLIPS]):
        drafts.append(ClipDraft(
            start_time=i * QUOTE_SLOT_SECONDS,
            end_time=i * QUOTE_SLOT_SECONDS + QUOTE_CLIP_SECONDS,
            reason="Key quote",
            transcript_excerpt=quote,
            tags=["quote", "auto-suggested"],
        ))

    return drafts


def parse_smart_payload(raw: dict, context: Optional[str]) -> list[ClipDraft]:
    try:
        payload = ClipSuggestionPayload.model_validate(raw)
    except SchemaValidationError as error:
        logger.warning("highlights.invalid_payload errors=%d", error.error_count())
        raise StructuredOutputError(f"AI returned invalid clip suggestions: {error.errors()[0]['msg']}") from error

    context_tag = context.strip().lower() if context and context.strip() else None
    drafts = []
    for item in payload.clips:
        tags = [item.category.value.lower(), "ai-generated"]
        if context_tag:
            tags.append(context_tag)
        drafts.append(ClipDraft(
            start_time=item.start_time,
            end_time=item.end_time,
            reason=item.title,
            transcript_excerpt=item.transcript_excerpt,
            tags=tags,
        ))
    return drafts


def normalize_tags(tags: list[str]) -> list[str]:
    seen: list[str] = []
    for tag in tags:
        cleaned = str(tag).strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen[:MAX_AUTO_TAGS]


class HighlightSuggester:
    def __init__(
        self,
        media: MediaRepository,
        transcripts: TranscriptRepository,
        clips: ClipRepository,
        llm: Optional[GenerativeTextClient] = None,
        quota: Optional[QuotaService] = None,
        schedule_render: Optional[RenderScheduler] = None,
    ):
        self.media = media
        self.transcripts = transcripts
        self.clips = clips
        self.llm = llm
        self.quota = quota
        self.schedule_render = schedule_render

    def suggest(
        self,
        media_id: str,
        owner_id: str,
        mode: SuggestionMode = SuggestionMode.HEURISTIC,
        context: Optional[str] = None,
    ) -> SuggestionResult:
        if mode == SuggestionMode.SMART:
            return self.generate_smart_clips(media_id, owner_id, context=context)
        return self.suggest_heuristic(media_id, owner_id)

    def suggest_heuristic(self, media_id: str, owner_id: str) -> SuggestionResult:
        _, transcript = self._load(media_id, owner_id)
        drafts = heuristic_drafts(transcript)

        inserted = self.clips.insert_clips(media_id, owner_id, drafts) if drafts else []
        logger.info("highlights.heuristic media=%s clips=%d", media_id, len(inserted))
        return SuggestionResult(mode=SuggestionMode.HEURISTIC, clips=inserted)

    def generate_smart_clips(self, media_id: str, owner_id: str, context: Optional[str] = None) -> SuggestionResult:
        """
        AI-selected clips, counted against the monthly quota.

        Raises:
            QuotaLimitReachedError: Before any other work when the quota is used up
            StructuredOutputError: The model's answer does not match the clip schema
        """
        if self.llm is None or self.quota is None:
            raise PipelineError("Smart clips are not configured", step="config")

        self.quota.ensure_allowed(owner_id)
        media, transcript = self._load(media_id, owner_id)

        context_line = f"\nUser context: {context.strip()}\n" if context and context.strip() else ""
        system_prompt = SMART_SYSTEM_PROMPT.format(context=context_line)
        user_prompt = (
            f"Transcript:\n\n{transcript.full_text}\n\n"
            f"Sentiment timeline: {json.dumps([asdict(s) for s in transcript.sentiment_timeline])}\n\n"
            f"Keywords: {json.dumps(transcript.keywords)}"
        )

        raw = self.llm.call_tool(system_prompt, user_prompt, SUGGEST_CLIPS_TOOL)
        drafts = parse_smart_payload(raw, context)

        inserted = self.clips.insert_clips(media_id, owner_id, drafts)
        remaining = self.quota.record_usage(owner_id, len(inserted))
        logger.info("highlights.smart media=%s clips=%d remaining=%d", media_id, len(inserted), remaining)

        if self.schedule_render is not None:
            self.schedule_render(media.source_url, inserted)

        return SuggestionResult(mode=SuggestionMode.SMART, clips=inserted, remaining_quota=remaining)

    def auto_tag_clips(self, clip_ids: list[str], owner_id: str) -> dict[str, list[str]]:
        """
        Replace each clip's tags with AI-generated ones.

        A failure on one clip is logged and that clip keeps its tags.

        Returns:
            Mapping of clip id to its new tags, for the clips that were tagged
        """
        if self.llm is None:
            raise PipelineError("Auto-tagging is not configured", step="config")
        if not clip_ids:
            raise ValidationError("No clips to tag")

        tagged: dict[str, list[str]] = {}
        for clip in self.clips.get_clips(clip_ids, owner_id=owner_id):
            prompt = TAG_USER_PROMPT.format(excerpt=clip.transcript_excerpt or "No transcript available")
            try:
                raw = self.llm.call_tool(TAG_SYSTEM_PROMPT, prompt, TAG_CLIP_TOOL)
                tags = normalize_tags(ClipTagPayload.model_validate(raw).tags)
                if not tags:
                    raise StructuredOutputError("AI returned no tags")
                self.clips.update_tags(clip.id, tags)
            except SchemaValidationError:
                logger.warning("highlights.tagging_failed clip=%s reason=invalid payload", clip.id)
                continue
            except PipelineError as error:
                logger.warning("highlights.tagging_failed clip=%s reason=%s", clip.id, error.message)
                continue
            tagged[clip.id] = tags
            logger.info("highlights.tagged clip=%s tags=%s", clip.id, tags)

        return tagged

    def _load(self, media_id: str, owner_id: str) -> tuple[Media, Transcript]:
        media = self.media.get_media(media_id, owner_id=owner_id)
        if media is None:
            raise RecordNotFoundError("media", media_id)
        transcript = self.transcripts.get_by_media(media_id, owner_id=owner_id)
        if transcript is None:
            raise RecordNotFoundError("transcript", media_id)
        if transcript.status != TranscriptStatus.COMPLETED:
            raise ValidationError("Transcript is not completed yet")
        return media, transcript
