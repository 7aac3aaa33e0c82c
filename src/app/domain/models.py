# src/app/domain/models.py
"""
Domain models for the media pipeline.
These are pure data structures with no infrastructure dependencies.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class UploadStage(str, Enum):
    """Coarse stages of the upload flow, in pipeline order."""
    UPLOAD = "upload"
    CHECKING = "checking"
    PREPARING = "preparing"
    PROCESSING = "processing"
    TRANSCRIBING = "transcribing"
    ANALYZING = "analyzing"
    GENERATING = "generating"
    SUCCESS = "success"

    @property
    def order(self) -> int:
        return list(UploadStage).index(self)


class MediaStatus(str, Enum):
    UPLOADED = "uploaded"
    TRANSCRIBING = "transcribing"
    TRANSCRIBED = "transcribed"
    ERROR = "error"


class TranscriptStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class ClipStatus(str, Enum):
    SUGGESTED = "suggested"
    CREATED = "created"


class ContentType(str, Enum):
    BLOG = "blog"
    SOCIAL = "social"


class Platform(str, Enum):
    LINKEDIN = "linkedin"
    TWITTER = "twitter"
    INSTAGRAM = "instagram"
    YOUTUBE = "youtube"
    BLOG = "blog"
    FACEBOOK = "facebook"
    SUMMARY = "summary"

    @property
    def content_type(self) -> ContentType:
        return ContentType.BLOG if self is Platform.BLOG else ContentType.SOCIAL


class SuggestionMode(str, Enum):
    HEURISTIC = "heuristic"
    SMART = "smart"


class SubscriptionTier(str, Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


UNLIMITED = -1

MONTHLY_CLIP_LIMITS: dict[SubscriptionTier, int] = {
    SubscriptionTier.FREE: 5,
    SubscriptionTier.PRO: 30,
    SubscriptionTier.ENTERPRISE: UNLIMITED,
}

# Media formats accepted at upload and by the speech API (extension -> canonical MIME type)
ACCEPTED_EXTENSIONS: dict[str, str] = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
    ".mkv": "video/x-matroska",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
}

MIME_TYPE_ALIASES: dict[str, str] = {
    "audio/mp3": "audio/mpeg",
    "audio/x-wav": "audio/wav",
    "audio/wave": "audio/wav",
    "audio/x-m4a": "audio/mp4",
    "audio/x-flac": "audio/flac",
    "video/ogg": "audio/ogg",
}

ACCEPTED_MIME_TYPES = frozenset(ACCEPTED_EXTENSIONS.values()) | frozenset(MIME_TYPE_ALIASES)


def extension_for_mime_type(mime_type: str) -> Optional[str]:
    """File extension for an accepted MIME type, None for anything else."""
    canonical = MIME_TYPE_ALIASES.get(mime_type.lower(), mime_type.lower())
    for extension, accepted in ACCEPTED_EXTENSIONS.items():
        if accepted == canonical:
            return extension
    return None


@dataclass
class WordTimestamp:
    start: float  # seconds
    end: float    # seconds
    text: str
    confidence: Optional[float] = None


@dataclass
class SpeakerSegment:
    """Aggregated turn count for one named speaker."""
    name: str
    segments: int


@dataclass
class SentimentSegment:
    start: float  # seconds
    end: float    # seconds
    sentiment: str
    score: float


@dataclass
class Media:
    id: str
    owner_id: str
    title: str
    source_url: str
    size_bytes: int
    mime_type: str
    status: MediaStatus = MediaStatus.UPLOADED
    duration_seconds: Optional[float] = None
    created_at: Optional[datetime] = None


@dataclass
class Transcript:
    """
    Structured speech-to-text output for a Media.
    ``full_text`` is set only once the transcript is completed.
    """
    id: str
    media_id: str
    owner_id: str
    external_job_id: str
    status: TranscriptStatus = TranscriptStatus.PROCESSING
    full_text: Optional[str] = None
    word_timestamps: list[WordTimestamp] = field(default_factory=list)
    speaker_segments: list[SpeakerSegment] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    quotes: list[str] = field(default_factory=list)
    sentiment_timeline: list[SentimentSegment] = field(default_factory=list)
    created_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (TranscriptStatus.COMPLETED, TranscriptStatus.ERROR)


@dataclass
class NormalizedTranscript:
    """Completed transcription payload, already converted to seconds."""
    full_text: str
    word_timestamps: list[WordTimestamp]
    speaker_segments: list[SpeakerSegment]
    keywords: list[str]
    quotes: list[str]
    sentiment_timeline: list[SentimentSegment]
    duration_seconds: Optional[float] = None


@dataclass
class ClipDraft:
    """A clip suggestion that has not been persisted yet."""
    start_time: float
    end_time: float
    reason: str
    transcript_excerpt: str
    tags: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.start_time < 0 or self.end_time <= self.start_time:
            raise ValueError(
                f"Invalid clip window: start={self.start_time} end={self.end_time}"
            )

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass
class Clip:
    id: str
    media_id: str
    owner_id: str
    start_time: float
    end_time: float
    reason: str
    transcript_excerpt: str
    tags: list[str] = field(default_factory=list)
    status: ClipStatus = ClipStatus.SUGGESTED
    rendered_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def is_rendered(self) -> bool:
        return self.status == ClipStatus.CREATED and self.rendered_url is not None


@dataclass
class ContentArtifact:
    id: str
    media_id: str
    owner_id: str
    content_type: ContentType
    platform: Platform
    tone: str
    body: str
    prompt_used: str
    model_id: str
    persona: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class QuotaCounter:
    user_id: str
    clips_generated_this_month: int = 0
    last_reset_date: Optional[datetime] = None


@dataclass
class QuotaCheck:
    """Result of a quota check operation."""
    allowed: bool
    tier: SubscriptionTier
    monthly_limit: int
    clips_generated: int

    @property
    def remaining(self) -> int:
        if self.monthly_limit == UNLIMITED:
            return UNLIMITED
        return max(0, self.monthly_limit - self.clips_generated)


@dataclass
class Collection:
    id: str
    owner_id: str
    name: str
    clip_ids: list[str] = field(default_factory=list)
    created_at: Optional[datetime] = None


@dataclass
class UploadJob:
    """Client-held state of one upload flow run."""
    title: str
    source_path: str
    stage: UploadStage = UploadStage.UPLOAD
    progress_percent: float = 0.0
    media_id: Optional[str] = None
    diagnostics: dict[str, Any] = field(default_factory=dict)
