# src/app/services/content_generator.py
"""
Platform-specific text generation from a completed transcript.

One structured call produces every requested platform at once; results are
cached per (transcript prefix, platforms, tone) and every call persists its
artifacts, cached or not.
"""
from __future__ import annotations

import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from src.app.domain.errors import (
    GenerationError,
    RecordNotFoundError,
    StructuredOutputError,
    UpstreamUnavailableError,
    ValidationError,
)
from src.app.domain.models import ContentArtifact, Platform, TranscriptStatus
from src.app.infra.db.base import ContentRepository, TranscriptRepository
from src.app.infra.llm.base import GenerativeTextClient, ToolSpec
from src.app.services.response_cache import NullCache, ResponseCache

logger = logging.getLogger(__name__)

MAX_TRANSCRIPT_CHARS = 10_000
TRUNCATION_MARKER = "\n\n...[transcript truncated for length]"
CACHE_KEY_PREFIX_CHARS = 100
DEFAULT_TONE = "professional"

PLATFORM_INSTRUCTIONS: dict[Platform, str] = {
    Platform.LINKEDIN: "LinkedIn: 150-250 word professional post with line breaks. Strong hook, actionable insights.",
    Platform.TWITTER: "Twitter: 2-3 tweet thread. Each tweet at most 280 chars. Punchy hooks, standalone tweets that flow together.",
    Platform.INSTAGRAM: "Instagram: 1-2 sentence caption with 5-8 hashtags. Visual storytelling with strategic emojis.",
    Platform.YOUTUBE: "YouTube: SEO-optimized description with timestamp suggestions and clear CTA.",
    Platform.FACEBOOK: "Facebook: conversational post that invites comments, 80-150 words.",
    Platform.BLOG: "Blog: 500-800 word article with title, 3 subheadings, body, and 3 key takeaways.",
    Platform.SUMMARY: "Summary: 3-4 sentence executive summary of the main points.",
}

PLATFORM_DESCRIPTIONS: dict[Platform, str] = {
    Platform.LINKEDIN: "LinkedIn post (150-250 words)",
    Platform.TWITTER: "2-3 tweet thread, each tweet at most 280 chars",
    Platform.INSTAGRAM: "Short caption with hashtags",
    Platform.YOUTUBE: "SEO-optimized video description",
    Platform.FACEBOOK: "Conversational Facebook post",
    Platform.BLOG: "Blog article (500-800 words)",
    Platform.SUMMARY: "3-4 sentence executive summary",
}

SYSTEM_PROMPT = (
    "You are an expert content strategist. Create platform-optimized content that is "
    "concise, distinct, and actionable. Write in a {tone} tone.{persona}"
)


@dataclass
class GenerationResult:
    generated: dict[str, str]
    artifacts: list[ContentArtifact] = field(default_factory=list)
    diagnostics: dict[str, Any] = field(default_factory=dict)


def truncate_transcript(text: str, limit: int = MAX_TRANSCRIPT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def cache_key(transcript: str, platforms: Sequence[Platform], tone: str) -> tuple[str, tuple[str, ...], str]:
    return (
        transcript[:CACHE_KEY_PREFIX_CHARS],
        tuple(sorted(p.value for p in platforms)),
        tone,
    )


def parse_platforms(values: Sequence[str]) -> list[Platform]:
    """Map raw platform names to ``Platform``, keeping order and dropping duplicates."""
    if not values:
        raise ValidationError("Missing or invalid platforms array")

    platforms: list[Platform] = []
    for value in values:
        try:
            platform = Platform(str(value).strip().lower())
        except ValueError as error:
            raise ValidationError(f"Unsupported platform: {value}") from error
        if platform not in platforms:
            platforms.append(platform)
    return platforms


def build_content_tool(platforms: Sequence[Platform]) -> ToolSpec:
    return ToolSpec(
        name="create_platform_content",
        description="Generate content optimized for specific platforms",
        parameters={
            "type": "object",
            "properties": {
                p.value: {"type": "string", "description": PLATFORM_DESCRIPTIONS[p]}
                for p in platforms
            },
            "required": [p.value for p in platforms],
            "additionalProperties": False,
        },
    )


def build_prompts(transcript: str, platforms: Sequence[Platform], tone: str, persona: Optional[str]) -> tuple[str, str]:
    persona_context = (
        f" Target audience: {persona}. Adapt your language and messaging accordingly." if persona else ""
    )
    system_prompt = SYSTEM_PROMPT.format(tone=tone, persona=persona_context)

    instructions = "\n".join(PLATFORM_INSTRUCTIONS[p] for p in platforms)
    user_prompt = (
        "Based on this transcript, create content for each requested platform.\n\n"
        f"TRANSCRIPT:\n{transcript}\n\n"
        f"PLATFORMS TO CREATE:\n{instructions}\n\n"
        f"TONE: {tone}\n\n"
        "Create concise, distinct content for each platform. Be specific and actionable."
    )
    return system_prompt, user_prompt


def validate_generated(raw: dict[str, Any], platforms: Sequence[Platform]) -> dict[str, str]:
    """Keep requested platforms only; every one must carry non-empty text."""
    generated: dict[str, str] = {}
    for platform in platforms:
        text = raw.get(platform.value)
        if not isinstance(text, str) or not text.strip():
            raise GenerationError(
                f"Failed to generate content: missing output for {platform.value}",
                platforms=[p.value for p in platforms],
            )
        generated[platform.value] = text.strip()
    return generated


class ContentGenerator:
    def __init__(
        self,
        llm: GenerativeTextClient,
        transcripts: TranscriptRepository,
        contents: ContentRepository,
        cache: Optional[ResponseCache] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.llm = llm
        self.transcripts = transcripts
        self.contents = contents
        self.cache = cache or NullCache()
        self._clock = clock

    def generate_for_media(
        self,
        media_id: str,
        owner_id: str,
        platforms: Sequence[str],
        tone: str = DEFAULT_TONE,
        persona: Optional[str] = None,
    ) -> GenerationResult:
        transcript = self.transcripts.get_by_media(media_id, owner_id=owner_id)
        if transcript is None:
            raise RecordNotFoundError("transcript", media_id)
        if transcript.status != TranscriptStatus.COMPLETED:
            raise ValidationError("Transcript is not completed yet", step="input")
        if not (transcript.full_text or "").strip():
            raise ValidationError("Transcript has no speech to generate content from", step="input")

        result = self.generate(transcript.full_text, platforms, tone=tone, persona=persona)
        result.artifacts = self._persist(media_id, owner_id, result, tone, persona)
        return result

    def generate(
        self,
        transcript: str,
        platforms: Sequence[str],
        tone: str = DEFAULT_TONE,
        persona: Optional[str] = None,
    ) -> GenerationResult:
        """
        Generate text for every requested platform.

        Args:
            transcript: Completed transcript text
            platforms: Platform names (see ``Platform``)
            tone: Writing tone, e.g. "professional"
            persona: Optional target audience

        Returns:
            GenerationResult keyed by platform name, not yet persisted

        Raises:
            ValidationError: On empty transcript, platforms or tone
            RateLimitedError / QuotaExhaustedError: Passed through from the text service
            GenerationError: Any other generation failure
        """
        started = self._clock()

        if not transcript or not transcript.strip():
            raise ValidationError("Missing or invalid transcript field")
        requested = parse_platforms(platforms)
        tone = (tone or "").strip()
        if not tone:
            raise ValidationError("Missing tone")
        persona = persona.strip() if persona and persona.strip() else None

        key = cache_key(transcript, requested, tone)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("content.cache_hit platforms=%s tone=%s", ",".join(p.value for p in requested), tone)
            return GenerationResult(
                generated=dict(cached),
                diagnostics={
                    "cached": True,
                    "total_time_ms": self._elapsed_ms(started),
                    "platforms_generated": len(cached),
                },
            )

        truncated = truncate_transcript(transcript)
        system_prompt, user_prompt = build_prompts(truncated, requested, tone, persona)
        logger.info(
            "content.generate_started platforms=%s tone=%s chars=%d truncated_chars=%d",
            ",".join(p.value for p in requested),
            tone,
            len(transcript),
            len(truncated),
        )

        ai_started = self._clock()
        try:
            raw = self.llm.call_tool(system_prompt, user_prompt, build_content_tool(requested))
        except (UpstreamUnavailableError, StructuredOutputError) as error:
            raise GenerationError(
                f"Failed to generate content for {', '.join(p.value for p in requested)}: {error.message}",
                platforms=[p.value for p in requested],
            ) from error
        ai_ms = self._elapsed_ms(ai_started)

        generated = validate_generated(raw, requested)
        self.cache.set(key, dict(generated))

        diagnostics = {
            "cached": False,
            "total_time_ms": self._elapsed_ms(started),
            "ai_generation_ms": ai_ms,
            "tokens_used_estimate": math.ceil(len(truncated) / 4),
            "platforms_generated": len(generated),
        }
        logger.info("content.generate_done platforms=%d ai_ms=%d", len(generated), ai_ms)
        return GenerationResult(generated=generated, diagnostics=diagnostics)

    def list_for_media(self, media_id: str, owner_id: str) -> list[ContentArtifact]:
        return self.contents.list_artifacts(media_id, owner_id)

    def _persist(
        self,
        media_id: str,
        owner_id: str,
        result: GenerationResult,
        tone: str,
        persona: Optional[str],
    ) -> list[ContentArtifact]:
        artifacts = [
            ContentArtifact(
                id=str(uuid.uuid4()),
                media_id=media_id,
                owner_id=owner_id,
                content_type=Platform(name).content_type,
                platform=Platform(name),
                tone=tone.strip() or DEFAULT_TONE,
                body=body,
                prompt_used=f"Generate {name} content with {tone} tone",
                model_id=self.llm.model_id,
                persona=persona,
            )
            for name, body in result.generated.items()
        ]
        saved = self.contents.insert_artifacts(artifacts)
        logger.info("content.persisted media=%s rows=%d cached=%s", media_id, len(saved), result.diagnostics.get("cached"))
        return saved

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)
