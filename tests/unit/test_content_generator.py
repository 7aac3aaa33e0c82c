from __future__ import annotations

import pytest

from src.app.domain.errors import (
    GenerationError,
    QuotaExhaustedError,
    RateLimitedError,
    RecordNotFoundError,
    StructuredOutputError,
    ValidationError,
)
from src.app.domain.models import ContentType, Platform, Transcript, TranscriptStatus
from src.app.services.content_generator import (
    MAX_TRANSCRIPT_CHARS,
    TRUNCATION_MARKER,
    ContentGenerator,
    build_content_tool,
    cache_key,
    parse_platforms,
    truncate_transcript,
)
from src.app.services.response_cache import InMemoryTTLCache
from tests.unit.stubs import ContentRepositoryStub, ManualClock, TextClientStub, TranscriptRepositoryStub

TRANSCRIPT = "Welcome to the webinar. Today we talk about pricing experiments and how to run them."
GENERATED = {
    "linkedin": "Pricing experiments changed how we grow.",
    "twitter": "1/ Pricing is a product.\n2/ Test it like one.",
}


def make_generator(
    llm: TextClientStub,
    transcripts: TranscriptRepositoryStub | None = None,
    contents: ContentRepositoryStub | None = None,
    cache: InMemoryTTLCache | None = None,
) -> ContentGenerator:
    return ContentGenerator(
        llm=llm,
        transcripts=transcripts or TranscriptRepositoryStub(),
        contents=contents or ContentRepositoryStub(),
        cache=cache or InMemoryTTLCache(),
    )


def completed_transcript(repo: TranscriptRepositoryStub, text: str = TRANSCRIPT) -> Transcript:
    return repo.add(Transcript(
        id="t-1",
        media_id="m-1",
        owner_id="u-1",
        external_job_id="job-1",
        status=TranscriptStatus.COMPLETED,
        full_text=text,
    ))


class TestHelpers:
    def test_short_transcript_untouched(self) -> None:
        assert truncate_transcript("abc") == "abc"

    def test_long_transcript_truncated_with_marker(self) -> None:
        text = "x" * (MAX_TRANSCRIPT_CHARS + 50)
        truncated = truncate_transcript(text)
        assert truncated == "x" * MAX_TRANSCRIPT_CHARS + TRUNCATION_MARKER

    def test_exact_limit_untouched(self) -> None:
        text = "y" * MAX_TRANSCRIPT_CHARS
        assert truncate_transcript(text) == text

    def test_cache_key_ignores_platform_order(self) -> None:
        a = cache_key(TRANSCRIPT, [Platform.TWITTER, Platform.LINKEDIN], "professional")
        b = cache_key(TRANSCRIPT, [Platform.LINKEDIN, Platform.TWITTER], "professional")
        assert a == b
        assert a[0] == TRANSCRIPT[:100]

    def test_parse_platforms_rejects_unknown(self) -> None:
        with pytest.raises(ValidationError):
            parse_platforms(["linkedin", "myspace"])

    def test_parse_platforms_dedupes(self) -> None:
        assert parse_platforms(["LinkedIn", "linkedin", "blog"]) == [Platform.LINKEDIN, Platform.BLOG]

    def test_tool_requires_requested_platforms(self) -> None:
        tool = build_content_tool([Platform.LINKEDIN, Platform.TWITTER])
        assert tool.name == "create_platform_content"
        assert tool.parameters["required"] == ["linkedin", "twitter"]
        assert set(tool.parameters["properties"]) == {"linkedin", "twitter"}


class TestGenerate:
    def test_returns_exactly_requested_platforms(self) -> None:
        llm = TextClientStub({**GENERATED, "blog": "not requested"})
        result = make_generator(llm).generate(TRANSCRIPT, ["linkedin", "twitter"], tone="professional")

        assert set(result.generated) == {"linkedin", "twitter"}
        assert result.diagnostics["cached"] is False
        assert result.diagnostics["platforms_generated"] == 2
        assert result.diagnostics["tokens_used_estimate"] == -(-len(TRANSCRIPT) // 4)

    def test_second_identical_call_is_cached(self) -> None:
        llm = TextClientStub(GENERATED)
        generator = make_generator(llm)

        first = generator.generate(TRANSCRIPT, ["linkedin", "twitter"], tone="professional")
        second = generator.generate(TRANSCRIPT, ["twitter", "linkedin"], tone="professional")

        assert len(llm.calls) == 1
        assert second.diagnostics["cached"] is True
        assert second.generated == first.generated

    def test_different_tone_misses_cache(self) -> None:
        llm = TextClientStub(GENERATED)
        generator = make_generator(llm)

        generator.generate(TRANSCRIPT, ["linkedin", "twitter"], tone="professional")
        generator.generate(TRANSCRIPT, ["linkedin", "twitter"], tone="casual")

        assert len(llm.calls) == 2

    def test_cache_expires_after_ttl(self) -> None:
        clock = ManualClock()
        llm = TextClientStub(GENERATED)
        generator = make_generator(llm, cache=InMemoryTTLCache(ttl_seconds=3600, clock=clock))

        generator.generate(TRANSCRIPT, ["linkedin", "twitter"])
        clock.advance(3601)
        result = generator.generate(TRANSCRIPT, ["linkedin", "twitter"])

        assert len(llm.calls) == 2
        assert result.diagnostics["cached"] is False

    def test_persona_and_tone_in_system_prompt(self) -> None:
        llm = TextClientStub({"summary": "Short summary."})
        make_generator(llm).generate(TRANSCRIPT, ["summary"], tone="casual", persona="startup founders")

        system_prompt, user_prompt, _ = llm.calls[0]
        assert "casual" in system_prompt
        assert "startup founders" in system_prompt
        assert "Summary: 3-4 sentence" in user_prompt

    def test_long_transcript_sent_truncated(self) -> None:
        llm = TextClientStub({"summary": "ok"})
        make_generator(llm).generate("z" * 20_000, ["summary"])

        _, user_prompt, _ = llm.calls[0]
        assert TRUNCATION_MARKER in user_prompt
        assert "z" * 10_001 not in user_prompt

    def test_missing_platform_names_it(self) -> None:
        llm = TextClientStub({"linkedin": "only linkedin"})

        with pytest.raises(GenerationError) as excinfo:
            make_generator(llm).generate(TRANSCRIPT, ["linkedin", "twitter"])

        assert "twitter" in excinfo.value.message
        assert excinfo.value.platforms == ["linkedin", "twitter"]

    def test_blank_platform_text_rejected(self) -> None:
        llm = TextClientStub({"linkedin": "   "})
        with pytest.raises(GenerationError):
            make_generator(llm).generate(TRANSCRIPT, ["linkedin"])

    @pytest.mark.parametrize("error", [RateLimitedError(), QuotaExhaustedError()])
    def test_rate_and_payment_errors_pass_through(self, error) -> None:
        llm = TextClientStub(error)
        with pytest.raises(type(error)):
            make_generator(llm).generate(TRANSCRIPT, ["linkedin"])

    def test_malformed_answer_becomes_generation_error(self) -> None:
        llm = TextClientStub(StructuredOutputError("AI did not return a tool call"))
        with pytest.raises(GenerationError) as excinfo:
            make_generator(llm).generate(TRANSCRIPT, ["blog"])
        assert "blog" in excinfo.value.message

    @pytest.mark.parametrize(
        "transcript,platforms,tone",
        [("", ["linkedin"], "professional"), (TRANSCRIPT, [], "professional"), (TRANSCRIPT, ["linkedin"], "  ")],
    )
    def test_invalid_input(self, transcript, platforms, tone) -> None:
        llm = TextClientStub(GENERATED)
        with pytest.raises(ValidationError):
            make_generator(llm).generate(transcript, platforms, tone=tone)
        assert llm.calls == []

    def test_failed_generation_is_not_cached(self) -> None:
        llm = TextClientStub({"linkedin": ""}, GENERATED)
        generator = make_generator(llm)

        with pytest.raises(GenerationError):
            generator.generate(TRANSCRIPT, ["linkedin", "twitter"])
        result = generator.generate(TRANSCRIPT, ["linkedin", "twitter"])

        assert result.diagnostics["cached"] is False
        assert len(llm.calls) == 2


class TestGenerateForMedia:
    def test_persists_one_row_per_platform(self) -> None:
        transcripts, contents = TranscriptRepositoryStub(), ContentRepositoryStub()
        completed_transcript(transcripts)
        llm = TextClientStub(GENERATED)

        result = make_generator(llm, transcripts, contents).generate_for_media(
            "m-1", "u-1", ["linkedin", "twitter"], tone="professional"
        )

        assert len(contents.items) == 2
        assert {a.platform for a in contents.items} == {Platform.LINKEDIN, Platform.TWITTER}
        assert all(a.content_type == ContentType.SOCIAL for a in contents.items)
        assert all(a.model_id == "stub-model" for a in contents.items)
        assert len(result.artifacts) == 2

    def test_blog_stored_as_blog_type(self) -> None:
        transcripts, contents = TranscriptRepositoryStub(), ContentRepositoryStub()
        completed_transcript(transcripts)
        llm = TextClientStub({"blog": "# Title\n\nBody"})

        make_generator(llm, transcripts, contents).generate_for_media("m-1", "u-1", ["blog"])

        assert contents.items[0].content_type == ContentType.BLOG

    def test_cache_hit_still_persists(self) -> None:
        transcripts, contents = TranscriptRepositoryStub(), ContentRepositoryStub()
        completed_transcript(transcripts)
        llm = TextClientStub(GENERATED)
        generator = make_generator(llm, transcripts, contents)

        generator.generate_for_media("m-1", "u-1", ["linkedin", "twitter"])
        second = generator.generate_for_media("m-1", "u-1", ["linkedin", "twitter"])

        assert second.diagnostics["cached"] is True
        assert len(contents.items) == 4
        assert len(llm.calls) == 1

    def test_unknown_media(self) -> None:
        with pytest.raises(RecordNotFoundError):
            make_generator(TextClientStub(GENERATED)).generate_for_media("missing", "u-1", ["linkedin"])

    def test_transcript_not_completed(self) -> None:
        transcripts = TranscriptRepositoryStub()
        transcripts.add(Transcript(id="t", media_id="m-1", owner_id="u-1", external_job_id="j"))

        with pytest.raises(ValidationError):
            make_generator(TextClientStub(GENERATED), transcripts).generate_for_media("m-1", "u-1", ["linkedin"])

    def test_completed_silent_transcript(self) -> None:
        transcripts = TranscriptRepositoryStub()
        completed_transcript(transcripts, text="")
        llm = TextClientStub(GENERATED)

        with pytest.raises(ValidationError) as excinfo:
            make_generator(llm, transcripts).generate_for_media("m-1", "u-1", ["linkedin"])

        assert "no speech" in excinfo.value.message
        assert llm.calls == []
