from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from src.app.domain.errors import RecordNotFoundError, StorageError, ValidationError
from src.app.domain.models import ACCEPTED_EXTENSIONS, MediaStatus, extension_for_mime_type
from src.app.infra.transcription.assemblyai import AssemblyAIClient
from src.app.services.media_service import MediaService
from src.app.services.transcription_service import TranscriptionService
from tests.unit.stubs import MediaRepositoryStub, StorageProviderStub, TranscriptRepositoryStub


@pytest.fixture
def spooled(tmp_path: Path) -> Path:
    path = tmp_path / "upload.tmp"
    path.write_bytes(b"RIFF....WAVE")
    return path


class TestUpload:
    def test_stores_file_and_creates_row(self, media_repo: MediaRepositoryStub, storage: StorageProviderStub, spooled: Path) -> None:
        media = MediaService(media_repo, storage).upload("user-1", " Q3 Webinar ", "my talk.wav", spooled)

        assert media.title == "Q3 Webinar"
        assert media.mime_type == "audio/wav"
        assert media.size_bytes == spooled.stat().st_size

        (key, (data, content_type)), = storage.uploaded.items()
        assert key.startswith("user-1/")
        assert key.endswith("_my_talk.wav")
        assert data == b"RIFF....WAVE"
        assert content_type == "audio/wav"
        assert media.source_url == f"https://cdn.example.com/{key}"
        assert media_repo.items[media.id] is media

    def test_rejects_oversized(self, media_repo, storage, spooled: Path) -> None:
        service = MediaService(media_repo, storage, max_upload_bytes=4)

        with pytest.raises(ValidationError):
            service.upload("user-1", "Webinar", "talk.wav", spooled)

        assert storage.uploaded == {}
        assert media_repo.items == {}

    def test_rejects_unsupported_type(self, media_repo, storage, spooled: Path) -> None:
        with pytest.raises(ValidationError):
            MediaService(media_repo, storage).upload("user-1", "Deck", "deck.pptx", spooled)
        assert storage.uploaded == {}

    def test_storage_failure_creates_no_row(self, media_repo, spooled: Path) -> None:
        service = MediaService(media_repo, StorageProviderStub(fail_keys=("user-1/",)))

        with pytest.raises(StorageError):
            service.upload("user-1", "Webinar", "talk.wav", spooled)

        assert media_repo.items == {}


class TestLookup:
    def test_get_is_owner_scoped(self, media_repo, storage) -> None:
        media = media_repo.create_media("user-1", "Webinar", "https://cdn.example.com/a.mp4", 10, "video/mp4")
        service = MediaService(media_repo, storage)

        assert service.get(media.id, "user-1") is media
        with pytest.raises(RecordNotFoundError):
            service.get(media.id, "user-2")

    def test_list_pages(self, media_repo, storage) -> None:
        for i in range(3):
            media_repo.create_media("user-1", f"Webinar {i}", f"https://cdn.example.com/{i}.mp4", 10, "video/mp4")
        media_repo.create_media("user-2", "Other", "https://cdn.example.com/x.mp4", 10, "video/mp4")

        service = MediaService(media_repo, storage)
        assert [m.title for m in service.list("user-1", limit=2)] == ["Webinar 0", "Webinar 1"]
        assert [m.title for m in service.list("user-1", limit=2, offset=2)] == ["Webinar 2"]


def speech_api(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"id": "job-1"})


UPLOADS = [(f"talk{extension}", mime_type) for extension, mime_type in ACCEPTED_EXTENSIONS.items()] + [
    ("recording", "video/mp4"),
    ("voice memo", "audio/x-m4a"),
    ("talk.mkv", "video/webm"),
]


class TestUploadThenTranscribe:
    @pytest.mark.parametrize("filename,mime_type", UPLOADS)
    def test_every_accepted_upload_starts_a_transcript(
        self,
        filename: str,
        mime_type: str,
        media_repo: MediaRepositoryStub,
        transcript_repo: TranscriptRepositoryStub,
        storage: StorageProviderStub,
        spooled: Path,
    ) -> None:
        media = MediaService(media_repo, storage).upload("user-1", "Webinar", filename, spooled, mime_type=mime_type)
        speech = AssemblyAIClient("key", http_client=httpx.Client(transport=httpx.MockTransport(speech_api)))

        started = TranscriptionService(speech, media_repo, transcript_repo).start_transcription(media.id, "user-1")

        assert started.job_id == "job-1"
        assert len(transcript_repo.items) == 1
        assert media.source_url.endswith(extension_for_mime_type(media.mime_type))
        assert media_repo.items[media.id].status == MediaStatus.TRANSCRIBING

    def test_unknown_client_type_falls_back_to_extension(self, media_repo, storage, spooled: Path) -> None:
        media = MediaService(media_repo, storage).upload(
            "user-1", "Webinar", "talk.mkv", spooled, mime_type="application/octet-stream"
        )

        assert media.mime_type == "video/x-matroska"
        assert media.source_url.endswith("_talk.mkv")
