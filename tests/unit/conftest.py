from __future__ import annotations

from typing import Callable
from uuid import uuid4

import pytest

from src.app.domain.models import Clip
from tests.unit.stubs import (
    ClipRepositoryStub,
    ContentRepositoryStub,
    MediaRepositoryStub,
    QuotaRepositoryStub,
    StorageProviderStub,
    TranscriptRepositoryStub,
)


@pytest.fixture
def media_repo() -> MediaRepositoryStub:
    return MediaRepositoryStub()


@pytest.fixture
def transcript_repo() -> TranscriptRepositoryStub:
    return TranscriptRepositoryStub()


@pytest.fixture
def clip_repo() -> ClipRepositoryStub:
    return ClipRepositoryStub()


@pytest.fixture
def content_repo() -> ContentRepositoryStub:
    return ContentRepositoryStub()


@pytest.fixture
def quota_repo() -> QuotaRepositoryStub:
    return QuotaRepositoryStub()


@pytest.fixture
def storage() -> StorageProviderStub:
    return StorageProviderStub()


@pytest.fixture
def make_clip() -> Callable[..., Clip]:
    def _make(start: float = 0.0, end: float = 30.0, owner_id: str = "user-1", media_id: str = "media-1") -> Clip:
        return Clip(
            id=str(uuid4()),
            media_id=media_id,
            owner_id=owner_id,
            start_time=start,
            end_time=end,
            reason="Key moment",
            transcript_excerpt="something worth sharing",
        )
    return _make
