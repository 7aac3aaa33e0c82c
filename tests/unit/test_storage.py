from __future__ import annotations

from pathlib import Path

import pytest
from botocore.exceptions import ClientError

from src.app.domain.errors import StorageError
from src.app.infra.storage.base import StorageProvider
from src.app.infra.storage.r2_provider import R2StorageProvider


class S3ClientStub:
    def __init__(self, denied: tuple[str, ...] = ()) -> None:
        self.denied = denied
        self.uploads: list[dict] = []
        self.deleted: list[str] = []

    def upload_file(self, Filename, Bucket, Key, ExtraArgs) -> None:
        if Key in self.denied:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
        self.uploads.append({"Filename": Filename, "Bucket": Bucket, "Key": Key, **ExtraArgs})

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn) -> str:
        return f"https://signed.example.com/{Params['Key']}?expires={ExpiresIn}"

    def delete_object(self, Bucket, Key) -> None:
        if Key in self.denied:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "DeleteObject")
        self.deleted.append(Key)


def make_provider(client: S3ClientStub, public_url: str | None = "https://media.example.com/") -> R2StorageProvider:
    return R2StorageProvider(bucket_name="webinars", public_url=public_url, client=client)


class TestObjectKeys:
    def test_media_key_is_user_scoped_and_sanitized(self) -> None:
        key = make_provider(S3ClientStub()).generate_object_key("user-1", "Q3 review (final).mp4")
        owner, name = key.split("/")
        assert owner == "user-1"
        assert name.endswith("_Q3_review__final_.mp4")

    def test_clip_key(self) -> None:
        assert StorageProvider.clip_object_key("c1", 12.5, 42.0) == "clips/c1_12.5-42.mp4"


class TestR2StorageProvider:
    def test_upload_file_sets_content_type(self, tmp_path: Path) -> None:
        source = tmp_path / "clip.mp4"
        source.write_bytes(b"mp4")
        client = S3ClientStub()

        key = make_provider(client).upload_file("clips/c1_0-30.mp4", source, "video/mp4")

        assert key == "clips/c1_0-30.mp4"
        assert client.uploads == [{
            "Filename": str(source),
            "Bucket": "webinars",
            "Key": "clips/c1_0-30.mp4",
            "ContentType": "video/mp4",
        }]

    def test_upload_failure(self, tmp_path: Path) -> None:
        source = tmp_path / "clip.mp4"
        source.write_bytes(b"mp4")
        with pytest.raises(StorageError):
            make_provider(S3ClientStub(denied=("k",))).upload_file("k", source, "video/mp4")

    def test_public_url_uses_public_domain(self) -> None:
        assert make_provider(S3ClientStub()).get_public_url("clips/a.mp4") == "https://media.example.com/clips/a.mp4"

    def test_public_url_falls_back_to_presigned(self) -> None:
        url = make_provider(S3ClientStub(), public_url=None).get_public_url("clips/a.mp4")
        assert url.startswith("https://signed.example.com/clips/a.mp4")

    def test_delete_object(self) -> None:
        client = S3ClientStub(denied=("secret",))
        provider = make_provider(client)

        assert provider.delete_object("clips/a.mp4") is True
        assert provider.delete_object("secret") is False
        assert client.deleted == ["clips/a.mp4"]

    def test_missing_configuration(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("R2_ACCOUNT_ID", "R2_ACCESS_KEY_ID", "R2_SECRET_ACCESS_KEY", "R2_BUCKET_NAME"):
            monkeypatch.delenv(name, raising=False)
        with pytest.raises(StorageError):
            R2StorageProvider()
