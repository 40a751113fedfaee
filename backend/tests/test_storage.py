"""
Tests for blob storage, thumbnails and file tracking.
"""

import asyncio
import io
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(__file__))))

from conftest import PNG_B64, PNG_DATA_URL, FakeS3Client, png_bytes
from PIL import Image

from backend import config
from backend.storage import (
    BlobStore,
    VisualStorage,
    fetch_image_as_base64,
    make_thumbnail,
    original_path,
    parse_data_url,
    thumbnail_path,
)


class TestDataUrls:
    def test_parse(self):
        mime, data = parse_data_url(PNG_DATA_URL)
        assert mime == "image/png"
        assert data.startswith(b"\x89PNG")

    @pytest.mark.parametrize("url", ["data:image/png,abc", "data:image/png;base64,", "not a data url"])
    def test_invalid(self, url):
        with pytest.raises(ValueError, match="Invalid data URL format"):
            parse_data_url(url)

    def test_fetch_data_url_as_base64(self):
        data, mime = asyncio.run(fetch_image_as_base64(PNG_DATA_URL))
        assert (data, mime) == (PNG_B64, "image/png")

    def test_fetch_unsupported_scheme(self):
        with pytest.raises(RuntimeError, match="Failed to fetch image"):
            asyncio.run(fetch_image_as_base64("ftp://example.com/a.png"))


class TestThumbnails:
    def test_fits_within_bounds(self):
        thumb = make_thumbnail(png_bytes(size=(1200, 600)))
        with Image.open(io.BytesIO(thumb)) as img:
            assert img.format == "JPEG"
            assert img.size == (300, 150)

    def test_small_images_are_not_enlarged(self):
        with Image.open(io.BytesIO(make_thumbnail(png_bytes(size=(64, 48))))) as img:
            assert img.size == (64, 48)


class TestPaths:
    def test_project_segment(self):
        assert original_path("u", "p1", "v") == "users/u/visuals/p1/v/original.jpg"
        assert original_path("u", None, "v") == "users/u/visuals/dashboard/v/original.jpg"
        assert thumbnail_path("u", None, "v") == "users/u/thumbnails/dashboard/v.jpg"


class TestVisualStorage:
    def test_upload_with_thumbnail(self, storage, s3):
        result = storage.upload_visual_image("u1", None, "v1", png_bytes(), "image/png", metadata={"model": "m"})

        assert result.original_path == "users/u1/visuals/dashboard/v1/original.jpg"
        assert result.original_url == "https://cdn.example.com/visuals/users/u1/visuals/dashboard/v1/original.jpg"
        assert result.thumbnail_path == "users/u1/thumbnails/dashboard/v1.jpg"
        assert s3.objects[result.original_path]["ContentType"] == "image/png"
        assert s3.objects[result.original_path]["Metadata"] == {"user_id": "u1", "visual_id": "v1", "model": "m"}
        assert s3.objects[result.thumbnail_path]["ContentType"] == "image/jpeg"

    def test_thumbnail_failure_keeps_original(self, storage, s3):
        result = storage.upload_visual_image("u1", "p1", "v1", b"not an image")
        assert result.thumbnail_url is None
        assert list(s3.objects) == ["users/u1/visuals/p1/v1/original.jpg"]

    def test_upload_without_thumbnail(self, storage, s3):
        storage.upload_visual_image("u1", None, "v1", png_bytes(), generate_thumbnail=False)
        assert len(s3.objects) == 1

    def test_upload_error_propagates(self, session_factory):
        class BrokenClient(FakeS3Client):
            def put_object(self, **kwargs):
                raise ConnectionError("bucket unreachable")

        storage = VisualStorage(BlobStore("visuals", public_base_url="https://cdn", client=BrokenClient()), session_factory)
        with pytest.raises(ConnectionError):
            storage.upload_visual_image("u1", None, "v1", png_bytes())

    def test_reupload_overwrites(self, storage, s3):
        storage.upload_visual_image("u1", None, "v1", png_bytes(color=(0, 0, 0)))
        storage.upload_visual_image("u1", None, "v1", png_bytes(color=(255, 255, 255)))
        assert len(s3.objects) == 2
        assert storage.get_user_storage_usage("u1").file_count == 2

    def test_upload_from_data_url(self, storage, s3):
        result = asyncio.run(storage.upload_image_from_url("u1", None, "v1", PNG_DATA_URL))
        assert s3.objects[result.original_path]["ContentType"] == "image/png"

    def test_delete_visual_images(self, storage, s3):
        for image_id in ("v1", "v1_1", "v1_2", "v10"):
            storage.upload_visual_image("u1", None, image_id, png_bytes())

        removed = storage.delete_visual_images("u1", None, "v1")

        assert removed == 6
        assert sorted(s3.objects) == [
            "users/u1/thumbnails/dashboard/v10.jpg",
            "users/u1/visuals/dashboard/v10/original.jpg",
        ]
        assert storage.get_user_storage_usage("u1").file_count == 2

    def test_delete_user_files(self, storage, s3):
        storage.upload_visual_image("u1", None, "v1", png_bytes())
        storage.upload_visual_image("u2", None, "v1", png_bytes())
        assert storage.delete_user_files("u1") == 2
        assert all(k.startswith("users/u2/") for k in s3.objects)

    def test_storage_usage(self, storage):
        data = png_bytes()
        result = storage.upload_visual_image("u1", None, "v1", data, generate_thumbnail=False)
        usage = storage.get_user_storage_usage("u1")
        assert usage.file_count == 1
        assert usage.total_bytes == len(data) == result.size
        assert storage.get_user_storage_usage("nobody").total_bytes == 0

    def test_signed_url(self, storage):
        assert storage.get_signed_url("users/u1/x.jpg", 60) == "https://signed.example.com/visuals/users/u1/x.jpg?expires=60"


class TestBlobStoreConfig:
    def test_from_env_requires_endpoint(self, monkeypatch):
        monkeypatch.setattr(config, "STORAGE_ENDPOINT_URL", None)
        with pytest.raises(RuntimeError, match="Storage not configured"):
            BlobStore.from_env()

    def test_from_env_requires_keys(self, monkeypatch):
        monkeypatch.setattr(config, "STORAGE_ENDPOINT_URL", "https://storage.example.com")
        monkeypatch.setattr(config, "STORAGE_ACCESS_KEY_ID", None)
        with pytest.raises(RuntimeError, match="Storage not configured"):
            BlobStore.from_env()

    def test_public_url_defaults_to_endpoint(self):
        blob = BlobStore("visuals", endpoint_url="https://storage.example.com/", client=FakeS3Client())
        assert blob.public_url("a/b.jpg") == "https://storage.example.com/visuals/a/b.jpg"

    def test_delete_batches(self):
        class CountingClient(FakeS3Client):
            batches = []

            def delete_objects(self, Bucket, Delete):
                self.batches.append(len(Delete["Objects"]))

        client = CountingClient()
        BlobStore("visuals", client=client).delete([f"k{i}" for i in range(2500)])
        assert client.batches == [1000, 1000, 500]
