"""Blob storage for generated visuals.

``BlobStore`` is a thin wrapper around an S3-compatible bucket (the hosted
storage service exposes an S3 endpoint). ``VisualStorage`` layers the
visual path convention, thumbnails and file tracking on top of it.

Object layout::

    users/{user_id}/visuals/{project_id|dashboard}/{visual_id}/original.jpg
    users/{user_id}/thumbnails/{project_id|dashboard}/{visual_id}.jpg

Uploads overwrite existing keys. Upload errors propagate; file-tracking
bookkeeping is best-effort.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass
from typing import Optional

import boto3
import httpx
from botocore.config import Config
from PIL import Image

from backend import config
from backend.repositories import StorageUsage, VisualFileRepository

logger = logging.getLogger(__name__)

THUMBNAIL_SIZE = (300, 300)
DEFAULT_PROJECT_SEGMENT = "dashboard"

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<b64>;base64)?,(?P<data>.*)$", re.DOTALL)


def parse_data_url(url: str) -> tuple[str, bytes]:
    """Split a base64 data URL into (mime_type, bytes)."""
    match = _DATA_URL_RE.match(url)
    if not match or not match.group("b64") or not match.group("data"):
        raise ValueError("Invalid data URL format")
    try:
        data = base64.b64decode(match.group("data"), validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValueError("Invalid data URL format") from e
    return match.group("mime") or "image/jpeg", data


async def fetch_image_bytes(url: str, timeout: Optional[float] = None) -> tuple[bytes, str]:
    """Resolve a data URL or fetch an http(s) URL. Returns (bytes, mime_type)."""
    if url.startswith("data:"):
        mime, data = parse_data_url(url)
        return data, mime
    if not url.startswith(("http://", "https://")):
        raise ValueError(f"Unsupported image URL scheme: {url[:16]}")
    async with httpx.AsyncClient(timeout=timeout or config.IMAGE_FETCH_TIMEOUT, follow_redirects=True) as client:
        response = await client.get(url)
    if response.status_code >= 400:
        raise RuntimeError(f"Failed to fetch image: HTTP {response.status_code}")
    mime = response.headers.get("content-type", "image/jpeg").split(";")[0].strip()
    return response.content, mime


async def fetch_image_as_base64(url: str) -> tuple[str, str]:
    """Image at ``url`` as (base64, mime_type); data URLs are decoded in place."""
    try:
        data, mime = await fetch_image_bytes(url)
    except Exception as e:
        raise RuntimeError(f"Failed to fetch image: {e}") from e
    return base64.b64encode(data).decode("ascii"), mime


def make_thumbnail(data: bytes, size: tuple[int, int] = THUMBNAIL_SIZE) -> bytes:
    """JPEG thumbnail fitting within ``size``, preserving aspect ratio."""
    with Image.open(io.BytesIO(data)) as img:
        img = img.convert("RGB")
        img.thumbnail(size)
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=80, optimize=True)
        return out.getvalue()


class BlobStore:
    """S3-compatible bucket access."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region: str = "us-east-1",
        public_base_url: Optional[str] = None,
        client=None,
    ):
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.public_base_url = (public_base_url or endpoint_url or "").rstrip("/")
        if client is None:
            session = boto3.session.Session()
            client = session.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                region_name=region,
                config=Config(s3={"addressing_style": "path"}, signature_version="s3v4"),
            )
        self.client = client

    @classmethod
    def from_env(cls) -> "BlobStore":
        if not config.STORAGE_ENDPOINT_URL:
            raise RuntimeError("Storage not configured: STORAGE_ENDPOINT_URL is required")
        if not config.STORAGE_ACCESS_KEY_ID or not config.STORAGE_SECRET_ACCESS_KEY:
            raise RuntimeError("Storage not configured: STORAGE_ACCESS_KEY_ID and STORAGE_SECRET_ACCESS_KEY are required")
        return cls(
            bucket=config.STORAGE_BUCKET,
            endpoint_url=config.STORAGE_ENDPOINT_URL,
            access_key_id=config.STORAGE_ACCESS_KEY_ID,
            secret_access_key=config.STORAGE_SECRET_ACCESS_KEY,
            region=config.STORAGE_REGION,
            public_base_url=config.STORAGE_PUBLIC_BASE_URL,
        )

    def put(self, key: str, data: bytes, content_type: str, metadata: Optional[dict[str, str]] = None) -> None:
        kwargs = {"Bucket": self.bucket, "Key": key, "Body": data, "ContentType": content_type}
        if metadata:
            kwargs["Metadata"] = {k: str(v) for k, v in metadata.items()}
        self.client.put_object(**kwargs)

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{self.bucket}/{key}"

    def list_objects(self, prefix: str) -> list[tuple[str, int]]:
        """All (key, size) pairs under ``prefix``."""
        items: list[tuple[str, int]] = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                items.append((obj["Key"], int(obj.get("Size", 0))))
        return items

    def delete(self, keys: list[str]) -> None:
        # DeleteObjects accepts at most 1000 keys per call
        for start in range(0, len(keys), 1000):
            batch = keys[start:start + 1000]
            self.client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
            )

    def presign_get(self, key: str, expires_in: int = 3600) -> str:
        return self.client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=int(expires_in),
        )


@dataclass
class UploadResult:
    original_url: str
    original_path: str
    size: int
    thumbnail_url: Optional[str] = None
    thumbnail_path: Optional[str] = None


def original_path(user_id: str, project_id: Optional[str], visual_id: str) -> str:
    return f"users/{user_id}/visuals/{project_id or DEFAULT_PROJECT_SEGMENT}/{visual_id}/original.jpg"


def thumbnail_path(user_id: str, project_id: Optional[str], visual_id: str) -> str:
    return f"users/{user_id}/thumbnails/{project_id or DEFAULT_PROJECT_SEGMENT}/{visual_id}.jpg"


class VisualStorage:
    """Visual image uploads, thumbnails and usage tracking."""

    def __init__(self, blob: BlobStore, session_factory):
        self.blob = blob
        self._session_factory = session_factory

    def upload_visual_image(
        self,
        user_id: str,
        project_id: Optional[str],
        visual_id: str,
        data: bytes,
        content_type: str = "image/jpeg",
        generate_thumbnail: bool = True,
        metadata: Optional[dict] = None,
    ) -> UploadResult:
        path = original_path(user_id, project_id, visual_id)
        object_metadata = {"user_id": user_id, "visual_id": visual_id, **(metadata or {})}
        self.blob.put(path, data, content_type, object_metadata)
        result = UploadResult(original_url=self.blob.public_url(path), original_path=path, size=len(data))

        if generate_thumbnail:
            try:
                thumb = make_thumbnail(data)
                thumb_key = thumbnail_path(user_id, project_id, visual_id)
                self.blob.put(thumb_key, thumb, "image/jpeg", {"user_id": user_id, "visual_id": visual_id})
                result.thumbnail_url = self.blob.public_url(thumb_key)
                result.thumbnail_path = thumb_key
                self._track_file(user_id, project_id, visual_id, thumb_key, len(thumb), "image/jpeg", "thumbnail")
            except Exception as e:
                logger.warning("Thumbnail generation failed for %s: %s", visual_id, e)

        self._track_file(user_id, project_id, visual_id, path, len(data), content_type, "original")
        logger.info("Uploaded visual %s (%d bytes)", path, len(data))
        return result

    async def upload_image_from_url(
        self,
        user_id: str,
        project_id: Optional[str],
        visual_id: str,
        url: str,
        generate_thumbnail: bool = True,
        metadata: Optional[dict] = None,
    ) -> UploadResult:
        data, mime = await fetch_image_bytes(url)
        return await asyncio.to_thread(
            self.upload_visual_image,
            user_id, project_id, visual_id, data,
            content_type=mime, generate_thumbnail=generate_thumbnail, metadata=metadata,
        )

    def delete_visual_images(self, user_id: str, project_id: Optional[str], visual_id: str) -> int:
        """Delete a visual's originals and thumbnails. Returns objects removed.

        Multi-image visuals store their images as ``{visual_id}_{n}``; those
        are removed along with the visual itself.
        """
        segment = project_id or DEFAULT_PROJECT_SEGMENT
        prefixes = (
            f"users/{user_id}/visuals/{segment}/{visual_id}/",
            f"users/{user_id}/visuals/{segment}/{visual_id}_",
            f"users/{user_id}/thumbnails/{segment}/{visual_id}.",
            f"users/{user_id}/thumbnails/{segment}/{visual_id}_",
        )
        keys = [key for prefix in prefixes for key, _ in self.blob.list_objects(prefix)]
        if keys:
            self.blob.delete(keys)
        self._untrack_visual(user_id, visual_id)
        return len(keys)

    def delete_user_files(self, user_id: str) -> int:
        keys = [key for key, _ in self.blob.list_objects(f"users/{user_id}/")]
        if keys:
            self.blob.delete(keys)
        return len(keys)

    def get_signed_url(self, path: str, expires_in: int = 3600) -> str:
        return self.blob.presign_get(path, expires_in)

    def get_user_storage_usage(self, user_id: str) -> StorageUsage:
        db = self._session_factory()
        try:
            return VisualFileRepository(db).storage_usage(user_id)
        except Exception:
            logger.exception("Failed to compute storage usage for %s", user_id)
            return StorageUsage()
        finally:
            db.close()

    def _track_file(self, user_id, project_id, visual_id, path, size, content_type, file_type) -> None:
        db = self._session_factory()
        try:
            VisualFileRepository(db).create(
                user_id=user_id,
                visual_id=visual_id,
                file_path=path,
                file_size=size,
                content_type=content_type,
                file_type=file_type,
                project_id=project_id,
            )
            db.commit()
        except Exception as e:
            db.rollback()
            logger.warning("File tracking failed for %s: %s", path, e)
        finally:
            db.close()

    def _untrack_visual(self, user_id: str, visual_id: str) -> None:
        db = self._session_factory()
        try:
            VisualFileRepository(db).delete_for_visual(user_id, visual_id)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.warning("Failed to remove file records for %s: %s", visual_id, e)
        finally:
            db.close()
