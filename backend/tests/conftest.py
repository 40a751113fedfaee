"""Shared fixtures: per-test sqlite database, fake S3 bucket, scripted image model."""

import base64
import io
import os
import sys
import time

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(__file__))))

# Keep the module-level engine off the filesystem
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from backend.ai.gemini import GeminiImageData, GeminiResponse
from backend.database import init_db
from backend.models_db import User, Visual
from backend.storage import BlobStore, VisualStorage


def png_bytes(size=(64, 48), color=(180, 120, 60)) -> bytes:
    out = io.BytesIO()
    Image.new("RGB", size, color).save(out, format="PNG")
    return out.getvalue()


PNG_B64 = base64.b64encode(png_bytes()).decode("ascii")
PNG_DATA_URL = f"data:image/png;base64,{PNG_B64}"


class _FakePaginator:
    def __init__(self, objects: dict):
        self._objects = objects

    def paginate(self, Bucket, Prefix):
        keys = sorted(k for k in self._objects if k.startswith(Prefix))
        yield {"Contents": [{"Key": k, "Size": len(self._objects[k]["Body"])} for k in keys]}


class FakeS3Client:
    """Just enough of the boto3 S3 client for BlobStore."""

    def __init__(self):
        self.objects: dict[str, dict] = {}

    def put_object(self, Bucket, Key, Body, ContentType, Metadata=None):
        self.objects[Key] = {"Body": Body, "ContentType": ContentType, "Metadata": Metadata or {}}

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return _FakePaginator(self.objects)

    def delete_objects(self, Bucket, Delete):
        for obj in Delete["Objects"]:
            self.objects.pop(obj["Key"], None)

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        return f"https://signed.example.com/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"


class SlowS3Client(FakeS3Client):
    """FakeS3Client whose writes block like a network round trip."""

    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay

    def put_object(self, **kwargs):
        time.sleep(self.delay)
        super().put_object(**kwargs)


class FakeGenerator:
    """Async stand-in for generate_image_with_gemini.

    ``outcomes`` is consumed one entry per call: True returns an image,
    False a failed response. Calls past the end succeed.
    """

    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.calls: list[dict] = []

    async def __call__(self, prompt, aspect_ratio="1:1", reference_images=None, image_size=None):
        self.calls.append({
            "prompt": prompt,
            "aspect_ratio": aspect_ratio,
            "reference_images": list(reference_images or []),
            "image_size": image_size,
        })
        ok = self.outcomes.pop(0) if self.outcomes else True
        if not ok:
            return GeminiResponse(success=False, error="model returned no image")
        return GeminiResponse(success=True, data=GeminiImageData(image_data=PNG_B64, mime_type="image/png"))


@pytest.fixture
def session_factory(tmp_path):
    # File-backed so worker threads each get their own connection
    engine = create_engine(
        f"sqlite:///{tmp_path / 'piktor.db'}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def s3():
    return FakeS3Client()


@pytest.fixture
def storage(s3, session_factory):
    blob = BlobStore("visuals", public_base_url="https://cdn.example.com", client=s3)
    return VisualStorage(blob, session_factory)


@pytest.fixture
def generator():
    return FakeGenerator()


def seed_visual(session_factory, visual_id="visual_1", user_id="user-1", meta=None, prompt="Oslo Sofa in oak"):
    db = session_factory()
    try:
        if db.get(User, user_id) is None:
            db.add(User(id=user_id, email=f"{user_id}@example.com"))
        db.add(Visual(
            visual_id=visual_id,
            user_id=user_id,
            name="Oslo Sofa",
            prompt=prompt,
            original_url=f"https://cdn.example.com/visuals/{visual_id}.jpg",
            meta=meta if meta is not None else {"status": "completed", "size": "1536x1024"},
        ))
        db.commit()
    finally:
        db.close()
