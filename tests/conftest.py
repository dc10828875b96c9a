"""Shared fixtures: synthetic images and an in-memory blob store."""

from __future__ import annotations

from io import BytesIO
from typing import Dict, Optional

import numpy as np
import pytest
from PIL import Image as PILImage

from outliner.errors import FetchError, StoreError
from outliner.models.deadline import Deadline
from outliner.models.image_reference import ImageReference
from outliner.services.image_service import ImageService


def encode_image(pixels: np.ndarray, fmt: str = "PNG", **kwargs) -> bytes:
    out = BytesIO()
    PILImage.fromarray(pixels).save(out, format=fmt, **kwargs)
    return out.getvalue()


def photo_pixels(width: int, height: int) -> np.ndarray:
    """Smooth RGB gradient with a dark rectangle in the middle."""
    xs = np.linspace(0, 255, width, dtype=np.float32)
    ys = np.linspace(0, 255, height, dtype=np.float32)
    r = np.tile(xs, (height, 1))
    g = np.tile(ys[:, None], (1, width))
    b = np.full((height, width), 128, dtype=np.float32)
    rgb = np.dstack([r, g, b]).astype(np.uint8)
    rgb[height // 4: 3 * height // 4, width // 4: 3 * width // 4] = 20
    return rgb


def square_pixels(size: int = 100, lo: int = 30, hi: int = 70) -> np.ndarray:
    """White canvas with a black square, grayscale."""
    px = np.full((size, size), 255, dtype=np.uint8)
    px[lo:hi, lo:hi] = 0
    return px


class FakeBlobRepository:
    """Dict-backed stand-in for BlobRepository."""

    def __init__(self, objects: Optional[Dict[str, bytes]] = None, fail_store: bool = False):
        self.objects = dict(objects or {})
        self.stored: Dict[str, bytes] = {}
        self.fail_store = fail_store
        self.fetch_calls = []

    def fetch(self, reference: ImageReference, deadline: Deadline, auth_token: Optional[str] = None) -> bytes:
        self.fetch_calls.append((reference.locator, auth_token))
        value = self.objects.get(reference.locator)
        if value is None:
            raise FetchError(f"No stored object for key: {reference}")
        if isinstance(value, Exception):
            raise value
        return value

    def store(self, data: bytes, content_type: str) -> ImageReference:
        if self.fail_store:
            raise StoreError("bucket unavailable")
        key = f"result-{len(self.stored)}"
        self.stored[key] = data
        return ImageReference(key)


@pytest.fixture
def photo_jpeg() -> bytes:
    return encode_image(photo_pixels(1600, 1200), "JPEG", quality=90)


@pytest.fixture
def photo_png() -> bytes:
    return encode_image(photo_pixels(320, 240), "PNG")


@pytest.fixture
def square_png() -> bytes:
    return encode_image(square_pixels(), "PNG")


@pytest.fixture
def uniform_png() -> bytes:
    return encode_image(np.full((60, 80, 3), 140, dtype=np.uint8), "PNG")


@pytest.fixture
def fake_blobs(photo_jpeg, photo_png, square_png, uniform_png) -> FakeBlobRepository:
    return FakeBlobRepository({
        "photo.jpg": photo_jpeg,
        "photo.png": photo_png,
        "square.png": square_png,
        "uniform.png": uniform_png,
        "notes.txt": b"definitely not an image",
    })


@pytest.fixture
def image_service(fake_blobs) -> ImageService:
    return ImageService(blob_repository=fake_blobs)
