"""Tests for the encoder: MIME types, filenames and the no-alpha guarantee."""

from __future__ import annotations

from io import BytesIO

import numpy as np
import pytest
from PIL import Image as PILImage

from conftest import FakeBlobRepository, square_pixels
from outliner.models.pipeline_config import OutputFormat, PipelineConfig
from outliner.models.raster_buffer import RasterBuffer
from outliner.services.encoder_service import EncoderService
from outliner.services.image_service import ImageService


@pytest.fixture
def encoder() -> EncoderService:
    return EncoderService(image_service=ImageService(blob_repository=FakeBlobRepository()))


@pytest.mark.parametrize("fmt,pil_format", [(OutputFormat.PNG, "PNG"), (OutputFormat.JPEG, "JPEG")])
def test_raster_formats_are_decodable(encoder, fmt, pil_format) -> None:
    artifact = encoder.encode(RasterBuffer(square_pixels()), PipelineConfig(output_format=fmt))

    assert artifact.mime_type == fmt.mime_type
    assert artifact.filename == f"processed.{fmt.value}"
    with PILImage.open(BytesIO(artifact.data)) as img:
        assert img.format == pil_format
        assert img.size == (100, 100)


def test_svg_artifact(encoder) -> None:
    artifact = encoder.encode(RasterBuffer(square_pixels()), PipelineConfig(output_format=OutputFormat.SVG))

    assert artifact.mime_type == "image/svg+xml"
    assert artifact.filename == "processed.svg"
    assert b"<svg" in artifact.data
    assert b"<path" in artifact.data


def test_alpha_is_flattened_before_encoding(encoder) -> None:
    la = np.zeros((8, 8, 2), dtype=np.uint8)  # black, fully transparent

    artifact = encoder.encode(RasterBuffer(la), PipelineConfig(output_format=OutputFormat.PNG))

    with PILImage.open(BytesIO(artifact.data)) as img:
        assert img.mode == "L"
        assert "transparency" not in img.info
        assert np.all(np.array(img) == 255)
