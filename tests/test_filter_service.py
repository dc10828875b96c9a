"""Tests for the filter pipeline stages and their invariants."""

from __future__ import annotations

import numpy as np
import pytest

from conftest import photo_pixels
from outliner.models.kernel import Kernel, MAX_WEIGHT
from outliner.models.pipeline_config import PipelineConfig
from outliner.models.raster_buffer import RasterBuffer
from outliner.services.filter_service import FilterService


@pytest.fixture
def service() -> FilterService:
    return FilterService()


def gray(rows) -> RasterBuffer:
    return RasterBuffer(np.asarray(rows, dtype=np.uint8))


# ─── Individual stages ───────────────────────────────────────────────
def test_grayscale_uses_luminance_weights(service) -> None:
    rgb = np.zeros((1, 3, 3), dtype=np.uint8)
    rgb[0, 0] = (255, 255, 255)
    rgb[0, 1] = (0, 0, 0)
    rgb[0, 2] = (0, 255, 0)

    out = service.to_grayscale(RasterBuffer(rgb))

    assert out.channels == 1
    assert out.pixels[0, 0] == 255
    assert out.pixels[0, 1] == 0
    assert out.pixels[0, 2] == 150  # 0.587 * 255


def test_grayscale_carries_alpha(service) -> None:
    rgba = np.zeros((2, 2, 4), dtype=np.uint8)
    rgba[..., 3] = 40

    out = service.to_grayscale(RasterBuffer(rgba))

    assert out.channels == 2
    assert np.all(out.pixels[..., 1] == 40)


def test_uniform_image_convolves_to_zero(service) -> None:
    flat = gray(np.full((20, 30), 123))

    out = service.convolve(flat, Kernel.from_rows([[-1, -1, -1], [-1, 8, -1], [-1, -1, -1]]))

    assert (out.width, out.height) == (30, 20)
    assert np.all(out.pixels == 0)


def test_convolution_flips_the_kernel_and_replicates_borders(service) -> None:
    src = gray([[10, 20, 30, 40]] * 3)
    shift_right = Kernel.from_rows([[0, 0, 0], [0, 0, 1], [0, 0, 0]])

    out = service.convolve(src, shift_right)

    assert out.pixels.tolist() == [[10, 10, 20, 30]] * 3


@pytest.mark.parametrize("centre", [1000, -1000])
def test_convolution_clamps_instead_of_wrapping(service, centre) -> None:
    src = gray(np.tile(np.arange(0, 256, 4), (8, 1)))
    kernel = Kernel.from_rows([[0, 0, 0], [0, centre, 0], [0, 0, 0]])

    out = service.convolve(src, kernel).pixels

    if centre > 0:
        assert out[0, 0] == 0
        assert np.all(out[:, 1:] == 255)
    else:
        assert np.all(out == 0)


def test_extreme_weights_saturate_without_nan(service) -> None:
    src = gray(np.repeat(np.arange(0, 240, 30)[:, None], 6, axis=1))
    m = MAX_WEIGHT
    kernel = Kernel.from_rows([[-m, -m, -m], [0, 0, 0], [m, m, m]])

    out = service.convolve(src, kernel).pixels

    assert np.unique(out).tolist() in ([0], [255])


def test_binarize_is_strictly_greater_than(service) -> None:
    out = service.binarize(gray([[0, 100, 101, 255]]), threshold=100)

    assert out.pixels.tolist() == [[0, 0, 255, 255]]


def test_flatten_composites_onto_white(service) -> None:
    la = np.zeros((1, 3, 2), dtype=np.uint8)
    la[0, :, 1] = (0, 255, 128)

    out = service.flatten(RasterBuffer(la))

    assert out.channels == 1
    assert out.pixels[0, 0] == 255   # fully transparent → white
    assert out.pixels[0, 1] == 0     # opaque black stays black
    assert out.pixels[0, 2] == 127


def test_invert(service) -> None:
    assert service.invert(gray([[0, 55, 255]])).pixels.tolist() == [[255, 200, 0]]


def test_sharpen_keeps_binary_images_binary(service) -> None:
    stripes = np.zeros((10, 10), dtype=np.uint8)
    stripes[:, ::3] = 255

    out = service.sharpen(gray(stripes)).pixels

    assert set(np.unique(out)) <= {0, 255}
    assert np.array_equal(out, stripes)


def test_sharpen_raises_local_contrast(service) -> None:
    ramp = gray(np.tile(np.array([50] * 5 + [150] * 5), (5, 1)))

    out = service.sharpen(ramp).pixels

    assert out[2, 4] < 50
    assert out[2, 5] > 150


def test_stages_do_not_mutate_their_input(service) -> None:
    src = RasterBuffer(photo_pixels(40, 30))
    before = src.pixels.copy()

    service.apply(src, PipelineConfig(threshold=30))

    assert np.array_equal(src.pixels, before)


# ─── Whole pipeline ──────────────────────────────────────────────────
def test_pipeline_output_is_single_channel_same_size(service) -> None:
    src = RasterBuffer(photo_pixels(64, 48))

    out = service.apply(src, PipelineConfig())

    assert (out.width, out.height, out.channels) == (64, 48, 1)
    assert out.pixels.dtype == np.uint8


def test_pipeline_is_deterministic(service) -> None:
    src = RasterBuffer(photo_pixels(64, 48))
    config = PipelineConfig(threshold=40)

    first = service.apply(src, config)
    second = service.apply(src, config)

    assert first.data == second.data


def test_uniform_image_becomes_flat_background(service) -> None:
    src = RasterBuffer(np.full((20, 20, 3), 200, dtype=np.uint8))

    inverted = service.apply(src, PipelineConfig())
    raw = service.apply(src, PipelineConfig(invert_polarity=False))

    assert np.all(inverted.pixels == 255)
    assert np.all(raw.pixels == 0)


def test_transparent_regions_end_up_white(service) -> None:
    rgba = np.zeros((16, 16, 4), dtype=np.uint8)
    rgba[4:12, 4:12] = (0, 0, 0, 255)

    out = service.apply(RasterBuffer(rgba), PipelineConfig(invert_polarity=False))

    assert out.channels == 1
    assert out.pixels[0, 0] == 255


def test_stage_order(service) -> None:
    names = [name for name, _ in service.build_stages(PipelineConfig(threshold=10))]
    assert names == ["grayscale", "convolve", "binarize", "flatten", "invert", "sharpen"]

    names = [name for name, _ in service.build_stages(PipelineConfig(invert_polarity=False))]
    assert names == ["grayscale", "convolve", "flatten", "sharpen"]
