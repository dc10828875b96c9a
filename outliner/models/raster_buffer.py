from __future__ import annotations
from dataclasses import dataclass
import numpy as np


VALID_CHANNELS = (1, 2, 3, 4)


@dataclass(frozen=True)
class RasterBuffer:
    """
    Plain pixel container: uint8 samples in row-major order.
    pixels has shape (H, W) for a single channel, (H, W, C) otherwise.
    Channels: 1 = gray, 2 = gray + alpha, 3 = RGB, 4 = RGBA.
    """
    pixels: np.ndarray

    def __post_init__(self):
        pixels = self.pixels
        if pixels.dtype != np.uint8:
            raise ValueError(f"RasterBuffer needs uint8 samples, got {pixels.dtype}")
        if pixels.ndim == 3 and pixels.shape[2] == 1:
            pixels = pixels[:, :, 0]
        if pixels.ndim not in (2, 3):
            raise ValueError(f"RasterBuffer needs a 2-D or 3-D array, got shape {pixels.shape}")
        if pixels.ndim == 3 and pixels.shape[2] not in VALID_CHANNELS:
            raise ValueError(f"Unsupported channel count: {pixels.shape[2]}")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise ValueError("RasterBuffer cannot be empty")
        # each buffer owns its samples; no aliasing with the caller's array
        object.__setattr__(self, "pixels", np.ascontiguousarray(pixels).copy())

    @classmethod
    def from_bytes(cls, data: bytes, width: int, height: int, channels: int) -> "RasterBuffer":
        if channels not in VALID_CHANNELS:
            raise ValueError(f"Unsupported channel count: {channels}")
        if len(data) != width * height * channels:
            raise ValueError(
                f"Expected {width * height * channels} bytes for "
                f"{width}x{height}x{channels}, got {len(data)}"
            )
        arr = np.frombuffer(data, dtype=np.uint8)
        shape = (height, width) if channels == 1 else (height, width, channels)
        return cls(arr.reshape(shape))

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])

    @property
    def has_alpha(self) -> bool:
        return self.channels in (2, 4)

    @property
    def data(self) -> bytes:
        return self.pixels.tobytes()
