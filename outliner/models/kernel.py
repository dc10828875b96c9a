from __future__ import annotations
from dataclasses import dataclass
from typing import Sequence, Tuple
import math
import numpy as np

from outliner.errors import InvalidKernelError

# largest float32; any weight up to this convolves without overflow in float64
MAX_WEIGHT = float(np.finfo(np.float32).max)


@dataclass(frozen=True)
class Kernel:
    """
    Immutable convolution weights, row-major.
    Dimensions must be odd so the anchor sits on the centre sample.
    """
    weights: Tuple[float, ...]
    width: int = 3
    height: int = 3

    def __post_init__(self):
        if not isinstance(self.width, int) or not isinstance(self.height, int):
            raise InvalidKernelError("Kernel dimensions must be integers")
        if self.width <= 0 or self.height <= 0:
            raise InvalidKernelError(f"Kernel dimensions must be positive, got {self.width}x{self.height}")
        if self.width % 2 == 0 or self.height % 2 == 0:
            raise InvalidKernelError(f"Kernel dimensions must be odd, got {self.width}x{self.height}")
        try:
            raw = tuple(self.weights)
        except TypeError as err:
            raise InvalidKernelError(f"Kernel weights must be a sequence: {err}") from err
        if any(isinstance(w, (str, bytes, bool)) for w in raw):
            raise InvalidKernelError("Kernel weights must be numbers")
        try:
            weights = tuple(float(w) for w in raw)
        except (TypeError, ValueError, OverflowError) as err:
            raise InvalidKernelError(f"Kernel weights must be numbers: {err}") from err
        if len(weights) != self.width * self.height:
            raise InvalidKernelError(
                f"Kernel declared {self.width}x{self.height} but has {len(weights)} weights"
            )
        if not all(math.isfinite(w) and abs(w) <= MAX_WEIGHT for w in weights):
            raise InvalidKernelError(f"Kernel weights must be finite and within +/-{MAX_WEIGHT:g}")
        object.__setattr__(self, "weights", weights)

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[float]]) -> "Kernel":
        """Build a kernel from a nested list, e.g. [[0, -1, 0], [-1, 4, -1], [0, -1, 0]]."""
        if not isinstance(rows, (list, tuple)) or not rows:
            raise InvalidKernelError("Kernel must be a non-empty list of rows")
        if not all(isinstance(r, (list, tuple)) for r in rows):
            raise InvalidKernelError("Kernel rows must be lists")
        width = len(rows[0])
        if any(len(r) != width for r in rows):
            raise InvalidKernelError("Kernel rows must all have the same length")
        return cls(weights=tuple(w for row in rows for w in row), width=width, height=len(rows))

    def as_array(self) -> np.ndarray:
        """float64 (height, width) matrix, the form OpenCV expects."""
        return np.asarray(self.weights, dtype=np.float64).reshape(self.height, self.width)


# Laplacian-style edge detector: centre 8, all eight neighbours -1.
LAPLACIAN_3X3 = Kernel(weights=(
    -1, -1, -1,
    -1,  8, -1,
    -1, -1, -1,
))
