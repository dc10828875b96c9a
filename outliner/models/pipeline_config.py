from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional
import math
import os

from dotenv import load_dotenv

from outliner.errors import InvalidRequestError
from outliner.models.kernel import Kernel, LAPLACIAN_3X3

# Load environment variables
load_dotenv()

DEFAULT_TARGET_WIDTH = int(os.getenv("DEFAULT_TARGET_WIDTH", "800"))
MAX_TARGET_WIDTH = int(os.getenv("MAX_TARGET_WIDTH", "4096"))
DEFAULT_JPEG_QUALITY = int(os.getenv("JPEG_QUALITY", "95"))
DEFAULT_SIMPLIFY_TOLERANCE = float(os.getenv("SVG_SIMPLIFY_TOLERANCE", "0.4"))
DEFAULT_MIN_SPECKLE_AREA = float(os.getenv("SVG_MIN_SPECKLE_AREA", "50"))
DEFAULT_SVG_THRESHOLD = int(os.getenv("SVG_DEFAULT_THRESHOLD", "64"))


class OutputFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"
    SVG = "svg"

    @property
    def mime_type(self) -> str:
        return {
            OutputFormat.PNG: "image/png",
            OutputFormat.JPEG: "image/jpeg",
            OutputFormat.SVG: "image/svg+xml",
        }[self]

    @property
    def filename(self) -> str:
        return f"processed.{self.value}"

    @classmethod
    def parse(cls, value: Any) -> "OutputFormat":
        if not isinstance(value, str):
            raise InvalidRequestError("format must be one of png, jpeg, svg")
        normalized = value.strip().lower()
        if normalized == "jpg":
            normalized = "jpeg"
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidRequestError(f"Unsupported format '{value}'; use png, jpeg or svg") from None


@dataclass(frozen=True)
class PipelineConfig:
    """
    Processing options for one request. Never mutated after construction.

    threshold:        binarize the edge map at this level (None = keep gray levels)
    invert_polarity:  dark lines on a light background when True
    simplify_tolerance / min_speckle_area / smooth_curves only affect svg output.
    """
    target_width: int = DEFAULT_TARGET_WIDTH
    output_format: OutputFormat = OutputFormat.PNG
    kernel: Kernel = field(default=LAPLACIAN_3X3)
    threshold: Optional[int] = None
    invert_polarity: bool = True
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    simplify_tolerance: float = DEFAULT_SIMPLIFY_TOLERANCE
    min_speckle_area: float = DEFAULT_MIN_SPECKLE_AREA
    smooth_curves: bool = True

    def __post_init__(self):
        if not isinstance(self.target_width, int) or self.target_width <= 0:
            raise InvalidRequestError("target_width must be a positive integer")
        if self.target_width > MAX_TARGET_WIDTH:
            raise InvalidRequestError(f"target_width must not exceed {MAX_TARGET_WIDTH}")
        if not isinstance(self.output_format, OutputFormat):
            raise InvalidRequestError("output_format must be an OutputFormat")
        if not isinstance(self.kernel, Kernel):
            raise InvalidRequestError("kernel must be a Kernel")
        if self.threshold is not None and not 0 <= self.threshold <= 255:
            raise InvalidRequestError("threshold must be between 0 and 255")
        if not 1 <= self.jpeg_quality <= 100:
            raise InvalidRequestError("quality must be between 1 and 100")
        if not 0.0 <= self.simplify_tolerance <= 1.0:
            raise InvalidRequestError("tolerance must be between 0 and 1")
        if self.min_speckle_area < 0:
            raise InvalidRequestError("min_area must not be negative")

    # ─── Request parsing ──────────────────────────────────────────────
    @classmethod
    def from_request(cls, body: Mapping[str, Any]) -> "PipelineConfig":
        """
        Build a config from a JSON request body. Unknown keys are ignored,
        missing keys fall back to the defaults above.
        """
        output_format = OutputFormat.parse(body.get("format", OutputFormat.PNG.value))

        kernel = LAPLACIAN_3X3
        if body.get("kernel") is not None:
            kernel = Kernel.from_rows(body["kernel"])

        threshold = _optional_int(body, "threshold")
        if threshold is None and output_format is OutputFormat.SVG:
            threshold = DEFAULT_SVG_THRESHOLD

        return cls(
            target_width=_int(body, "target_width", DEFAULT_TARGET_WIDTH),
            output_format=output_format,
            kernel=kernel,
            threshold=threshold,
            invert_polarity=_bool(body, "invert", True),
            jpeg_quality=_int(body, "quality", DEFAULT_JPEG_QUALITY),
            simplify_tolerance=_float(body, "tolerance", DEFAULT_SIMPLIFY_TOLERANCE),
            min_speckle_area=_float(body, "min_area", DEFAULT_MIN_SPECKLE_AREA),
            smooth_curves=_bool(body, "smooth", True),
        )


def _int(body: Mapping[str, Any], key: str, default: int) -> int:
    value = body.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRequestError(f"{key} must be an integer")
    # ints stay exact; range checks in __post_init__ reject huge values
    if isinstance(value, float) and not value.is_integer():
        raise InvalidRequestError(f"{key} must be an integer")
    return int(value)


def _optional_int(body: Mapping[str, Any], key: str) -> Optional[int]:
    if body.get(key) is None:
        return None
    return _int(body, key, 0)


def _float(body: Mapping[str, Any], key: str, default: float) -> float:
    value = body.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRequestError(f"{key} must be a number")
    try:
        number = float(value)
    except OverflowError as err:
        raise InvalidRequestError(f"{key} is out of range") from err
    if not math.isfinite(number):
        raise InvalidRequestError(f"{key} must be a number")
    return number


def _bool(body: Mapping[str, Any], key: str, default: bool) -> bool:
    value = body.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise InvalidRequestError(f"{key} must be true or false")
    return value
