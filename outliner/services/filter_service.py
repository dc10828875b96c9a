from typing import Callable, List, Tuple
import logging

import cv2
import numpy as np

from outliner.errors import InvalidKernelError
from outliner.models.kernel import Kernel
from outliner.models.pipeline_config import PipelineConfig
from outliner.models.raster_buffer import RasterBuffer

logger = logging.getLogger(__name__)

StageFn = Callable[[RasterBuffer], RasterBuffer]


class FilterService:
    """
    Pure pixel transforms, applied in a fixed order:

        grayscale → convolve → (binarize) → flatten → (invert) → sharpen

    Every stage takes a RasterBuffer and returns a *new* one; nothing is
    mutated in place and no stage looks at the clock or random state.
    """

    SHARPEN_SIGMA: float = 1.0
    SHARPEN_AMOUNT: float = 1.0

    def apply(self, buffer: RasterBuffer, config: PipelineConfig) -> RasterBuffer:
        stages = self.build_stages(config)
        for name, stage in stages:
            buffer = stage(buffer)
            logger.debug(f"stage {name}: {buffer.width}x{buffer.height}x{buffer.channels}")
        return buffer

    def build_stages(self, config: PipelineConfig) -> List[Tuple[str, StageFn]]:
        """Resolve the stage list up front so a bad kernel fails before any pixel work."""
        kernel = self.validate_kernel(config.kernel)

        stages: List[Tuple[str, StageFn]] = [
            ("grayscale", self.to_grayscale),
            ("convolve", lambda b: self.convolve(b, kernel)),
        ]
        if config.threshold is not None:
            stages.append(("binarize", lambda b: self.binarize(b, config.threshold)))
        stages.append(("flatten", self.flatten))
        if config.invert_polarity:
            stages.append(("invert", self.invert))
        stages.append(("sharpen", self.sharpen))
        return stages

    @staticmethod
    def validate_kernel(kernel: Kernel) -> Kernel:
        if not isinstance(kernel, Kernel):
            raise InvalidKernelError("kernel must be a Kernel instance")
        if len(kernel.weights) != kernel.width * kernel.height:
            raise InvalidKernelError(
                f"Kernel has {len(kernel.weights)} weights, declared {kernel.width}x{kernel.height}"
            )
        return kernel

    # ─── Stages ────────────────────────────────────────────────────
    @staticmethod
    def _split_alpha(buffer: RasterBuffer):
        """(luma, alpha | None) for 1- and 2-channel buffers."""
        if buffer.channels == 1:
            return buffer.pixels, None
        if buffer.channels == 2:
            return buffer.pixels[:, :, 0], buffer.pixels[:, :, 1]
        raise ValueError(f"Expected a grayscale buffer, got {buffer.channels} channels")

    @staticmethod
    def _merge_alpha(luma: np.ndarray, alpha) -> RasterBuffer:
        if alpha is None:
            return RasterBuffer(luma)
        return RasterBuffer(np.dstack([luma, alpha]))

    @staticmethod
    def to_grayscale(buffer: RasterBuffer) -> RasterBuffer:
        """
        Luminance 0.299 R + 0.587 G + 0.114 B. Alpha, if any, rides along
        as a second channel until the flatten stage.
        """
        px = buffer.pixels
        if buffer.channels in (1, 2):
            return RasterBuffer(px)
        if buffer.channels == 3:
            return RasterBuffer(cv2.cvtColor(px, cv2.COLOR_RGB2GRAY))
        gray = cv2.cvtColor(px, cv2.COLOR_RGBA2GRAY)
        return RasterBuffer(np.dstack([gray, px[:, :, 3]]))

    @staticmethod
    def convolve(buffer: RasterBuffer, kernel: Kernel) -> RasterBuffer:
        """
        Same-size convolution with replicated borders. Float math, then
        clipped (not wrapped) to [0, 255].
        """
        luma, alpha = FilterService._split_alpha(buffer)
        # filter2D correlates; flip for a true convolution
        matrix = cv2.flip(kernel.as_array(), -1)
        response = cv2.filter2D(luma.astype(np.float64), cv2.CV_64F, matrix,
                                borderType=cv2.BORDER_REPLICATE)
        out = np.clip(np.rint(response), 0, 255).astype(np.uint8)
        return FilterService._merge_alpha(out, alpha)

    @staticmethod
    def binarize(buffer: RasterBuffer, threshold: int) -> RasterBuffer:
        """v > threshold → 255, else 0."""
        luma, alpha = FilterService._split_alpha(buffer)
        out = np.where(luma > threshold, 255, 0).astype(np.uint8)
        return FilterService._merge_alpha(out, alpha)

    @staticmethod
    def flatten(buffer: RasterBuffer) -> RasterBuffer:
        """Composite against opaque white; output is always a single channel."""
        if buffer.channels in (3, 4):
            buffer = FilterService.to_grayscale(buffer)
        luma, alpha = FilterService._split_alpha(buffer)
        if alpha is None:
            return RasterBuffer(luma)

        a = alpha.astype(np.float32) / 255.0
        out = luma.astype(np.float32) * a + 255.0 * (1.0 - a)
        return RasterBuffer(np.clip(np.rint(out), 0, 255).astype(np.uint8))

    @staticmethod
    def invert(buffer: RasterBuffer) -> RasterBuffer:
        return RasterBuffer(cv2.bitwise_not(buffer.pixels))

    @classmethod
    def sharpen(cls, buffer: RasterBuffer) -> RasterBuffer:
        """Unsharp mask: v + amount * (v - blur(v)), clipped."""
        src = buffer.pixels.astype(np.float32)
        blurred = cv2.GaussianBlur(src, (0, 0), sigmaX=cls.SHARPEN_SIGMA, sigmaY=cls.SHARPEN_SIGMA,
                                   borderType=cv2.BORDER_REPLICATE)
        out = src + cls.SHARPEN_AMOUNT * (src - blurred)
        return RasterBuffer(np.clip(np.rint(out), 0, 255).astype(np.uint8))
