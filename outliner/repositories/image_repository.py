from io import BytesIO
from typing import Tuple

import cv2
import numpy as np
from PIL import Image as PILImage
from PIL import ImageOps, UnidentifiedImageError

from outliner.errors import DecodeError, EncodeError
from outliner.models.raster_buffer import RasterBuffer

ACCEPTED_FORMATS = {"JPEG", "PNG"}


class ImageRepository:
    """
    Byte-level codec work for RasterBuffer entities.
    No filter logic here; Pillow for the codecs, OpenCV for resampling.
    """

    @staticmethod
    def decode(data: bytes) -> RasterBuffer:
        if not data:
            raise DecodeError("Empty image payload")
        try:
            with PILImage.open(BytesIO(data)) as pil_img:
                if pil_img.format not in ACCEPTED_FORMATS:
                    raise DecodeError(f"Unsupported image format: {pil_img.format}; only JPEG and PNG are accepted")
                # reject bomb-sized images before decoding pixels
                max_pixels = PILImage.MAX_IMAGE_PIXELS
                if max_pixels and pil_img.width * pil_img.height > max_pixels:
                    raise DecodeError(f"Image too large: {pil_img.width}x{pil_img.height}")
                pil_img.load()
                pil_img = ImageOps.exif_transpose(pil_img)
                pil_img = ImageRepository._normalize_mode(pil_img)
                pixels = np.array(pil_img, dtype=np.uint8)
        except DecodeError:
            raise
        except (UnidentifiedImageError, PILImage.DecompressionBombError) as err:
            raise DecodeError(f"Could not decode image: {err}") from err
        except (OSError, ValueError, SyntaxError) as err:
            # Pillow reports truncated/corrupt streams through these
            raise DecodeError(f"Corrupt image data: {err}") from err

        if pixels.size == 0:
            raise DecodeError("Image has zero size")
        return RasterBuffer(pixels)

    @staticmethod
    def _normalize_mode(pil_img: PILImage.Image) -> PILImage.Image:
        """Collapse Pillow's many modes into L, LA, RGB or RGBA."""
        mode = pil_img.mode
        if mode in ("L", "LA", "RGB", "RGBA"):
            return pil_img
        if mode == "P":
            return pil_img.convert("RGBA" if "transparency" in pil_img.info else "RGB")
        if mode in ("1", "I", "I;16", "I;16B", "I;16L", "F"):
            if mode.startswith("I"):
                # 16-bit grayscale PNGs: scale down to 8 bits
                arr = np.array(pil_img, dtype=np.uint32) >> 8
                return PILImage.fromarray(arr.astype(np.uint8), mode="L")
            return pil_img.convert("L")
        if mode in ("PA", "RGBa", "La"):
            return pil_img.convert("RGBA")
        return pil_img.convert("RGB")

    @staticmethod
    def fit_within(buffer: RasterBuffer, max_side: int) -> RasterBuffer:
        """
        Downscale so the longer side is at most max_side, keeping aspect ratio.
        Never upscales.
        """
        w, h = buffer.width, buffer.height
        new_w, new_h = ImageRepository.fitted_size(w, h, max_side)
        if (new_w, new_h) == (w, h):
            return RasterBuffer(buffer.pixels)
        resized = cv2.resize(buffer.pixels, (new_w, new_h), interpolation=cv2.INTER_AREA)
        return RasterBuffer(resized)

    @staticmethod
    def fitted_size(width: int, height: int, max_side: int) -> Tuple[int, int]:
        longer = max(width, height)
        if longer <= max_side:
            return width, height
        scale = max_side / longer
        return max(1, round(width * scale)), max(1, round(height * scale))

    @staticmethod
    def encode(buffer: RasterBuffer, fmt: str, quality: int = 95) -> bytes:
        """
        Encode to PNG or JPEG. Alpha channels are rejected; flatten first.
        """
        if buffer.has_alpha:
            raise EncodeError("Refusing to encode a buffer with an alpha channel")
        pil_format = {"png": "PNG", "jpeg": "JPEG"}.get(fmt)
        if pil_format is None:
            raise EncodeError(f"No raster encoder for format '{fmt}'")

        out = BytesIO()
        try:
            pil_img = PILImage.fromarray(buffer.pixels)
            if pil_format == "JPEG":
                pil_img.save(out, format=pil_format, quality=quality)
            else:
                pil_img.save(out, format=pil_format, optimize=False)
        except (OSError, ValueError, TypeError) as err:
            raise EncodeError(f"{pil_format} encoding failed: {err}") from err
        return out.getvalue()
