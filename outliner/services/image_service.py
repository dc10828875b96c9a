from typing import Optional
import logging
import os

from dotenv import load_dotenv

from outliner.models.deadline import Deadline
from outliner.models.image_reference import ImageReference
from outliner.models.raster_buffer import RasterBuffer
from outliner.repositories.blob_repository import BlobRepository
from outliner.repositories.image_repository import ImageRepository

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


class ImageService:
    """I/O helpers: reference → bytes → bounded RasterBuffer. No filter logic."""

    def __init__(self,
                 blob_repository: Optional[BlobRepository] = None,
                 image_repository: Optional[ImageRepository] = None):
        self.DEFAULT_TARGET_WIDTH = int(os.getenv("DEFAULT_TARGET_WIDTH", "800"))
        self.blob_repository = blob_repository or BlobRepository()
        self.image_repository = image_repository or ImageRepository()

    def fetch(self,
              reference: ImageReference,
              deadline: Optional[Deadline] = None,
              auth_token: Optional[str] = None) -> bytes:
        deadline = deadline or Deadline.unbounded()
        data = self.blob_repository.fetch(reference, deadline, auth_token)
        deadline.check("fetch")
        return data

    def decode(self,
               data: bytes,
               target_width: Optional[int] = None,
               deadline: Optional[Deadline] = None) -> RasterBuffer:
        """
        Decode JPEG/PNG bytes and bound the longer side by target_width.
        """
        deadline = deadline or Deadline.unbounded()
        buffer = self.image_repository.decode(data)
        deadline.check("decode")

        max_side = target_width or self.DEFAULT_TARGET_WIDTH
        fitted = self.image_repository.fit_within(buffer, max_side)
        logger.debug(
            f"Decoded {buffer.width}x{buffer.height}x{buffer.channels} → "
            f"{fitted.width}x{fitted.height}"
        )
        return fitted

    def load(self,
             reference: ImageReference,
             target_width: Optional[int] = None,
             deadline: Optional[Deadline] = None,
             auth_token: Optional[str] = None) -> RasterBuffer:
        """Fetch and decode in one go."""
        data = self.fetch(reference, deadline, auth_token)
        return self.decode(data, target_width, deadline)

    def encode(self, buffer: RasterBuffer, fmt: str, quality: int = 95) -> bytes:
        return self.image_repository.encode(buffer, fmt, quality)

    def store(self, data: bytes, content_type: str) -> ImageReference:
        return self.blob_repository.store(data, content_type)
