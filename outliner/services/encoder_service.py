from typing import Optional
import logging

from outliner.models.deadline import Deadline
from outliner.models.output_artifact import OutputArtifact
from outliner.models.pipeline_config import OutputFormat, PipelineConfig
from outliner.models.raster_buffer import RasterBuffer
from outliner.services.filter_service import FilterService
from outliner.services.image_service import ImageService
from outliner.services.vectorizer_service import VectorizerService

logger = logging.getLogger(__name__)


class EncoderService:
    """
    Final RasterBuffer → OutputArtifact, in the requested format.
    Raster formats go through Pillow; svg goes through the tracer.
    """

    def __init__(self,
                 image_service: Optional[ImageService] = None,
                 vectorizer_service: Optional[VectorizerService] = None):
        self.image_service = image_service or ImageService()
        self.vectorizer_service = vectorizer_service or VectorizerService()

    def encode(self,
               buffer: RasterBuffer,
               config: PipelineConfig,
               deadline: Optional[Deadline] = None) -> OutputArtifact:
        fmt = config.output_format
        if buffer.has_alpha or (fmt is OutputFormat.SVG and buffer.channels != 1):
            # the filter pipeline normally hands over a flattened buffer already
            buffer = FilterService.flatten(buffer)

        if fmt is OutputFormat.SVG:
            svg = self.vectorizer_service.trace(buffer, config, deadline)
            data = svg.encode("utf-8")
        else:
            data = self.image_service.encode(buffer, fmt.value, quality=config.jpeg_quality)

        logger.debug(f"Encoded {fmt.value}: {len(data)} bytes")
        return OutputArtifact(data=data, mime_type=fmt.mime_type, filename=fmt.filename)
