"""
Outline Renderer Pipeline
Runs one request end to end:

    Fetching → Decoding → Filtering → Encoding → Done

Any stage may fail; the request then ends in Failed(kind) and no partial
output leaves this module.
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv

from outliner.errors import OutlinerError
from outliner.models.deadline import Deadline
from outliner.models.image_reference import ImageReference
from outliner.models.output_artifact import OutputArtifact
from outliner.models.pipeline_config import PipelineConfig
from outliner.models.processing_state import ProcessingState, Stage
from outliner.services.encoder_service import EncoderService
from outliner.services.filter_service import FilterService
from outliner.services.image_service import ImageService

# Load environment variables
load_dotenv()

REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))

logger = logging.getLogger(__name__)


def render_outline(
    reference: ImageReference,
    config: PipelineConfig,
    *,
    deadline: Optional[Deadline] = None,
    auth_token: Optional[str] = None,
    image_service: Optional[ImageService] = None,
    filter_service: Optional[FilterService] = None,
    encoder_service: Optional[EncoderService] = None,
    state: Optional[ProcessingState] = None,
) -> OutputArtifact:
    """
    Fetch, decode, filter and encode one image.

    Args:
        reference: where the source bytes live
        config: processing options (validated on construction)
        deadline: overall bound for the request; defaults to REQUEST_TIMEOUT_SECONDS
        auth_token: bearer credential forwarded to the fetch, never checked here
        state: optional state machine to observe stage transitions

    Returns:
        OutputArtifact: encoded bytes, MIME type and suggested filename

    Raises:
        OutlinerError subclasses, tagged with a stable kind
    """
    image_service = image_service or ImageService()
    filter_service = filter_service or FilterService()
    encoder_service = encoder_service or EncoderService(image_service=image_service)
    deadline = deadline or Deadline(REQUEST_TIMEOUT)
    state = state or ProcessingState()

    try:
        # resolve stages first so a bad kernel fails before the fetch
        filter_service.build_stages(config)

        data = image_service.fetch(reference, deadline, auth_token)

        state.advance(Stage.DECODING)
        buffer = image_service.decode(data, config.target_width, deadline)
        del data

        state.advance(Stage.FILTERING)
        buffer = filter_service.apply(buffer, config)
        deadline.check("filtering")

        state.advance(Stage.ENCODING)
        artifact = encoder_service.encode(buffer, config, deadline)
        deadline.check("encoding")

        state.advance(Stage.DONE)
    except OutlinerError as err:
        state.fail(err.kind)
        logger.warning(f"Outline failed at {state.history[-2].value} [{err.kind}]: {err.message}")
        raise
    except Exception:
        state.fail(OutlinerError.kind)
        logger.exception(f"Unexpected error at {state.history[-2].value} for {reference}")
        raise

    logger.info(
        f"Outlined {reference} → {artifact.mime_type} "
        f"({artifact.size} bytes, {buffer.width}x{buffer.height})"
    )
    return artifact


def render_and_store(
    reference: ImageReference,
    config: PipelineConfig,
    *,
    image_service: Optional[ImageService] = None,
    **kwargs,
) -> ImageReference:
    """
    Render an outline and persist it through the blob store.
    A store failure is reported as a failure even though rendering succeeded.
    """
    image_service = image_service or ImageService()
    artifact = render_outline(reference, config, image_service=image_service, **kwargs)
    return image_service.store(artifact.data, artifact.mime_type)
