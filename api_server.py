#!/usr/bin/env python3
"""
Outliner API Server
Single endpoint: POST an image reference, get the outline rendition back as bytes.
"""

from __future__ import annotations

import os
import logging
from io import BytesIO
from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

from flask import Flask, request, jsonify, send_file
from flask_cors import CORS

# --- Centralized Logging Configuration ---
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)-25s - %(levelname)-8s - %(message)s',
    datefmt='%H:%M:%S'
)

from outliner.errors import OutlinerError, InvalidRequestError
from outliner.models.deadline import Deadline
from outliner.models.image_reference import ImageReference
from outliner.models.pipeline_config import PipelineConfig
from outliner.pipeline.outline_renderer import render_outline
from outliner.services.image_service import ImageService

# Configuration
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]
MAX_CONTENT_LENGTH = int(os.getenv("MAX_UPLOAD_SIZE_MB", "1")) * 1024 * 1024
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))
REQUIRE_AUTHORIZATION = os.getenv("REQUIRE_AUTHORIZATION", "true").lower() in ("1", "true", "yes")

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = MAX_CONTENT_LENGTH
CORS(app, origins=ALLOWED_ORIGINS)

# Initialize services
image_service = ImageService()

logger = logging.getLogger(__name__)


def error_response(message: str, kind: str, status: int):
    return jsonify({'error': message, 'kind': kind}), status


def bearer_token(header: str | None) -> str | None:
    """Extract the credential from an Authorization header; it is forwarded, not validated."""
    if not header:
        return None
    scheme, _, token = header.partition(' ')
    if scheme.lower() == 'bearer' and token.strip():
        return token.strip()
    return header.strip()


def request_deadline(body: dict) -> Deadline:
    """Caller may tighten the deadline, never extend it past REQUEST_TIMEOUT."""
    timeout = body.get('timeout')
    if timeout is None:
        return Deadline(REQUEST_TIMEOUT)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or not 0 < timeout:
        raise InvalidRequestError('timeout must be a positive number of seconds')
    # compare before converting; huge JSON ints do not fit in a float
    return Deadline(float(min(timeout, REQUEST_TIMEOUT)))


@app.route('/api/outline', methods=['POST'])
def outline():
    """Render an uploaded photo as an edge outline (png, jpeg or svg)."""
    auth_header = request.headers.get('Authorization')
    if REQUIRE_AUTHORIZATION and not auth_header:
        return error_response('No authorization header', 'unauthorized', 401)

    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return error_response('Invalid JSON body', InvalidRequestError.kind, 400)

    locator = body.get('image_path') or body.get('image_url')
    if not isinstance(locator, str) or not locator.strip():
        return error_response('No image path provided', InvalidRequestError.kind, 400)

    try:
        config = PipelineConfig.from_request(body)
        deadline = request_deadline(body)
        reference = ImageReference(locator)

        logger.info(f"Processing image: {reference} as {config.output_format.value}")
        artifact = render_outline(
            reference,
            config,
            deadline=deadline,
            auth_token=bearer_token(auth_header),
            image_service=image_service,
        )
    except OutlinerError as e:
        logger.warning(f"Outline request failed [{e.kind}]: {e.message}")
        return error_response(e.message, e.kind, e.http_status)
    except Exception as e:
        logger.exception(f"Unexpected outline error: {e}")
        return error_response('Internal server error', OutlinerError.kind, 500)

    return send_file(
        BytesIO(artifact.data),
        mimetype=artifact.mime_type,
        as_attachment=True,
        download_name=artifact.filename,
    )


@app.errorhandler(413)
def too_large(e):
    """Handle request body too large error."""
    return error_response(f'Request too large. Maximum size is {MAX_CONTENT_LENGTH // (1024 * 1024)}MB.',
                          InvalidRequestError.kind, 413)


@app.errorhandler(405)
def method_not_allowed(e):
    return error_response('Method not allowed', InvalidRequestError.kind, 405)


@app.errorhandler(500)
def internal_error(e):
    """Handle internal server error."""
    logger.error(f"Internal server error: {e}")
    return error_response('Internal server error', OutlinerError.kind, 500)


def main():
    port = int(os.getenv("API_SERVER_PORT", "5002"))
    logger.info(f"Starting Outliner API on port {port} (origins: {', '.join(ALLOWED_ORIGINS)})")
    app.run(host='0.0.0.0', port=port)


if __name__ == '__main__':
    main()
