from pathlib import Path
from typing import Optional, Union
import logging
import os
import threading
import uuid

import requests
from dotenv import load_dotenv

from outliner.errors import FetchError, OutlinerError, PipelineTimeoutError, StoreError
from outliner.models.deadline import Deadline
from outliner.models.image_reference import ImageReference

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpeg",
    "image/svg+xml": ".svg",
}

CHUNK_SIZE = 8 * 1024


class BlobRepository:
    """
    Fetch/store access to source and result bytes.

    • URL references are downloaded over HTTP (bearer token forwarded, never checked).
    • Storage keys resolve under SOURCE_ROOT or RESULTS_FOLDER; results are written
      under RESULTS_FOLDER, so anything stored can be fetched back.
    """

    def __init__(self,
                 source_root: Union[str, Path, None] = None,
                 results_root: Union[str, Path, None] = None,
                 max_bytes: Optional[int] = None,
                 fetch_timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.source_root = Path(source_root or os.getenv("SOURCE_ROOT", "data/uploads"))
        self.results_root = Path(results_root or os.getenv("RESULTS_FOLDER", "data/api_results"))
        self.max_bytes = max_bytes or int(os.getenv("MAX_SOURCE_BYTES", str(5 * 1024 * 1024)))
        self.fetch_timeout = fetch_timeout or float(os.getenv("FETCH_TIMEOUT_SECONDS", "30"))
        # None: every URL fetch opens and closes its own session
        self.session = session

    # ─── Public API ────────────────────────────────────────────────
    def fetch(self,
              reference: ImageReference,
              deadline: Deadline,
              auth_token: Optional[str] = None) -> bytes:
        if reference.is_url:
            return self._fetch_url(reference, deadline, auth_token)
        return self._fetch_key(reference)

    def store(self, data: bytes, content_type: str) -> ImageReference:
        """Write bytes under the results root and return the key they can be fetched by."""
        ext = _EXTENSIONS.get(content_type)
        if ext is None:
            raise StoreError(f"Unsupported content type for storage: {content_type}")

        filename = f"{uuid.uuid4().hex}{ext}"
        target = self.results_root / filename
        try:
            self.results_root.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as err:
            raise StoreError(f"Could not store result {filename}: {err}") from err

        logger.info(f"Stored {len(data)} bytes as {target}")
        return ImageReference(str(target))

    # ─── Internal helpers ──────────────────────────────────────────
    def _fetch_url(self, reference: ImageReference, deadline: Deadline, auth_token: Optional[str]) -> bytes:
        headers = {}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"

        fetch_deadline = deadline.child(self.fetch_timeout)
        budget = fetch_deadline.remaining()
        if budget <= 0:
            raise PipelineTimeoutError(f"No time left to fetch {reference}")

        session = self.session or requests.Session()
        try:
            with session.get(reference.locator, headers=headers, stream=True, timeout=budget) as response:
                if not 200 <= response.status_code < 300:
                    raise FetchError(f"Source returned HTTP {response.status_code}: {reference}")
                data = self._read_body(response, reference, fetch_deadline)
        except OutlinerError:
            raise
        except requests.Timeout as err:
            raise PipelineTimeoutError(f"Timed out fetching {reference}") from err
        except (requests.RequestException, OSError, ValueError) as err:
            # reads fail this way once the watchdog has closed the response
            if fetch_deadline.expired:
                raise PipelineTimeoutError(f"Timed out fetching {reference}") from err
            raise FetchError(f"Could not fetch {reference}: {err}") from err
        finally:
            if self.session is None:
                session.close()

        logger.debug(f"Fetched {len(data)} bytes from {reference}")
        return data

    def _read_body(self, response, reference: ImageReference, fetch_deadline: Deadline) -> bytes:
        """
        Stream the body under a total-time limit. The read timeout restarts on
        every byte received, so a watchdog closes the response once the fetch
        deadline passes.
        """
        watchdog = threading.Timer(fetch_deadline.remaining(), response.close)
        watchdog.daemon = True
        watchdog.start()
        try:
            chunks = []
            received = 0
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                fetch_deadline.check("fetch")
                received += len(chunk)
                if received > self.max_bytes:
                    raise FetchError(f"Source exceeds {self.max_bytes} bytes: {reference}")
                chunks.append(chunk)
        finally:
            watchdog.cancel()

        # a closed response ends iteration early; never hand back a truncated body
        fetch_deadline.check("fetch")
        return b"".join(chunks)

    def _fetch_key(self, reference: ImageReference) -> bytes:
        path = self._resolve_key(reference)
        if path is None:
            raise FetchError(f"Storage key escapes the storage roots: {reference}")
        if not path.is_file():
            raise FetchError(f"No stored object for key: {reference}")
        if path.stat().st_size > self.max_bytes:
            raise FetchError(f"Source exceeds {self.max_bytes} bytes: {reference}")
        try:
            return path.read_bytes()
        except OSError as err:
            raise FetchError(f"Could not read {reference}: {err}") from err

    def _resolve_key(self, reference: ImageReference) -> Optional[Path]:
        """First location of the key inside a storage root, preferring one that exists."""
        candidates = []
        for root in (self.source_root.resolve(), self.results_root.resolve()):
            path = (root / reference.locator).resolve()
            if root == path or root in path.parents:
                candidates.append(path)
        for path in candidates:
            if path.is_file():
                return path
        return candidates[0] if candidates else None
