"""
Error taxonomy for the outline pipeline.

Every failure carries a stable ``kind`` tag and the HTTP status the API
answers with. None of them are retried inside the core.
"""


class OutlinerError(Exception):
    """Base class for all pipeline failures."""
    kind: str = "internal_error"
    http_status: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class InvalidRequestError(OutlinerError):
    kind = "invalid_request"
    http_status = 400


class FetchError(OutlinerError):
    """Source bytes could not be retrieved (network failure, non-2xx, missing key)."""
    kind = "fetch_error"
    http_status = 400


class DecodeError(OutlinerError):
    """Bytes are not a supported (JPEG/PNG) raster, or are corrupt."""
    kind = "decode_error"
    http_status = 400


class InvalidKernelError(OutlinerError):
    kind = "invalid_kernel"
    http_status = 400


class PipelineTimeoutError(OutlinerError, TimeoutError):
    """A fetch, decode or trace ran past its deadline."""
    kind = "timeout"
    http_status = 408


class VectorizeError(OutlinerError):
    kind = "vectorize_error"
    http_status = 500


class EncodeError(OutlinerError):
    kind = "encode_error"
    http_status = 500


class StoreError(OutlinerError):
    kind = "store_error"
    http_status = 500
