from __future__ import annotations
from dataclasses import dataclass
from urllib.parse import urlparse


@dataclass(frozen=True)
class ImageReference:
    """
    Opaque locator for source bytes: an http(s) URL or a storage key.
    """
    locator: str

    def __post_init__(self):
        if not isinstance(self.locator, str) or not self.locator.strip():
            raise ValueError("ImageReference needs a non-empty locator")
        object.__setattr__(self, "locator", self.locator.strip())

    @property
    def is_url(self) -> bool:
        return urlparse(self.locator).scheme in ("http", "https")

    def __str__(self) -> str:
        return self.locator
