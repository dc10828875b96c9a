from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class OutputArtifact:
    """
    Final encoded bytes plus the MIME type and a suggested download name.
    """
    data: bytes
    mime_type: str
    filename: str

    @property
    def size(self) -> int:
        return len(self.data)
