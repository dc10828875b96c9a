from __future__ import annotations
import time
from typing import Optional

from outliner.errors import PipelineTimeoutError


class Deadline:
    """
    Monotonic-clock deadline shared by the stages of one request.
    Only decides whether to abort; never feeds into pixel math.
    """

    def __init__(self, seconds: Optional[float] = None, *, _expires_at: Optional[float] = None):
        if _expires_at is not None:
            self.expires_at = _expires_at
        elif seconds is None:
            self.expires_at = None
        else:
            self.expires_at = time.monotonic() + float(seconds)

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        """Seconds left, or None when unbounded. Never negative."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() >= self.expires_at

    def check(self, stage: str) -> None:
        if self.expired:
            raise PipelineTimeoutError(f"Deadline exceeded during {stage}")

    def child(self, seconds: Optional[float]) -> "Deadline":
        """A deadline no later than this one, at most `seconds` from now."""
        if seconds is None:
            return Deadline(_expires_at=self.expires_at)
        candidate = time.monotonic() + float(seconds)
        if self.expires_at is not None:
            candidate = min(candidate, self.expires_at)
        return Deadline(_expires_at=candidate)
