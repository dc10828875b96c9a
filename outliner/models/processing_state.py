from __future__ import annotations
from enum import Enum
from typing import List, Optional


class Stage(str, Enum):
    FETCHING = "fetching"
    DECODING = "decoding"
    FILTERING = "filtering"
    ENCODING = "encoding"
    DONE = "done"
    FAILED = "failed"


_NEXT = {
    Stage.FETCHING: Stage.DECODING,
    Stage.DECODING: Stage.FILTERING,
    Stage.FILTERING: Stage.ENCODING,
    Stage.ENCODING: Stage.DONE,
}


class ProcessingState:
    """
    Per-request state machine:
        FETCHING → DECODING → FILTERING → ENCODING → DONE
    Any non-terminal stage may jump to FAILED. DONE and FAILED are terminal.
    """

    def __init__(self):
        self.stage = Stage.FETCHING
        self.failure_kind: Optional[str] = None
        self.history: List[Stage] = [Stage.FETCHING]

    @property
    def is_terminal(self) -> bool:
        return self.stage in (Stage.DONE, Stage.FAILED)

    def advance(self, target: Stage) -> None:
        if self.is_terminal:
            raise RuntimeError(f"Cannot leave terminal stage {self.stage.value}")
        if _NEXT.get(self.stage) is not target:
            raise RuntimeError(f"Illegal transition {self.stage.value} -> {target.value}")
        self.stage = target
        self.history.append(target)

    def fail(self, kind: str) -> None:
        if self.is_terminal:
            raise RuntimeError(f"Cannot fail from terminal stage {self.stage.value}")
        self.stage = Stage.FAILED
        self.failure_kind = kind
        self.history.append(Stage.FAILED)
