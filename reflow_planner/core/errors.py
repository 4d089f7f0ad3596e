from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ReflowError(Exception):
    """Base error envelope. Engine rejections carry a stable code plus optional locators."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<schedule>"
        return f"{loc}: {self.code}: {self.message}"


class SnapshotLoadError(ReflowError):
    pass


class SnapshotValidationError(ReflowError):
    pass


class CycleError(ReflowError):
    """A proposed dependency (or bridge) would close a cycle."""


class BranchingError(ReflowError):
    """A reorder was requested over dependencies that are not a simple chain."""


class MissingAnchorError(ReflowError):
    """No root item exists to anchor a non-empty group."""


@dataclass(frozen=True)
class DanglingEdgeWarning:
    """Non-fatal: an edge references an item outside the supplied snapshot.

    Collected on the graph index and dropped from computation, never raised.
    """

    predecessor_id: str
    successor_id: str
    missing_id: str

    def __str__(self) -> str:
        return (
            f"W_DANGLING_DEPENDENCY: {self.predecessor_id} -> {self.successor_id} "
            f"references unknown item {self.missing_id}"
        )
