from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class WorkItem:
    """Input for transforming a single file."""
    path: Path
    dry_run: bool = False
    quiet: bool = False


class OutcomeKind(enum.Enum):
    COMPRESSED = "compressed"
    ALREADY_OPTIMAL = "already_optimal"
    TOO_LARGE = "too_large"
    EMPTY = "empty"
    CORRUPT = "corrupt"
    FAILED = "failed"


@dataclass(frozen=True)
class TransformOutcome:
    """
    Result of transforming a single file.

    Exactly one is produced per WorkItem. Keeping it immutable (frozen=True)
    means it can be handed across threads without care.
    """
    path: Path
    kind: OutcomeKind
    size_before: int = 0
    size_after: int = 0
    reason: Optional[str] = None

    @property
    def saved_bytes(self) -> int:
        if self.kind is not OutcomeKind.COMPRESSED:
            return 0
        return max(0, self.size_before - self.size_after)

    @property
    def skipped(self) -> bool:
        return self.kind not in (OutcomeKind.COMPRESSED, OutcomeKind.FAILED)

    @classmethod
    def failed(cls, path: Path, reason: str, size_before: int = 0) -> "TransformOutcome":
        return cls(path=path, kind=OutcomeKind.FAILED, size_before=size_before,
                   size_after=size_before, reason=reason)
