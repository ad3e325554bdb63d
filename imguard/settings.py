from __future__ import annotations

from dataclasses import dataclass


# Files above this are never touched.
MAX_FILE_SIZE = 100 * 1024 * 1024


@dataclass(frozen=True)
class GuardSettings:
    """
    All knobs for one run.

    Pure data, no logic. The CLI builds one of these and everything
    downstream only reads it.
    """

    # ----- Run mode -----
    dry_run: bool = False
    quiet: bool = False

    # ----- Limits -----
    max_file_size: int = MAX_FILE_SIZE
    max_parallelism: int = 4  # upper bound for files in flight

    # ----- Retry of copy/rename/delete on transient locks -----
    retry_attempts: int = 5
    retry_delay: float = 0.1  # seconds, multiplied by the attempt number
