from __future__ import annotations

import logging
import os
from collections import Counter
from concurrent.futures import Future, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .encoder import PillowEncoder
from .fileops import size_readable
from .limiter import Limiter
from .results import OutcomeKind, TransformOutcome, WorkItem
from .settings import GuardSettings
from .transformer import Encoder, transform


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunSummary:
    total_files: int = 0
    counts: Mapping[OutcomeKind, int] = field(default_factory=dict)
    saved_bytes: int = 0

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[TransformOutcome]) -> "RunSummary":
        # Plain sums and counts, so completion order cannot change the result.
        counts: Counter = Counter()
        saved = 0
        for o in outcomes:
            counts[o.kind] += 1
            saved += o.saved_bytes
        return cls(total_files=sum(counts.values()), counts=dict(counts), saved_bytes=saved)

    def count(self, kind: OutcomeKind) -> int:
        return self.counts.get(kind, 0)

    @property
    def compressed(self) -> int:
        return self.count(OutcomeKind.COMPRESSED)

    @property
    def failed(self) -> int:
        return self.count(OutcomeKind.FAILED)

    @property
    def skipped(self) -> int:
        return self.total_files - self.compressed - self.failed

    def message(self, dry_run: bool = False) -> str:
        if self.total_files == 0:
            return "There were no images to compress."
        if dry_run:
            return f"Dry run completed. You would save {size_readable(self.saved_bytes)}."
        return f"Defensive base compression completed. You saved {size_readable(self.saved_bytes)}."


def target_parallelism(max_parallelism: int, cpu_count: Optional[int] = None) -> Tuple[int, int]:
    """
    Return (files in flight, encoder threads per file).

    Their product never exceeds the CPU count, so N concurrent encodes do
    not each spin up a full-width thread pool.
    """
    cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    cpus = max(1, cpus)
    parallelism = max(1, min(cpus, max_parallelism))
    return parallelism, max(1, cpus // parallelism)


def tune_encoder(encoder: Encoder, threads: int) -> bool:
    """Best effort. Not every encoder has a thread pool to tune."""
    configure = getattr(encoder, "configure_threads", None)
    applied = bool(configure(threads)) if configure is not None else False
    if applied:
        logger.debug("Encoder threads per file set to %d", threads)
    else:
        logger.debug("Encoder thread tuning skipped (not supported)")
    return applied


def unique_paths(paths: Iterable[Path]) -> List[Path]:
    """Drop duplicates that resolve to the same file; two transforms must never share a path."""
    seen: Dict[Path, Path] = {}
    for p in paths:
        p = Path(p)
        seen.setdefault(p.resolve(), p)
    return list(seen.values())


def run_batch(
    paths: Sequence[Path],
    settings: Optional[GuardSettings] = None,
    encoder: Optional[Encoder] = None,
    limiter: Optional[Limiter] = None,
) -> Tuple[List[TransformOutcome], RunSummary]:
    """
    Transform every path through a Limiter and reduce the outcomes.

    Waits for all files to settle; one failing file never hides the others.
    """
    settings = settings or GuardSettings()
    encoder = encoder or PillowEncoder()
    candidates = unique_paths(paths)

    if not candidates:
        return [], RunSummary()

    parallelism, threads = target_parallelism(settings.max_parallelism)
    tune_encoder(encoder, threads)

    own_limiter = limiter is None
    if limiter is None:
        limiter = Limiter(parallelism)

    futures: Dict[Future, Path] = {}
    try:
        for p in candidates:
            item = WorkItem(path=p, dry_run=settings.dry_run, quiet=settings.quiet)
            futures[limiter.submit(transform, item, encoder, settings)] = p
        wait(futures)
    except BaseException:
        # Interrupted: queued files never start, files in flight finish their own steps.
        for f in futures:
            f.cancel()
        raise
    finally:
        if own_limiter:
            limiter.shutdown()

    outcomes = [_settle(f, p) for f, p in futures.items()]
    return outcomes, RunSummary.from_outcomes(outcomes)


def _settle(future: Future, path: Path) -> TransformOutcome:
    error = future.exception()
    if error is None:
        return future.result()
    logger.error("Error compressing %s: %s", path, error, exc_info=error)
    return TransformOutcome.failed(path, f"unexpected error: {error}")
