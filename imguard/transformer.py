from __future__ import annotations

import enum
import logging
import shutil
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional, Protocol, TypeVar

from .encoder import CorruptImageError
from .fileops import (
    backup_path_for,
    copy_file,
    file_size,
    make_temp_path,
    move_file,
    remove_file,
    retry_file_operation,
    size_readable,
)
from .formats import ImageFormat, format_for_path
from .results import OutcomeKind, TransformOutcome, WorkItem
from .settings import GuardSettings


logger = logging.getLogger(__name__)

T = TypeVar("T")


class Encoder(Protocol):
    def encode(self, source: Path, target: Path, fmt: ImageFormat) -> None: ...


class BackupState(enum.IntEnum):
    NO_BACKUP = 0
    BACKUP_PRESENT = 1
    BACKUP_CONSUMED = 2


def _advance(state: BackupState, new: BackupState) -> BackupState:
    assert new > state, f"backup state cannot go from {state.name} to {new.name}"
    return new


def transform(item: WorkItem, encoder: Encoder, settings: Optional[GuardSettings] = None) -> TransformOutcome:
    """
    Shrink one file in place, or leave it exactly as it was.

    Probe -> Encode (into a sibling temp file) -> Compare -> Replace.
    Replace only runs for a strictly smaller result outside dry runs; it
    backs the source up first and restores it if the swap fails. The temp
    file is gone by the time this returns, whatever happened.

    Per-file problems never raise; they come back as the outcome.
    """
    settings = settings or GuardSettings()
    src_path = Path(item.path)

    # Probe
    try:
        size_before = file_size(src_path)
    except OSError as e:
        return _report(item, TransformOutcome.failed(src_path, f"cannot read file size: {e}"))

    if size_before == 0:
        return _report(item, TransformOutcome(src_path, OutcomeKind.EMPTY))

    if size_before > settings.max_file_size:
        return _report(item, TransformOutcome(src_path, OutcomeKind.TOO_LARGE, size_before, size_before))

    fmt = format_for_path(src_path)
    if fmt is None:
        return _report(item, TransformOutcome(
            src_path, OutcomeKind.CORRUPT, size_before, size_before,
            reason=f"cannot determine image type from extension {src_path.suffix!r}",
        ))

    # Work on the link target so a symlink stays a symlink.
    real_path = src_path.resolve()

    try:
        tmp_path = make_temp_path(real_path)
    except OSError as e:
        return _report(item, TransformOutcome.failed(src_path, f"cannot create temp file: {e}", size_before))

    try:
        outcome = _encode_and_replace(item, real_path, tmp_path, fmt, size_before, encoder, settings)
    finally:
        try:
            _retry(settings, lambda: remove_file(tmp_path))
        except OSError as e:
            logger.warning("Failed to delete temp file %s: %s", tmp_path, e)

    return _report(item, replace(outcome, path=src_path))


def _encode_and_replace(
    item: WorkItem,
    src_path: Path,
    tmp_path: Path,
    fmt: ImageFormat,
    size_before: int,
    encoder: Encoder,
    settings: GuardSettings,
) -> TransformOutcome:
    # Encode
    try:
        encoder.encode(src_path, tmp_path, fmt)
    except CorruptImageError as e:
        return TransformOutcome(src_path, OutcomeKind.CORRUPT, size_before, size_before, reason=str(e))
    except Exception as e:
        # Encoder failures stay with this file.
        return TransformOutcome.failed(src_path, f"encoding failed: {e}", size_before)

    # Compare
    try:
        size_after = file_size(tmp_path)
    except OSError as e:
        return TransformOutcome.failed(src_path, f"cannot read encoded size: {e}", size_before)

    if size_after == 0:
        return TransformOutcome.failed(src_path, "encoder produced an empty file", size_before)

    if size_after >= size_before:
        return TransformOutcome(src_path, OutcomeKind.ALREADY_OPTIMAL, size_before, size_after)

    if item.dry_run:
        return TransformOutcome(src_path, OutcomeKind.COMPRESSED, size_before, size_after)

    return _replace(src_path, tmp_path, size_before, size_after, settings)


def _replace(
    src_path: Path,
    tmp_path: Path,
    size_before: int,
    size_after: int,
    settings: GuardSettings,
) -> TransformOutcome:
    backup_path = backup_path_for(src_path)
    if backup_path.exists():
        # Never clobber a file we did not create.
        return TransformOutcome.failed(src_path, f"backup path {backup_path} already exists", size_before)

    state = BackupState.NO_BACKUP

    try:
        _retry(settings, lambda: copy_file(src_path, backup_path))
    except OSError as e:
        # Source untouched; only a partial backup may exist.
        _discard(backup_path, settings)
        return TransformOutcome.failed(src_path, f"cannot create backup: {e}", size_before)
    state = _advance(state, BackupState.BACKUP_PRESENT)

    try:
        shutil.copymode(src_path, tmp_path)
        _retry(settings, lambda: move_file(tmp_path, src_path))
    except OSError as e:
        state = _advance(state, BackupState.BACKUP_CONSUMED)
        return _restore(src_path, backup_path, e, size_before, settings)
    state = _advance(state, BackupState.BACKUP_CONSUMED)

    _discard(backup_path, settings)
    return TransformOutcome(src_path, OutcomeKind.COMPRESSED, size_before, size_after)


def _restore(
    src_path: Path,
    backup_path: Path,
    error: OSError,
    size_before: int,
    settings: GuardSettings,
) -> TransformOutcome:
    try:
        _retry(settings, lambda: move_file(backup_path, src_path))
    except OSError as restore_error:
        logger.critical(
            "Could not restore %s after a failed replace (%s); the original is kept in %s",
            src_path, restore_error, backup_path,
        )
        return TransformOutcome.failed(
            src_path, f"replace failed: {error}; original kept in {backup_path}", size_before,
        )
    return TransformOutcome.failed(src_path, f"replace failed: {error}", size_before)


def _discard(path: Path, settings: GuardSettings) -> None:
    try:
        _retry(settings, lambda: remove_file(path))
    except OSError as e:
        logger.warning("Failed to delete backup file %s: %s", path, e)


def _retry(settings: GuardSettings, operation: Callable[[], T]) -> T:
    return retry_file_operation(operation, attempts=settings.retry_attempts, delay=settings.retry_delay)


def _describe(outcome: TransformOutcome) -> str:
    kind = outcome.kind
    if kind is OutcomeKind.COMPRESSED:
        return f"Compressed {outcome.path} ({size_readable(outcome.size_before)} -> {size_readable(outcome.size_after)})"
    if kind is OutcomeKind.ALREADY_OPTIMAL:
        if outcome.size_after > outcome.size_before:
            return f"Skipped {outcome.path} (already compressed more aggressively)"
        return f"Skipped {outcome.path} (already compressed)"
    if kind is OutcomeKind.TOO_LARGE:
        return f"Skipped {outcome.path} (file too large: {size_readable(outcome.size_before)})"
    if kind is OutcomeKind.EMPTY:
        return f"Skipped {outcome.path} (empty file)"
    if kind is OutcomeKind.CORRUPT:
        return f"Skipped {outcome.path} (corrupt file)"
    return f"Error compressing {outcome.path}: {outcome.reason}"


def _report(item: WorkItem, outcome: TransformOutcome) -> TransformOutcome:
    """Log the per-file line. Quiet mode hides everything but failures."""
    prefix = "Dry run: " if item.dry_run else ""
    if outcome.kind is OutcomeKind.FAILED:
        logger.error("%s%s", prefix, _describe(outcome))
    elif not item.quiet:
        logger.info("%s%s", prefix, _describe(outcome))
        if outcome.kind is OutcomeKind.CORRUPT and outcome.reason:
            logger.debug("%s: %s", item.path, outcome.reason)
    return outcome
