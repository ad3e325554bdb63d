from __future__ import annotations

import errno
import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Callable, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Scratch files live next to the source so the final swap is a same-device rename.
TEMP_PREFIX = ".imguard-tmp-"
BACKUP_SUFFIX = ".bak"

# errno values that mean "someone else has the file right now".
_TRANSIENT_ERRNOS = {errno.EBUSY, errno.ETXTBSY, errno.EAGAIN}


def is_transient(exc: OSError) -> bool:
    if isinstance(exc, PermissionError):
        return True
    return exc.errno in _TRANSIENT_ERRNOS


def retry_file_operation(
    operation: Callable[[], T],
    attempts: int = 5,
    delay: float = 0.1,
) -> T:
    """
    Run a filesystem mutation, retrying transient lock errors.

    The wait grows linearly: delay, 2*delay, 3*delay, ...
    Non-transient errors and the last failed attempt are re-raised.
    """
    attempts = max(1, attempts)
    for i in range(attempts):
        try:
            return operation()
        except OSError as e:
            if not is_transient(e) or i == attempts - 1:
                raise
            logger.debug("Retrying after %s (attempt %d of %d)", e, i + 1, attempts)
            time.sleep(delay * (i + 1))
    raise AssertionError("unreachable")


def make_temp_path(src_path: Path) -> Path:
    """Reserve a uniquely named scratch file in the source's directory."""
    fd, tmp_name = tempfile.mkstemp(
        prefix=TEMP_PREFIX,
        suffix=src_path.suffix,
        dir=str(src_path.parent),
    )
    os.close(fd)
    return Path(tmp_name)


def backup_path_for(src_path: Path) -> Path:
    return src_path.with_name(src_path.name + BACKUP_SUFFIX)


def is_artifact(path: Path) -> bool:
    name = Path(path).name
    return name.startswith(TEMP_PREFIX) or name.endswith(BACKUP_SUFFIX)


def copy_file(src: Path, dst: Path) -> None:
    shutil.copyfile(src, dst)


def move_file(src: Path, dst: Path) -> None:
    """Atomic rename, or copy-then-delete when src and dst are on different devices."""
    try:
        os.replace(src, dst)
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
        shutil.copyfile(src, dst)
        os.unlink(src)


def remove_file(path: Path) -> None:
    Path(path).unlink(missing_ok=True)


def file_size(p: Path) -> int:
    return Path(p).stat().st_size


def size_readable(size: int) -> str:
    return f"{size / 1024:.2f} KB"
