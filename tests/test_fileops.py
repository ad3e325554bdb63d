from __future__ import annotations

import errno
from pathlib import Path

import pytest

from imguard import fileops
from imguard.fileops import (
    BACKUP_SUFFIX,
    TEMP_PREFIX,
    backup_path_for,
    is_artifact,
    is_transient,
    make_temp_path,
    move_file,
    remove_file,
    retry_file_operation,
    size_readable,
)


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    delays = []
    monkeypatch.setattr(fileops.time, "sleep", delays.append)
    return delays


def test_retry_succeeds_after_transient_errors(no_sleep) -> None:
    calls = []

    def op() -> str:
        calls.append(1)
        if len(calls) < 3:
            raise PermissionError(errno.EPERM, "locked")
        return "done"

    assert retry_file_operation(op, attempts=5, delay=0.1) == "done"
    assert len(calls) == 3
    assert no_sleep == pytest.approx([0.1, 0.2])


def test_retry_gives_up_after_budget(no_sleep) -> None:
    calls = []

    def op() -> None:
        calls.append(1)
        raise OSError(errno.EBUSY, "busy")

    with pytest.raises(OSError):
        retry_file_operation(op, attempts=5, delay=0.1)
    assert len(calls) == 5
    assert len(no_sleep) == 4


def test_non_transient_error_is_not_retried(no_sleep) -> None:
    calls = []

    def op() -> None:
        calls.append(1)
        raise OSError(errno.EIO, "I/O error")

    with pytest.raises(OSError):
        retry_file_operation(op)
    assert len(calls) == 1
    assert no_sleep == []


def test_is_transient() -> None:
    assert is_transient(PermissionError(errno.EACCES, "denied"))
    assert is_transient(OSError(errno.EBUSY, "busy"))
    assert not is_transient(FileNotFoundError(errno.ENOENT, "missing"))
    assert not is_transient(OSError(errno.ENOSPC, "full"))


def test_temp_path_is_unique_sibling(tmp_path: Path) -> None:
    src = tmp_path / "a.png"
    first = make_temp_path(src)
    second = make_temp_path(src)

    assert first != second
    assert first.parent == tmp_path
    assert first.name.startswith(TEMP_PREFIX)
    assert first.suffix == ".png"
    assert is_artifact(first)


def test_backup_path() -> None:
    backup = backup_path_for(Path("img/logo.png"))
    assert backup == Path("img/logo.png" + BACKUP_SUFFIX)
    assert is_artifact(backup)
    assert not is_artifact(Path("img/logo.png"))


def test_remove_missing_file_is_fine(tmp_path: Path) -> None:
    remove_file(tmp_path / "nothing-here")


def test_move_falls_back_to_copy_across_devices(tmp_path: Path, monkeypatch) -> None:
    src = tmp_path / "src.bin"
    dst = tmp_path / "dst.bin"
    src.write_bytes(b"new")
    dst.write_bytes(b"old")

    def cross_device(a, b) -> None:
        raise OSError(errno.EXDEV, "Invalid cross-device link")

    monkeypatch.setattr(fileops.os, "replace", cross_device)

    move_file(src, dst)

    assert dst.read_bytes() == b"new"
    assert not src.exists()


def test_move_reraises_other_errors(tmp_path: Path, monkeypatch) -> None:
    src = tmp_path / "src.bin"
    src.write_bytes(b"new")

    def broken(a, b) -> None:
        raise OSError(errno.EIO, "I/O error")

    monkeypatch.setattr(fileops.os, "replace", broken)

    with pytest.raises(OSError):
        move_file(src, tmp_path / "dst.bin")
    assert src.exists()


def test_size_readable() -> None:
    assert size_readable(0) == "0.00 KB"
    assert size_readable(1536) == "1.50 KB"
