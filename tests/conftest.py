from __future__ import annotations

import os
from pathlib import Path
from typing import List, Tuple

import pytest
from PIL import Image

from imguard.encoder import CorruptImageError
from imguard.fileops import BACKUP_SUFFIX, TEMP_PREFIX
from imguard.formats import ImageFormat
from imguard.settings import GuardSettings


def write_png(path: Path, size: Tuple[int, int] = (64, 64), color=(200, 30, 30)) -> Path:
    """An uncompressed PNG, so a level-9 re-encode is always smaller."""
    Image.new("RGB", size, color).save(path, format="PNG", compress_level=0)
    return path


def write_noise_png(path: Path, size: Tuple[int, int] = (64, 64)) -> Path:
    Image.effect_noise(size, 60).save(path, format="PNG", compress_level=0)
    return path


def write_gif(path: Path, frames: int = 3) -> Path:
    images = [Image.new("P", (32, 32), i * 40) for i in range(frames)]
    images[0].save(path, format="GIF", save_all=True, append_images=images[1:], duration=100, loop=0)
    return path


def leftover_artifacts(directory: Path) -> List[Path]:
    return [
        p for p in directory.rglob("*")
        if p.name.startswith(TEMP_PREFIX) or p.name.endswith(BACKUP_SUFFIX)
    ]


class BytesEncoder:
    """Writes fixed bytes as the "encoded" output."""

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.calls: List[Tuple[Path, Path, ImageFormat]] = []

    def encode(self, source: Path, target: Path, fmt: ImageFormat) -> None:
        self.calls.append((Path(source), Path(target), fmt))
        Path(target).write_bytes(self.data)


class HalvingEncoder:
    """Output is half the source size (at least one byte)."""

    def encode(self, source: Path, target: Path, fmt: ImageFormat) -> None:
        data = Path(source).read_bytes()
        Path(target).write_bytes(data[: max(1, len(data) // 2)])


class CorruptEncoder:
    def encode(self, source: Path, target: Path, fmt: ImageFormat) -> None:
        raise CorruptImageError("corrupt header")


class FailingEncoder:
    def encode(self, source: Path, target: Path, fmt: ImageFormat) -> None:
        raise RuntimeError("encoder exploded")


@pytest.fixture
def settings() -> GuardSettings:
    return GuardSettings(retry_delay=0)


@pytest.fixture
def source(tmp_path: Path) -> Path:
    p = tmp_path / "photo.png"
    p.write_bytes(b"x" * 1000)
    os.chmod(p, 0o644)
    return p
