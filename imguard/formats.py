from __future__ import annotations

import enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional


class ImageFormat(enum.Enum):
    """Formats we compress. The value is the Pillow format name."""

    AVIF = "AVIF"
    GIF = "GIF"
    JPEG = "JPEG"
    PNG = "PNG"
    WEBP = "WEBP"


# Extensions we look for, in the order they are reported.
FILE_TYPES = ("avif", "gif", "jpg", "jpeg", "png", "webp")

SUPPORTED_EXTS = frozenset(f".{t}" for t in FILE_TYPES)

EXT_TO_FORMAT: Mapping[str, ImageFormat] = MappingProxyType({
    ".avif": ImageFormat.AVIF,
    ".gif": ImageFormat.GIF,
    ".jpg": ImageFormat.JPEG,
    ".jpeg": ImageFormat.JPEG,
    ".png": ImageFormat.PNG,
    ".webp": ImageFormat.WEBP,
})

# Save options per format. Everything here is lossless (or reuses the
# source's own quantisation for JPEG), at maximum effort.
FORMAT_OPTIONS: Mapping[ImageFormat, Mapping[str, Any]] = MappingProxyType({
    ImageFormat.PNG: MappingProxyType({
        "optimize": True,
        "compress_level": 9,
    }),
    ImageFormat.GIF: MappingProxyType({
        "optimize": True,
    }),
    ImageFormat.WEBP: MappingProxyType({
        "lossless": True,
        "quality": 100,
        "method": 6,
    }),
    ImageFormat.AVIF: MappingProxyType({
        "quality": 100,
        "subsampling": "4:4:4",
        "speed": 4,
    }),
    ImageFormat.JPEG: MappingProxyType({
        "quality": "keep",
        "subsampling": "keep",
        "optimize": True,
    }),
})

# Formats that can carry more than one frame.
ANIMATED_FORMATS = frozenset({ImageFormat.GIF, ImageFormat.PNG, ImageFormat.WEBP, ImageFormat.AVIF})


def is_supported(path: Path) -> bool:
    return Path(path).suffix.lower() in SUPPORTED_EXTS


def format_for_path(path: Path) -> Optional[ImageFormat]:
    """Resolve the encoder format from the file extension (case-insensitive)."""
    return EXT_TO_FORMAT.get(Path(path).suffix.lower())
