from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional

from PIL import Image, ImageSequence, JpegImagePlugin, UnidentifiedImageError, features

from .formats import ANIMATED_FORMATS, FORMAT_OPTIONS, ImageFormat


class EncoderError(Exception):
    """Base class for encoder problems."""


class CorruptImageError(EncoderError):
    """The source bytes could not be decoded as the expected format."""


class EncoderUnavailableError(EncoderError):
    """The installed Pillow has no codec for this format."""


# Everything Pillow raises for bad input while identifying or decoding.
_DECODE_ERRORS = (
    UnidentifiedImageError,
    SyntaxError,
    EOFError,
    ValueError,
    OSError,
)

# What Pillow may report for each format. Camera JPEGs often open as MPO
# (multi-picture); only the primary image is re-encoded.
_DECODED_AS = {
    ImageFormat.JPEG: frozenset({"JPEG", "MPO"}),
}

# Metadata carried over so a re-encode never changes how the image looks.
_KEEP_INFO = ("icc_profile", "exif")


class PillowEncoder:
    """
    Re-encodes an image file with Pillow using a fixed option table.

    encode() either writes the target file or raises: CorruptImageError for
    input that cannot be decoded, anything else for real failures.
    """

    def __init__(self, options: Mapping[ImageFormat, Mapping[str, Any]] = FORMAT_OPTIONS) -> None:
        self.options = options
        self.threads: Optional[int] = None

    def configure_threads(self, threads: int) -> bool:
        """
        Cap the codec's own worker threads per encode call.

        Only the AVIF codec exposes a thread pool through Pillow. Returns
        False when nothing could be applied.
        """
        if threads < 1 or not features.check("avif"):
            return False
        self.threads = threads
        return True

    def encode(self, source: Path, target: Path, fmt: ImageFormat) -> None:
        if fmt is ImageFormat.AVIF and not features.check("avif"):
            raise EncoderUnavailableError("Pillow was built without AVIF support")

        im = _decode(Path(source), fmt)
        with im:
            im.save(target, format=fmt.value, **self._build_save_kwargs(im, fmt))

    def _build_save_kwargs(self, im: Image.Image, fmt: ImageFormat) -> dict:
        kwargs = dict(self.options[fmt])

        for key in _KEEP_INFO:
            value = im.info.get(key)
            if value:
                kwargs[key] = value

        if fmt in ANIMATED_FORMATS and getattr(im, "n_frames", 1) > 1:
            kwargs["save_all"] = True

        if fmt is ImageFormat.JPEG and im.format != "JPEG":
            # "keep" only works on plain JPEG; hand the same tables over directly.
            del kwargs["quality"]
            kwargs["qtables"] = getattr(im, "quantization", None)
            kwargs["subsampling"] = JpegImagePlugin.get_sampling(im)

        if fmt is ImageFormat.AVIF and self.threads is not None:
            kwargs["max_threads"] = self.threads

        return kwargs


def _decode(source: Path, fmt: ImageFormat) -> Image.Image:
    """Open and fully load every frame, so truncation shows up before we write anything."""
    try:
        im = Image.open(source)
    except (FileNotFoundError, PermissionError):
        raise
    except Image.DecompressionBombError as e:
        # A valid but huge image, not a broken one.
        raise EncoderError(f"image too large to decode safely: {e}") from e
    except _DECODE_ERRORS as e:
        raise CorruptImageError(f"cannot identify image: {e}") from e

    try:
        if im.format not in _DECODED_AS.get(fmt, {fmt.value}):
            raise CorruptImageError(f"content is {im.format}, extension says {fmt.value}")

        for frame in ImageSequence.Iterator(im):
            frame.load()
        im.seek(0)
    except CorruptImageError:
        im.close()
        raise
    except _DECODE_ERRORS as e:
        im.close()
        raise CorruptImageError(str(e)) from e

    return im
