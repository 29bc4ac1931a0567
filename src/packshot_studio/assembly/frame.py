from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Same ceiling as libvips (0x3FFF * 0x3FFF); oversized inputs are downscaled, not rejected.
Image.MAX_IMAGE_PIXELS = 0x3FFF * 0x3FFF

_SIXTEEN_BIT_MODES = {"I", "I;16", "I;16B", "I;16L", "I;16N"}


class FrameError(Exception):
    pass


class DecodeError(FrameError):
    pass


class EncodeError(FrameError):
    pass


@dataclass(frozen=True)
class FramePlacement:
    new_width: int
    new_height: int
    left: int
    top: int


def _round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; pixel sizes round .5 up.
    return int(math.floor(value + 0.5))


def decode_image(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise DecodeError(f"cannot decode image: {exc}") from exc
    w, h = img.size
    if w <= 0 or h <= 0:
        raise DecodeError("Invalid image dimensions")
    return img


def encode_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    try:
        img.save(buf, format="PNG")
    except (OSError, ValueError) as exc:
        raise EncodeError(f"cannot encode PNG: {exc}") from exc
    return buf.getvalue()


def compute_placement(width: int, height: int, frame_size: int) -> FramePlacement:
    """
    Scale-to-fit inside a square frame, aspect preserved, then center.
    Small sources are enlarged to fill the frame. Odd leftover pixels go bottom/right.
    """
    if width <= 0 or height <= 0:
        raise DecodeError("Invalid image dimensions")
    if frame_size <= 0:
        raise ValueError("frame_size must be positive")

    scale = min(frame_size / width, frame_size / height)
    new_w = max(1, _round_half_up(width * scale))
    new_h = max(1, _round_half_up(height * scale))
    return FramePlacement(
        new_width=new_w,
        new_height=new_h,
        left=(frame_size - new_w) // 2,
        top=(frame_size - new_h) // 2,
    )


def _resizable(img: Image.Image) -> Image.Image:
    # 16-bit grey is scaled down to 8 bits; a plain convert would clip it to white.
    if img.mode in _SIXTEEN_BIT_MODES:
        return img.convert("I").point(lambda v: v * (1 / 257)).convert("L")
    if img.mode == "1":
        return img.convert("L")
    if img.mode in ("L", "RGB", "RGBA"):
        return img
    return img.convert("RGBA")


def fit_image_to_frame(img: Image.Image, frame_size: int) -> Image.Image:
    placement = compute_placement(img.width, img.height, frame_size)
    # Resize before widening to RGBA so large sources never get a 4-channel full-size copy.
    resized = _resizable(img).resize(
        (placement.new_width, placement.new_height),
        Image.Resampling.LANCZOS,
    ).convert("RGBA")
    canvas = Image.new("RGBA", (frame_size, frame_size), (0, 0, 0, 0))
    canvas.alpha_composite(resized, dest=(placement.left, placement.top))
    return canvas


def fit_to_frame(image: bytes, frame_size: int, label: str = "unknown_file") -> bytes:
    """
    Decode `image`, fit it centered on a transparent `frame_size` x `frame_size`
    canvas and return PNG bytes. Raises DecodeError / EncodeError.
    """
    logger.debug("frame item start: %s", label)
    img = decode_image(image)
    out = encode_png(fit_image_to_frame(img, frame_size))
    logger.debug("frame item success: %s (%dx%d -> %d)", label, img.width, img.height, frame_size)
    return out
