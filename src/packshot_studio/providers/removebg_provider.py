from __future__ import annotations

import io
import json
import logging
import math

import requests
from PIL import Image

from packshot_studio.assembly.frame import FrameError, decode_image
from packshot_studio.config import settings
from packshot_studio.providers.base import Degraded, Ok, Outcome

logger = logging.getLogger(__name__)

_RESAVE_FORMATS = {"JPEG", "PNG", "WEBP"}


class PayloadTooLarge(Exception):
    pass


def downscale_to_megapixels(data: bytes, max_megapixels: float) -> bytes:
    """
    Shrink an image so width*height stays within `max_megapixels`, aspect preserved.
    Returns the input unchanged when it is already small enough. Never enlarges.
    """
    img = decode_image(data)
    w, h = img.size
    megapixels = (w * h) / 1_000_000
    if megapixels <= max_megapixels:
        return data

    ratio = math.sqrt(max_megapixels / megapixels)
    new_w = max(1, math.floor(w * ratio))
    new_h = max(1, math.floor(h * ratio))
    fmt = img.format if img.format in _RESAVE_FORMATS else "PNG"
    buf = io.BytesIO()
    try:
        resized = img.resize((new_w, new_h), Image.Resampling.LANCZOS)
        if fmt == "JPEG" and resized.mode not in ("RGB", "L"):
            resized = resized.convert("RGB")
        resized.save(buf, format=fmt)
    except (OSError, ValueError, MemoryError) as exc:
        raise FrameError(f"cannot downscale image: {exc}") from exc
    return buf.getvalue()


def _describe_error_body(resp: requests.Response) -> str:
    # remove.bg answers errors with JSON; anything else is logged raw.
    try:
        return f"Status: {resp.status_code}, Details: {json.dumps(resp.json())}"
    except ValueError:
        return f"Status: {resp.status_code}, Data: {resp.text[:500]}"


class RemoveBgProvider:
    name = "remove.bg"

    def __init__(
        self,
        api_key: str,
        url: str | None = None,
        timeout_s: float | None = None,
        max_bytes: int | None = None,
        max_megapixels: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("remove.bg api_key must be non-empty")
        self.api_key = api_key
        self.url = url or settings.remove_bg_url
        self.timeout_s = timeout_s if timeout_s is not None else settings.remove_bg_timeout_s
        self.max_bytes = max_bytes if max_bytes is not None else settings.remove_bg_max_bytes
        self.max_megapixels = max_megapixels if max_megapixels is not None else settings.remove_bg_max_megapixels
        self._owns_session = session is None
        self.session = session or requests.Session()

    def close(self) -> None:
        # Injected sessions belong to the caller.
        if self._owns_session:
            self.session.close()

    def __enter__(self) -> "RemoveBgProvider":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def remove(self, image: bytes, label: str = "unknown_file") -> Outcome:
        """
        Strip the background via remove.bg. Any failure yields Degraded carrying the
        original bytes; this method does not raise for bad input or service errors.
        """
        logger.info("bg_remove start: %s", label)
        try:
            payload = self._prepare(image, label)
            data = self._submit(payload)
        except (FrameError, requests.RequestException, PayloadTooLarge) as exc:
            reason = str(exc) or exc.__class__.__name__
            logger.warning("bg_remove fallback: %s: %s", label, reason)
            return Degraded(data=image, reason=reason)

        logger.info("bg_remove success: %s", label)
        return Ok(data=data)

    def _prepare(self, image: bytes, label: str) -> bytes:
        payload = downscale_to_megapixels(image, self.max_megapixels)
        if payload is not image:
            logger.warning("bg_remove pre-scale: %s exceeded %.0f MP", label, self.max_megapixels)
        if len(payload) > self.max_bytes:
            raise PayloadTooLarge(f"request body {len(payload)} bytes exceeds {self.max_bytes}")
        return payload

    def _submit(self, payload: bytes) -> bytes:
        with self.session.post(
            self.url,
            data={"size": "preview"},
            files={"image_file": ("image.png", payload)},
            headers={"X-Api-Key": self.api_key},
            timeout=self.timeout_s,
            stream=True,
        ) as resp:
            if not resp.ok:
                raise requests.HTTPError(_describe_error_body(resp), response=resp)

            buf = bytearray()
            for chunk in resp.iter_content(chunk_size=64 * 1024):
                buf.extend(chunk)
                if len(buf) > self.max_bytes:
                    raise PayloadTooLarge(f"response exceeds {self.max_bytes} bytes")
            return bytes(buf)


def remove_background(image: bytes, api_key: str, label: str = "unknown_file") -> bytes:
    """Plain-bytes form of RemoveBgProvider.remove: the original comes back on failure."""
    with RemoveBgProvider(api_key=api_key) as provider:
        return provider.remove(image, label=label).data
