from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Sequence

from packshot_studio.assembly.frame import fit_to_frame
from packshot_studio.config import settings
from packshot_studio.naming import packshot_filename
from packshot_studio.providers.base import BackgroundRemover, Degraded
from packshot_studio.providers.removebg_provider import RemoveBgProvider

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"


@dataclass(frozen=True)
class PackshotItem:
    buffer: bytes
    filename: str


@dataclass(frozen=True)
class ProcessedImage:
    """
    One result per input. `error` set means `buffer` is the original input, unprocessed.
    `warning` set means the item was framed but background removal fell back.
    """

    filename: str
    buffer: bytes
    error: str | None = None
    warning: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class PackshotOptions:
    remove_background: bool = True
    api_key: str | None = None
    frame_size: int = 800
    max_workers: int = 1

    def __post_init__(self) -> None:
        if not isinstance(self.frame_size, int) or isinstance(self.frame_size, bool) or self.frame_size <= 0:
            raise ValueError(f"frame_size must be a positive integer, got {self.frame_size!r}")
        if not isinstance(self.max_workers, int) or self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers!r}")

    @classmethod
    def from_settings(cls, remove_background: bool = True, frame_size: int | None = None) -> "PackshotOptions":
        return cls(
            remove_background=remove_background,
            api_key=settings.remove_bg_api_key,
            frame_size=frame_size if frame_size is not None else settings.frame_size,
            max_workers=settings.max_workers,
        )


def _process_one(item: PackshotItem, options: PackshotOptions, remover: BackgroundRemover | None) -> ProcessedImage:
    try:
        data = item.buffer
        warning = None
        if remover is not None:
            outcome = remover.remove(data, label=item.filename)
            if isinstance(outcome, Degraded):
                warning = f"background removal skipped: {outcome.reason}"
            data = outcome.data

        framed = fit_to_frame(data, options.frame_size, label=item.filename)
        return ProcessedImage(filename=packshot_filename(item.filename), buffer=framed, warning=warning)
    except Exception as exc:
        # One bad item must not take the batch down; the caller sees it via `error`.
        logger.error("packshot item failed: %s", item.filename, exc_info=True)
        return ProcessedImage(filename=item.filename, buffer=item.buffer, error=str(exc) or exc.__class__.__name__)


def process_all(
    items: Sequence[PackshotItem],
    options: PackshotOptions | None = None,
    remover: BackgroundRemover | None = None,
    cancel: threading.Event | None = None,
) -> list[ProcessedImage]:
    """
    Remove background (optional), frame, and name every item.

    Always returns exactly len(items) results in input order. Items not yet started when
    `cancel` is set come back unprocessed with error="cancelled".
    """
    options = options or PackshotOptions()

    owned: RemoveBgProvider | None = None
    if options.remove_background and remover is None and options.api_key:
        remover = owned = RemoveBgProvider(api_key=options.api_key)
    if not options.remove_background:
        remover = None

    results: list[ProcessedImage | None] = [None] * len(items)

    def run(index: int) -> None:
        item = items[index]
        if cancel is not None and cancel.is_set():
            results[index] = ProcessedImage(filename=item.filename, buffer=item.buffer, error=CANCELLED)
            return
        results[index] = _process_one(item, options, remover)

    try:
        if options.max_workers == 1 or len(items) <= 1:
            for i in range(len(items)):
                run(i)
        else:
            with ThreadPoolExecutor(max_workers=options.max_workers) as pool:
                list(pool.map(run, range(len(items))))
    finally:
        if owned is not None:
            owned.close()

    done = [r for r in results if r is not None]
    ok = sum(1 for r in done if r.ok)
    logger.info("packshot batch done: %d of %d processed", ok, len(done))
    return done
