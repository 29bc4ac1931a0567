from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence, Union


@dataclass(frozen=True)
class Ok:
    data: bytes


@dataclass(frozen=True)
class Degraded:
    # `data` is the untouched input; `reason` says why the enhancement was skipped.
    data: bytes
    reason: str


Outcome = Union[Ok, Degraded]


@dataclass(frozen=True)
class AiEanResult:
    ean: str | None
    confidence: float


class BackgroundRemover(Protocol):
    name: str

    def remove(self, image: bytes, label: str = "unknown_file") -> Outcome: ...


class EanExtractor(Protocol):
    name: str

    def analyze_filenames(self, filenames: Sequence[str]) -> list[AiEanResult]: ...
