from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Literal, Sequence

from packshot_studio.providers.base import AiEanResult

_HYPHEN_RE = re.compile(r"([0-9]{12,13})-([0-9]+)")
_EAN_ONLY_RE = re.compile(r"[0-9]{12,13}")
_LEADING_DIGITS_RE = re.compile(r"^([0-9]+)")
_DASH_SEQ_RE = re.compile(r"-([0-9]+)")
_PAREN_SEQ_RE = re.compile(r"\(([0-9]+)\)")

# AI guesses at or below this are discarded entirely.
AI_CONFIDENCE_THRESHOLD = 0.5

FilenameFormat = Literal["hyphen", "ean_only"]
RenameStatus = Literal["will_rename", "keep_original"]
ExtractionMethod = Literal["pattern", "ai"]


@dataclass(frozen=True)
class FilenameExtraction:
    ean: str
    format: FilenameFormat
    number: str | None = None


@dataclass(frozen=True)
class RenamePreview:
    original_name: str
    new_name: str
    ean: str | None
    status: RenameStatus
    extraction_method: ExtractionMethod
    confidence: float | None = None

    def to_json(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "originalName": self.original_name,
            "newName": self.new_name,
            "ean": self.ean,
            "status": self.status,
            "extractionMethod": self.extraction_method,
        }
        if self.confidence is not None:
            out["confidence"] = self.confidence
        return out


@dataclass(frozen=True)
class RenamedFile:
    original_name: str
    new_name: str
    buffer: bytes
    ean: str | None
    success: bool


def remove_leading_zeros(ean: str) -> str:
    """
    "0843251198986" -> "843251198986". An all-zero string collapses to "0", never "".
    """
    return ean.lstrip("0") or "0"


def is_valid_ean(value: str) -> bool:
    # Shape only: 12 or 13 ASCII digits, no check-digit arithmetic.
    return _EAN_ONLY_RE.fullmatch(value) is not None


def _split_ext(filename: str) -> tuple[str, str]:
    idx = filename.rfind(".")
    if idx == -1:
        return filename, ""
    return filename[:idx], filename[idx:]


def extract_ean_from_filename(filename: str) -> FilenameExtraction | None:
    """
    Match the name (extension stripped) against `EAN-N` first, then a bare `EAN`.
    Anything else, including extra text around the digits, yields None.
    """
    name, _ = _split_ext(filename)

    m = _HYPHEN_RE.fullmatch(name)
    if m:
        return FilenameExtraction(ean=m.group(1), number=m.group(2), format="hyphen")

    m = _EAN_ONLY_RE.fullmatch(name)
    if m:
        return FilenameExtraction(ean=m.group(0), format="ean_only")

    return None


def process_files_for_preview(
    filenames: Sequence[str],
    remove_zeros: bool = False,
    ai_results: Sequence[AiEanResult | None] | None = None,
) -> list[RenamePreview]:
    """
    Compute rename targets for a batch of filenames, in input order.

    Pattern matches win. Names without a pattern fall back to the AI guess at the same
    index when it carries an EAN with confidence above the threshold; AI-named files are
    numbered after the highest `EAN-N` already seen for that EAN earlier in the batch.
    """
    results: list[RenamePreview] = []
    # EAN -> highest sequence number handed out so far; lives for this call only.
    ean_counts: dict[str, int] = {}

    for index, filename in enumerate(filenames):
        extraction = extract_ean_from_filename(filename)

        if extraction is not None:
            ean = remove_leading_zeros(extraction.ean) if remove_zeros else extraction.ean

            if extraction.format == "hyphen" and extraction.number:
                current = int(extraction.number) or 1
                ean_counts[ean] = max(ean_counts.get(ean, 0), current)
                new_name = filename.replace(extraction.ean, ean, 1)
            else:
                new_name = f"{ean}{_split_ext(filename)[1]}"

            results.append(
                RenamePreview(
                    original_name=filename,
                    new_name=new_name,
                    ean=ean,
                    status="will_rename" if new_name != filename else "keep_original",
                    extraction_method="pattern",
                )
            )
            continue

        ai = ai_results[index] if ai_results is not None and index < len(ai_results) else None
        if ai is None:
            results.append(
                RenamePreview(
                    original_name=filename,
                    new_name=filename,
                    ean=None,
                    status="keep_original",
                    extraction_method="pattern",
                )
            )
            continue

        if ai.ean and ai.confidence > AI_CONFIDENCE_THRESHOLD:
            ean = remove_leading_zeros(ai.ean) if remove_zeros else ai.ean
            number = ean_counts.get(ean, 0) + 1
            ean_counts[ean] = number
            results.append(
                RenamePreview(
                    original_name=filename,
                    new_name=f"{ean}-{number}{_split_ext(filename)[1]}",
                    ean=ean,
                    status="will_rename",
                    extraction_method="ai",
                    confidence=ai.confidence,
                )
            )
        else:
            results.append(
                RenamePreview(
                    original_name=filename,
                    new_name=filename,
                    ean=None,
                    status="keep_original",
                    extraction_method="ai",
                    confidence=ai.confidence,
                )
            )

    return results


def process_files_for_rename(
    files: Sequence[tuple[str, bytes]],
    remove_zeros: bool = False,
    ai_results: Sequence[AiEanResult | None] | None = None,
) -> list[RenamedFile]:
    """Run the preview over `(original_name, buffer)` pairs and zip the buffers back in."""
    previews = process_files_for_preview([name for name, _ in files], remove_zeros=remove_zeros, ai_results=ai_results)
    return [
        RenamedFile(
            original_name=name,
            new_name=preview.new_name,
            buffer=buffer,
            ean=preview.ean,
            success=preview.status == "will_rename",
        )
        for (name, buffer), preview in zip(files, previews)
    ]


def summarize_previews(previews: Sequence[RenamePreview]) -> dict[str, int]:
    renamed = sum(1 for p in previews if p.status == "will_rename")
    return {
        "total_files": len(previews),
        "renamed_count": renamed,
        "kept_original_count": len(previews) - renamed,
        "ai_processed_count": sum(1 for p in previews if p.extraction_method == "ai"),
    }


def packshot_filename(filename: str) -> str:
    """
    Output name for a framed packshot: leading digits of the input plus an optional
    sequence taken from `-N` (preferred) or `(N)` anywhere in the name. Always `.png`.
    """
    m = _LEADING_DIGITS_RE.match(filename)
    base = m.group(1) if m else filename.split(".")[0]

    seq = _DASH_SEQ_RE.search(filename) or _PAREN_SEQ_RE.search(filename)
    if seq:
        return f"{base}-{seq.group(1)}.png"
    return f"{base}.png"


def dedupe_names(names: Sequence[str]) -> list[str]:
    """Make archive member names unique: repeats become `name (2).ext`, `name (3).ext`, ..."""
    seen: dict[str, int] = {}
    taken: set[str] = set(names)
    out: list[str] = []
    for name in names:
        count = seen.get(name, 0) + 1
        seen[name] = count
        if count == 1:
            out.append(name)
            continue
        stem, ext = _split_ext(name)
        candidate = f"{stem} ({count}){ext}"
        while candidate in taken:
            count += 1
            candidate = f"{stem} ({count}){ext}"
        seen[name] = count
        taken.add(candidate)
        out.append(candidate)
    return out
