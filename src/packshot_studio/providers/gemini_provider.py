from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Sequence

from packshot_studio.config import settings
from packshot_studio.providers.base import AiEanResult

logger = logging.getLogger(__name__)

_EXACT_EAN_RE = re.compile(r"[0-9]{12,13}")
_EMBEDDED_EAN_RE = re.compile(r"\b([0-9]{12,13})\b")

NO_EAN = "NO_EAN"

_PROMPT = """Extract the 12 or 13 digit EAN/UPC barcode number from this filename: "{filename}"

Rules:
- EAN codes are exactly 12 or 13 consecutive digits
- They may be surrounded by underscores, hyphens, dots, or other separators
- Ignore any other numbers that aren't 12-13 digits long
- Return ONLY the EAN number, nothing else
- If no valid EAN found, return "NO_EAN"

Examples:
"product_0630870296793_large.jpg" -> "0630870296793"
"IMG-8901030865278-FINAL.png" -> "8901030865278"
"item_desc_0843251198986_v2.jpg" -> "0843251198986"
"0630870296793__1__new.jpg" -> "0630870296793"
"random_text_123.jpg" -> "NO_EAN"
"photo_98765.png" -> "NO_EAN"

Filename: "{filename}"
EAN:"""


def interpret_ean_response(text: str | None) -> AiEanResult:
    """
    Map a model answer onto (ean, confidence):
    exact digits 0.9, explicit NO_EAN 0.8, digits buried in chatter 0.7, anything else 0.3.
    """
    s = _strip_quotes((text or "").strip())
    if s == NO_EAN:
        return AiEanResult(ean=None, confidence=0.8)
    if _EXACT_EAN_RE.fullmatch(s):
        return AiEanResult(ean=s, confidence=0.9)
    m = _EMBEDDED_EAN_RE.search(s)
    if m:
        return AiEanResult(ean=m.group(1), confidence=0.7)
    return AiEanResult(ean=None, confidence=0.3)


def _strip_quotes(s: str) -> str:
    if len(s) >= 2 and s[0] == s[-1] and s[0] in "\"'`":
        return s[1:-1].strip()
    return s


class GeminiEanExtractor:
    name = "gemini"

    def __init__(self, api_key: str, model: str | None = None, batch_size: int | None = None, client: Any = None) -> None:
        if client is None:
            # Imported lazily so the app can start without the dependency installed.
            from google import genai  # type: ignore

            client = genai.Client(api_key=api_key)
        self.client = client
        self.model = model or settings.gemini_text_model
        self.batch_size = max(1, batch_size or settings.ai_batch_size)

    def analyze_filenames(self, filenames: Sequence[str]) -> list[AiEanResult]:
        """
        One request per filename, issued in rounds of `batch_size` to stay under rate
        limits. Output order matches input order; a failed request scores (None, 0).
        """
        out: list[AiEanResult] = []
        with ThreadPoolExecutor(max_workers=self.batch_size) as pool:
            for start in range(0, len(filenames), self.batch_size):
                batch = filenames[start : start + self.batch_size]
                out.extend(pool.map(self._analyze_one, batch))
        return out

    def _analyze_one(self, filename: str) -> AiEanResult:
        try:
            resp = self.client.models.generate_content(
                model=self.model,
                contents=_PROMPT.format(filename=filename),
                config={"temperature": 0.1, "top_p": 0.8, "top_k": 40, "max_output_tokens": 100},
            )
        except Exception as exc:
            # SDK errors are not part of a stable hierarchy; score the name as unknown.
            logger.warning("ai filename parse failed: %s: %s", filename, exc)
            return AiEanResult(ean=None, confidence=0.0)

        result = interpret_ean_response(getattr(resp, "text", None))
        logger.info("ai parsed %r -> ean=%s confidence=%.1f", filename, result.ean or "none", result.confidence)
        return result
