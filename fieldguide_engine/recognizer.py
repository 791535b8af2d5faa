"""Caption text recognition backends.

Backends take one caption crop (PNG bytes) and return the entry name (the
first meaningful line) and the full recognized text.

Gemini is the default backend. EasyOCR runs offline and needs no API key.
"""
from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Callable, Protocol

import httpx
import numpy as np
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from PIL import Image

from .errors import RateLimitedError, RecognitionError, TransientRecognitionError
from .types import UNKNOWN_NAME, Recognition

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"

RECOGNITION_PROMPT = """\
This image is the caption area of one entry in an illustrated field guide.
Transcribe all of its text exactly as printed, top to bottom.
Put the entry's name alone on the first line.
Output only the transcribed text, without comments or formatting.
"""

_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_HEADING_RE = re.compile(r"^#+\s*")
_BULLET_RE = re.compile(r"^[-*・]\s+")
_LABEL_RE = re.compile(
    r"^(?:植物名|名前|名称|和名|説明文?|name|title|description)\s*[:：]\s*",
    re.IGNORECASE,
)
# Digits, punctuation and symbols only: page numbers, separators, stray marks.
_NOISE_RE = re.compile(r"^[\d\W_]+$")


def _clean_lines(text: str) -> list[str]:
    text = _BR_RE.sub("\n", text or "")
    lines: list[str] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("```"):
            continue
        line = _TAG_RE.sub("", line)
        line = _HEADING_RE.sub("", line)
        line = line.replace("**", "").strip()
        if line:
            lines.append(line)
    return lines


def _name_candidate(line: str) -> str | None:
    if line.startswith(">"):
        return None
    line = _BULLET_RE.sub("", line)
    line = _LABEL_RE.sub("", line).strip()
    if not line or _NOISE_RE.match(line):
        return None
    return line


def parse_recognized_text(text: str) -> Recognition:
    """Split backend output into (name, full text).

    The name is the first meaningful line with markup and field labels
    removed; "unknown" when there is none.
    """
    lines = _clean_lines(text)
    name = next((c for c in (_name_candidate(ln) for ln in lines) if c), None)
    return Recognition(name=name or UNKNOWN_NAME, text="\n".join(lines))


class Recognizer(Protocol):
    def recognize(self, image_png: bytes) -> Recognition: ...


def _classify_gemini_error(e: Exception) -> RecognitionError:
    if isinstance(e, genai_errors.APIError):
        code = getattr(e, "code", None)
        status = str(getattr(e, "status", "") or "")
        if code == 429 or status == "RESOURCE_EXHAUSTED":
            return RateLimitedError(f"rate limited by backend: {e}")
        if isinstance(code, int) and code >= 500:
            return TransientRecognitionError(f"backend error {code}: {e}")
        return RecognitionError(f"backend rejected request ({code}): {e}")
    if isinstance(e, httpx.TransportError):
        return TransientRecognitionError(f"network error: {e}")
    return RecognitionError(f"recognition failed: {e}")


@dataclass
class GeminiRecognizer:
    """Gemini vision call with its own transient-failure policy.

    - rate limit: wait rate_limit_base_s + backoff_base_s * 2**(n-1), retry
    - network / 5xx: wait backoff_base_s * 2**(n-1), retry
    - anything else: raise RecognitionError immediately
    max_attempts bounds the total number of requests.
    """

    api_key: str | None = None
    model: str = DEFAULT_GEMINI_MODEL
    max_attempts: int = 3
    rate_limit_base_s: float = 10.0
    backoff_base_s: float = 1.0
    temperature: float = 0.1
    max_output_tokens: int = 2048
    client: Any | None = None
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self) -> None:
        if self.client is None:
            key = self.api_key or os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
            if not key:
                raise RuntimeError("GEMINI_API_KEY or GOOGLE_API_KEY must be set in the environment")
            self.client = genai.Client(api_key=key)

    def _request(self, image_png: bytes) -> str:
        try:
            resp = self.client.models.generate_content(
                model=self.model,
                contents=[
                    genai_types.Part.from_bytes(data=image_png, mime_type="image/png"),
                    RECOGNITION_PROMPT,
                ],
                config=genai_types.GenerateContentConfig(
                    temperature=self.temperature,
                    max_output_tokens=self.max_output_tokens,
                ),
            )
        except Exception as e:
            raise _classify_gemini_error(e) from e
        return resp.text or ""

    def recognize(self, image_png: bytes) -> Recognition:
        attempts = max(1, int(self.max_attempts))
        for attempt in range(1, attempts + 1):
            try:
                raw = self._request(image_png)
                if not raw.strip():
                    logger.warning("empty recognition response")
                return parse_recognized_text(raw)
            except RateLimitedError as e:
                if attempt >= attempts:
                    raise
                delay = self.rate_limit_base_s + self.backoff_base_s * (2 ** (attempt - 1))
                logger.warning("rate limited (attempt %d/%d), waiting %.1fs: %s", attempt, attempts, delay, e)
            except TransientRecognitionError as e:
                if attempt >= attempts:
                    raise
                delay = self.backoff_base_s * (2 ** (attempt - 1))
                logger.warning("transient failure (attempt %d/%d), retrying in %.1fs: %s", attempt, attempts, delay, e)
            self.sleep(delay)
        raise RecognitionError("recognition attempts exhausted")  # pragma: no cover


def _box_top_left(box: Any) -> tuple[float, float]:
    ys = [p[1] for p in box]
    xs = [p[0] for p in box]
    return min(ys), min(xs)


@dataclass
class EasyOCRRecognizer:
    """Offline recognition with EasyOCR; lines are read top-to-bottom."""

    lang: str = "ja,en"
    gpu: bool = False
    _reader: Any | None = None

    def _get_reader(self) -> Any:
        if self._reader is None:
            try:
                import easyocr
            except Exception as e:  # pragma: no cover
                raise RuntimeError("easyocr is required for --backend easyocr. Install easyocr.") from e
            langs = [s.strip() for s in self.lang.split(",") if s.strip()]
            self._reader = easyocr.Reader(langs, gpu=self.gpu)
        return self._reader

    def recognize(self, image_png: bytes) -> Recognition:
        reader = self._get_reader()
        try:
            with Image.open(BytesIO(image_png)) as im:
                arr = np.array(im.convert("RGB"))
            results = reader.readtext(arr)
        except Exception as e:
            raise RecognitionError(f"easyocr failed: {e}") from e

        ordered = sorted(results, key=lambda r: _box_top_left(r[0]))
        return parse_recognized_text("\n".join(str(r[1]) for r in ordered))


def build_recognizer(backend: str, recognition_cfg: dict[str, Any]) -> Recognizer:
    if backend == "gemini":
        return GeminiRecognizer(
            model=str(recognition_cfg.get("model", DEFAULT_GEMINI_MODEL)),
            max_attempts=int(recognition_cfg.get("max_attempts", 3)),
            rate_limit_base_s=float(recognition_cfg.get("rate_limit_base_s", 10.0)),
            backoff_base_s=float(recognition_cfg.get("backoff_base_s", 1.0)),
        )
    if backend == "easyocr":
        return EasyOCRRecognizer(lang=str(recognition_cfg.get("lang", "ja,en")))
    raise ValueError(f"unknown recognition backend: {backend}")
