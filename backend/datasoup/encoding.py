"""Charset detection and normalization of downloaded resources.

data.gov.il serves CSVs either as UTF-8 or in a legacy Hebrew code page.
Everything stored on disk is UTF-8.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from charset_normalizer import from_bytes

from datasoup.errors import EncodingError

logger = logging.getLogger(__name__)

CANONICAL_CHARSET = "utf_8"
LEGACY_CODEC = "cp1255"
_UTF8_FAMILY = {"utf_8", "utf_8_sig", "ascii"}
_ALLOWED_CONTROLS = {"\t", "\n", "\r"}
MAX_CONTROL_RATIO = 0.01


@dataclass(frozen=True)
class NormalizedContent:
    data: bytes
    charset: str

    @property
    def converted(self) -> bool:
        return self.charset not in _UTF8_FAMILY

    def text(self) -> str:
        return self.data.decode("utf-8")


def _is_utf8(data: bytes) -> bool:
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


def _check_plausible(text: str) -> None:
    if "\x00" in text:
        raise EncodingError("decoded text contains NUL bytes; content looks binary")
    controls = sum(1 for ch in text if ch < " " and ch not in _ALLOWED_CONTROLS)
    if text and controls / len(text) > MAX_CONTROL_RATIO:
        raise EncodingError(f"decoded text has {controls} control characters out of {len(text)}")


def detect_charset(data: bytes) -> str:
    best = from_bytes(data).best()
    if best is None:
        raise EncodingError("charset detection found no plausible encoding")
    return best.encoding


def normalize(data: bytes) -> NormalizedContent:
    """Return ``data`` as UTF-8 together with the charset it was found in.

    Valid UTF-8 passes through untouched, so normalizing twice is a no-op.
    Anything else is decoded as Windows-1255 regardless of the detector's
    exact guess, which only has to confirm the buffer is text at all.
    """
    if not data or _is_utf8(data):
        return NormalizedContent(data=data, charset=CANONICAL_CHARSET)

    charset = detect_charset(data)
    if charset in _UTF8_FAMILY:
        # Detector and strict decoder disagree: the buffer is broken UTF-8.
        raise EncodingError("buffer detected as UTF-8 but does not decode strictly")

    try:
        text = data.decode(LEGACY_CODEC)
    except UnicodeDecodeError as exc:
        raise EncodingError(f"{LEGACY_CODEC} decode failed (detected {charset}): {exc}") from exc
    _check_plausible(text)
    logger.debug("Converted resource from %s via %s", charset, LEGACY_CODEC)
    return NormalizedContent(data=text.encode("utf-8"), charset=charset)
