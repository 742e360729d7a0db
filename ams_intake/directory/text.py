"""Text normalisation shared by the directory and schedule parsers."""

from __future__ import annotations

import re

# BOM, zero-width space/non-joiner/joiner, word joiner
_INVISIBLE_RE = re.compile("[\ufeff\u200b\u200c\u200d\u2060]")
_NBSP_RE = re.compile("[\u00a0\u202f]")


def normalize_text(text: str | None) -> str:
    """Strip invisible characters, unify line endings and trim.

    ``None`` and empty input both yield ``""``.
    """
    if not text:
        return ""
    text = _INVISIBLE_RE.sub("", text)
    text = _NBSP_RE.sub(" ", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text.strip()
