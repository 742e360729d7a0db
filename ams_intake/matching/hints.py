"""Soft-signal extraction from conversation text.

Every detector is a pure function over a single string so each signal
can be tested (and later replaced) on its own.  :func:`extract_hints`
combines them: the latest message wins, then earlier user turns from
newest to oldest.  Assistant turns are not scanned because they echo
directory content (states, insurers) the client never asked for.  The
one exception is a bare "both" answering an assistant question that
offered therapy and medication management.

Detection is heuristic by nature.  The one hard rule is that state
codes which double as English words ("or", "in", "me", ...) only count
when written in upper case in the original text.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Callable, Literal

from ams_intake.conversation import Turn, last_assistant_text, user_texts_recent_first
from ams_intake.vocabulary import (
    AMBIGUOUS_STATE_CODES,
    INSURER_PATTERNS,
    LANGUAGE_PATTERNS,
    STATE_CODES,
    STATE_NAMES,
    UPPERCASE_NOISE_CODES,
)

RolePreference = Literal["therapist", "psychiatrist", "both"]

# Longest names first so "west virginia" wins over "virginia"
_STATE_NAME_RE = re.compile(
    r"\b(" + "|".join(re.escape(n) for n in sorted(STATE_NAMES, key=len, reverse=True)) + r")\b"
)
_STATE_CODE_RE = re.compile(r"\b([A-Za-z]{2})\b")
_LOCATION_CUE_RE = re.compile(
    r"(?:\bin|\bfrom|\bto|\bnear|\bstate(?: of)?|\blicensed in|\blocated in)\s+$",
    re.IGNORECASE,
)

_PSYCHIATRY_RE = re.compile(
    r"\b(?:psychiatr\w*|medications?|meds|med(?:ication)? management|prescri\w*)\b"
)
_THERAPY_RE = re.compile(r"\b(?:(?:psycho)?therap\w*|counsel\w*)\b")
_BOTH_RE = re.compile(r"\bboth\b")

_LIST_RE = re.compile(
    r"\b(?:list|options|show me|who(?:'s| is| are)? available|which (?:providers|therapists|psychiatrists)"
    r"|what (?:providers|therapists|psychiatrists)|recommend\w*|matches|any (?:providers|therapists|psychiatrists))\b"
)
_SLOTS_RE = re.compile(r"\b(?:times?|slots?|openings?|availability|available|appointments?)\b")
_MORE_SLOTS_RE = re.compile(
    r"\b(?:more|later|other|another|additional|next)\b.{0,20}?"
    r"\b(?:times?|slots?|openings?|options|dates?|days?|availability)\b"
    r"|\b(?:anything|something|any(?:thing)?)\s+later\b"
)


@dataclass(frozen=True)
class Hints:
    """Best-effort signals for one request.  No field is guaranteed."""

    state: str | None = None
    insurer: str | None = None
    role_preference: RolePreference | None = None
    language: str | None = None
    wants_list: bool = False
    wants_slots: bool = False
    wants_more_slots: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


# ── Per-signal detectors ─────────────────────────────────────────────


def detect_states(text: str) -> list[str]:
    """All state mentions in *text*, in order of appearance."""
    if not text:
        return []
    found: list[tuple[int, str]] = []

    for match in _STATE_NAME_RE.finditer(text.lower()):
        found.append((match.start(), STATE_NAMES[match.group(1)]))

    for match in _STATE_CODE_RE.finditer(text):
        token = match.group(1)
        code = token.upper()
        if code not in STATE_CODES:
            continue
        if code in AMBIGUOUS_STATE_CODES and token != code:
            continue
        if code in UPPERCASE_NOISE_CODES and not _LOCATION_CUE_RE.search(text[: match.start()]):
            continue
        found.append((match.start(), code))

    found.sort(key=lambda item: item[0])
    return [code for _, code in found]


def detect_state(text: str) -> str | None:
    """Last state mentioned in *text*."""
    states = detect_states(text)
    return states[-1] if states else None


def detect_insurer(text: str) -> str | None:
    """Last payment type mentioned in *text*, as a normalized token."""
    return _last_pattern_hit(text, INSURER_PATTERNS)


def detect_language(text: str) -> str | None:
    return _last_pattern_hit(text, LANGUAGE_PATTERNS)


def detect_role_preference(text: str) -> RolePreference | None:
    """Therapy vs psychiatry preference, or ``None`` when nothing is said."""
    if not text:
        return None
    lowered = text.lower()
    psychiatry = bool(_PSYCHIATRY_RE.search(lowered))
    therapy = bool(_THERAPY_RE.search(lowered))
    if psychiatry and therapy:
        return "both"
    if (psychiatry or therapy) and _BOTH_RE.search(lowered):
        return "both"
    if psychiatry:
        return "psychiatrist"
    if therapy:
        return "therapist"
    return None


def wants_list(text: str) -> bool:
    return bool(text) and bool(_LIST_RE.search(text.lower()))


def wants_slots(text: str) -> bool:
    return bool(text) and bool(_SLOTS_RE.search(text.lower()))


def wants_more_slots(text: str) -> bool:
    return bool(text) and bool(_MORE_SLOTS_RE.search(text.lower()))


def _last_pattern_hit(text: str, patterns: dict[str, re.Pattern[str]]) -> str | None:
    if not text:
        return None
    lowered = text.lower()
    best: tuple[int, str] | None = None
    for label, pattern in patterns.items():
        for match in pattern.finditer(lowered):
            if best is None or match.start() >= best[0]:
                best = (match.start(), label)
    return best[1] if best else None


# ── Combination over the conversation window ────────────────────────


def _first_signal(texts: list[str], detector: Callable[[str], str | None]) -> str | None:
    for text in texts:
        value = detector(text)
        if value:
            return value
    return None


def _answers_role_question(history: list[Turn], message: str) -> bool:
    """A bare "both" replying to an assistant turn that offered the choice."""
    if not message or not _BOTH_RE.search(message.lower()):
        return False
    question = (last_assistant_text(history) or "").lower()
    return bool(_PSYCHIATRY_RE.search(question)) and bool(_THERAPY_RE.search(question))


def extract_hints(history: list[Turn], message: str) -> Hints:
    """Scan the latest message, then earlier user turns, for each signal."""
    texts = user_texts_recent_first(history, message)
    role_preference = detect_role_preference(message)
    if role_preference is None and _answers_role_question(history, message):
        role_preference = "both"
    return Hints(
        state=_first_signal(texts, detect_state),
        insurer=_first_signal(texts, detect_insurer),
        role_preference=role_preference or _first_signal(texts, detect_role_preference),
        language=_first_signal(texts, detect_language),
        # Listing and paging are about the current ask only
        wants_list=wants_list(message),
        wants_slots=wants_slots(message),
        wants_more_slots=wants_more_slots(message),
    )
