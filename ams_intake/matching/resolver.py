"""Map free-text provider mentions back to directory ids.

Matching tiers, strongest first:

1. the full name appears in the text;
2. first and last name both appear as words;
3. the last name alone appears.

Only the strongest tier with any hit is used.  More than one hit is an
ambiguous result, never a silent pick: active constraints narrow the
set, and only once constraints have been tried does the soonest
upcoming slot break the remaining tie.

Messages without a mention ("what times does she have?") fall back to
the last few turns, the client's own mentions before the assistant's.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from ams_intake.context.slots import future_slots
from ams_intake.conversation import Turn
from ams_intake.directory.models import Provider, Slot
from ams_intake.matching.engine import Constraints, matches

DEFAULT_LOOKBACK_TURNS = 6

_WORD_RE = re.compile(r"[a-z][a-z'\-]*")
_REFERENCE_RE = re.compile(
    r"\b(?:she|her|he|him|his|they|them|their|that (?:provider|one|therapist|psychiatrist)"
    r"|this (?:provider|one|therapist|psychiatrist))\b"
)
# Tokens too common to identify anyone on their own
_NAME_STOPWORDS = frozenset({"dr", "doctor", "the", "and", "of", "mr", "mrs", "ms", "jr", "sr"})


@dataclass(frozen=True)
class Resolution:
    provider_id: str | None = None
    candidates: tuple[str, ...] = ()
    source: str | None = None

    @property
    def found(self) -> bool:
        return self.provider_id is not None

    @property
    def ambiguous(self) -> bool:
        return self.provider_id is None and len(self.candidates) > 1


def _name_tokens(name: str) -> list[str]:
    return [t for t in _WORD_RE.findall(name.lower()) if t not in _NAME_STOPWORDS]


def find_mentions(text: str, providers: Iterable[Provider]) -> list[Provider]:
    """Providers mentioned in *text*, from the strongest matching tier."""
    if not text:
        return []
    lowered = " ".join(text.lower().split())
    words = set(_WORD_RE.findall(lowered))
    providers = list(providers)

    full = [
        p for p in providers
        if p.name and re.search(rf"\b{re.escape(' '.join(p.name.lower().split()))}\b", lowered)
    ]
    if full:
        return full

    pair = []
    last_only = []
    for p in providers:
        tokens = _name_tokens(p.name)
        if not tokens:
            continue
        first, last = tokens[0], tokens[-1]
        if len(tokens) >= 2 and first in words and last in words:
            pair.append(p)
        elif len(last) >= 3 and last in words:
            last_only.append(p)
    return pair or last_only


def refers_back(text: str) -> bool:
    """True when *text* points at a provider by pronoun or "that one"."""
    return bool(text) and bool(_REFERENCE_RE.search(text.lower()))


def _soonest(provider: Provider, slots: list[Slot]) -> str | None:
    key = provider.id.lower()
    for slot in slots:
        if slot.provider_id == key:
            return slot.sort_key
    return None


def _decide(
    candidates: list[Provider],
    source: str,
    *,
    constraints: Constraints | None,
    upcoming: list[Slot],
) -> Resolution:
    unique: list[Provider] = []
    seen: set[str] = set()
    for p in candidates:
        if p.id.lower() not in seen:
            seen.add(p.id.lower())
            unique.append(p)
    all_ids = tuple(p.id for p in unique)

    if len(unique) == 1:
        return Resolution(provider_id=unique[0].id, candidates=all_ids, source=source)

    if constraints is None or constraints.is_empty:
        return Resolution(candidates=all_ids, source=source)

    narrowed = [p for p in unique if matches(p, constraints)] or unique
    if len(narrowed) == 1:
        return Resolution(provider_id=narrowed[0].id, candidates=all_ids, source=source)

    with_slots = [(key, p) for p in narrowed if (key := _soonest(p, upcoming)) is not None]
    if with_slots:
        # min() returns the first of equal keys, i.e. directory order
        _, chosen = min(with_slots, key=lambda item: item[0])
        return Resolution(provider_id=chosen.id, candidates=all_ids, source=source)

    return Resolution(candidates=tuple(p.id for p in narrowed), source=source)


def resolve_provider(
    message: str,
    providers: Iterable[Provider],
    *,
    history: list[Turn] | None = None,
    constraints: Constraints | None = None,
    slots: Iterable[Slot] = (),
    now: datetime | None = None,
    lookback: int = DEFAULT_LOOKBACK_TURNS,
) -> Resolution:
    """Resolve the provider the client is talking about, if any."""
    providers = list(providers)
    upcoming = future_slots(slots, after=now) if now else sorted(slots, key=lambda s: s.sort_key)

    def decide(found: list[Provider], source: str) -> Resolution:
        return _decide(found, source, constraints=constraints, upcoming=upcoming)

    mentions = find_mentions(message, providers)
    if mentions:
        return decide(mentions, "message")

    recent = list(history or [])[-lookback:] if lookback > 0 else []
    for role, source in (("user", "user_history"), ("assistant", "assistant_history")):
        for turn in reversed(recent):
            if turn["role"] != role:
                continue
            found = find_mentions(turn["content"], providers)
            if found:
                return decide(found, source)

    return Resolution()
