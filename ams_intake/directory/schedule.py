"""Schedule parser for ``prov_id|YYYY-MM-DD|HH:MM`` rows."""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from datetime import datetime

from ams_intake.directory.models import Slot
from ams_intake.directory.text import normalize_text

logger = logging.getLogger(__name__)

_ID_RE = re.compile(r"^prov_\d+$", re.IGNORECASE)
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^(?:[01]\d|2[0-3]):[0-5]\d$")


def parse_schedule(raw: str | None) -> list[Slot]:
    """Parse schedule rows into slots sorted by (date, time).

    Malformed rows are dropped.  Provider ids are lower-cased so that
    lookups do not depend on how the schedule export capitalised them.
    """
    text = normalize_text(raw)
    if not text:
        return []

    slots: list[Slot] = []
    dropped = 0
    for line in text.split("\n"):
        if not line.strip():
            continue
        slot = _parse_row(line)
        if slot is None:
            dropped += 1
            continue
        slots.append(slot)

    if dropped:
        logger.debug("Schedule: dropped %d malformed row(s)", dropped)

    # Fixed-width ISO fields sort correctly as strings; sort is stable
    slots.sort(key=lambda s: s.sort_key)
    return slots


def _parse_row(line: str) -> Slot | None:
    parts = [part.strip() for part in line.split("|")]
    if len(parts) != 3:
        return None
    provider_id, date, time = parts
    if not (_ID_RE.match(provider_id) and _DATE_RE.match(date) and _TIME_RE.match(time)):
        return None
    try:
        datetime.strptime(date, "%Y-%m-%d")
    except ValueError:
        return None
    return Slot(provider_id=provider_id.lower(), date=date, time=time)


def build_slot_index(slots: list[Slot]) -> dict[str, list[str]]:
    """Map provider id -> ``"YYYY-MM-DD HH:MM"`` strings, in slot order."""
    index: dict[str, list[str]] = defaultdict(list)
    for slot in slots:
        index[slot.provider_id].append(slot.stamp)
    return dict(index)
