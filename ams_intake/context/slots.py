"""Slot timing: reference clock, future-only filtering, formatting, paging.

All comparisons use naive wall-clock datetimes in the service's
reference timezone, which is how the schedule file is written.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable
from zoneinfo import ZoneInfo

from ams_intake.directory.models import Slot

# Fixed names so output never depends on the server locale
WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

_DISPLAY_STAMP_RE = re.compile(
    r"\b(\d{1,2}):(\d{2})\s*([AaPp][Mm]),\s*[A-Za-z]+,\s*(\d{2})/(\d{2})/(\d{4})\b"
)
_ISO_STAMP_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})[ T](\d{2}):(\d{2})\b")


def reference_now(timezone: str) -> datetime:
    """Current wall-clock time in *timezone*, without tzinfo."""
    return datetime.now(ZoneInfo(timezone)).replace(tzinfo=None)


def slot_datetime(slot: Slot) -> datetime:
    return datetime.strptime(f"{slot.date} {slot.time}", "%Y-%m-%d %H:%M")


def format_slot(date: str, time: str) -> str:
    """``("2025-09-23", "13:00")`` -> ``"1:00 PM, Tuesday, 09/23/2025"``."""
    dt = datetime.strptime(f"{date} {time}", "%Y-%m-%d %H:%M")
    hour = dt.hour % 12 or 12
    meridiem = "AM" if dt.hour < 12 else "PM"
    return (
        f"{hour}:{dt.minute:02d} {meridiem}, {WEEKDAYS[dt.weekday()]}, "
        f"{dt.month:02d}/{dt.day:02d}/{dt.year}"
    )


def future_slots(slots: Iterable[Slot], *, after: datetime) -> list[Slot]:
    """Slots strictly later than *after*, ascending by (date, time)."""
    upcoming = [s for s in slots if slot_datetime(s) > after]
    return sorted(upcoming, key=lambda s: s.sort_key)


def soonest_slots_for(
    slots: Iterable[Slot], provider_id: str, *, after: datetime, limit: int,
) -> list[Slot]:
    key = provider_id.lower()
    mine = (s for s in slots if s.provider_id == key)
    return future_slots(mine, after=after)[: max(limit, 0)]


def upcoming_provider_ids(slots: Iterable[Slot], *, after: datetime) -> frozenset[str]:
    return frozenset(s.provider_id for s in slots if slot_datetime(s) > after)


def shown_timestamps(text: str | None) -> list[datetime]:
    """Timestamps that look like slots in a previous reply."""
    if not text:
        return []
    found: list[datetime] = []
    for m in _DISPLAY_STAMP_RE.finditer(text):
        hour, minute, meridiem, month, day, year = m.groups()
        hour_24 = int(hour) % 12 + (12 if meridiem.upper() == "PM" else 0)
        try:
            found.append(datetime(int(year), int(month), int(day), hour_24, int(minute)))
        except ValueError:
            continue
    for m in _ISO_STAMP_RE.finditer(text):
        year, month, day, hour, minute = (int(g) for g in m.groups())
        try:
            found.append(datetime(year, month, day, hour, minute))
        except ValueError:
            continue
    return found


def pagination_anchor(
    now: datetime, *, wants_more: bool, previous_reply: str | None,
) -> datetime:
    """Point after which slots count as "next".

    For a "more"/"later" request the anchor moves to the last slot shown
    in the previous assistant reply, so paging only moves forward.
    """
    if not wants_more:
        return now
    stamps = shown_timestamps(previous_reply)
    if not stamps:
        return now
    return max(max(stamps), now)
