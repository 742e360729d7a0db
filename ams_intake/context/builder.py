"""Render matched providers into bounded prompt context.

Two blocks are produced:

* the **visible directory**: one card per selected provider with its
  soonest future openings as checklist items, capped by a character
  budget and a provider count;
* the **availability index**: a terse ``provider_id: stamp, stamp``
  listing of every known future slot for those providers, labelled for
  internal reasoning only.

Everything rendered comes from the parsed records.  An empty match
renders an explicit absence message rather than an empty block.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from ams_intake.context.slots import format_slot, future_slots, soonest_slots_for
from ams_intake.directory.models import Provider, Slot
from ams_intake.directory.store import DirectorySnapshot
from ams_intake.matching.engine import PSYCHIATRY, THERAPY, Constraints, MatchResult
from ams_intake.vocabulary import CASH_PAY, DEFAULT_LANGUAGE, insurer_label, normalize_insurer

logger = logging.getLogger(__name__)

_GROUP_TITLES = {THERAPY: "Therapy", PSYCHIATRY: "Psychiatry"}
_ROLE_LABELS = {
    "therapist": "Therapist",
    "psychiatrist": "Psychiatric prescriber",
    "both": "Therapy and psychiatry",
    "provider": "Provider",
}

DIRECTORY_HEADER = "# Provider Directory (use ONLY entries here; do not invent providers, times or details)"
INDEX_HEADER = (
    "# Availability Index (for internal reasoning only; DO NOT quote verbatim)\n"
    "# Format: provider_id: YYYY-MM-DD HH:MM, YYYY-MM-DD HH:MM, ..."
)


@dataclass(frozen=True)
class ContextOptions:
    char_budget: int = 6000
    max_providers: int = 10
    slots_per_provider: int = 3
    index_char_budget: int = 4000
    include_index: bool = True


@dataclass(frozen=True)
class RenderedContext:
    directory: str
    index: str = ""
    provider_ids: tuple[str, ...] = field(default_factory=tuple)
    truncated: bool = False

    @property
    def text(self) -> str:
        return f"{self.directory}\n\n{self.index}".strip() if self.index else self.directory


# ── Card rendering ───────────────────────────────────────────────────


def payment_labels(provider: Provider) -> list[str]:
    """Payment types as listed, cash pay first."""
    cash: list[str] = []
    other: list[str] = []
    for entry in provider.insurer_labels:
        if normalize_insurer(entry) == CASH_PAY:
            if insurer_label(CASH_PAY) not in cash:
                cash.append(insurer_label(CASH_PAY))
        else:
            other.append(entry)
    return cash + other


def ordered_languages(provider: Provider) -> list[str]:
    """Listed languages with the default language moved to the front."""
    common = [lang for lang in provider.languages if lang.lower() == DEFAULT_LANGUAGE.lower()]
    rest = [lang for lang in provider.languages if lang.lower() != DEFAULT_LANGUAGE.lower()]
    return common + rest


def render_provider_card(provider: Provider, slots: list[Slot]) -> str:
    title = provider.name
    if provider.credentials:
        title = f"{title} ({provider.credentials})"
    lines = [
        f"### {title} [{provider.id}]",
        f"Role: {_ROLE_LABELS.get(provider.role, provider.role)}",
        f"States: {', '.join(provider.licensed_states) or 'not listed'}",
        f"Payment: {', '.join(payment_labels(provider)) or 'not listed'}",
        f"Languages: {', '.join(ordered_languages(provider)) or 'not listed'}",
    ]
    if provider.lived_experience:
        lines.append(f"Lived experience: {', '.join(provider.lived_experience)}")
    if provider.styles:
        lines.append(f"Styles: {provider.styles}")
    if provider.email:
        lines.append(f"Email: {provider.email}")

    if slots:
        lines.append("Next openings:")
        lines.extend(f"- [ ] {format_slot(s.date, s.time)}" for s in slots)
    else:
        lines.append("Next openings: none currently listed")
    return "\n".join(lines)


def describe_constraints(constraints: Constraints) -> str:
    payment = insurer_label(constraints.insurer) if constraints.insurer else "any"
    return (
        f"state={constraints.state or 'any'}, payment={payment}, "
        f"role={constraints.role or 'any'}"
    )


# ── Blocks ───────────────────────────────────────────────────────────


def build_context(
    match: MatchResult,
    snapshot: DirectorySnapshot,
    *,
    now: datetime,
    anchor: datetime | None = None,
    options: ContextOptions | None = None,
) -> RenderedContext:
    """Render the visible directory and hidden index for *match*.

    Budgets are checked before each card is appended, so the directory
    exceeds ``char_budget`` by at most one card (when even the first card
    is larger than the budget).
    """
    options = options or ContextOptions()
    anchor = anchor or now
    filters = describe_constraints(match.constraints)

    if match.is_empty:
        directory = (
            f"{DIRECTORY_HEADER}\n"
            f"Filters: {filters}\n"
            "No providers in the directory match the current filters. Tell the client "
            "plainly, and offer to widen the search (another state, payment type or role). "
            "Do not invent providers."
        )
        return RenderedContext(directory=directory)

    parts = [DIRECTORY_HEADER, f"Filters: {filters}"]
    if match.relaxed:
        parts.append(
            "Note: no provider matched every filter; these match the state and role "
            "but not the requested payment type. Say so when presenting them."
        )
    text = "\n".join(parts)

    rendered_ids: list[str] = []
    truncated = False
    for group, scored in match.groups.items():
        title = f"## {_GROUP_TITLES.get(group, group.title())}"
        if not scored:
            piece = f"{title}\nNo {group} providers match the current filters."
            if len(text) + 2 + len(piece) <= options.char_budget:
                text = f"{text}\n\n{piece}"
            continue

        heading_written = False
        for item in scored:
            if len(rendered_ids) >= options.max_providers:
                truncated = True
                break
            provider = item.provider
            card = render_provider_card(
                provider,
                soonest_slots_for(
                    snapshot.slots, provider.id, after=anchor, limit=options.slots_per_provider,
                ),
            )
            piece = card if heading_written else f"{title}\n{card}"
            if rendered_ids and len(text) + 2 + len(piece) > options.char_budget:
                truncated = True
                break
            text = f"{text}\n\n{piece}"
            heading_written = True
            rendered_ids.append(provider.id)
        if truncated:
            break

    if truncated:
        logger.debug("Context truncated at %d provider(s)", len(rendered_ids))

    index = ""
    if options.include_index and rendered_ids:
        index = build_availability_index(
            rendered_ids, snapshot.slots, now=now, char_budget=options.index_char_budget,
        )

    return RenderedContext(
        directory=text,
        index=index,
        provider_ids=tuple(rendered_ids),
        truncated=truncated,
    )


def build_availability_index(
    provider_ids: list[str],
    slots: tuple[Slot, ...] | list[Slot],
    *,
    now: datetime,
    char_budget: int,
) -> str:
    """Compact future-slot listing for the given providers."""
    upcoming = future_slots(slots, after=now)
    text = INDEX_HEADER
    lines_added = 0
    for provider_id in provider_ids:
        key = provider_id.lower()
        stamps = [s.stamp for s in upcoming if s.provider_id == key]
        if not stamps:
            continue
        line = f"{provider_id}: {', '.join(stamps)}"
        if len(text) + 1 + len(line) > char_budget:
            logger.debug("Availability index: no room for %s", provider_id)
            continue
        text = f"{text}\n{line}"
        lines_added += 1
    return text if lines_added else ""
