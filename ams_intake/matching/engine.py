"""Provider filtering, scoring and selection.

Hard constraints (state, insurer, role) filter the directory; soft
signals (language, upcoming availability) only move providers up the
ranking.  When nothing survives the hard filter, the insurer constraint
is dropped and the filter re-run: payment is the negotiable dimension,
licensure and specialty are not.

Scoring weights live in :class:`ScoringWeights` so they can be tuned
and tested without touching the ranking code.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Literal

from ams_intake.directory.models import Provider
from ams_intake.matching.hints import Hints

logger = logging.getLogger(__name__)

RoleConstraint = Literal["therapist", "psychiatrist", "both"]

THERAPY = "therapy"
PSYCHIATRY = "psychiatry"


@dataclass(frozen=True)
class ScoringWeights:
    """Points per matched dimension.  Primary constraints weigh more."""

    state: int = 5
    insurer: int = 4
    role: int = 4
    language: int = 2
    availability: int = 1


DEFAULT_WEIGHTS = ScoringWeights()


@dataclass(frozen=True)
class Constraints:
    state: str | None = None
    insurer: str | None = None
    role: RoleConstraint | str | None = None

    @classmethod
    def from_hints(cls, hints: Hints) -> "Constraints":
        return cls(state=hints.state, insurer=hints.insurer, role=hints.role_preference)

    def without_insurer(self) -> "Constraints":
        return Constraints(state=self.state, role=self.role)

    @property
    def is_empty(self) -> bool:
        return not (self.state or self.insurer or self.role)


@dataclass(frozen=True)
class ScoredProvider:
    provider: Provider
    score: int


@dataclass(frozen=True)
class MatchResult:
    """Selected providers grouped by care category, best first."""

    groups: dict[str, tuple[ScoredProvider, ...]] = field(default_factory=dict)
    constraints: Constraints = field(default_factory=Constraints)
    relaxed: bool = False

    @property
    def providers(self) -> list[Provider]:
        seen: set[int] = set()
        ordered: list[Provider] = []
        for scored in self.groups.values():
            for item in scored:
                if id(item.provider) not in seen:
                    seen.add(id(item.provider))
                    ordered.append(item.provider)
        return ordered

    @property
    def is_empty(self) -> bool:
        return not any(self.groups.values())


# ── Predicates ───────────────────────────────────────────────────────


def role_matches(provider: Provider, role: str | None) -> bool:
    if role is None or role == "both":
        return True
    if role == "psychiatrist":
        return provider.is_prescriber
    if role == "therapist":
        return provider.role in ("therapist", "both")
    # Free-text specialty from the lookup endpoint
    return role.lower() in provider.role


def state_matches(provider: Provider, state: str | None) -> bool:
    if not state:
        return True
    return state.upper() in {s.upper() for s in provider.licensed_states}


def insurer_matches(provider: Provider, insurer: str | None) -> bool:
    if not insurer:
        return True
    return insurer.lower() in provider.insurers


def language_matches(provider: Provider, language: str | None) -> bool:
    if not language:
        return False
    return language.lower() in {lang.lower() for lang in provider.languages}


def matches(provider: Provider, constraints: Constraints) -> bool:
    return (
        role_matches(provider, constraints.role)
        and state_matches(provider, constraints.state)
        and insurer_matches(provider, constraints.insurer)
    )


# ── Filtering ────────────────────────────────────────────────────────


def filter_providers(
    providers: Iterable[Provider], constraints: Constraints,
) -> tuple[list[Provider], bool]:
    """Apply the hard filter, relaxing the insurer when nothing matches.

    Returns the surviving providers (directory order) and whether the
    relaxed tier produced them.
    """
    providers = list(providers)
    primary = [p for p in providers if matches(p, constraints)]
    if primary:
        return primary, False

    if constraints.insurer and (constraints.role or constraints.state):
        relaxed = [p for p in providers if matches(p, constraints.without_insurer())]
        logger.debug(
            "No exact match for %s; relaxed tier found %d provider(s)",
            constraints, len(relaxed),
        )
        return relaxed, True

    return primary, False


# ── Scoring ──────────────────────────────────────────────────────────


def score_provider(
    provider: Provider,
    hints: Hints,
    *,
    has_upcoming: bool = False,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> int:
    score = 0
    if hints.state and state_matches(provider, hints.state):
        score += weights.state
    if hints.insurer and insurer_matches(provider, hints.insurer):
        score += weights.insurer
    if hints.role_preference:
        if hints.role_preference == "both":
            if provider.role == "both":
                score += weights.role
        elif role_matches(provider, hints.role_preference):
            score += weights.role
    if language_matches(provider, hints.language):
        score += weights.language
    if has_upcoming:
        score += weights.availability
    return score


def rank_providers(
    providers: Iterable[Provider],
    hints: Hints,
    *,
    upcoming_ids: set[str] | frozenset[str] = frozenset(),
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> list[ScoredProvider]:
    """Score and sort, highest first; ties keep directory order."""
    scored = [
        ScoredProvider(
            provider=p,
            score=score_provider(
                p, hints, has_upcoming=p.id.lower() in upcoming_ids, weights=weights,
            ),
        )
        for p in providers
    ]
    # sorted() is stable, so equal scores stay in source order
    return sorted(scored, key=lambda item: -item.score)


# ── Selection ────────────────────────────────────────────────────────


def care_category(provider: Provider) -> str:
    return PSYCHIATRY if provider.is_prescriber else THERAPY


def select_providers(
    providers: Iterable[Provider],
    hints: Hints,
    *,
    upcoming_ids: set[str] | frozenset[str] = frozenset(),
    per_role_cap: int = 4,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> MatchResult:
    """Filter, rank and cap providers for one request.

    With a single role preference the result has one group.  Without a
    preference (or when both are wanted) therapy and psychiatry are
    capped separately so neither crowds the other out.
    """
    constraints = Constraints.from_hints(hints)
    filtered, relaxed = filter_providers(providers, constraints)
    ranked = rank_providers(filtered, hints, upcoming_ids=upcoming_ids, weights=weights)

    cap = max(per_role_cap, 0)
    if hints.role_preference == "therapist":
        groups = {THERAPY: tuple(ranked[:cap])}
    elif hints.role_preference == "psychiatrist":
        groups = {PSYCHIATRY: tuple(ranked[:cap])}
    else:
        therapy = [s for s in ranked if care_category(s.provider) == THERAPY]
        psychiatry = [s for s in ranked if care_category(s.provider) == PSYCHIATRY]
        groups = {THERAPY: tuple(therapy[:cap]), PSYCHIATRY: tuple(psychiatry[:cap])}

    return MatchResult(groups=groups, constraints=constraints, relaxed=relaxed)
