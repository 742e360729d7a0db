"""Structured records parsed from the provider directory and schedule.

Both records are frozen: a parse always produces fresh instances and
nothing downstream mutates them.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from ams_intake.vocabulary import CASH_PAY

Role = Literal["therapist", "psychiatrist", "both", "provider"]

# Credentials that imply prescribing authority
PRESCRIBER_CREDENTIALS = frozenset(
    {"MD", "DO", "PMHNP", "PMHNP-BC", "APRN", "NP", "DNP", "FNP", "PA", "PA-C"}
)


class Provider(BaseModel):
    """A clinician entry from the provider directory."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    role: Role = "therapist"
    credentials: str | None = None
    licensed_states: tuple[str, ...] = ()
    insurers: tuple[str, ...] = Field(
        default=(), description="Normalized payment tokens, e.g. 'bcbs', 'cashpay'",
    )
    insurers_raw: str = ""
    languages: tuple[str, ...] = ()
    lived_experience: tuple[str, ...] = ()
    email: str | None = None
    styles: str = ""

    @property
    def is_prescriber(self) -> bool:
        """True for psychiatry-capable providers (by role or credential)."""
        if self.role in ("psychiatrist", "both"):
            return True
        return has_prescriber_credential(self.credentials)

    @property
    def accepts_cash(self) -> bool:
        return CASH_PAY in self.insurers

    @property
    def insurer_labels(self) -> list[str]:
        """Payment types as written in the directory."""
        return split_list(self.insurers_raw)


class Slot(BaseModel):
    """One bookable appointment time for a provider."""

    model_config = ConfigDict(frozen=True)

    provider_id: str
    date: str  # YYYY-MM-DD
    time: str  # HH:MM, 24-hour

    @property
    def sort_key(self) -> str:
        return f"{self.date}{self.time}"

    @property
    def stamp(self) -> str:
        """``"YYYY-MM-DD HH:MM"`` form used by the availability index."""
        return f"{self.date} {self.time}"


def split_list(value: str | None) -> list[str]:
    """Split a comma/semicolon separated field, dropping empty entries."""
    if not value:
        return []
    return [part.strip() for part in value.replace(";", ",").split(",") if part.strip()]


def has_prescriber_credential(credentials: str | None) -> bool:
    if not credentials:
        return False
    tokens = {
        token.strip(".").upper()
        for token in credentials.replace(",", " ").replace("/", " ").split()
    }
    return bool(tokens & PRESCRIBER_CREDENTIALS)
