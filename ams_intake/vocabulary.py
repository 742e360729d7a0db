"""Controlled vocabularies for states, payment types and languages.

Shared by the directory parser (to normalise what providers list) and
the hint extractor (to normalise what clients say).
"""

from __future__ import annotations

import re

STATE_NAMES: dict[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "district of columbia": "DC", "washington dc": "DC",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID",
    "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
    "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN",
    "mississippi": "MS", "missouri": "MO", "montana": "MT", "nebraska": "NE",
    "nevada": "NV", "new hampshire": "NH", "new jersey": "NJ",
    "new mexico": "NM", "new york": "NY", "north carolina": "NC",
    "north dakota": "ND", "ohio": "OH", "oklahoma": "OK", "oregon": "OR",
    "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT",
    "vermont": "VT", "virginia": "VA", "washington": "WA",
    "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
}

STATE_CODES: frozenset[str] = frozenset(STATE_NAMES.values())

# Codes that are also everyday English words, chat slang ("nm") or titles.
# These only count when written in upper case in the original text.
AMBIGUOUS_STATE_CODES: frozenset[str] = frozenset(
    {"AL", "AR", "CO", "DE", "GA", "HI", "ID", "IN", "LA", "MA", "ME", "MD",
     "MI", "MO", "MS", "MT", "NM", "OH", "OK", "OR", "PA", "SC", "UT", "VA", "WI"}
)

# Upper-case forms that still show up as plain words in chat ("OK thanks").
# They additionally need a location cue right before them.
UPPERCASE_NOISE_CODES: frozenset[str] = frozenset({"OK", "MD", "MS", "PA"})

CASH_PAY = "cashpay"

# Canonical payment token -> pattern over lower-cased text.
INSURER_PATTERNS: dict[str, re.Pattern[str]] = {
    CASH_PAY: re.compile(
        r"\b(?:cash(?:[\s-]?pay)?|self[\s-]?pay(?:ing)?|out[\s-]of[\s-]pocket|private[\s-]?pay"
        r"|uninsured|(?:no|without|don.t have|do not have) insurance)\b"
    ),
    "bcbs": re.compile(r"\b(?:bcbs|blue\s*cross(?:\s*blue\s*shield)?|blue\s*shield|anthem|florida\s+blue)\b"),
    "aetna": re.compile(r"\baetna\b"),
    "cigna": re.compile(r"\bcigna\b"),
    "uhc": re.compile(r"\b(?:uhc|united\s*health\s*care|unitedhealthcare|united\s+healthcare|optum)\b"),
    "medicare": re.compile(r"\bmedicare\b"),
    "medicaid": re.compile(r"\b(?:medicaid|ahcccs)\b"),
    "tricare": re.compile(r"\btri[\s-]?care\b"),
    "humana": re.compile(r"\bhumana\b"),
}

INSURER_LABELS: dict[str, str] = {
    CASH_PAY: "Cash pay",
    "bcbs": "BCBS",
    "aetna": "Aetna",
    "cigna": "Cigna",
    "uhc": "UHC",
    "medicare": "Medicare",
    "medicaid": "Medicaid/AHCCCS",
    "tricare": "Tricare",
    "humana": "Humana",
}

DEFAULT_LANGUAGE = "English"

LANGUAGE_PATTERNS: dict[str, re.Pattern[str]] = {
    "Spanish": re.compile(r"\b(?:spanish|espa[nñ]ol)\b"),
    "English": re.compile(r"\benglish\b"),
    "French": re.compile(r"\bfrench\b"),
    "Portuguese": re.compile(r"\bportuguese\b"),
    "Mandarin": re.compile(r"\b(?:mandarin|chinese)\b"),
    "Cantonese": re.compile(r"\bcantonese\b"),
    "Vietnamese": re.compile(r"\bvietnamese\b"),
    "Korean": re.compile(r"\bkorean\b"),
    "Tagalog": re.compile(r"\b(?:tagalog|filipino)\b"),
    "Arabic": re.compile(r"\barabic\b"),
    "Russian": re.compile(r"\brussian\b"),
    "Hindi": re.compile(r"\bhindi\b"),
    "German": re.compile(r"\bgerman\b"),
    "Japanese": re.compile(r"\bjapanese\b"),
    "Navajo": re.compile(r"\b(?:navajo|din[eé])\b"),
    "ASL": re.compile(r"\b(?:asl|sign language)\b"),
}


def normalize_insurer(value: str) -> str | None:
    """Map free text such as ``"Blue Cross"`` or ``"self-pay"`` to a token."""
    lowered = value.lower()
    for token, pattern in INSURER_PATTERNS.items():
        if pattern.search(lowered):
            return token
    return None


def normalize_state(value: str) -> str | None:
    """Map ``"az"``, ``"AZ"`` or ``"Arizona"`` to ``"AZ"``."""
    cleaned = value.strip().rstrip(".")
    if len(cleaned) == 2 and cleaned.upper() in STATE_CODES:
        return cleaned.upper()
    return STATE_NAMES.get(cleaned.lower())


def normalize_language(value: str) -> str | None:
    lowered = value.lower()
    for label, pattern in LANGUAGE_PATTERNS.items():
        if pattern.search(lowered):
            return label
    return None


def insurer_label(token: str) -> str:
    return INSURER_LABELS.get(token, token)
