"""Provider directory parser.

The directory is a human-authored text file with one block per provider::

    prov_001  Allison Hill (PsyD) — Therapy
    Styles: CBT, ACT
    Lived Experience: Veteran family
    Languages: English, Spanish
    Licensed States: AZ, NM
    Insurance: Aetna, Cash
    Email: allison.hill@example.org

Blocks are the blank-line separated chunks of the file.  When the file
carries ``prov_<digits>`` header lines, each chunk is further split at
those headers, so missing blank lines between providers do not merge
records; lines of a chunk that precede any header belong to no provider
and are dropped.  Files without such ids use the chunks as they are.

Parsing is tolerant: a block without a usable header is skipped and
unknown lines are ignored.  Output order is source order, and duplicate
ids are kept.
"""

from __future__ import annotations

import logging
import re

from ams_intake.directory.models import Provider, Role, has_prescriber_credential, split_list
from ams_intake.directory.text import normalize_text
from ams_intake.vocabulary import normalize_insurer

logger = logging.getLogger(__name__)

_ID_HEADER_RE = re.compile(r"^prov_\d+\b", re.IGNORECASE)
_BLANK_RUN_RE = re.compile(r"\n[ \t]*\n+")
_HEADER_RE = re.compile(r"^(\S+)\s+(.+)$")

# Hyphen needs surrounding whitespace so hyphenated names survive; en/em
# dashes are always separators.
_ROLE_SEPARATOR_RE = re.compile(r"\s+-\s+|\s*[–—]\s*")

_CRED_PAREN_RE = re.compile(r"^(.*?)\s*\(([^)]*)\)\s*$")
_CRED_TOKEN_RE = re.compile(r"^[A-Z][A-Za-z.\-]{0,9}$")

_LABEL_RE = re.compile(
    r"^(styles|lived experience|languages?|licensed states|insurance|email)\s*:\s*(.*)$",
    re.IGNORECASE,
)
_LABEL_FIELDS = {
    "styles": "styles",
    "lived experience": "lived_experience",
    "language": "languages",
    "languages": "languages",
    "licensed states": "licensed_states",
    "insurance": "insurance",
    "email": "email",
}
# Labels recovered from lines that only loosely follow ``Label: value``
_LOOSE_LABELS = (("licensed states", "licensed_states"), ("insurance", "insurance"))


def parse_providers(raw: str | None) -> list[Provider]:
    """Parse a provider directory into records, in source order."""
    text = normalize_text(raw)
    if not text:
        return []

    providers: list[Provider] = []
    for block in _segment(text):
        provider = _parse_block(block)
        if provider is None:
            logger.debug("Skipping directory block without a header: %r", block[:1])
            continue
        providers.append(provider)
    return providers


def _segment(text: str) -> list[list[str]]:
    chunks = [
        [_clean_line(line) for line in chunk.split("\n") if line.strip()]
        for chunk in _BLANK_RUN_RE.split(text)
        if chunk.strip()
    ]
    if not any(_ID_HEADER_RE.match(line) for chunk in chunks for line in chunk):
        return chunks

    blocks: list[list[str]] = []
    for chunk in chunks:
        current: list[str] | None = None
        for line in chunk:
            if _ID_HEADER_RE.match(line):
                current = [line]
                blocks.append(current)
            elif current is not None:
                current.append(line)
            else:
                logger.debug("Dropping directory line outside a provider block: %r", line)
    return blocks


def _clean_line(line: str) -> str:
    return re.sub(r"[ \t]+", " ", line.replace("\t", " ")).strip()


def _parse_block(lines: list[str]) -> Provider | None:
    lines = [line for line in lines if line]
    if not lines:
        return None

    header = lines[0]
    if _LABEL_RE.match(header):
        return None
    match = _HEADER_RE.match(header)
    if not match:
        return None

    provider_id = match.group(1)
    name, credentials, role_tag = _split_header(match.group(2))
    if not name:
        return None

    fields = _parse_fields(lines[1:])
    insurers_raw = fields.get("insurance", "")

    return Provider(
        id=provider_id,
        name=name,
        role=_infer_role(role_tag, credentials),
        credentials=credentials,
        licensed_states=tuple(_states(fields.get("licensed_states", ""))),
        insurers=tuple(_insurer_tokens(insurers_raw)),
        insurers_raw=insurers_raw,
        languages=tuple(split_list(fields.get("languages"))),
        lived_experience=tuple(split_list(fields.get("lived_experience"))),
        email=fields.get("email") or None,
        styles=fields.get("styles", ""),
    )


def _split_header(rest: str) -> tuple[str, str | None, str | None]:
    """Split ``"Name (Cred) — Role"`` into name, credentials and role tag."""
    role_tag = None
    separators = list(_ROLE_SEPARATOR_RE.finditer(rest))
    if separators:
        last = separators[-1]
        role_tag = rest[last.end():].strip() or None
        rest = rest[: last.start()]

    name, credentials = _split_credentials(rest.strip())
    return name, credentials, role_tag


def _split_credentials(name: str) -> tuple[str, str | None]:
    match = _CRED_PAREN_RE.match(name)
    if match and match.group(1).strip():
        return match.group(1).strip(), match.group(2).strip() or None

    if "," in name:
        head, tail = name.split(",", 1)
        tokens = [t for t in re.split(r"[,\s/]+", tail) if t]
        if tokens and all(_looks_like_credential(t) for t in tokens):
            return head.strip(), tail.strip()

    return name, None


def _looks_like_credential(token: str) -> bool:
    return bool(_CRED_TOKEN_RE.match(token)) and sum(c.isupper() for c in token) >= 2


def _infer_role(role_tag: str | None, credentials: str | None) -> Role:
    if role_tag:
        tag = role_tag.lower()
        therapy = "therap" in tag or "counsel" in tag
        psychiatry = "psychiat" in tag or "medication" in tag
        if "both" in tag or (therapy and psychiatry):
            return "both"
        if psychiatry:
            return "psychiatrist"
        if therapy:
            return "therapist"

    if has_prescriber_credential(credentials):
        return "psychiatrist"
    # An explicit but unrecognised tag keeps the neutral role
    return "provider" if role_tag else "therapist"


def _parse_fields(lines: list[str]) -> dict[str, str]:
    fields: dict[str, str] = {}
    for line in lines:
        match = _LABEL_RE.match(line)
        if match:
            key = _LABEL_FIELDS[match.group(1).lower()]
            fields[key] = match.group(2).strip()
            continue

        lowered = line.lower()
        for keyword, key in _LOOSE_LABELS:
            if key in fields or keyword not in lowered:
                continue
            value = line[lowered.index(keyword) + len(keyword):]
            if ":" in value:
                value = value.split(":", 1)[1]
            fields[key] = value.strip(" :-")
    return fields


def _states(value: str) -> list[str]:
    return [s.upper() if len(s) == 2 else s for s in split_list(value)]


def _insurer_tokens(value: str) -> list[str]:
    tokens: list[str] = []
    for entry in split_list(value):
        token = normalize_insurer(entry) or re.sub(r"\s+", " ", entry.lower())
        if token not in tokens:
            tokens.append(token)
    return tokens
