"""System prompt composition for the intake assistant.

The static part comes from three instruction files in ``PROMPTS_DIR``,
read once per process:

* ``system_prompt.txt`` - the assistant's persona and rules
* ``faqs.txt``          - appended under ``# FAQ (summarize when relevant)``
* ``policies.txt``      - appended under ``# Policy notes (adhere to these)``

Per request, :func:`compose_system_prompt` adds the current date and
time, the rendered provider context, optional retrieval snippets and,
on a nudge retry, the nudge instruction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Sequence

from ams_intake.context.slots import WEEKDAYS
from ams_intake.directory.text import normalize_text
from ams_intake.services.retrieval import Snippet

logger = logging.getLogger(__name__)

FALLBACK_SYSTEM_PROMPT = "You are a helpful behavioral health intake assistant."

FAQ_HEADER = "# FAQ (summarize when relevant)"
POLICIES_HEADER = "# Policy notes (adhere to these)"
SNIPPETS_HEADER = "# Reference snippets (practice knowledge base; cite only what is relevant)"

DATE_TEMPLATE = """# Current Date & Time
Today is {current_date} ({current_day_of_week}). The current time is {current_time} ({timezone}).
Use this to resolve relative dates like "tomorrow", "next week" or "this Monday", and never offer a time that has already passed."""

NUDGE_INSTRUCTION = """# Move the conversation forward
You have already asked the client several questions. Do not open with another greeting or an open-ended question.
Using only the Provider Directory above, present the best matching providers now (name, role, payment, next openings as checklist items), then ask at most one short follow-up question."""


@dataclass(frozen=True)
class Instructions:
    """Static instruction text loaded from the prompts directory."""

    system_prompt: str = ""
    faqs: str = ""
    policies: str = ""

    @property
    def base_prompt(self) -> str:
        """System prompt with FAQ and policy sections appended."""
        prompt = self.system_prompt or FALLBACK_SYSTEM_PROMPT
        if self.faqs:
            prompt = f"{prompt}\n\n{FAQ_HEADER}\n{self.faqs}"
        if self.policies:
            prompt = f"{prompt}\n\n{POLICIES_HEADER}\n{self.policies}"
        return prompt

    def files_present(self) -> dict[str, bool]:
        return {
            "system_prompt": bool(self.system_prompt),
            "faqs": bool(self.faqs),
            "policies": bool(self.policies),
        }


def _read_instruction(path: Path) -> str:
    try:
        return normalize_text(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning("Instruction file not found at %s", path)
        return ""


def load_instructions(prompts_dir: Path) -> Instructions:
    """Read the three instruction files; missing files load as empty."""
    prompts_dir = Path(prompts_dir)
    instructions = Instructions(
        system_prompt=_read_instruction(prompts_dir / "system_prompt.txt"),
        faqs=_read_instruction(prompts_dir / "faqs.txt"),
        policies=_read_instruction(prompts_dir / "policies.txt"),
    )
    logger.info("Instructions loaded from %s: %s", prompts_dir, instructions.files_present())
    return instructions


def render_snippets(snippets: Sequence[Snippet]) -> str:
    if not snippets:
        return ""
    lines = [SNIPPETS_HEADER]
    lines.extend(f"- [{s.source}] {s.text}" for s in snippets)
    return "\n".join(lines)


def compose_system_prompt(
    instructions: Instructions,
    context: str,
    *,
    now: datetime,
    timezone: str,
    snippets: Sequence[Snippet] = (),
    nudge: bool = False,
) -> str:
    """Build the complete system message for one completion call."""
    date_block = DATE_TEMPLATE.format(
        current_date=now.strftime("%Y-%m-%d"),
        current_day_of_week=WEEKDAYS[now.weekday()],
        current_time=now.strftime("%H:%M"),
        timezone=timezone,
    )
    parts = [instructions.base_prompt, date_block, context]
    snippet_block = render_snippets(snippets)
    if snippet_block:
        parts.append(snippet_block)
    if nudge:
        parts.append(NUDGE_INSTRUCTION)
    return "\n\n".join(part for part in parts if part)
