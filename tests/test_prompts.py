"""Tests for instruction loading and system prompt composition."""

from __future__ import annotations

from datetime import datetime

from ams_intake.prompts import (
    FALLBACK_SYSTEM_PROMPT,
    FAQ_HEADER,
    NUDGE_INSTRUCTION,
    POLICIES_HEADER,
    SNIPPETS_HEADER,
    Instructions,
    compose_system_prompt,
    load_instructions,
)
from ams_intake.services.retrieval import Snippet

NOW = datetime(2025, 9, 22, 14, 5)


class TestLoadInstructions:
    def test_reads_all_three_files(self, tmp_path):
        (tmp_path / "system_prompt.txt").write_text("\ufeffBe kind.\r\n", encoding="utf-8")
        (tmp_path / "faqs.txt").write_text("Q: Cost?\nA: Varies.", encoding="utf-8")
        (tmp_path / "policies.txt").write_text("No diagnoses.", encoding="utf-8")

        instructions = load_instructions(tmp_path)

        assert instructions.system_prompt.strip() == "Be kind."
        assert instructions.files_present() == {"system_prompt": True, "faqs": True, "policies": True}

    def test_missing_files_load_empty(self, tmp_path):
        instructions = load_instructions(tmp_path)
        assert instructions == Instructions()
        assert instructions.base_prompt == FALLBACK_SYSTEM_PROMPT

    def test_repository_prompts_exist(self):
        from ams_intake import config

        assert all(load_instructions(config.PROMPTS_DIR).files_present().values())


class TestBasePrompt:
    def test_sections_are_appended_under_headers(self):
        prompt = Instructions(system_prompt="Base.", faqs="Q/A", policies="Rules").base_prompt
        assert prompt == f"Base.\n\n{FAQ_HEADER}\nQ/A\n\n{POLICIES_HEADER}\nRules"

    def test_empty_sections_are_skipped(self):
        assert Instructions(system_prompt="Base.").base_prompt == "Base."


class TestComposeSystemPrompt:
    def test_date_block_and_context(self):
        prompt = compose_system_prompt(
            Instructions(system_prompt="Base."), "# Provider Directory", now=NOW, timezone="America/Phoenix",
        )
        assert prompt.startswith("Base.")
        assert "Today is 2025-09-22 (Monday). The current time is 14:05 (America/Phoenix)." in prompt
        assert prompt.endswith("# Provider Directory")
        assert NUDGE_INSTRUCTION not in prompt
        assert SNIPPETS_HEADER not in prompt

    def test_snippets_and_nudge(self):
        prompt = compose_system_prompt(
            Instructions(),
            "ctx",
            now=NOW,
            timezone="UTC",
            snippets=[Snippet(text="Telehealth only.", source="faq.md", score=1.0)],
            nudge=True,
        )
        assert f"{SNIPPETS_HEADER}\n- [faq.md] Telehealth only." in prompt
        assert prompt.endswith(NUDGE_INSTRUCTION)
