"""Tests for slot timing helpers and prompt context rendering."""

from __future__ import annotations

from datetime import datetime

from ams_intake.context.builder import (
    DIRECTORY_HEADER,
    INDEX_HEADER,
    ContextOptions,
    build_availability_index,
    build_context,
    render_provider_card,
)
from ams_intake.context.slots import (
    format_slot,
    future_slots,
    pagination_anchor,
    shown_timestamps,
    soonest_slots_for,
    upcoming_provider_ids,
)
from ams_intake.directory.store import build_snapshot
from ams_intake.matching.engine import select_providers
from ams_intake.matching.hints import Hints, extract_hints

# ── Slot helpers ─────────────────────────────────────────────────────


class TestFormatSlot:
    def test_afternoon(self):
        assert format_slot("2025-09-23", "13:00") == "1:00 PM, Tuesday, 09/23/2025"

    def test_midnight_and_noon(self):
        assert format_slot("2025-09-23", "00:05") == "12:05 AM, Tuesday, 09/23/2025"
        assert format_slot("2025-09-23", "12:30") == "12:30 PM, Tuesday, 09/23/2025"

    def test_far_future(self):
        assert format_slot("2099-01-01", "09:00") == "9:00 AM, Thursday, 01/01/2099"


class TestFutureSlots:
    def test_past_slots_are_dropped(self, snapshot, now):
        upcoming = future_slots(snapshot.slots, after=now)
        assert len(upcoming) == 6
        assert upcoming[0].stamp == "2025-09-23 13:00"

    def test_equal_to_now_is_not_future(self, snapshot):
        upcoming = future_slots(snapshot.slots, after=datetime(2025, 9, 23, 13, 0))
        assert upcoming[0].stamp == "2025-09-23 15:00"

    def test_soonest_for_provider(self, snapshot, now):
        slots = soonest_slots_for(snapshot.slots, "PROV_001", after=now, limit=1)
        assert [s.stamp for s in slots] == ["2025-09-23 13:00"]
        assert soonest_slots_for(snapshot.slots, "prov_001", after=now, limit=0) == []

    def test_upcoming_provider_ids(self, snapshot):
        ids = upcoming_provider_ids(snapshot.slots, after=datetime(2025, 9, 27, 0, 0))
        assert ids == frozenset({"prov_004"})


class TestPagination:
    def test_shown_timestamps_both_formats(self):
        text = "- [ ] 1:00 PM, Tuesday, 09/23/2025\nalso 2025-09-24 10:00"
        assert shown_timestamps(text) == [datetime(2025, 9, 23, 13, 0), datetime(2025, 9, 24, 10, 0)]

    def test_invalid_stamp_is_skipped(self):
        assert shown_timestamps("9:00 AM, Monday, 02/30/2025") == []

    def test_anchor_moves_past_last_shown(self, now):
        previous = "- [ ] 1:00 PM, Tuesday, 09/23/2025\n- [ ] 10:00 AM, Wednesday, 09/24/2025"
        anchor = pagination_anchor(now, wants_more=True, previous_reply=previous)
        assert anchor == datetime(2025, 9, 24, 10, 0)

    def test_anchor_without_more_request(self, now):
        previous = "- [ ] 1:00 PM, Tuesday, 09/23/2025"
        assert pagination_anchor(now, wants_more=False, previous_reply=previous) == now

    def test_anchor_never_moves_backwards(self, now):
        previous = "- [ ] 9:00 AM, Monday, 09/01/2025"
        assert pagination_anchor(now, wants_more=True, previous_reply=previous) == now

    def test_paging_shows_next_slots(self, snapshot, now):
        anchor = pagination_anchor(
            now, wants_more=True, previous_reply="- [ ] 1:00 PM, Tuesday, 09/23/2025",
        )
        slots = soonest_slots_for(snapshot.slots, "prov_001", after=anchor, limit=3)
        assert [s.stamp for s in slots] == ["2025-09-24 10:00"]


# ── Context rendering ────────────────────────────────────────────────


class TestProviderCard:
    def test_card_fields(self, snapshot, now):
        allison = snapshot.provider("prov_001")
        card = render_provider_card(allison, soonest_slots_for(snapshot.slots, "prov_001", after=now, limit=3))
        assert card.startswith("### Allison Hill (PsyD) [prov_001]")
        assert "Payment: Cash pay, Aetna" in card
        assert "Languages: English, Spanish" in card
        assert "Email: allison.hill@example.org" in card
        assert "- [ ] 1:00 PM, Tuesday, 09/23/2025" in card

    def test_no_slots(self, snapshot):
        card = render_provider_card(snapshot.provider("prov_003"), [])
        assert "Next openings: none currently listed" in card
        assert "Email" not in card

    def test_lived_experience(self, snapshot):
        card = render_provider_card(snapshot.provider("prov_004"), [])
        assert "Lived experience: Parent, Veteran" in card
        assert "Languages: English, ASL" in card


class TestBuildContext:
    def test_arizona_therapy_scenario(self, snapshot, now):
        hints = extract_hints([], "I'm in AZ looking for a therapist, I have Aetna")
        match = select_providers(snapshot.providers, hints)
        context = build_context(match, snapshot, now=now)

        assert context.directory.startswith(DIRECTORY_HEADER)
        assert context.provider_ids == ("prov_001",)
        assert "Filters: state=AZ, payment=Aetna, role=therapist" in context.directory
        assert "- [ ] 1:00 PM, Tuesday, 09/23/2025" in context.directory
        assert "- [ ] 10:00 AM, Wednesday, 09/24/2025" in context.directory
        assert "09/20/2025" not in context.directory
        assert "prov_001: 2025-09-23 13:00, 2025-09-24 10:00" in context.index
        assert context.text.endswith(context.index)

    def test_far_future_schedule(self, directory_text):
        snapshot = build_snapshot(directory_text, "prov_001|2099-01-01|09:00\n")
        match = select_providers(snapshot.providers, Hints(state="AZ", role_preference="therapist"))
        context = build_context(match, snapshot, now=datetime(2025, 9, 22, 12, 0))
        assert "- [ ] 9:00 AM, Thursday, 01/01/2099" in context.directory
        assert "prov_001: 2099-01-01 09:00" in context.index

    def test_empty_match_renders_absence(self, snapshot, now):
        match = select_providers(snapshot.providers, Hints(state="TX"))
        context = build_context(match, snapshot, now=now)
        assert "No providers in the directory match the current filters" in context.directory
        assert context.provider_ids == ()
        assert context.index == ""

    def test_relaxed_match_is_flagged(self, snapshot, now):
        match = select_providers(snapshot.providers, Hints(state="AZ", insurer="medicare"))
        context = build_context(match, snapshot, now=now)
        assert "no provider matched every filter" in context.directory

    def test_empty_group_is_noted(self, snapshot, now):
        match = select_providers(snapshot.providers, Hints(state="NM"))
        context = build_context(match, snapshot, now=now)
        assert "No psychiatry providers match the current filters." in context.directory

    def test_char_budget_keeps_first_card(self, snapshot, now):
        match = select_providers(snapshot.providers, Hints())
        context = build_context(match, snapshot, now=now, options=ContextOptions(char_budget=300))
        assert context.provider_ids == ("prov_001",)
        assert context.truncated

    def test_max_providers(self, snapshot, now):
        match = select_providers(snapshot.providers, Hints())
        context = build_context(match, snapshot, now=now, options=ContextOptions(max_providers=2))
        assert context.provider_ids == ("prov_001", "prov_004")
        assert context.truncated

    def test_anchor_controls_visible_slots(self, snapshot, now):
        match = select_providers(snapshot.providers, Hints(state="NM"))
        context = build_context(match, snapshot, now=now, anchor=datetime(2025, 9, 23, 13, 0))
        assert "1:00 PM, Tuesday, 09/23/2025" not in context.directory
        assert "10:00 AM, Wednesday, 09/24/2025" in context.directory

    def test_index_can_be_disabled(self, snapshot, now):
        match = select_providers(snapshot.providers, Hints())
        context = build_context(match, snapshot, now=now, options=ContextOptions(include_index=False))
        assert context.index == ""
        assert context.text == context.directory


class TestAvailabilityIndex:
    def test_lists_future_slots_only(self, snapshot, now):
        index = build_availability_index(["prov_001", "prov_003"], snapshot.slots, now=now, char_budget=4000)
        assert index.startswith(INDEX_HEADER)
        assert "prov_001: 2025-09-23 13:00, 2025-09-24 10:00" in index
        assert "prov_003: 2025-09-26 09:30" in index
        assert "2025-09-20" not in index

    def test_budget_and_empty(self, snapshot, now):
        assert build_availability_index(["prov_001"], snapshot.slots, now=now, char_budget=10) == ""
        assert build_availability_index(["prov_404"], snapshot.slots, now=now, char_budget=4000) == ""

    def test_long_line_does_not_crowd_out_later_providers(self, snapshot, now):
        short_line = "prov_003: 2025-09-26 09:30"
        budget = len(INDEX_HEADER) + 1 + len(short_line)
        index = build_availability_index(["prov_001", "prov_003"], snapshot.slots, now=now, char_budget=budget)
        assert index == f"{INDEX_HEADER}\n{short_line}"
