"""Tests for the conversation hint detectors."""

from __future__ import annotations

from ams_intake.matching.hints import (
    Hints,
    detect_insurer,
    detect_language,
    detect_role_preference,
    detect_state,
    detect_states,
    extract_hints,
    wants_list,
    wants_more_slots,
    wants_slots,
)


class TestDetectStates:
    def test_full_names_in_order(self):
        assert detect_states("I live in Oregon or Nevada") == ["OR", "NV"]

    def test_lowercase_word_codes_are_ignored(self):
        # "in" and "or" are words here, not Indiana/Oregon
        assert detect_states("i am in a hurry or not") == []
        assert detect_states("nm, I found one") == []

    def test_uppercase_codes_count(self):
        assert detect_states("I'm in AZ") == ["AZ"]
        assert detect_states("moving from CO to OR") == ["CO", "OR"]

    def test_unambiguous_code_in_lower_case(self):
        assert detect_states("i'm in nv") == ["NV"]

    def test_multiword_name_wins_over_substring(self):
        assert detect_states("West Virginia") == ["WV"]
        assert detect_states("New Mexico please") == ["NM"]

    def test_noise_codes_need_location_cue(self):
        assert detect_states("OK thanks") == []
        assert detect_states("Is she an MD?") == []
        assert detect_states("I live in OK") == ["OK"]

    def test_last_mention_wins(self):
        assert detect_state("I was in Arizona, now Nevada") == "NV"
        assert detect_state("hello there") is None
        assert detect_state("") is None


class TestDetectInsurer:
    def test_named_insurers(self):
        assert detect_insurer("I have Blue Cross") == "bcbs"
        assert detect_insurer("my plan is UnitedHealthcare") == "uhc"
        assert detect_insurer("AHCCCS") == "medicaid"

    def test_cash_variants(self):
        assert detect_insurer("I'll pay cash") == "cashpay"
        assert detect_insurer("self-pay is fine") == "cashpay"
        assert detect_insurer("I don't have insurance") == "cashpay"

    def test_latest_mention_wins(self):
        assert detect_insurer("I used to have Aetna but now I'm paying cash") == "cashpay"

    def test_nothing(self):
        assert detect_insurer("hello") is None


class TestDetectRolePreference:
    def test_psychiatry(self):
        assert detect_role_preference("looking for a psychiatrist") == "psychiatrist"
        assert detect_role_preference("I need help with my meds") == "psychiatrist"

    def test_therapy(self):
        assert detect_role_preference("I want a therapist") == "therapist"
        assert detect_role_preference("counseling for anxiety") == "therapist"

    def test_both(self):
        assert detect_role_preference("medication management and therapy") == "both"
        assert detect_role_preference("therapy, maybe both") == "both"

    def test_nothing(self):
        assert detect_role_preference("hi") is None
        assert detect_role_preference("") is None


class TestOtherDetectors:
    def test_language(self):
        assert detect_language("Do they speak Spanish?") == "Spanish"
        assert detect_language("someone who knows sign language") == "ASL"
        assert detect_language("no preference") is None

    def test_wants_list(self):
        assert wants_list("Can you list some options?")
        assert wants_list("Who is available in AZ?")
        assert not wants_list("thank you")

    def test_wants_slots(self):
        assert wants_slots("What times does she have?")
        assert wants_slots("any openings this week")
        assert not wants_slots("tell me about her style")

    def test_wants_more_slots(self):
        assert wants_more_slots("any later times?")
        assert wants_more_slots("show me more openings")
        assert wants_more_slots("anything later")
        assert not wants_more_slots("tell me more about her")


class TestExtractHints:
    def test_combines_message_and_history(self):
        history = [
            {"role": "user", "content": "I'm in Arizona"},
            {"role": "assistant", "content": "Thanks! How will you pay?"},
        ]
        hints = extract_hints(history, "I have Aetna")
        assert hints.state == "AZ"
        assert hints.insurer == "aetna"

    def test_latest_message_overrides_history(self):
        history = [{"role": "user", "content": "I'm in Arizona"}]
        assert extract_hints(history, "actually I moved to Nevada").state == "NV"

    def test_newer_user_turn_beats_older(self):
        history = [
            {"role": "user", "content": "I'm in Arizona"},
            {"role": "user", "content": "sorry, Colorado"},
        ]
        assert extract_hints(history, "ok").state == "CO"

    def test_assistant_turns_are_not_scanned(self):
        history = [{"role": "assistant", "content": "We have providers in Oregon who take Medicare."}]
        hints = extract_hints(history, "hello")
        assert hints.state is None
        assert hints.insurer is None

    def test_bare_both_answers_the_role_question(self):
        history = [
            {"role": "user", "content": "I'm looking for therapy"},
            {"role": "assistant", "content": "Are you looking for therapy, medication management, or both?"},
        ]
        assert extract_hints(history, "Actually, both please").role_preference == "both"

    def test_bare_both_without_the_question_falls_back_to_history(self):
        history = [
            {"role": "user", "content": "I'm looking for therapy"},
            {"role": "assistant", "content": "Do you have a state preference?"},
        ]
        assert extract_hints(history, "both AZ and NV work").role_preference == "therapist"

    def test_intent_flags_use_current_message_only(self):
        history = [{"role": "user", "content": "list options with openings"}]
        hints = extract_hints(history, "thanks")
        assert not hints.wants_list
        assert not hints.wants_slots

    def test_empty(self):
        assert extract_hints([], "") == Hints()

    def test_as_dict(self):
        hints = extract_hints([], "therapist in NV who speaks Spanish")
        assert hints.as_dict() == {
            "state": "NV",
            "insurer": None,
            "role_preference": "therapist",
            "language": "Spanish",
            "wants_list": False,
            "wants_slots": False,
            "wants_more_slots": False,
        }
