"""Tests for the dual-channel classifier and its rule engine."""

from __future__ import annotations

import pytest

from prompt_studio.ai import classifier
from prompt_studio.ai.classifier import (
    DEFAULT_RULES,
    GENERIC_ACKNOWLEDGEMENT,
    DualResponse,
    Rule,
    analyze,
    classify,
    classify_unmarked,
    guard_chat_response,
    parse_markers,
)

DIRECTIVE_TEXT = '1. When user says "Hi", bot replies with: - Text: "Hello"'


def _rule(name: str) -> Rule:
    return next(rule for rule in DEFAULT_RULES if rule.name == name)


@pytest.mark.parametrize(
    "text",
    [
        "---CHAT_RESPONSE---Sure, done.---AI_PROMPT---1. Greet the user---END---",
        "\n\n---CHAT_RESPONSE---\n  Sure, done.  \n---AI_PROMPT---\n\n1. Greet the user\n\n---END---\n",
        "  ---CHAT_RESPONSE---   Sure, done.\t---AI_PROMPT---   1. Greet the user   ---END---  ",
    ],
)
def test_markers_yield_trimmed_sections(text: str) -> None:
    result = classify(text)

    assert result.chat_response == "Sure, done."
    assert result.ai_prompt == "1. Greet the user"
    assert result.source == "markers"


def test_equals_sign_markers_are_accepted() -> None:
    result = parse_markers("===CHAT_RESPONSE===\nHi\n===AI_PROMPT===\nFlow\n===END===")

    assert result == DualResponse("Hi", "Flow", "markers")


def test_unterminated_prompt_runs_to_end_of_text() -> None:
    result = parse_markers("---CHAT_RESPONSE---\nOkay\n---AI_PROMPT---\n1. Step one\n2. Step two")

    assert result.chat_response == "Okay"
    assert result.ai_prompt == "1. Step one\n2. Step two"


def test_out_of_order_markers() -> None:
    result = parse_markers("---AI_PROMPT---\nThe flow\n---CHAT_RESPONSE---\nUpdated it for you\n---END---")

    assert result.chat_response == "Updated it for you"
    assert result.ai_prompt == "The flow"


def test_chat_only_markers_leave_prompt_empty() -> None:
    result = classify("---CHAT_RESPONSE---\nWhich language should the bot speak?\n---END---")

    assert result.chat_response == "Which language should the bot speak?"
    assert result.ai_prompt is None


def test_text_after_end_is_ignored() -> None:
    result = parse_markers("---CHAT_RESPONSE---\nHi\n---END---\ntrailing noise")

    assert result.chat_response == "Hi"
    assert result.ai_prompt is None


def test_conversational_text_without_markers_is_chat() -> None:
    text = "Great! I've updated your bot. Anything else?"

    result = classify(text)

    assert result.chat_response == text
    assert result.ai_prompt is None


def test_directive_text_without_markers_is_prompt() -> None:
    result = classify(DIRECTIVE_TEXT)

    assert result.ai_prompt == DIRECTIVE_TEXT
    assert result.chat_response == GENERIC_ACKNOWLEDGEMENT
    assert result.source == "structured"


def test_empty_and_marker_only_text() -> None:
    assert classify("").is_empty
    assert classify("   ").is_empty
    assert classify("---CHAT_RESPONSE------END---").is_empty


def test_classify_never_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom(text: str) -> DualResponse:
        raise RuntimeError("broken parser")

    monkeypatch.setattr(classifier, "parse_markers", _boom)

    result = classify("  some reply  ")

    assert result == DualResponse("some reply", None, "error")


def test_analyze_signals() -> None:
    signals = analyze(DIRECTIVE_TEXT)

    assert signals.numbered_list
    assert signals.user_trigger_reply
    assert signals.directive_line == 0
    assert signals.conversational == 0
    assert signals.directive_weight > signals.directive


def test_structured_rule_in_isolation() -> None:
    rule = _rule("structured")
    signals = analyze(DIRECTIVE_TEXT)

    assert rule.predicate(signals)
    assert not rule.predicate(analyze("Thanks, that works."))
    assert rule.outcome(DIRECTIVE_TEXT, signals).ai_prompt == DIRECTIVE_TEXT


def test_conversational_rule_in_isolation() -> None:
    rule = _rule("conversational")

    assert rule.predicate(analyze("Sure! Let me know if you need anything."))
    assert not rule.predicate(analyze("Sure. You are a support bot."))


def test_split_rule_keeps_lead_in_as_chat() -> None:
    text = "Here's the new setup.\nYou are a friendly pizza ordering assistant.\nAlways confirm the size."
    rule = _rule("split")
    signals = analyze(text)

    assert rule.predicate(signals)
    result = rule.outcome(text, signals)
    assert result.chat_response == "Here's the new setup."
    assert result.ai_prompt == "You are a friendly pizza ordering assistant.\nAlways confirm the size."


def test_split_rule_without_lead_in_uses_acknowledgement() -> None:
    text = "You are a helpful travel agent.\nThanks for planning with us!\nSure thing."
    result = classify_unmarked(text)

    assert result.source == "split"
    assert result.chat_response == GENERIC_ACKNOWLEDGEMENT
    assert result.ai_prompt == text


def test_fallback_rule_keeps_ambiguous_text_as_chat() -> None:
    result = classify_unmarked("The logo looks blurry on mobile.")

    assert result == DualResponse("The logo looks blurry on mobile.", None, "fallback")


def test_custom_rules_are_evaluated_in_order() -> None:
    always_prompt = Rule(
        name="always_prompt",
        predicate=lambda s: True,
        outcome=lambda text, s: DualResponse(None, text, "custom"),
    )

    result = classify("Great! Anything else?", rules=(always_prompt, *DEFAULT_RULES))

    assert result.source == "custom"
    assert result.ai_prompt == "Great! Anything else?"


def test_guard_moves_leaked_flow_into_prompt() -> None:
    chat = 'Got it, here is the flow:\n1. When user says "Menu", show the menu\n2. When user picks pizza, ask the size'

    result = guard_chat_response(DualResponse(chat, None, "markers"))

    assert result.source == "guard"
    assert result.chat_response == GENERIC_ACKNOWLEDGEMENT
    assert result.ai_prompt is not None
    assert result.ai_prompt.startswith('1. When user says "Menu"')


def test_guard_catches_respond_with_text_label() -> None:
    chat = "Okay.\nThe bot should respond with a greeting\nText: Welcome aboard!"

    result = guard_chat_response(DualResponse(chat, None, "fallback"))

    assert result.ai_prompt == "The bot should respond with a greeting\nText: Welcome aboard!"


def test_guard_leaves_clean_chat_alone() -> None:
    original = DualResponse("All set, the flow is saved.", None, "markers")

    assert guard_chat_response(original) is original


def test_guard_applies_to_marked_chat_sections() -> None:
    text = '---CHAT_RESPONSE---\n1. When user says "Hi", bot replies with "Hello"\n---END---'

    result = classify(text)

    assert result.ai_prompt == '1. When user says "Hi", bot replies with "Hello"'
    assert result.chat_response == GENERIC_ACKNOWLEDGEMENT
