"""Tests for progressive reveal of the chat section."""

from __future__ import annotations

from prompt_studio.ai.reveal import RevealGate


def _feed_all(gate: RevealGate, *chunks: str) -> str:
    shown = "".join(gate.feed(chunk) for chunk in chunks)
    return shown + gate.flush()


def test_nothing_shown_below_threshold() -> None:
    gate = RevealGate(min_visible_chars=12)

    assert gate.feed("Hello") == ""
    assert gate.feed(" there, friend") == "Hello there, friend"
    assert gate.revealed == "Hello there, friend"


def test_flush_ignores_threshold() -> None:
    gate = RevealGate(min_visible_chars=50)

    assert gate.feed("Short") == ""
    assert gate.flush() == "Short"


def test_split_marker_is_held_back() -> None:
    gate = RevealGate(min_visible_chars=1)

    assert gate.feed("---CHAT_RESP") == ""
    assert gate.feed("ONSE---Sure thing") == "Sure thing"
    assert "CHAT_RESPONSE" not in gate.revealed


def test_prompt_section_stays_hidden() -> None:
    gate = RevealGate(min_visible_chars=1)

    shown = _feed_all(
        gate,
        "---CHAT_RESPONSE---\nAdded a greeting",
        ".\n---AI_",
        "PROMPT---\n1. When user says hi, reply with hello\n",
        "---END---",
    )

    assert shown.strip() == "Added a greeting."
    assert gate.prompt_started
    assert "When user" not in gate.revealed
    assert "When user" in gate.buffer


def test_unmarked_text_is_shown() -> None:
    gate = RevealGate(min_visible_chars=4)

    assert _feed_all(gate, "Which ", "color do you ", "want?") == "Which color do you want?"
    assert not gate.prompt_started


def test_trailing_dash_released_on_flush() -> None:
    gate = RevealGate(min_visible_chars=1)

    assert gate.feed("Pick one -") == "Pick one "
    assert gate.flush() == "-"


def test_revealed_text_only_grows() -> None:
    gate = RevealGate(min_visible_chars=1)
    seen: list[str] = []
    for chunk in ("Hi", " there", "\n---", "AI_PROMPT---", "secret", " flow"):
        gate.feed(chunk)
        seen.append(gate.revealed)

    for before, after in zip(seen, seen[1:]):
        assert after.startswith(before)
    assert "secret" not in gate.revealed


def test_spaced_marker_is_held_back() -> None:
    gate = RevealGate(min_visible_chars=1)

    shown = _feed_all(
        gate,
        "Hello there friend\n--- AI",
        "_PROMPT ---\n1. When user says hi",
        "\n--- END ---",
    )

    assert shown.strip() == "Hello there friend"
    assert "AI" not in gate.revealed
    assert gate.prompt_started


def test_wide_fence_marker_is_held_back() -> None:
    gate = RevealGate(min_visible_chars=1)

    assert gate.feed("Sure thing, done.\n----") == "Sure thing, done.\n"
    assert gate.feed("CHAT_RESPONSE --") == ""
    assert gate.feed("-\nAnything else?") == "\nAnything else?"
    assert "CHAT_RESPONSE" not in gate.revealed


def test_dash_separated_text_is_not_held_back() -> None:
    gate = RevealGate(min_visible_chars=1)

    assert gate.feed("Options - a") == "Options - a"
