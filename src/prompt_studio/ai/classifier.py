"""Split a completion into a chat reply and a structured prompt.

Models are asked to answer in tagged sections::

    ---CHAT_RESPONSE---
    Done! I added a greeting flow.
    ---AI_PROMPT---
    1. When user says "Hi", bot replies with "Hello!"
    ---END---

Markers may be missing, out of order or unterminated. When no section can be
read, an ordered list of heuristic rules decides. Ambiguous text always ends
up as chat so conversational text never leaks into the story.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

from prompt_studio.log import get_logger

logger = get_logger(__name__)

CHAT_MARKER = "---CHAT_RESPONSE---"
PROMPT_MARKER = "---AI_PROMPT---"
END_MARKER = "---END---"
MARKER_NAMES = ("CHAT_RESPONSE", "AI_PROMPT", "END")

# Accepts ---NAME--- and the older ===NAME=== spelling.
MARKER_RE = re.compile(r"(?:-{3,}|={3,})[ \t]*(CHAT_RESPONSE|AI_PROMPT|END)[ \t]*(?:-{3}|={3})")

GENERIC_ACKNOWLEDGEMENT = (
    "I've updated your chatbot flow. You can review the new version in the story panel."
)

_CONVERSATIONAL_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bgreat!",
        r"\bsure\b",
        r"\bthanks\b",
        r"\bthank you\b",
        r"\bi(?:'ve| have) (?:updated|made|added|changed)\b",
        r"\banything else\b",
        r"\blet me know\b",
        r"\bhappy to help\b",
        r"\bglad\b",
        r"\bof course\b",
        r"\babsolutely\b",
        r"\bno problem\b",
        r"\bfeel free\b",
        r"\bhope this helps\b",
        r"\byou're welcome\b",
        r"\bhello!",
        r"\bhi there\b",
        r"\bdone!",
    )
]

_DIRECTIVE_PATTERNS = [
    re.compile(p, re.IGNORECASE | re.MULTILINE)
    for p in (
        r"\bwhen (?:the )?user\b",
        r"\bif (?:the )?user\b",
        r"\b(?:respond|responds|reply|replies) with\b",
        r"\byou are\b",
        r"\bact as\b",
        r"\binstructions:",
        r"\bbot (?:replies|responds|says)\b",
        r"\bquick repl(?:y|ies)\b",
        r"\bcarousel\b",
        r"\bbuttons?:",
    )
]

_NUMBERED_ITEM_RE = re.compile(r"^\s*\d+[.)]\s+\S")
_USER_TRIGGER_RE = re.compile(r"\b(?:when|if)\s+(?:the\s+)?user\b", re.IGNORECASE)
_REPLY_WITH_RE = re.compile(r"\b(?:respond|responds|reply|replies)\s+with\b", re.IGNORECASE)
_DIRECTIVE_LINE_RE = re.compile(r"^\s*(?:you are\b|act as\b|instructions:)", re.IGNORECASE)
_TEXT_LABEL_RE = re.compile(r"\btext\s*:", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class DualResponse:
    """Result of classifying one completion."""

    chat_response: Optional[str]
    ai_prompt: Optional[str]
    source: str = "markers"

    @property
    def is_empty(self) -> bool:
        return self.chat_response is None and self.ai_prompt is None


@dataclass(frozen=True, slots=True)
class Signals:
    """Indicator counts and structural features of unmarked text."""

    conversational: int
    directive: int
    numbered_list: bool
    user_trigger_reply: bool
    directive_line: Optional[int]  # index of the first line opening a directive

    @property
    def directive_weight(self) -> int:
        return self.directive + int(self.numbered_list) + int(self.user_trigger_reply)


@dataclass(frozen=True, slots=True)
class Rule:
    name: str
    predicate: Callable[[Signals], bool]
    outcome: Callable[[str, Signals], DualResponse]


def _clean(text: str) -> Optional[str]:
    text = text.strip()
    return text or None


def parse_markers(text: str) -> DualResponse:
    """Read the tagged sections. Each section runs to the next marker or end of text."""
    matches = list(MARKER_RE.finditer(text))
    sections: dict[str, Optional[str]] = {}
    for index, match in enumerate(matches):
        name = match.group(1)
        if name == "END":
            continue
        end = matches[index + 1].start() if index + 1 < len(matches) else len(text)
        if sections.get(name) is None:
            sections[name] = _clean(text[match.end():end])
    return DualResponse(
        chat_response=sections.get("CHAT_RESPONSE"),
        ai_prompt=sections.get("AI_PROMPT"),
        source="markers",
    )


def strip_markers(text: str) -> str:
    return MARKER_RE.sub("", text).strip()


def is_numbered_directive(line: str) -> bool:
    return bool(_NUMBERED_ITEM_RE.match(line)) and bool(_USER_TRIGGER_RE.search(line))


def _opens_directive(line: str) -> bool:
    return is_numbered_directive(line) or bool(_DIRECTIVE_LINE_RE.match(line))


def analyze(text: str) -> Signals:
    lines = text.splitlines()
    directive_line = next((i for i, line in enumerate(lines) if _opens_directive(line)), None)
    return Signals(
        conversational=sum(len(p.findall(text)) for p in _CONVERSATIONAL_PATTERNS),
        directive=sum(len(p.findall(text)) for p in _DIRECTIVE_PATTERNS),
        numbered_list=bool(_NUMBERED_ITEM_RE.match(text)),
        user_trigger_reply=bool(_USER_TRIGGER_RE.search(text)) and bool(_REPLY_WITH_RE.search(text)),
        directive_line=directive_line,
    )


def _structured_outcome(text: str, signals: Signals) -> DualResponse:
    return DualResponse(chat_response=GENERIC_ACKNOWLEDGEMENT, ai_prompt=text, source="structured")


def _conversational_outcome(text: str, signals: Signals) -> DualResponse:
    return DualResponse(chat_response=text, ai_prompt=None, source="conversational")


def _split_outcome(text: str, signals: Signals) -> DualResponse:
    lines = text.splitlines()
    boundary = signals.directive_line or 0
    chat = _clean("\n".join(lines[:boundary]))
    return DualResponse(
        chat_response=chat or GENERIC_ACKNOWLEDGEMENT,
        ai_prompt=_clean("\n".join(lines[boundary:])),
        source="split",
    )


def _fallback_outcome(text: str, signals: Signals) -> DualResponse:
    return DualResponse(chat_response=text, ai_prompt=None, source="fallback")


DEFAULT_RULES: tuple[Rule, ...] = (
    Rule(
        name="structured",
        predicate=lambda s: (s.numbered_list or s.user_trigger_reply)
        and s.directive_weight > s.conversational,
        outcome=_structured_outcome,
    ),
    Rule(
        name="conversational",
        predicate=lambda s: s.conversational > 0 and s.directive == 0 and not s.numbered_list,
        outcome=_conversational_outcome,
    ),
    Rule(
        name="split",
        predicate=lambda s: s.directive_line is not None,
        outcome=_split_outcome,
    ),
    Rule(name="fallback", predicate=lambda s: True, outcome=_fallback_outcome),
)


def classify_unmarked(text: str, rules: tuple[Rule, ...] = DEFAULT_RULES) -> DualResponse:
    """Run *rules* in order; the first matching predicate decides."""
    signals = analyze(text)
    for rule in rules:
        if rule.predicate(signals):
            logger.debug(
                "classifier_rule_matched",
                rule=rule.name,
                conversational=signals.conversational,
                directive=signals.directive,
            )
            return rule.outcome(text, signals)
    return _fallback_outcome(text, signals)


def _suspicious_line(lines: list[str]) -> Optional[int]:
    for index, line in enumerate(lines):
        if is_numbered_directive(line):
            return index
        if _REPLY_WITH_RE.search(line):
            following = lines[index + 1] if index + 1 < len(lines) else ""
            if _TEXT_LABEL_RE.search(line) or _TEXT_LABEL_RE.search(following):
                return index
    return None


def guard_chat_response(result: DualResponse) -> DualResponse:
    """Move prompt-like content out of a chat-only result."""
    if result.ai_prompt is not None or result.chat_response is None:
        return result
    if result.chat_response == GENERIC_ACKNOWLEDGEMENT:
        return result

    lines = result.chat_response.splitlines()
    start = _suspicious_line(lines)
    if start is None:
        return result

    logger.info("classifier_guard_reclassified", from_source=result.source, line=start)
    return DualResponse(
        chat_response=GENERIC_ACKNOWLEDGEMENT,
        ai_prompt=_clean("\n".join(lines[start:])),
        source="guard",
    )


def classify(full_text: str, rules: tuple[Rule, ...] = DEFAULT_RULES) -> DualResponse:
    """Classify a complete completion text. Never raises."""
    try:
        result = parse_markers(full_text)
        if result.is_empty:
            body = strip_markers(full_text)
            if not body:
                return DualResponse(chat_response=None, ai_prompt=None, source="empty")
            result = classify_unmarked(body, rules)
        return guard_chat_response(result)
    except Exception as e:
        logger.error("classifier_error", error=str(e))
        return DualResponse(chat_response=_clean(full_text), ai_prompt=None, source="error")
