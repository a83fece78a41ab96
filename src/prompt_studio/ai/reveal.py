"""Progressive reveal of the chat section while a completion is streaming."""

from __future__ import annotations

from prompt_studio.ai.classifier import MARKER_NAMES, MARKER_RE

_FENCE_CHARS = ("-", "=")
_CLOSING_PREFIXES = ("", "-", "--", "=", "==")
# Longest tail checked for a partial marker; wider fences are not held back.
_MAX_MARKER_LEN = 64


def _could_be_marker_start(tail: str) -> bool:
    """True when *tail* is an unfinished prefix of a marker MARKER_RE accepts."""
    fence = tail[:1]
    if fence not in _FENCE_CHARS:
        return False
    rest = tail.lstrip(fence)
    if not rest:
        return True
    if len(tail) - len(rest) < 3:
        return False
    rest = rest.lstrip(" \t")
    if not rest:
        return True
    for name in MARKER_NAMES:
        if name.startswith(rest):
            return True
        if rest.startswith(name):
            return rest[len(name):].lstrip(" \t") in _CLOSING_PREFIXES
    return False


def _held_back_length(segment: str) -> int:
    """Length of the trailing part of *segment* that may grow into a marker."""
    for size in range(min(len(segment), _MAX_MARKER_LEN), 0, -1):
        if _could_be_marker_start(segment[-size:]):
            return size
    return 0


class RevealGate:
    """Decides how much of the streamed buffer may be shown to the user.

    Text before any marker and text of the chat section are visible; the
    prompt section and everything after ``END`` stay hidden. A trailing
    fragment that could still become a marker is held back, and nothing is
    shown until ``min_visible_chars`` of visible text have accumulated.
    """

    def __init__(self, min_visible_chars: int = 12):
        self._min_visible_chars = min_visible_chars
        self._buffer = ""
        self._revealed = ""
        self._prompt_started = False

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def revealed(self) -> str:
        return self._revealed

    @property
    def prompt_started(self) -> bool:
        """True once an AI_PROMPT marker has been seen."""
        return self._prompt_started

    def feed(self, delta: str) -> str:
        """Add *delta* and return the newly revealable text ('' when none)."""
        self._buffer += delta
        return self._advance(final=False)

    def flush(self) -> str:
        """Reveal whatever is visible at end of stream, ignoring the threshold."""
        return self._advance(final=True)

    def _visible(self, final: bool) -> str:
        parts: list[str] = []
        position = 0
        showing = True
        for match in MARKER_RE.finditer(self._buffer):
            if showing:
                parts.append(self._buffer[position:match.start()])
            name = match.group(1)
            if name == "AI_PROMPT":
                self._prompt_started = True
            showing = name == "CHAT_RESPONSE"
            position = match.end()

        if showing:
            tail = self._buffer[position:]
            if not final:
                held = _held_back_length(tail)
                if held:
                    tail = tail[:-held]
            parts.append(tail)
        return "".join(parts).lstrip()

    def _advance(self, final: bool) -> str:
        visible = self._visible(final)
        if not final and not self._revealed and len(visible.strip()) < self._min_visible_chars:
            return ""
        if not visible.startswith(self._revealed):
            return ""
        new_text = visible[len(self._revealed):]
        self._revealed = visible
        return new_text
