"""Tokenize the inline prosody markup consumed by the speech renderer.

Vocabulary: [PAUSE=<ms>], [BREATHE], [EMPHASIS] ... [/EMPHASIS]. There is no
escaping; unrecognized bracket text is left in the text stream, and nesting
is not validated.
"""

import re

from emcee_producer.constants import BREATHE_PAUSE_MS

_TOKEN_RE = re.compile(r"\[(PAUSE=(\d+)|BREATHE|EMPHASIS|/EMPHASIS)\]")


def tokenize(text: str) -> list[tuple[str, object]]:
    """Split text into (kind, value) tokens.

    Kinds: "text" (str), "pause" (int ms), "breathe" (None),
    "emphasis_start" (None), "emphasis_end" (None). Whitespace-only text
    runs are dropped.
    """
    tokens = []
    pos = 0
    for match in _TOKEN_RE.finditer(text):
        before = text[pos:match.start()]
        if before.strip():
            tokens.append(("text", before.strip()))
        tag = match.group(1)
        if match.group(2) is not None:
            tokens.append(("pause", int(match.group(2))))
        elif tag == "BREATHE":
            tokens.append(("breathe", None))
        elif tag == "EMPHASIS":
            tokens.append(("emphasis_start", None))
        else:
            tokens.append(("emphasis_end", None))
        pos = match.end()
    rest = text[pos:]
    if rest.strip():
        tokens.append(("text", rest.strip()))
    return tokens


def strip_markup(text: str) -> str:
    """Speakable text with every markup token removed."""
    words = [value for kind, value in tokenize(text) if kind == "text"]
    return " ".join(" ".join(words).split())


def pause_total_ms(text: str) -> int:
    """Total silence the markup asks for, counting [BREATHE] as a short pause."""
    total = 0
    for kind, value in tokenize(text):
        if kind == "pause":
            total += value
        elif kind == "breathe":
            total += BREATHE_PAUSE_MS
    return total


def speech_runs(text: str) -> list[tuple[str, int]]:
    """Group tokens into (spoken text, trailing silence ms) runs for rendering.

    Emphasis markers are dropped; the renderer has no emphasis control. A
    leading pause becomes a run with empty text.
    """
    runs = []
    current = []
    for kind, value in tokenize(text):
        if kind == "text":
            current.append(value)
        elif kind in ("pause", "breathe"):
            silence = value if kind == "pause" else BREATHE_PAUSE_MS
            runs.append((" ".join(current), silence))
            current = []
    if current:
        runs.append((" ".join(current), 0))
    return runs
