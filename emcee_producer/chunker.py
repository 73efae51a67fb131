"""Split script segments into sentence-bounded chunks sized for TTS."""

import dataclasses
import re

from emcee_producer.constants import CHUNK_TARGET_WORDS
from emcee_producer.errors import ValidationError
from emcee_producer.models import ScriptSegment, round_half_up

_SENTENCE_BOUNDARY_RE = re.compile(r"(?<=[.!?])\s+")


def split_sentences(text: str) -> list[str]:
    """Split after ., ! or ? followed by whitespace; drop empty pieces."""
    return [s.strip() for s in _SENTENCE_BOUNDARY_RE.split(text) if s.strip()]


def group_sentences(sentences: list[str], target_words: int = CHUNK_TARGET_WORDS) -> list[str]:
    """Greedily pack sentences into chunks of at most target_words words.

    A chunk is flushed before a sentence that would push it past the
    target, unless the chunk is still empty, so one long sentence becomes
    its own oversized chunk.
    """
    chunks = []
    current = []
    word_count = 0

    for sentence in sentences:
        sentence_words = len(sentence.split())
        if current and word_count + sentence_words > target_words:
            chunks.append(" ".join(current))
            current = []
            word_count = 0
        current.append(sentence)
        word_count += sentence_words

    if current:
        chunks.append(" ".join(current))

    return chunks


def chunk_segment(segment: ScriptSegment, target_words: int = CHUNK_TARGET_WORDS) -> list[ScriptSegment]:
    """Split one segment into chunk segments.

    Returns [segment] itself when the content fits in a single chunk, and
    for a segment that is already a chunk. Chunk timing is proportional to
    character length; each chunk is rounded on its own and the rounding
    error is not redistributed.
    """
    if target_words < 1:
        raise ValidationError(f"target_words must be at least 1, got {target_words}")
    if segment.chunk_index is not None:
        return [segment]

    chunks = group_sentences(split_sentences(segment.content), target_words)
    if len(chunks) <= 1:
        return [segment]

    # Divide by the chunks' own length, not len(segment.content). Splitting
    # drops the whitespace between sentences, and on a 45-minute segment
    # that share alone is worth more seconds than there are chunks.
    total_chars = sum(len(c) for c in chunks)
    return [
        dataclasses.replace(
            segment,
            id=None,
            content=text,
            timing=round_half_up(segment.timing * len(text) / total_chars),
            chunk_index=index,
            audio_path=None,
        )
        for index, text in enumerate(chunks)
    ]
