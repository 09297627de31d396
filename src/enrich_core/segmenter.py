"""Sentence-aware splitting of long text into token-bounded chunks.

Token counts are estimated, not measured: one token per four characters,
rounded up. Chunks never split inside a sentence, so a sentence that alone
exceeds the budget is emitted as its own oversized chunk.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass

DEFAULT_MAX_TOKENS = 3000
DEFAULT_OVERLAP_TOKENS = 200
MAX_RETAINED_SENTENCES = 50

_TERMINATORS = frozenset(".!?")


def estimate_tokens(text: str) -> int:
    """Return ``ceil(len(text) / 4)``."""
    return (len(text) + 3) // 4


def split_sentences(text: str) -> list[str]:
    """Split text into sentences, keeping terminators and trailing whitespace.

    A sentence ends at ``.``, ``!`` or ``?`` followed by whitespace when the
    next non-space character is uppercase or nothing but whitespace remains.
    This is a heuristic; abbreviations followed by a capitalised word split.
    """
    sentences: list[str] = []
    length = len(text)
    start = 0
    index = 0
    while index < length:
        char = text[index]
        index += 1
        if char not in _TERMINATORS:
            continue
        if index == length:
            _append_sentence(sentences, text[start:index])
            start = index
            break
        if not text[index].isspace():
            continue
        while index < length and text[index].isspace():
            index += 1
        if index == length or text[index].isupper():
            _append_sentence(sentences, text[start:index])
            start = index

    if start < length:
        _append_sentence(sentences, text[start:])
    return sentences


def _append_sentence(sentences: list[str], sentence: str) -> None:
    if sentence.strip():
        sentences.append(sentence)


def deduplicate_chunks(chunks: Iterable[str]) -> list[str]:
    """Drop repeated chunks, keeping first-seen order."""
    return list(dict.fromkeys(chunks))


def _overlap_tail(
    sentences: list[str],
    *,
    overlap_tokens: int,
    room: int,
) -> list[str]:
    """Return trailing sentences fitting both the overlap and ``room`` budgets."""
    used = 0
    first = len(sentences)
    for position in range(len(sentences) - 1, -1, -1):
        tokens = estimate_tokens(sentences[position])
        if used + tokens > overlap_tokens or used + tokens > room:
            break
        used += tokens
        first = position
    return sentences[first:]


def segment(
    content: str,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
) -> list[str]:
    """Split ``content`` into ordered, overlapping, token-bounded chunks.

    Args:
        content: Text of any length.
        max_tokens: Estimated-token budget per chunk.
        overlap_tokens: Estimated-token budget for sentences repeated at the
            start of the next chunk.

    Returns:
        An empty list for blank input, ``[content]`` when it fits the budget,
        otherwise the deduplicated chunk list. Never raises; budgets below
        their minimum are clamped to 1 and 0.
    """
    max_tokens = max(max_tokens, 1)
    overlap_tokens = max(overlap_tokens, 0)

    if not content.strip():
        return []
    if estimate_tokens(content) <= max_tokens:
        return [content]

    chunks: list[str] = []
    buffer: list[str] = []
    buffer_tokens = 0
    # Overlap candidates only; the full chunk text lives in ``buffer``.
    recent: deque[str] = deque(maxlen=MAX_RETAINED_SENTENCES)

    for sentence in split_sentences(content):
        sentence_tokens = estimate_tokens(sentence)
        if buffer and buffer_tokens + sentence_tokens > max_tokens:
            chunks.append("".join(buffer))
            buffer = _overlap_tail(
                list(recent),
                overlap_tokens=overlap_tokens,
                room=max_tokens - sentence_tokens,
            )
            buffer_tokens = sum(estimate_tokens(item) for item in buffer)
            recent = deque(buffer, maxlen=MAX_RETAINED_SENTENCES)

        buffer.append(sentence)
        buffer_tokens += sentence_tokens
        recent.append(sentence)

    if buffer:
        chunks.append("".join(buffer))

    return deduplicate_chunks(chunks)


@dataclass(frozen=True)
class TextSegmenter:
    """Token budget bundled with :func:`segment`."""

    max_tokens: int = DEFAULT_MAX_TOKENS
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS

    def __post_init__(self) -> None:
        if self.max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        if self.overlap_tokens < 0:
            raise ValueError("overlap_tokens must be >= 0")

    def segment(self, content: str) -> list[str]:
        """Split ``content`` with this segmenter's budgets."""
        return segment(content, self.max_tokens, self.overlap_tokens)
