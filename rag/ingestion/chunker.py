"""
Overlapping window chunker.

Splits text into windows of at most ``window_size`` characters. Consecutive
windows overlap by roughly ``overlap`` characters. A window that does not
reach the end of the text is shortened to end at the last space inside it,
so words are not cut in half where avoidable.

Chunks are raw slices of the input (no stripping). Taking each chunk's text
from the previous chunk's end onward reproduces the input exactly.
"""

from dataclasses import dataclass

DEFAULT_WINDOW_SIZE = 1000
DEFAULT_OVERLAP = 200


@dataclass(frozen=True)
class ChunkSpan:
    start: int
    end: int
    text: str


def chunk_spans(text: str, window_size: int = DEFAULT_WINDOW_SIZE, overlap: int = DEFAULT_OVERLAP) -> list[ChunkSpan]:
    if window_size <= 0:
        raise ValueError("window_size must be positive")
    if overlap < 0 or overlap >= window_size:
        raise ValueError("overlap must be >= 0 and smaller than window_size")

    if not text:
        return []

    text_len = len(text)
    if text_len <= window_size:
        return [ChunkSpan(0, text_len, text)]

    spans: list[ChunkSpan] = []
    start = 0
    while start < text_len:
        end = start + window_size

        if end < text_len:
            # Snap back to the last space only if the next window still
            # starts after this one; otherwise cut at the hard window end
            last_space = text.rfind(" ", start + 1, end)
            if last_space - overlap > start:
                end = last_space

        spans.append(ChunkSpan(start, min(end, text_len), text[start:end]))

        # The step uses the unclamped end, so the tail window may sit
        # entirely inside the previous one
        start = end - overlap

    return spans


def chunk(text: str, window_size: int = DEFAULT_WINDOW_SIZE, overlap: int = DEFAULT_OVERLAP) -> list[str]:
    """Split text into overlapping chunks of at most window_size characters."""
    return [span.text for span in chunk_spans(text, window_size, overlap)]


def reconstruct(spans: list[ChunkSpan]) -> str:
    """Rebuild the original text from its spans by dropping overlapped prefixes."""
    parts = []
    covered = 0
    for span in spans:
        parts.append(span.text[max(covered - span.start, 0):])
        covered = span.end
    return "".join(parts)
