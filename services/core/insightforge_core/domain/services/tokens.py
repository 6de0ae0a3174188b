"""Token estimation and section-aligned splitting of long documents.

Counts are an approximation (4 characters per token), good enough to keep
generated documents under the context window of the tools that read them.
"""

import math
import re
from dataclasses import dataclass

CHARS_PER_TOKEN = 4

# Zero-width split point before every top-level "## " heading
_SECTION_BOUNDARY = re.compile(r"(?=^##\s)", re.MULTILINE)


@dataclass
class FileSizeInfo:
    bytes: int
    kb: float
    tokens: int
    token_formatted: str


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def format_token_count(tokens: int) -> str:
    """Human readable count, e.g. ``950 tokens`` or ``12.5K tokens``."""
    if tokens < 1000:
        return f"{tokens} tokens"
    if tokens < 1_000_000:
        return f"{tokens / 1000:.1f}K tokens"
    return f"{tokens / 1_000_000:.1f}M tokens"


def exceeds_limit(text: str, max_tokens: int) -> bool:
    return estimate_tokens(text) > max_tokens


def file_size_info(text: str) -> FileSizeInfo:
    size = len(text.encode("utf-8"))
    tokens = estimate_tokens(text)
    return FileSizeInfo(
        bytes=size,
        kb=round(size / 1024, 1),
        tokens=tokens,
        token_formatted=format_token_count(tokens),
    )


def split_sections(text: str) -> list[str]:
    """Split before each ``## `` heading; the pieces concatenate back to ``text``."""
    return [part for part in _SECTION_BOUNDARY.split(text) if part]


def split_by_tokens(text: str, max_tokens: int) -> list[str]:
    """Split ``text`` into chunks of at most ``max_tokens`` where possible.

    Sections are packed greedily in order. A single section larger than the
    limit becomes its own chunk; nothing is truncated, so
    ``"".join(split_by_tokens(text, n)) == text`` always holds.

    Raises:
        ValueError: If max_tokens is not positive.
    """
    if max_tokens <= 0:
        raise ValueError("max_tokens must be positive")

    if estimate_tokens(text) <= max_tokens:
        return [text]

    chunks: list[str] = []
    current = ""
    for section in split_sections(text):
        if current and estimate_tokens(current + section) > max_tokens:
            chunks.append(current)
            current = section
        else:
            current += section
    if current:
        chunks.append(current)
    return chunks
