"""Token bounding for the rendered context document.

Uses tiktoken for token counting. Sections are admitted in priority order;
required sections are always kept and optional ones are dropped whole when
the document would exceed its ceiling.
"""

from dataclasses import dataclass
from functools import lru_cache

import tiktoken


@dataclass
class ContextSection:
    """One top-level block of the context document."""

    name: str
    text: str
    priority: int  # Lower = admitted first
    required: bool = False


@lru_cache(maxsize=1)
def _encoder() -> tiktoken.Encoding:
    # cl100k_base is the closest public encoding to Claude's tokenizer
    return tiktoken.get_encoding("cl100k_base")


def count_tokens(text: str) -> int:
    """Count tokens in text using tiktoken.

    Args:
        text: Text to count tokens for

    Returns:
        Token count
    """
    if not text:
        return 0
    return len(_encoder().encode(text))


def fit_sections(sections: list[ContextSection], max_tokens: int) -> tuple[list[ContextSection], list[str]]:
    """
    Select sections that fit in ``max_tokens``, preserving document order.

    Args:
        sections: Sections in document order
        max_tokens: Token ceiling for the joined document

    Returns:
        (kept sections in document order, names of omitted sections)
    """
    costs = {id(s): count_tokens(s.text) for s in sections}
    used = sum(costs[id(s)] for s in sections if s.required)

    admitted: set[int] = {id(s) for s in sections if s.required}
    for section in sorted((s for s in sections if not s.required), key=lambda s: s.priority):
        cost = costs[id(section)]
        if used + cost <= max_tokens:
            admitted.add(id(section))
            used += cost

    kept = [s for s in sections if id(s) in admitted]
    omitted = [s.name for s in sections if id(s) not in admitted]
    return kept, omitted
