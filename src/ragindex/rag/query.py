"""Turn free-form user text into a safe FTS5 MATCH expression."""

from __future__ import annotations

import re

# Runs of letters and digits; everything else separates tokens.
_TOKEN_RE = re.compile(r"[^\W_]+")


def query_tokens(text: str) -> list[str]:
    """Return the unique word tokens of *text* in first-seen order, lowercased."""
    seen: dict[str, None] = {}
    for match in _TOKEN_RE.finditer(text):
        token = match.group(0).lower()
        seen.setdefault(token, None)
    return list(seen)


def build_match_query(text: str) -> str:
    """Build an OR query of quoted tokens from *text*.

    ``"memory safety!"`` becomes ``"memory" OR "safety"``. Operators,
    quotes and punctuation in user input are dropped, so the result is always
    a valid expression. Returns ``""`` when *text* has no word tokens.
    """
    return " OR ".join(f'"{token}"' for token in query_tokens(text))
