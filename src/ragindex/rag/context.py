"""Context assembler: render ranked documents into a prompt block.

Documents are taken in rank order and added while the running total stays
within ``token_budget`` (4 chars ≈ 1 token). The first document that does
not fit ends the block; later, smaller documents are not back-filled, so the
block is always a prefix of the ranking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ragindex.db.models import Document, ScoredDocument

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_BUDGET = 3_000
_CHARS_PER_TOKEN = 4
_HEADER = "# Relevant context from indexed sources:\n\n"


@dataclass
class AssembledContext:
    text: str = ""
    documents: list[Document] = field(default_factory=list)
    total_tokens: int = 0


def estimate_tokens(text: str) -> int:
    return max(1, len(text) // _CHARS_PER_TOKEN) if text else 0


def format_entry(result: ScoredDocument) -> str:
    doc = result.document
    return (
        "---\n"
        f"Relevance: {round(result.score * 100)}% | "
        f"Source: {doc.source_type.value}/{doc.source_id} (chunk {doc.chunk_index})\n"
        f"{doc.content}\n\n"
    )


def build_context(
    results: list[ScoredDocument],
    token_budget: int = DEFAULT_TOKEN_BUDGET,
) -> AssembledContext:
    """Assemble *results* into a single text block within *token_budget*.

    Returns an empty AssembledContext when nothing fits.
    """
    selected: list[Document] = []
    parts: list[str] = []
    total = 0
    for result in results:
        entry = format_entry(result)
        tokens = estimate_tokens(entry)
        if total + tokens > token_budget:
            logger.debug(
                "Token budget %d reached after %d documents", token_budget, len(selected)
            )
            break
        parts.append(entry)
        selected.append(result.document)
        total += tokens

    if not selected:
        return AssembledContext()
    return AssembledContext(text=_HEADER + "".join(parts), documents=selected, total_tokens=total)
