"""Tests for context assembly under a token budget."""

from __future__ import annotations

from ragindex.db.models import Document, ScoredDocument
from ragindex.rag.context import (
    DEFAULT_TOKEN_BUDGET,
    AssembledContext,
    build_context,
    estimate_tokens,
    format_entry,
)


def _scored(doc_id, text, score=0.5, index=0):
    doc = Document(
        id=doc_id,
        source_type="documentation",
        source_id=f"src-{doc_id}",
        chunk_index=index,
        content=text,
    )
    return ScoredDocument(doc, score)


def test_estimate_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens("ab") == 1
    assert estimate_tokens("x" * 40) == 10


def test_format_entry():
    entry = format_entry(_scored("d1", "Shadows need castShadow.", score=0.873, index=2))
    assert entry == (
        "---\n"
        "Relevance: 87% | Source: documentation/src-d1 (chunk 2)\n"
        "Shadows need castShadow.\n\n"
    )


def test_build_context_includes_header_and_entries():
    results = [_scored("a", "first"), _scored("b", "second")]
    ctx = build_context(results)
    assert ctx.text.startswith("# Relevant context from indexed sources:\n\n")
    assert "first" in ctx.text and "second" in ctx.text
    assert [d.id for d in ctx.documents] == ["a", "b"]
    assert ctx.total_tokens == sum(estimate_tokens(format_entry(r)) for r in results)


def test_build_context_stops_at_first_entry_over_budget():
    small = _scored("a", "x" * 40)
    big = _scored("b", "y" * 400)
    tiny = _scored("c", "z")
    budget = estimate_tokens(format_entry(small)) + estimate_tokens(format_entry(tiny)) + 5
    ctx = build_context([small, big, tiny], token_budget=budget)
    assert [d.id for d in ctx.documents] == ["a"]
    assert ctx.total_tokens <= budget


def test_build_context_nothing_fits():
    assert build_context([_scored("a", "x" * 1000)], token_budget=10) == AssembledContext()


def test_build_context_empty_results():
    ctx = build_context([])
    assert ctx.text == ""
    assert ctx.documents == []
    assert ctx.total_tokens == 0


def test_default_budget():
    assert DEFAULT_TOKEN_BUDGET == 3000
