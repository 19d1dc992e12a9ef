"""Tests for catalog search reply formatting."""

from __future__ import annotations

from src.dispatch.formatting import NO_MATCH_MESSAGE, format_search_results
from tests.conftest import make_search_match


def test_empty_results_message() -> None:
    assert format_search_results([]) == NO_MATCH_MESSAGE


def test_full_entry() -> None:
    text = format_search_results([make_search_match(similarity=0.874)])
    assert text == (
        "I found 1 similar product(s):\n\n"
        "1. Blue Mug\n"
        "   Ceramic mug\n"
        "   Price: $12.50\n"
        "   Stock: In Stock (3)\n"
        "   SKU: MUG-001\n"
        "   Match confidence: 87%"
    )


def test_out_of_stock_and_optional_fields_omitted() -> None:
    match = make_search_match(price=None, stock=0, sku=None, description=None)
    text = format_search_results([match])
    assert "Stock: Out of Stock" in text
    assert "Price" not in text
    assert "SKU" not in text


def test_entries_numbered_in_rank_order() -> None:
    text = format_search_results([
        make_search_match(name="First", similarity=0.9),
        make_search_match(name="Second", similarity=0.7),
    ])
    assert text.startswith("I found 2 similar product(s):")
    assert text.index("1. First") < text.index("2. Second")


def test_confidence_rounds_half_up() -> None:
    assert "Match confidence: 13%" in format_search_results([make_search_match(similarity=0.125)])
    assert "Match confidence: 3%" in format_search_results([make_search_match(similarity=0.025)])
