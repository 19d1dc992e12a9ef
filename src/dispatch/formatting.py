"""User-facing text for catalog search replies."""

from __future__ import annotations

from src.models import SearchMatch

NO_MATCH_MESSAGE = (
    "I couldn't find any matching products for your image. "
    "Try uploading a different image!"
)
SEARCH_APOLOGY_MESSAGE = (
    "Sorry, I had trouble searching for that image. Please try again in a moment."
)


def format_search_results(matches: list[SearchMatch]) -> str:
    if not matches:
        return NO_MATCH_MESSAGE

    blocks = [f"I found {len(matches)} similar product(s):"]
    for index, match in enumerate(matches, start=1):
        product = match.product
        lines = [f"{index}. {product.name}"]
        if product.description:
            lines.append(f"   {product.description}")
        if product.price:
            lines.append(f"   Price: ${product.price:.2f}")
        if product.stock is not None:
            status = f"In Stock ({product.stock})" if product.stock > 0 else "Out of Stock"
            lines.append(f"   Stock: {status}")
        if product.sku:
            lines.append(f"   SKU: {product.sku}")
        lines.append(f"   Match confidence: {_percent(match.similarity)}%")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def _percent(similarity: float) -> int:
    # Half-up: 0.125 -> 13%
    return int(similarity * 100 + 0.5)
