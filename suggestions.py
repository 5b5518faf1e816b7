from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from rapidfuzz import fuzz, process

from config import get_settings
from models import Category
from schemas import CategoryExample, Transaction


logger = logging.getLogger(__name__)

MAX_EXAMPLES = 30


class CategorySuggester(Protocol):
    def suggest(
        self, description: str, vendor: str, examples: Sequence[CategoryExample]
    ) -> Optional[str]: ...


def category_examples(
    transactions: Sequence[Transaction], limit: int = MAX_EXAMPLES
) -> list[CategoryExample]:
    """Most recent category per distinct vendor (or description), newest first."""
    seen: dict[str, Category] = {}
    for txn in reversed(transactions):
        key = (txn.vendor or txn.description or "").strip()
        if key and key not in seen:
            seen[key] = txn.category
        if len(seen) >= limit:
            break
    return [CategoryExample(text=text, category=category) for text, category in seen.items()]


class HistorySuggester:
    """Fuzzy-matches the input against past vendors/descriptions and category names."""

    def __init__(self, min_score: Optional[float] = None) -> None:
        self.min_score = (
            get_settings().suggestion_min_score if min_score is None else min_score
        )

    def suggest(
        self, description: str, vendor: str, examples: Sequence[CategoryExample]
    ) -> Optional[str]:
        best: Optional[tuple[float, Category]] = None
        for query in (vendor.strip(), description.strip()):
            if not query:
                continue
            choices = {example.text: example.category for example in examples}
            choices.update({category.value: category for category in Category})
            match = process.extractOne(
                query,
                list(choices),
                scorer=fuzz.token_set_ratio,
                processor=str.lower,
                score_cutoff=self.min_score,
            )
            if match is None:
                continue
            text, score, _ = match
            if best is None or score > best[0]:
                best = (score, choices[text])
        return best[1].value if best else None


def suggest_category(
    description: str,
    vendor: str,
    transactions: Sequence[Transaction],
    suggester: Optional[CategorySuggester] = None,
) -> Optional[Category]:
    description = (description or "").strip()
    vendor = (vendor or "").strip()
    if not description and not vendor:
        return None

    suggester = suggester or HistorySuggester()
    examples = category_examples(transactions)
    try:
        raw = suggester.suggest(description, vendor, examples)
    except Exception:
        logger.exception("category_suggestion_failed")
        return None
    if not raw:
        return None
    for category in Category:
        if category.value == raw.strip():
            return category
    logger.info(f"category_suggestion_ignored: value={raw!r}")
    return None
