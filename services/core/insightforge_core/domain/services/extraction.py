"""Merging, de-duplication and summaries for per-post extraction results."""

from collections import Counter
from typing import Iterable

from insightforge_core.domain.schemas.insights import (
    ExtractionResult,
    Insight,
    Methodology,
)

INSIGHT_KEY_CHARS = 50
HIGH_CONFIDENCE = 0.7


def dedupe_insights(insights: Iterable[Insight]) -> list[Insight]:
    """Keep the first insight per ``(category, first 50 chars of text)``."""
    seen: set[tuple[str, str]] = set()
    result = []
    for insight in insights:
        key = (insight.category.value, insight.text[:INSIGHT_KEY_CHARS])
        if key in seen:
            continue
        seen.add(key)
        result.append(insight)
    return result


def dedupe_strings(items: Iterable[str]) -> list[str]:
    """Trim, drop empties and keep first occurrences."""
    seen: set[str] = set()
    result = []
    for item in items:
        text = item.strip() if isinstance(item, str) else ""
        if not text or text in seen:
            continue
        seen.add(text)
        result.append(text)
    return result


def dedupe_methodologies(methodologies: Iterable[Methodology]) -> list[Methodology]:
    seen: set[str] = set()
    result = []
    for methodology in methodologies:
        if methodology.name in seen:
            continue
        seen.add(methodology.name)
        result.append(methodology)
    return result


def merge_results(results: Iterable[ExtractionResult]) -> ExtractionResult:
    """Concatenate per-post results and de-duplicate each list."""
    insights: list[Insight] = []
    templates: list[str] = []
    actionable_items: list[str] = []
    methodologies: list[Methodology] = []

    for result in results:
        insights.extend(result.insights)
        templates.extend(result.templates)
        actionable_items.extend(result.actionable_items)
        methodologies.extend(result.methodologies)

    return ExtractionResult(
        insights=dedupe_insights(insights),
        templates=dedupe_strings(templates),
        actionable_items=dedupe_strings(actionable_items),
        methodologies=dedupe_methodologies(methodologies),
    )


def build_summary(insights: list[Insight], total_posts: int) -> str:
    counts = Counter(insight.category.value for insight in insights)
    top = ", ".join(f"{category} ({count} insights)" for category, count in counts.most_common(3))
    high_confidence = sum(1 for insight in insights if insight.confidence > HIGH_CONFIDENCE)
    return (
        f"Analyzed {total_posts} posts and extracted {len(insights)} insights. "
        f"Top categories: {top or 'none'}. "
        f"{high_confidence} high-confidence insights identified."
    )
