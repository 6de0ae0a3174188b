"""Cross-expert aggregation of insight analyses.

Everything here is a pure function of its inputs: the same list of expert
analyses always produces the same aggregated result, and the inputs are
never mutated (merged items are copies).
"""

from collections import Counter
from typing import Iterable

from insightforge_core.domain.schemas.aggregation import (
    AggregatedAnalysis,
    AggregationConfig,
    CategoryInsights,
    ExpertAnalysis,
    SourcedTemplate,
)
from insightforge_core.domain.schemas.insights import Insight, Methodology

TOP_INSIGHTS_PER_CATEGORY = 5


def merge_insights(expert_analyses: Iterable[ExpertAnalysis]) -> list[Insight]:
    """Dedupe by case-insensitive trimmed text (first wins), then rank by confidence."""
    seen: set[str] = set()
    merged: list[Insight] = []
    for expert_analysis in expert_analyses:
        for insight in expert_analysis.analysis.insights:
            key = insight.text.strip().lower()
            if key in seen:
                continue
            seen.add(key)
            merged.append(insight.model_copy(deep=True))
    # sorted() is stable, so ties keep first-seen order
    return sorted(merged, key=lambda i: i.confidence, reverse=True)


def merge_methodologies(expert_analyses: Iterable[ExpertAnalysis]) -> list[Methodology]:
    """One methodology per lowercased name; later experts only add sources."""
    by_name: dict[str, Methodology] = {}
    for expert_analysis in expert_analyses:
        username = expert_analysis.expert.username
        for methodology in expert_analysis.analysis.methodologies:
            key = methodology.name.lower()
            existing = by_name.get(key)
            if existing is None:
                by_name[key] = methodology.model_copy(update={"sources": [username]}, deep=True)
            elif username not in existing.sources:
                existing.sources.append(username)
    return list(by_name.values())


def merge_templates(expert_analyses: Iterable[ExpertAnalysis]) -> list[SourcedTemplate]:
    by_text: dict[str, SourcedTemplate] = {}
    for expert_analysis in expert_analyses:
        username = expert_analysis.expert.username
        for template in expert_analysis.analysis.templates:
            text = template.strip()
            existing = by_text.get(text)
            if existing is None:
                by_text[text] = SourcedTemplate(template=text, sources=[username])
            elif username not in existing.sources:
                existing.sources.append(username)
    return list(by_text.values())


def top_insights_by_category(
    insights: list[Insight], limit: int = TOP_INSIGHTS_PER_CATEGORY
) -> list[CategoryInsights]:
    """Group by category in first-seen order, best ``limit`` per group."""
    groups: dict[str, list[Insight]] = {}
    for insight in insights:
        groups.setdefault(insight.category.value, []).append(insight)
    return [
        CategoryInsights(
            category=category,
            insights=sorted(items, key=lambda i: i.confidence, reverse=True)[:limit],
        )
        for category, items in groups.items()
    ]


def top_categories(insights: list[Insight], limit: int = 5) -> list[str]:
    counts = Counter(insight.category.value for insight in insights)
    return [category for category, _ in counts.most_common(limit)]


def build_aggregated_summary(
    expert_analyses: list[ExpertAnalysis], topic: str, unique_insights: int
) -> str:
    total_posts = sum(ea.analysis.total_posts for ea in expert_analyses)
    names = ", ".join(ea.expert.username for ea in expert_analyses)
    return (
        f"Aggregated insights from {len(expert_analyses)} experts ({names}) on {topic}. "
        f"Analyzed {total_posts} posts and extracted {unique_insights} unique insights."
    )


def aggregate(
    expert_analyses: list[ExpertAnalysis], config: AggregationConfig
) -> AggregatedAnalysis:
    """Merge per-expert analyses into one source-attributed result."""
    insights = merge_insights(expert_analyses)
    return AggregatedAnalysis(
        topic=config.topic,
        experts=[ea.model_copy(deep=True) for ea in expert_analyses],
        insights=insights,
        methodologies=merge_methodologies(expert_analyses),
        templates=merge_templates(expert_analyses),
        summary=build_aggregated_summary(expert_analyses, config.topic, len(insights)),
    )
