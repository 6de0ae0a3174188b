"""Deterministic keyword-based extraction used when no LLM is configured.

Produces the same result shape as the LLM path so downstream code does not
care which one ran.
"""

import re

from insightforge_core.domain.schemas.content import Post
from insightforge_core.domain.schemas.insights import (
    ExtractionResult,
    Insight,
    InsightCategory,
)
from insightforge_core.domain.services.extraction import merge_results

CATEGORY_KEYWORDS: dict[InsightCategory, tuple[str, ...]] = {
    InsightCategory.PROSPECTING: ("prospecting", "cold outreach", "lead generation"),
    InsightCategory.DISCOVERY: ("discovery call", "qualifying questions", "pain points"),
    InsightCategory.NURTURE: ("follow up", "relationship building", "staying in touch"),
    InsightCategory.CLOSING: ("closing deals", "overcoming objections", "negotiation"),
    InsightCategory.COMMS: ("sales emails", "cold emails", "email templates"),
    InsightCategory.CADENCES: ("sales cadence", "outreach sequence", "touch points"),
    InsightCategory.STRATEGY: ("sales strategy", "sales methodology", "framework"),
    InsightCategory.TEMPLATES: ("template", "script", "copy paste"),
    InsightCategory.TACTICS: ("sales tactics", "techniques", "best practices"),
}

ACTIONABLE_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"try (?:this|these):[^.!?]*",
        r"here's how:[^.!?]*",
        r"step \d+:[^.!?]*",
        r"you should[^.!?]*",
        r"pro tip:[^.!?]*",
    )
)

TEMPLATE_PATTERNS = (
    re.compile(r'"[^"]{30,}"'),
    re.compile(r"subject:\s*[^.!?]*", re.IGNORECASE),
    re.compile(r"copy this:[^.!?]*", re.IGNORECASE),
)

MAX_ACTIONABLE_PER_POST = 3
MAX_TEMPLATES_PER_POST = 2
MAX_INSIGHT_SENTENCES = 2
MIN_CONFIDENCE = 0.1
MAX_KEYWORD_CONFIDENCE = 0.8


def is_relevant(post: Post, focus_topics: list[str]) -> bool:
    """Substring match against focus topics; no topics means everything is relevant."""
    if not focus_topics:
        return True
    content = post.content.lower()
    return any(topic.lower() in content for topic in focus_topics)


def keyword_confidence(post: Post, keyword_hits: int) -> float:
    confidence = min(keyword_hits * 0.2, MAX_KEYWORD_CONFIDENCE)
    engagement = post.engagement.total
    if engagement > 100:
        confidence += 0.1
    if engagement > 500:
        confidence += 0.1
    return min(max(confidence, MIN_CONFIDENCE), 1.0)


def _sentences(text: str) -> list[str]:
    return [s.strip() for s in re.split(r"[.!?]+", text) if s.strip()]


def _find_all(patterns, text: str, limit: int) -> list[str]:
    found: list[str] = []
    for pattern in patterns:
        found.extend(match.group(0).strip() for match in pattern.finditer(text))
    return found[:limit]


class KeywordExtractor:
    """Keyword table lookup plus a few textual patterns."""

    def __init__(self, category_keywords: dict[InsightCategory, tuple[str, ...]] = CATEGORY_KEYWORDS):
        self.category_keywords = category_keywords

    def extract_post(self, post: Post, focus_topics: list[str]) -> ExtractionResult:
        if not is_relevant(post, focus_topics):
            return ExtractionResult.empty()

        content = post.content.lower()
        sentences = _sentences(post.content)
        insights = []

        for category, keywords in self.category_keywords.items():
            matched = [keyword for keyword in keywords if keyword in content]
            if not matched:
                continue
            relevant = [s for s in sentences if any(k in s.lower() for k in matched)]
            if not relevant:
                continue
            insights.append(
                Insight(
                    id=f"{post.id}-{category.value}",
                    category=category,
                    text=". ".join(relevant[:MAX_INSIGHT_SENTENCES]),
                    confidence=keyword_confidence(post, len(matched)),
                    source_post_id=post.id,
                )
            )

        return ExtractionResult(
            insights=insights,
            templates=_find_all(TEMPLATE_PATTERNS, post.content, MAX_TEMPLATES_PER_POST),
            actionable_items=_find_all(
                ACTIONABLE_PATTERNS, post.content, MAX_ACTIONABLE_PER_POST
            ),
        )

    def extract(self, posts: list[Post], focus_topics: list[str]) -> ExtractionResult:
        return merge_results(self.extract_post(post, focus_topics) for post in posts)
