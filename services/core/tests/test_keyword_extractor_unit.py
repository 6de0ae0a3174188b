"""Unit tests for the keyword-based extractor."""

import pytest

from insightforge_core.domain.schemas.content import Engagement
from insightforge_core.domain.schemas.insights import InsightCategory
from insightforge_core.domain.services.keyword_extractor import (
    KeywordExtractor,
    is_relevant,
    keyword_confidence,
)


class TestRelevance:
    def test_no_topics_means_relevant(self, make_post):
        assert is_relevant(make_post("anything"), []) is True

    def test_case_insensitive_substring(self, make_post):
        post = make_post("My Cold Outreach playbook")

        assert is_relevant(post, ["cold outreach"]) is True
        assert is_relevant(post, ["fundraising"]) is False


class TestKeywordConfidence:
    def test_floor_and_engagement_bonus(self, make_post):
        quiet = make_post(engagement=Engagement())
        popular = make_post(engagement=Engagement(likes=600))

        assert keyword_confidence(quiet, 0) == 0.1
        assert keyword_confidence(quiet, 1) == 0.2
        assert keyword_confidence(popular, 1) == pytest.approx(0.4)

    def test_capped(self, make_post):
        popular = make_post(engagement=Engagement(likes=600))

        assert keyword_confidence(popular, 10) == 1.0


class TestKeywordExtractor:
    """Tests for KeywordExtractor.extract."""

    def test_extracts_matching_categories(self, make_post):
        post = make_post(
            "Cold outreach works when you research first. Prospecting is a daily habit. "
            "Pro tip: send the follow up within two days. Unrelated sentence here."
        )

        result = KeywordExtractor().extract([post], [])

        categories = {i.category for i in result.insights}
        assert InsightCategory.PROSPECTING in categories
        assert InsightCategory.NURTURE in categories
        prospecting = next(i for i in result.insights if i.category is InsightCategory.PROSPECTING)
        assert prospecting.source_post_id == post.id
        assert "Unrelated" not in prospecting.text
        assert result.actionable_items == ["Pro tip: send the follow up within two days"]

    def test_irrelevant_posts_are_skipped(self, make_post):
        post = make_post("Prospecting tips for everyone.")

        result = KeywordExtractor().extract([post], ["fundraising"])

        assert result.insights == []

    def test_templates(self, make_post):
        post = make_post(
            'Use this template. Subject: quick question about your Q3 plans. '
            '"Hi Sam, I noticed your team doubled in size this quarter"'
        )

        result = KeywordExtractor().extract([post], [])

        assert any(t.startswith("Subject:") for t in result.templates)
        assert len(result.templates) <= 2

    def test_duplicate_posts_merge(self, make_post):
        first = make_post("Prospecting is a numbers game.")
        second = make_post("Prospecting is a numbers game.")

        result = KeywordExtractor().extract([first, second], [])

        assert len(result.insights) == 1
