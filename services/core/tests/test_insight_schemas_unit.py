"""Unit tests for insight schemas and result merging."""

from insightforge_core.domain.schemas.insights import (
    ExtractionResult,
    Insight,
    InsightCategory,
    Methodology,
    RawExtraction,
    TokenUsage,
    clamp_unit,
)
from insightforge_core.domain.services.extraction import (
    build_summary,
    dedupe_insights,
    dedupe_methodologies,
    dedupe_strings,
    merge_results,
)


class TestClampUnit:
    def test_clamps_into_range(self):
        assert clamp_unit(1.7) == 1.0
        assert clamp_unit(-0.2) == 0.0
        assert clamp_unit("0.35") == 0.35

    def test_unusable_values_use_default(self):
        assert clamp_unit(None) == 0.5
        assert clamp_unit("high") == 0.5
        assert clamp_unit(float("nan"), default=0.2) == 0.2


class TestInsightCategory:
    """Tests for mapping free-form labels onto the fixed category set."""

    def test_known_label(self):
        assert InsightCategory.from_label("closing") is InsightCategory.CLOSING

    def test_aliases(self):
        assert InsightCategory.from_label("SALES_COMMS") is InsightCategory.COMMS
        assert InsightCategory.from_label("sales comms") is InsightCategory.COMMS
        assert InsightCategory.from_label("cadence") is InsightCategory.CADENCES

    def test_unknown_label_becomes_tactics(self):
        assert InsightCategory.from_label("HIRING") is InsightCategory.TACTICS
        assert InsightCategory.from_label(None) is InsightCategory.TACTICS

    def test_insight_model_normalizes(self):
        insight = Insight(id="1", category="sales-comms", text="t", confidence=3)

        assert insight.category is InsightCategory.COMMS
        assert insight.confidence == 1.0


class TestRawExtraction:
    def test_null_lists_become_empty(self):
        raw = RawExtraction.model_validate({"insights": None, "templates": "x"})

        assert raw.insights == []
        assert raw.templates == []


class TestTokenUsage:
    def test_add_and_sum(self):
        usage = TokenUsage()
        usage.add(100, 20)

        combined = usage + TokenUsage(prompt_tokens=5, completion_tokens=5)

        assert usage.total_tokens == 120
        assert combined.total_tokens == 130


class TestMergeResults:
    """Tests for merging per-post extraction results."""

    def test_dedupes_insights_by_category_and_prefix(self):
        prefix = "Always open with a specific observation about the prospect's company"
        first = ExtractionResult(
            insights=[Insight(id="a", category="PROSPECTING", text=prefix + " A")]
        )
        second = ExtractionResult(
            insights=[
                Insight(id="b", category="PROSPECTING", text=prefix + " B"),
                Insight(id="c", category="CLOSING", text=prefix + " C"),
            ]
        )

        merged = merge_results([first, second])

        assert [i.id for i in merged.insights] == ["a", "c"]

    def test_dedupes_strings_and_methodologies(self):
        merged = merge_results([
            ExtractionResult(templates=[" Hi {name} "], methodologies=[Methodology(name="SMYKM")]),
            ExtractionResult(templates=["Hi {name}", ""], methodologies=[Methodology(name="SMYKM")]),
        ])

        assert merged.templates == ["Hi {name}"]
        assert len(merged.methodologies) == 1

    def test_dedupe_strings_drops_non_strings(self):
        assert dedupe_strings(["a", None, "a", "  b "]) == ["a", "b"]


class TestDedupeIdempotence:
    """De-duplicating an already de-duplicated list changes nothing."""

    PREFIX = "Lead with the prospect's latest funding round before any pitch"

    def _insights(self) -> list[Insight]:
        return [
            Insight(id="a", category="PROSPECTING", text=self.PREFIX + " first"),
            Insight(id="b", category="PROSPECTING", text=self.PREFIX + " second"),
            Insight(id="c", category="CLOSING", text=self.PREFIX + " third"),
            Insight(id="d", category="PROSPECTING", text="Short and different"),
            Insight(id="e", category="PROSPECTING", text="Short and different"),
        ]

    def test_insights(self):
        once = dedupe_insights(self._insights())

        assert [i.id for i in once] == ["a", "c", "d"]
        assert dedupe_insights(once) == once

    def test_strings(self):
        once = dedupe_strings([" Hi {name} ", "Hi {name}", "", "Thanks", "Thanks "])

        assert once == ["Hi {name}", "Thanks"]
        assert dedupe_strings(once) == once

    def test_methodologies(self):
        once = dedupe_methodologies([
            Methodology(name="SMYKM", description="Show me you know me"),
            Methodology(name="SMYKM", description="Other wording"),
            Methodology(name="MEDDIC"),
        ])

        assert [m.description for m in once if m.name == "SMYKM"] == ["Show me you know me"]
        assert dedupe_methodologies(once) == once

    def test_merge_results(self):
        merged = merge_results([
            ExtractionResult(
                insights=self._insights(),
                templates=[" Hi {name} ", "Hi {name}"],
                actionable_items=["Call today", "Call today"],
                methodologies=[Methodology(name="SMYKM"), Methodology(name="SMYKM")],
            )
        ])

        assert merge_results([merged]) == merged

    def test_summary_counts(self):
        insights = [
            Insight(id="1", category="CLOSING", text="a", confidence=0.9),
            Insight(id="2", category="CLOSING", text="b", confidence=0.4),
            Insight(id="3", category="TACTICS", text="c", confidence=0.8),
        ]

        summary = build_summary(insights, total_posts=12)

        assert "Analyzed 12 posts and extracted 3 insights" in summary
        assert "CLOSING (2 insights)" in summary
        assert "2 high-confidence insights" in summary

    def test_summary_without_insights(self):
        assert "Top categories: none" in build_summary([], 0)
