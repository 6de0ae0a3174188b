"""Unit tests for the two-pass insight analyzer.

Tests cover:
- Keyword fallback without an LLM client
- Relevance scoring (threshold, neutral scores, empty posts)
- Extraction with image retry and response conversion
- Token accounting and batch pacing
- Releasing HTTP clients on close
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from insightforge_core.domain.schemas.insights import InsightCategory, RawExtraction, TokenUsage
from insightforge_core.domain.services.inference import (
    ChatResponse,
    ImageInput,
    InferenceError,
    ModelInfo,
)
from insightforge_core.domain.services.insight_analyzer import (
    NEUTRAL_RELEVANCE,
    AnalyzerConfig,
    InsightAnalyzer,
    to_extraction_result,
)

FAST = "fast-model"
STRONG = "strong-model"

EXTRACTION = {
    "insights": [
        {"category": "SALES_COMMS", "insight": "Keep cold emails under 90 words.", "confidence": 0.85},
        {"category": "closing", "insight": "  ", "confidence": 0.9},
    ],
    "templates": ["Subject: {company} + {your_company}"],
    "actionableItems": ["Cut your next email in half"],
    "methodologies": [{"name": "SMYKM", "description": "Show me you know me", "application": ""}],
}


def _response(content: str, input_tokens: int = 10, output_tokens: int = 5) -> ChatResponse:
    return ChatResponse(
        content=content,
        model_info=ModelInfo(model_name="test", input_tokens=input_tokens, output_tokens=output_tokens),
        finish_reason="stop",
    )


def _client(complete) -> MagicMock:
    client = MagicMock()
    client.complete = AsyncMock(side_effect=complete)
    return client


def _analyzer(client=None, **config) -> InsightAnalyzer:
    return InsightAnalyzer(
        client=client,
        config=AnalyzerConfig(relevance_model=FAST, extraction_model=STRONG, **config),
        sleep=AsyncMock(),
    )


# =============================================================================
# KEYWORD FALLBACK
# =============================================================================


class TestKeywordFallback:
    @pytest.mark.asyncio
    async def test_keyword_mode_without_client(self, make_post):
        posts = [make_post("Prospecting is a daily habit."), make_post("Lunch was great.")]

        analysis = await _analyzer().analyze(posts, [])

        assert analysis.analysis_mode == "keyword"
        assert analysis.total_posts == 2
        assert analysis.relevant_posts == 2
        assert analysis.token_usage.total_tokens == 0
        assert any(i.category is InsightCategory.PROSPECTING for i in analysis.insights)


# =============================================================================
# RELEVANCE PASS
# =============================================================================


class TestRelevanceScoring:
    """Tests for pass 1."""

    @pytest.mark.asyncio
    async def test_no_relevant_posts_skips_extraction(self, make_post):
        async def complete(prompt, images=None, model=None, max_tokens=None):
            assert model == FAST
            return _response('{"score": 0.2, "reason": "off topic"}')

        client = _client(complete)
        posts = [make_post(f"post {i}") for i in range(3)]

        analysis = await _analyzer(client).analyze(posts, ["closing"])

        assert client.complete.await_count == 3
        assert analysis.insights == []
        assert analysis.relevant_posts == 0
        assert analysis.analysis_mode == "ai"
        assert analysis.token_usage.total_tokens == 45

    @pytest.mark.asyncio
    async def test_threshold_is_exclusive(self, make_post):
        async def complete(prompt, images=None, model=None, max_tokens=None):
            return _response('{"score": 0.6}')

        analysis = await _analyzer(_client(complete)).analyze([make_post()], [])

        assert analysis.relevant_posts == 0

    @pytest.mark.asyncio
    async def test_failed_scoring_is_neutral(self, make_post):
        async def complete(prompt, images=None, model=None, max_tokens=None):
            raise InferenceError("server down", status_code=503)

        analyzer = _analyzer(_client(complete))

        score = await analyzer.score_post(make_post(), [], TokenUsage())

        assert score == NEUTRAL_RELEVANCE

    @pytest.mark.asyncio
    async def test_unparseable_score_is_neutral(self, make_post):
        async def complete(prompt, images=None, model=None, max_tokens=None):
            return _response("I think it is quite relevant")

        score = await _analyzer(_client(complete)).score_post(make_post(), [], TokenUsage())

        assert score == NEUTRAL_RELEVANCE

    @pytest.mark.asyncio
    async def test_empty_post_scores_zero_without_call(self, make_post):
        client = _client(AsyncMock())

        score = await _analyzer(client).score_post(make_post("   "), [], TokenUsage())

        assert score == 0.0
        client.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_scores_are_clamped(self, make_post):
        async def complete(prompt, images=None, model=None, max_tokens=None):
            return _response('{"score": 7}')

        score = await _analyzer(_client(complete)).score_post(make_post(), [], TokenUsage())

        assert score == 1.0

    @pytest.mark.asyncio
    async def test_batches_pause_between_each_other(self, make_post):
        async def complete(prompt, images=None, model=None, max_tokens=None):
            return _response('{"score": 0.1}')

        analyzer = _analyzer(_client(complete), relevance_batch_size=2, batch_delay_seconds=1.5)

        await analyzer.analyze([make_post(f"p{i}") for i in range(5)], [])

        assert analyzer._sleep.await_count == 2
        analyzer._sleep.assert_awaited_with(1.5)


# =============================================================================
# EXTRACTION PASS
# =============================================================================


class TestExtraction:
    """Tests for pass 2."""

    @pytest.mark.asyncio
    async def test_relevant_post_is_extracted(self, make_post):
        async def complete(prompt, images=None, model=None, max_tokens=None):
            if model == FAST:
                return _response('{"score": 0.9}', 10, 5)
            return _response(json.dumps(EXTRACTION), 100, 50)

        post = make_post("Cold email advice")

        analysis = await _analyzer(_client(complete)).analyze([post], ["cold email"])

        assert analysis.relevant_posts == 1
        assert len(analysis.insights) == 1
        insight = analysis.insights[0]
        assert insight.category is InsightCategory.COMMS
        assert insight.confidence == 0.85
        assert insight.source_post_id == post.id
        assert analysis.templates == ["Subject: {company} + {your_company}"]
        assert analysis.methodologies[0].name == "SMYKM"
        assert analysis.methodologies[0].application is None
        assert analysis.token_usage.total_tokens == 165

    @pytest.mark.asyncio
    async def test_image_failure_retries_text_only(self, make_post):
        calls = []

        async def complete(prompt, images=None, model=None, max_tokens=None):
            if model == FAST:
                return _response('{"score": 0.95}')
            calls.append(images)
            if images:
                raise InferenceError("payload too large", status_code=413)
            return _response(json.dumps(EXTRACTION))

        fetcher = MagicMock()
        fetcher.fetch = AsyncMock(return_value=ImageInput(data=b"png", media_type="image/png"))
        analyzer = _analyzer(_client(complete))
        analyzer.image_fetcher = fetcher
        post = make_post("Framework in the image", image_urls=["https://media.example.com/a.png"])

        analysis = await analyzer.analyze([post], [])

        assert len(calls) == 2
        assert calls[0] and calls[1] is None
        assert len(analysis.insights) == 1

    @pytest.mark.asyncio
    async def test_text_only_failure_contributes_nothing(self, make_post):
        async def complete(prompt, images=None, model=None, max_tokens=None):
            if model == FAST:
                return _response('{"score": 0.95}')
            raise InferenceError("boom")

        analysis = await _analyzer(_client(complete)).analyze([make_post(), make_post()], [])

        assert analysis.relevant_posts == 2
        assert analysis.insights == []

    @pytest.mark.asyncio
    async def test_images_are_capped(self, make_post):
        fetcher = MagicMock()
        fetcher.fetch = AsyncMock(return_value=ImageInput(data=b"x"))
        analyzer = _analyzer(_client(AsyncMock()), max_images_per_post=2)
        analyzer.image_fetcher = fetcher
        post = make_post(image_urls=[f"https://media.example.com/{i}.jpg" for i in range(4)])

        images = await analyzer._download_images(post)

        assert len(images) == 2
        assert fetcher.fetch.await_count == 2


class TestToExtractionResult:
    def test_missing_confidence_is_neutral(self, make_post):
        raw = RawExtraction.model_validate({"insights": [{"category": "X", "insight": "Do it"}]})

        result = to_extraction_result(raw, make_post())

        assert result.insights[0].confidence == NEUTRAL_RELEVANCE
        assert result.insights[0].category is InsightCategory.TACTICS


# =============================================================================
# CLOSE
# =============================================================================


class TestClose:
    @pytest.mark.asyncio
    async def test_closes_client_and_fetchers(self):
        client = MagicMock()
        client.close = AsyncMock()
        image_fetcher = MagicMock()
        image_fetcher.close = AsyncMock()
        enricher = MagicMock()
        enricher.close = AsyncMock()
        analyzer = InsightAnalyzer(client=client, image_fetcher=image_fetcher, enricher=enricher)

        await analyzer.close()

        client.close.assert_awaited_once()
        image_fetcher.close.assert_awaited_once()
        enricher.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_keyword_analyzer_close_is_noop(self):
        await InsightAnalyzer().close()
