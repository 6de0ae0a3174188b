"""Insight extraction results.

Models in the ``Raw*`` family mirror the JSON the extraction model is asked
to return. They accept loose input (missing fields, odd types) so a partly
malformed response still yields whatever is usable.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from insightforge_core.domain.schemas.content import ExternalArticle


def clamp_unit(value: Any, low: float = 0.0, high: float = 1.0, default: float = 0.5) -> float:
    """Coerce to float and clamp into [low, high]; unusable input gives ``default``."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(low, min(high, number))


class InsightCategory(str, Enum):
    """Fixed set of insight buckets."""

    PROSPECTING = "PROSPECTING"
    DISCOVERY = "DISCOVERY"
    NURTURE = "NURTURE"
    CLOSING = "CLOSING"
    COMMS = "COMMS"
    CADENCES = "CADENCES"
    STRATEGY = "STRATEGY"
    TEMPLATES = "TEMPLATES"
    TACTICS = "TACTICS"

    @classmethod
    def from_label(cls, label: Any) -> "InsightCategory":
        """Map a free-form label onto the fixed set; unknown labels become TACTICS."""
        if isinstance(label, cls):
            return label
        if not isinstance(label, str):
            return cls.TACTICS
        key = label.strip().upper().replace(" ", "_").replace("-", "_")
        key = CATEGORY_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return cls.TACTICS


CATEGORY_ALIASES = {
    "SALES_COMMS": "COMMS",
    "COMMUNICATION": "COMMS",
    "CADENCE": "CADENCES",
    "TEMPLATE": "TEMPLATES",
    "TACTIC": "TACTICS",
}


class Insight(BaseModel):
    """One categorized, confidence-scored claim tied to a source post."""

    id: str
    category: InsightCategory
    text: str
    confidence: float = 0.5
    extracted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_post_id: Optional[str] = None
    actionable_items: list[str] = Field(default_factory=list)
    templates: list[str] = Field(default_factory=list)

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, v: Any) -> InsightCategory:
        return InsightCategory.from_label(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        return clamp_unit(v)


class Methodology(BaseModel):
    """Named, reusable framework found in source content."""

    name: str
    description: str = ""
    application: Optional[str] = None
    sources: list[str] = Field(default_factory=list)


class ExtractionResult(BaseModel):
    """Output of analyzing one post."""

    insights: list[Insight] = Field(default_factory=list)
    templates: list[str] = Field(default_factory=list)
    actionable_items: list[str] = Field(default_factory=list)
    methodologies: list[Methodology] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "ExtractionResult":
        return cls()


class TokenUsage(BaseModel):
    """Tokens consumed by LLM calls during an analysis."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def add(self, prompt_tokens: int, completion_tokens: int) -> None:
        self.prompt_tokens += prompt_tokens
        self.completion_tokens += completion_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


class InsightAnalysis(BaseModel):
    """Result of analyzing one set of posts."""

    insights: list[Insight] = Field(default_factory=list)
    templates: list[str] = Field(default_factory=list)
    actionable_items: list[str] = Field(default_factory=list)
    methodologies: list[Methodology] = Field(default_factory=list)
    summary: str = ""
    total_posts: int = 0
    relevant_posts: int = 0
    external_articles: list[ExternalArticle] = Field(default_factory=list)
    external_sources: list[str] = Field(default_factory=list)
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    analysis_mode: str = "keyword"


# =============================================================================
# Raw LLM response shapes
# =============================================================================


class RawInsight(BaseModel):
    category: Any = None
    insight: str = ""
    confidence: Any = None

    model_config = {"extra": "allow"}


class RawMethodology(BaseModel):
    name: str = ""
    description: str = ""
    application: Optional[str] = None

    model_config = {"extra": "allow"}


class RawExtraction(BaseModel):
    """Extraction response as returned by the model."""

    insights: list[RawInsight] = Field(default_factory=list)
    templates: list[Any] = Field(default_factory=list)
    actionableItems: list[Any] = Field(default_factory=list)
    methodologies: list[RawMethodology] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    @field_validator("insights", "templates", "actionableItems", "methodologies", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return v if isinstance(v, list) else []


class RawRelevance(BaseModel):
    score: Any = None
    reason: Optional[str] = None

    model_config = {"extra": "allow"}


class RawResourceSuggestions(BaseModel):
    primaryWebsite: Optional[str] = None
    blogUrls: list[str] = Field(default_factory=list)
    otherResources: list[str] = Field(default_factory=list)

    model_config = {"extra": "allow"}
