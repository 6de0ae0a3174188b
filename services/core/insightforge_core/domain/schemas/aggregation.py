"""Per-expert and cross-expert analysis containers."""

from typing import Optional

from pydantic import BaseModel, Field

from insightforge_core.domain.schemas.insights import Insight, InsightAnalysis, Methodology


class ExpertProfile(BaseModel):
    """One profile being analyzed as part of a run."""

    username: str
    display_name: Optional[str] = None
    # Reported in the aggregated document; ranking does not use it
    weight: float = Field(default=1.0, ge=0.0)
    post_limit: Optional[int] = None


class ExpertAnalysis(BaseModel):
    """Analysis of a single expert's posts."""

    expert: ExpertProfile
    analysis: InsightAnalysis


class SourcedTemplate(BaseModel):
    template: str
    sources: list[str] = Field(default_factory=list)


class AggregationConfig(BaseModel):
    topic: str
    experts: list[ExpertProfile] = Field(default_factory=list)
    token_limit: int = Field(default=50000, gt=0)


class CategoryInsights(BaseModel):
    """Top-ranked insights of one category."""

    category: str
    insights: list[Insight]


class AggregatedAnalysis(BaseModel):
    """Cross-expert result derived from a list of ExpertAnalysis."""

    topic: str
    experts: list[ExpertAnalysis]
    insights: list[Insight] = Field(default_factory=list)
    methodologies: list[Methodology] = Field(default_factory=list)
    templates: list[SourcedTemplate] = Field(default_factory=list)
    summary: str = ""

    @property
    def expert_names(self) -> list[str]:
        return [e.expert.username for e in self.experts]
