"""Assemble the set of documents stored as artifacts for a run."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from insightforge_core.domain.schemas.aggregation import AggregatedAnalysis, ExpertAnalysis
from insightforge_core.domain.schemas.content import Post
from insightforge_core.domain.schemas.insights import InsightAnalysis
from insightforge_core.domain.services.domain_profiles import resolve_profile
from insightforge_core.domain.services.formatting import Formatter
from insightforge_core.domain.services.tokens import file_size_info, split_by_tokens

logger = logging.getLogger(__name__)

INSTRUCTIONS = "instructions"
CORE_RULES = "core-rules"
PROJECT_INSTRUCTIONS = "project-instructions"
AGGREGATED_KNOWLEDGE = "1-aggregated-knowledge"
UNIFIED_RULES = "2-unified-rules"
MASTER_INSTRUCTIONS = "3-master-instructions"


def expert_artifact_type(username: str) -> str:
    return f"expert-{username}"


@dataclass
class BundleDocument:
    artifact_type: str
    content: str


@dataclass
class KnowledgeBundle:
    documents: list[BundleDocument] = field(default_factory=list)

    def get(self, artifact_type: str) -> Optional[str]:
        for document in self.documents:
            if document.artifact_type == artifact_type:
                return document.content
        return None

    @property
    def artifact_types(self) -> list[str]:
        return [d.artifact_type for d in self.documents]


def render_instructions(analysis: InsightAnalysis, topics: list[str]) -> str:
    if analysis.actionable_items:
        body = "\n".join(f"- {item}" for item in analysis.actionable_items)
    else:
        body = f"- {resolve_profile(topics).default_instruction}"
    return "\n".join([
        "# How to Use These Insights",
        "",
        body,
        "",
        "Refer to the individual expert files for detailed tactics and source notes.",
    ])


def split_document(document: BundleDocument, token_limit: int) -> list[BundleDocument]:
    """Split an over-limit document into ``-partN`` documents."""
    info = file_size_info(document.content)
    if info.tokens <= token_limit:
        return [document]

    chunks = split_by_tokens(document.content, token_limit)
    logger.info(
        f"{document.artifact_type} is {info.token_formatted}, split into {len(chunks)} parts"
    )
    if len(chunks) == 1:
        return [document]
    return [
        BundleDocument(f"{document.artifact_type}-part{number}", chunk)
        for number, chunk in enumerate(chunks, start=1)
    ]


def build_knowledge_bundle(
    aggregate_analysis: InsightAnalysis,
    expert_analyses: list[ExpertAnalysis],
    formatter: Formatter,
    topics: list[str],
    posts_by_expert: Optional[dict[str, list[Post]]] = None,
    aggregated: Optional[AggregatedAnalysis] = None,
    token_limit: int = 50000,
) -> KnowledgeBundle:
    """Instructions, one knowledge document per expert, rules and, for
    multi-expert runs, the combined documents."""
    posts_by_expert = posts_by_expert or {}
    documents = [BundleDocument(INSTRUCTIONS, render_instructions(aggregate_analysis, topics))]

    for expert_analysis in expert_analyses:
        username = expert_analysis.expert.username
        knowledge = formatter.expert_knowledge_base(
            username, expert_analysis.analysis, posts_by_expert.get(username, [])
        )
        documents.append(
            BundleDocument(
                expert_artifact_type(username),
                "\n".join([f"# {username} Knowledge Base", "", knowledge]),
            )
        )

    label = " + ".join(ea.expert.username for ea in expert_analyses) or "Expert"
    documents.append(BundleDocument(CORE_RULES, formatter.core_rules(label, topics)))

    if aggregated is not None and len(expert_analyses) > 1:
        documents += [
            BundleDocument(AGGREGATED_KNOWLEDGE, formatter.aggregated_knowledge(aggregated)),
            BundleDocument(UNIFIED_RULES, formatter.unified_rules(aggregated)),
            BundleDocument(MASTER_INSTRUCTIONS, formatter.master_instructions(aggregated, topics)),
        ]
    else:
        documents.append(
            BundleDocument(
                PROJECT_INSTRUCTIONS,
                formatter.project_instructions(label, aggregate_analysis, topics),
            )
        )

    split: list[BundleDocument] = []
    for document in documents:
        split.extend(split_document(document, token_limit))
    return KnowledgeBundle(documents=split)
