"""Markdown rendering of analyses into knowledge documents."""

from datetime import date, datetime, timezone
from typing import Optional, Protocol

from insightforge_core.domain.schemas.aggregation import AggregatedAnalysis
from insightforge_core.domain.schemas.content import Post
from insightforge_core.domain.schemas.insights import Insight, InsightAnalysis
from insightforge_core.domain.services.aggregation import (
    top_categories,
    top_insights_by_category,
)
from insightforge_core.domain.services.domain_profiles import resolve_profile

ARTICLE_CONTENT_CHARS = 5000
SAMPLE_POST_CHARS = 500
SAMPLE_POST_COUNT = 10

TEMPLATE_GROUPS = (
    ("Follow-Up", ("follow up", "name might look familiar", "checking back")),
    ("Discovery", ("discovery", "question", "learn more")),
    ("Objection Handling", ("objection", "not the right person", "budget")),
    ("Closing", ("close", "contract", "decision")),
    ("Initial Outreach", ("hi ", "hello", "saw your")),
)


class Formatter(Protocol):
    """Renders analyses into markdown documents."""

    def expert_knowledge_base(
        self, username: str, analysis: InsightAnalysis, posts: list[Post]
    ) -> str: ...

    def core_rules(self, username: str, topics: list[str]) -> str: ...

    def project_instructions(
        self, username: str, analysis: InsightAnalysis, topics: list[str]
    ) -> str: ...

    def aggregated_knowledge(self, aggregated: AggregatedAnalysis) -> str: ...

    def unified_rules(self, aggregated: AggregatedAnalysis) -> str: ...

    def master_instructions(self, aggregated: AggregatedAnalysis, topics: list[str]) -> str: ...


def format_category_name(category: str) -> str:
    return " ".join(word.capitalize() for word in category.split("_"))


def group_templates(templates: list[str]) -> dict[str, list[str]]:
    groups: dict[str, list[str]] = {name: [] for name, _ in TEMPLATE_GROUPS}
    groups["Other"] = []
    for template in templates:
        lower = template.lower()
        for name, keywords in TEMPLATE_GROUPS:
            if any(keyword in lower for keyword in keywords):
                groups[name].append(template)
                break
        else:
            groups["Other"].append(template)
    return groups


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def _insight_lines(insights: list[Insight]) -> list[str]:
    grouped: dict[str, list[Insight]] = {}
    for insight in insights:
        grouped.setdefault(insight.category.value, []).append(insight)

    lines = []
    for category, items in grouped.items():
        lines += [f"### {format_category_name(category)}", ""]
        lines += [f"- {i.text} (Confidence: {round(i.confidence * 100)}%)" for i in items]
        lines.append("")
    return lines


class MarkdownFormatter:
    """Default Formatter producing markdown documents."""

    def __init__(self, generated_on: Optional[date] = None):
        self.generated_on = generated_on

    @property
    def _date(self) -> str:
        return (self.generated_on or datetime.now(timezone.utc).date()).isoformat()

    def expert_knowledge_base(
        self, username: str, analysis: InsightAnalysis, posts: list[Post]
    ) -> str:
        lines = [
            f"# KNOWLEDGE BASE: {username} Expert Insights",
            f"Generated: {self._date}",
            f"Source: {analysis.total_posts} posts, {len(analysis.insights)} insights extracted",
            "",
            "---",
            "",
            "## METHODOLOGIES & FRAMEWORKS",
            "",
        ]
        for methodology in analysis.methodologies:
            lines += [f"### {methodology.name}", "", methodology.description, ""]
            if methodology.application:
                lines += [f"**Application:** {methodology.application}", ""]

        lines += ["---", "", "## COMPLETE TEMPLATE LIBRARY", ""]
        for group, templates in group_templates(analysis.templates).items():
            if not templates:
                continue
            lines += [f"### {group}", ""]
            for number, template in enumerate(templates, start=1):
                lines += [f"**Template {number}:**", "```", template, "```", ""]

        lines += ["---", "", "## ALL EXTRACTED INSIGHTS", ""]
        lines += _insight_lines(analysis.insights)

        if analysis.actionable_items:
            lines += ["---", "", "## ACTIONABLE ITEMS", ""]
            lines += [f"- {item}" for item in analysis.actionable_items]
            lines.append("")

        if analysis.external_articles:
            lines += [
                "---",
                "",
                "## EXTERNAL REFERENCE MATERIALS",
                "",
                "Long-form articles and resources for deeper context:",
                "",
            ]
            for article in analysis.external_articles:
                lines += [
                    f"### {article.title}",
                    f"**Source:** {article.source_domain} ({article.source_type})",
                    f"**URL:** {article.url}",
                ]
                if article.excerpt:
                    lines.append(f"**Summary:** {article.excerpt}")
                if article.content:
                    lines += [
                        "",
                        "**Full Content:**",
                        "```",
                        _truncate(article.content, ARTICLE_CONTENT_CHARS),
                        "```",
                    ]
                lines.append("")

        if posts:
            lines += ["---", "", "## SAMPLE POSTS", "", "High-engagement posts from the source:", ""]
            ranked = sorted(
                posts,
                key=lambda p: p.engagement.likes + p.engagement.comments,
                reverse=True,
            )[:SAMPLE_POST_COUNT]
            for number, post in enumerate(ranked, start=1):
                lines += [
                    f"### Post {number} ({post.engagement.likes} likes, "
                    f"{post.engagement.comments} comments)",
                    "```",
                    _truncate(post.content, SAMPLE_POST_CHARS),
                    "```",
                    "",
                ]

        return "\n".join(lines)

    def core_rules(self, username: str, topics: list[str]) -> str:
        profile = resolve_profile(topics)
        lines = [
            f"# CORE RULES: {username} {profile.rules_heading}",
            f"Generated: {self._date}",
            "",
            f"**{profile.rules_intro}**",
            "",
            "---",
            "",
        ]
        for number, rule in enumerate(profile.rules, start=1):
            lines += [f"## Rule {number}: {rule.title}", "", f"**{rule.lead}**"]
            lines += [f"- {point}" for point in rule.points]
            lines.append("")
        lines += ["---", "", f"**{profile.rules_closing}**"]
        return "\n".join(lines)

    def project_instructions(
        self, username: str, analysis: InsightAnalysis, topics: list[str]
    ) -> str:
        profile = resolve_profile(topics)
        lines = [
            f"# PROJECT INSTRUCTIONS: {profile.title} AI Assistant",
            f"Based on {username} methodology",
            "",
            "---",
            "",
            "## Your Role",
            "",
            profile.role_description(topics),
            "",
            "## Core Expertise Areas",
            "",
        ]
        lines += [f"- **{a.title}**: {a.description}" for a in profile.expertise_areas(topics)]
        lines += ["", "## Success Metrics", ""]
        lines += [f"- {metric}" for metric in profile.metrics]
        lines += [
            "",
            "---",
            "",
            f"**Reference Materials:** {len(analysis.insights)} insights, "
            f"{len(analysis.templates)} templates, {len(analysis.methodologies)} methodologies",
        ]
        return "\n".join(lines)

    def aggregated_knowledge(self, aggregated: AggregatedAnalysis) -> str:
        lines = [
            f"# AGGREGATED KNOWLEDGE BASE: {aggregated.topic}",
            f"Generated: {self._date}",
            f"Sources: {len(aggregated.experts)} experts",
            "",
            "---",
            "",
            "## CONTRIBUTING EXPERTS",
            "",
        ]
        for expert in aggregated.experts:
            lines += [
                f"### {expert.expert.username}",
                f"- Weight: {expert.expert.weight}",
                f"- Posts analyzed: {expert.analysis.total_posts}",
                f"- Insights extracted: {len(expert.analysis.insights)}",
                "",
            ]

        lines += ["---", "", "## COMBINED METHODOLOGIES & FRAMEWORKS", ""]
        for methodology in aggregated.methodologies:
            lines += [
                f"### {methodology.name}",
                f"*Sources: {', '.join(methodology.sources)}*",
                "",
                methodology.description,
                "",
            ]
            if methodology.application:
                lines += [f"**Application:** {methodology.application}", ""]

        lines += ["---", "", "## COMBINED TEMPLATE LIBRARY", ""]
        for number, item in enumerate(aggregated.templates, start=1):
            lines += [
                f"### Template {number}",
                f"*Sources: {', '.join(item.sources)}*",
                "```",
                item.template,
                "```",
                "",
            ]

        lines += ["---", "", "## ALL COMBINED INSIGHTS", ""]
        lines += _insight_lines(aggregated.insights)
        return "\n".join(lines)

    def unified_rules(self, aggregated: AggregatedAnalysis) -> str:
        lines = [
            f"# UNIFIED RULES: {aggregated.topic} Best Practices",
            f"Generated: {self._date}",
            f"Based on insights from: {', '.join(aggregated.expert_names)}",
            "",
            "**Apply these principles consistently:**",
            "",
            "---",
            "",
        ]
        for number, group in enumerate(top_insights_by_category(aggregated.insights), start=1):
            lines += [f"## Rule {number}: {format_category_name(group.category)}", ""]
            lines += [f"- {insight.text}" for insight in group.insights]
            lines.append("")
        lines += [
            "---",
            "",
            "**These rules represent the collective wisdom of multiple experts.**",
        ]
        return "\n".join(lines)

    def master_instructions(self, aggregated: AggregatedAnalysis, topics: list[str]) -> str:
        profile = resolve_profile(topics)
        names = ", ".join(aggregated.expert_names)
        lines = [
            f"# MASTER INSTRUCTIONS: {aggregated.topic} AI Assistant",
            f"Based on collective insights from {len(aggregated.experts)} experts",
            "",
            "---",
            "",
            "## Your Role",
            "",
            profile.role_description(topics),
            f"Your guidance is based on proven strategies from: {names}.",
            "",
            "## Core Expertise Areas",
            "",
        ]
        lines += [
            f"- **{format_category_name(c)}**" for c in top_categories(aggregated.insights)
        ]
        lines += ["", "## Key Frameworks to Apply", ""]
        for methodology in aggregated.methodologies[:5]:
            lines += [
                f"### {methodology.name}",
                f"*Applied by: {', '.join(methodology.sources)}*",
                "",
                methodology.description,
                "",
            ]
        lines += [
            "## How to Respond to Users",
            "",
            "1. **Gather Context First** - Understand their specific situation",
            "2. **Apply Multiple Perspectives** - Draw from insights across experts",
            "3. **Provide Actionable Guidance** - Give specific, tactical recommendations",
            "4. **Include Examples** - Use templates and proven approaches from the knowledge base",
            "5. **Cross-Reference Sources** - Mention when multiple experts agree on a strategy",
            "",
            "---",
            "",
            f"**Reference Materials:** {len(aggregated.insights)} insights, "
            f"{len(aggregated.templates)} templates, {len(aggregated.methodologies)} "
            f"methodologies from {len(aggregated.experts)} experts",
        ]
        return "\n".join(lines)
