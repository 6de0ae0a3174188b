"""Domain profiles that shape generated rules and instructions.

The focus topics of a run are classified into one of three domain kinds.
Each kind maps to a DomainProfile strategy through ``DOMAIN_PROFILES``.
Generic runs additionally pick a theme (marketing, product, leadership)
that only changes wording.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class DomainKind(str, Enum):
    FUNDRAISING = "fundraising"
    SALES = "sales"
    GENERIC = "generic"


FUNDRAISING_KEYWORDS = (
    "fundrais",
    "venture capital",
    "investment",
    "pitch deck",
    "investor",
    "funding",
    "capital raising",
)
SALES_KEYWORDS = ("sales", "outreach", "prospecting", "cadence", "closing")


def _joined(topics: Optional[list[str]]) -> str:
    return " ".join(topics or []).lower()


def classify_domain(topics: Optional[list[str]]) -> DomainKind:
    """Keyword sniffing over the focus topics; fundraising wins over sales."""
    text = _joined(topics)
    if any(keyword in text for keyword in FUNDRAISING_KEYWORDS):
        return DomainKind.FUNDRAISING
    if any(keyword in text for keyword in SALES_KEYWORDS):
        return DomainKind.SALES
    return DomainKind.GENERIC


@dataclass(frozen=True)
class Rule:
    title: str
    lead: str
    points: tuple[str, ...]


@dataclass(frozen=True)
class ExpertiseArea:
    title: str
    description: str


@dataclass(frozen=True)
class GenericTheme:
    title: str
    keywords: tuple[str, ...]
    role: str
    expertise: tuple[ExpertiseArea, ...]
    metrics: tuple[str, ...]


GENERIC_THEMES = (
    GenericTheme(
        title="Marketing & Growth",
        keywords=("marketing", "growth", "content", "branding"),
        role="You are an expert marketing strategist specializing in {topics}. "
        "Your advice is based on proven frameworks from top growth marketers.",
        expertise=(
            ExpertiseArea("Content Strategy", "Develop content that drives engagement and conversions"),
            ExpertiseArea("Growth Tactics", "Implement scalable acquisition and retention strategies"),
            ExpertiseArea("Brand Positioning", "Define and communicate unique value propositions"),
            ExpertiseArea("Channel Optimization", "Maximize ROI across marketing channels"),
        ),
        metrics=(
            "Customer acquisition cost (CAC)",
            "Conversion rates by channel",
            "Engagement metrics (CTR, time on site)",
            "Content performance and reach",
        ),
    ),
    GenericTheme(
        title="Product Development",
        keywords=("product", "design", "user experience", "feature"),
        role="You are an expert product advisor specializing in {topics}. "
        "Your guidance is based on best practices from leading product teams.",
        expertise=(
            ExpertiseArea("Product Strategy", "Define roadmaps and prioritize features"),
            ExpertiseArea("User Research", "Understand user needs and validate assumptions"),
            ExpertiseArea("Design Thinking", "Apply user-centered design principles"),
            ExpertiseArea("Metrics & Analytics", "Track and optimize key product metrics"),
        ),
        metrics=(
            "User activation and retention rates",
            "Feature adoption metrics",
            "Customer satisfaction (NPS, CSAT)",
            "Time to value for new users",
        ),
    ),
    GenericTheme(
        title="Leadership & Management",
        keywords=("leadership", "management", "team", "culture"),
        role="You are an expert leadership coach specializing in {topics}. "
        "Your advice draws from proven management frameworks and successful leaders.",
        expertise=(
            ExpertiseArea("Team Building", "Recruit, develop and retain top talent"),
            ExpertiseArea("Culture Development", "Build and maintain strong company culture"),
            ExpertiseArea("Strategic Planning", "Set vision and execute on long-term goals"),
            ExpertiseArea("Performance Management", "Give feedback and drive accountability"),
        ),
        metrics=(
            "Team retention and satisfaction",
            "Employee engagement scores",
            "Execution velocity on key initiatives",
            "Leadership effectiveness feedback",
        ),
    ),
)

DEFAULT_THEME = GenericTheme(
    title="Expert",
    keywords=(),
    role="You are an expert consultant specializing in {topics}. "
    "Your advice is grounded in proven methodologies from top professionals in the field.",
    expertise=(),
    metrics=(
        "Key performance indicators for your domain",
        "Progress toward stated goals",
        "Stakeholder satisfaction",
        "Impact and outcomes achieved",
    ),
)


def generic_theme(topics: Optional[list[str]]) -> GenericTheme:
    text = _joined(topics)
    for theme in GENERIC_THEMES:
        if any(keyword in text for keyword in theme.keywords):
            return theme
    return DEFAULT_THEME


@dataclass(frozen=True)
class DomainProfile:
    """Strategy supplying domain-specific wording for generated documents."""

    kind: DomainKind
    title: str
    rules_heading: str
    rules_intro: str
    rules: tuple[Rule, ...]
    rules_closing: str
    role_template: str
    expertise: tuple[ExpertiseArea, ...] = field(default_factory=tuple)
    metrics: tuple[str, ...] = field(default_factory=tuple)
    default_instruction: str = (
        "Prioritize the highest confidence insights and adapt them to your own situation."
    )

    def role_description(self, topics: list[str]) -> str:
        return self.role_template.format(topics=", ".join(topics) or self.title.lower())

    def expertise_areas(self, topics: list[str]) -> list[ExpertiseArea]:
        if self.expertise:
            return list(self.expertise)
        return [
            ExpertiseArea(topic[:1].upper() + topic[1:], f"Expert guidance on {topic}")
            for topic in topics[:5]
        ]


FUNDRAISING_PROFILE = DomainProfile(
    kind=DomainKind.FUNDRAISING,
    title="Fundraising & Investment",
    rules_heading="Fundraising Operating System",
    rules_intro="Apply these principles to every fundraise and investor interaction:",
    rules=(
        Rule("Start With Investor Fit", "Only pitch investors who match your stage and thesis:", (
            "Map their fund size, check size and lead preferences",
            "Confirm portfolio relevance and recent investments",
            "Prioritize warm paths through founders, angels or operators",
        )),
        Rule("Lead With Traction", "Open every conversation with proof of momentum:", (
            "Highlight revenue, growth rate, retention and pipeline strength",
            "Translate customer wins into quantified outcomes",
            "Anchor valuation asks to investor-grade benchmarks",
        )),
        Rule("Run a Structured Process", "Treat fundraising like a pipeline:", (
            "Build a tiered target list before launch",
            "Batch outreach to create momentum and competitive tension",
            "Review investor funnel health weekly",
        )),
        Rule("Prep Diligence Early", "Data room readiness builds trust and shortens cycles:", (
            "Keep the financial model, metrics and cohort analyses current",
            "Collect legal, HR and cap table documents in one place",
            "Rehearse answers to known diligence questions for your stage",
        )),
        Rule("Treat Objections as Insight", "Every pushback shows what investors still need:", (
            "Log objections by theme",
            "Answer with data and follow up with proof",
            "Update pitch materials when patterns emerge",
        )),
    ),
    rules_closing="Apply these rules consistently to build investor trust and momentum.",
    role_template="You are an expert fundraising advisor helping founders raise capital. "
    "Your expertise covers {topics}. Your advice is grounded in strategies from "
    "founders who have raised successfully.",
    expertise=(
        ExpertiseArea("Pitch Development", "Craft pitch decks and narratives that resonate with investors"),
        ExpertiseArea("Investor Relations", "Build relationships with VCs, angels and strategic investors"),
        ExpertiseArea("Deal Strategy", "Navigate term sheets, valuations and round mechanics"),
        ExpertiseArea("Due Diligence Prep", "Prepare data rooms and answer investor questions"),
        ExpertiseArea("Cap Table Management", "Structure equity, SAFEs and convertible notes"),
    ),
    metrics=(
        "Investor meeting conversion rate",
        "Follow-up response rate from investors",
        "Time from first meeting to term sheet",
        "Amount raised vs. target",
    ),
    default_instruction="Prioritize the highest confidence insights and fold them into your investor pipeline.",
)

SALES_PROFILE = DomainProfile(
    kind=DomainKind.SALES,
    title="Sales",
    rules_heading="Sales Methodology",
    rules_intro="Apply these principles to every sales interaction:",
    rules=(
        Rule("Always Personalize (SMYKM)", "Show Me You Know Me: every outreach includes specific research:", (
            "Reference recent company news, funding or expansion",
            "Mention mutual connections or shared experiences",
            "Acknowledge industry-specific challenges",
        )),
        Rule("Lead With Value, Not Features", "Every interaction answers what is in it for them:", (
            "Start with insights, not pitches",
            "Share relevant case studies or data",
            "Frame solutions around their goals",
        )),
        Rule("Think in Sequences", "Every prospect needs multiple touchpoints:", (
            "Plan a 3-5 touch cadence before first outreach",
            "Vary channels: email, social, phone, video",
            "Make each touch add a new angle",
        )),
        Rule("Objections Are Opportunities", "Reframe objections instead of fighting them:", (
            "Not the right person: ask for a warm introduction",
            "No budget: shift to ROI and payment flexibility",
            "Not now: learn the timeline and stay top of mind",
        )),
        Rule("Measure and Iterate", "Track the metrics that matter:", (
            "Open, response and meeting booking rates",
            "Pipeline velocity",
            "Test subject lines, calls to action and timing",
        )),
    ),
    rules_closing="Apply these rules consistently for maximum impact.",
    role_template="You are an expert sales consultant specializing in B2B outreach, "
    "email cadences and deal closing. Your advice is grounded in proven "
    "methodologies from top sales professionals.",
    expertise=(
        ExpertiseArea("Email Outreach", "Craft personalized, high-converting sales emails"),
        ExpertiseArea("Cadence Development", "Build multi-touch sequences that move deals forward"),
        ExpertiseArea("Deal Strategy", "Analyze accounts and develop closing strategies"),
        ExpertiseArea("Objection Handling", "Address common objections with proven frameworks"),
        ExpertiseArea("Prospecting", "Identify and qualify high-value prospects"),
    ),
    metrics=(
        "Email open rates (target: >40%)",
        "Response rates (target: >10%)",
        "Meeting booking rates (target: >3%)",
        "Pipeline velocity (time to close)",
    ),
    default_instruction="Prioritize the highest confidence insights and adapt them to your outreach sequences.",
)

GENERIC_RULES = (
    Rule("Lead With Context", "Clarify before advising:", (
        "Start by clarifying goals, constraints and success metrics",
        "Summarize back what you heard before giving direction",
    )),
    Rule("Anchor Advice in Evidence", "Show where advice comes from:", (
        "Reference data, case studies or lived experience",
        "Share trade-offs so others can make informed choices",
    )),
    Rule("Design for Momentum", "Keep work moving:", (
        "Break work into sequenced steps with owners and deadlines",
        "Track progress visibly to spot risks early",
    )),
    Rule("Iterate With Feedback", "Learn from every push:", (
        "Collect qualitative and quantitative signals",
        "Update playbooks quickly so the team stays aligned",
    )),
)

DOMAIN_PROFILES: dict[DomainKind, DomainProfile] = {
    DomainKind.FUNDRAISING: FUNDRAISING_PROFILE,
    DomainKind.SALES: SALES_PROFILE,
    DomainKind.GENERIC: DomainProfile(
        kind=DomainKind.GENERIC,
        title=DEFAULT_THEME.title,
        rules_heading="Principles",
        rules_intro="Use these principles whenever you advise others:",
        rules=GENERIC_RULES,
        rules_closing="Apply these rules consistently to stay credible and effective.",
        role_template=DEFAULT_THEME.role,
        metrics=DEFAULT_THEME.metrics,
    ),
}


def resolve_profile(topics: Optional[list[str]]) -> DomainProfile:
    """Profile for the topics; generic profiles take their theme's wording."""
    kind = classify_domain(topics)
    profile = DOMAIN_PROFILES[kind]
    if kind is not DomainKind.GENERIC:
        return profile

    theme = generic_theme(topics)
    return DomainProfile(
        kind=kind,
        title=theme.title,
        rules_heading=f"{theme.title} {profile.rules_heading}",
        rules_intro=profile.rules_intro,
        rules=profile.rules,
        rules_closing=profile.rules_closing,
        role_template=theme.role,
        expertise=theme.expertise,
        metrics=theme.metrics,
        default_instruction=profile.default_instruction,
    )
