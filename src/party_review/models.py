"""Data models for the party review discussion engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class AgentType(str, enum.Enum):
    ARCHITECT = "architect"
    DEV = "dev"
    TEA = "tea"
    PM = "pm"
    ANALYST = "analyst"
    UX_DESIGNER = "ux-designer"
    TECH_WRITER = "tech-writer"
    SM = "sm"


class FindingCategory(str, enum.Enum):
    SECURITY = "security"
    LOGIC = "logic"
    BEST_PRACTICES = "bestPractices"
    PERFORMANCE = "performance"


class FindingSeverity(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AgentPriority(str, enum.Enum):
    CRITICAL = "critical"
    IMPORTANT = "important"
    MINOR = "minor"


class ConsensusLevel(str, enum.Enum):
    STRONG = "strong"
    MODERATE = "moderate"
    DISPUTED = "disputed"


class AgendaItemType(str, enum.Enum):
    HIGH_SEVERITY = "high-severity"
    DISPUTED = "disputed"


class ReviewDecision(str, enum.Enum):
    ACCEPT = "accept"
    DEFER = "defer"
    REJECT = "reject"


class ReferenceType(str, enum.Enum):
    AGREES = "agrees"
    DISAGREES = "disagrees"
    BUILDS_ON = "builds-on"


class DiscussionAction(str, enum.Enum):
    START = "start"
    CONTINUE = "continue"
    DECIDE = "decide"
    SKIP = "skip"
    END = "end"


# Rank used for debate detection and vote averaging (lower = more urgent)
PRIORITY_RANK: dict[AgentPriority, int] = {
    AgentPriority.CRITICAL: 0,
    AgentPriority.IMPORTANT: 1,
    AgentPriority.MINOR: 2,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


T = TypeVar("T")


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    """Outcome of parsing untrusted upstream text: a value or the reason it failed."""

    value: T | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.value is not None

    @classmethod
    def success(cls, value: T) -> ParseResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> ParseResult[T]:
        return cls(error=error)


class WireModel(BaseModel):
    """Base for models exchanged as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Findings ---


class Finding(WireModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    impact: str = ""
    suggestion: str = ""
    category: FindingCategory = FindingCategory.LOGIC
    severity: FindingSeverity = FindingSeverity.HIGH


class FindingCounts(WireModel):
    total: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)


# --- Agent analyses (phase 2) ---


class AgentFindings(WireModel):
    agreements: list[str] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class CrossStoryPattern(WireModel):
    pattern: str
    affected_stories: list[str] = Field(default_factory=list)
    recommendation: str = ""


class PrioritizedIssue(WireModel):
    finding_id: str
    agent_priority: AgentPriority
    rationale: str = ""


class AgentAnalysis(WireModel):
    agent: AgentType
    perspective: str = ""
    findings: AgentFindings = Field(default_factory=AgentFindings)
    cross_story_patterns: list[CrossStoryPattern] = Field(default_factory=list)
    prioritized_issues: list[PrioritizedIssue] = Field(default_factory=list)
    summary: str = ""


class ConsensusPoint(WireModel):
    topic: str
    agents: list[AgentType]
    position: str


class DebatePosition(WireModel):
    agent: AgentType
    position: str


class DebatePoint(WireModel):
    topic: str
    positions: list[DebatePosition]


class AggregatedPriority(WireModel):
    finding_id: str
    votes: dict[AgentType, AgentPriority]
    consensus_level: ConsensusLevel
    average_priority: AgentPriority


class SynthesizedResult(WireModel):
    agent_analyses: list[AgentAnalysis] = Field(default_factory=list)
    consensus_points: list[ConsensusPoint] = Field(default_factory=list)
    debate_points: list[DebatePoint] = Field(default_factory=list)
    aggregated_priorities: list[AggregatedPriority] = Field(default_factory=list)


# --- Upstream phase results ---


class Phase1Result(WireModel):
    scope: str = ""
    identifier: str = ""
    findings: FindingCounts
    oracle_analysis: str | None = None


class Phase2Result(SynthesizedResult):
    identifier: str = ""

    @field_validator("consensus_points", mode="before")
    @classmethod
    def _accept_plain_topics(cls, value):
        # Older analysis steps emit consensus points as bare topic strings
        if isinstance(value, list):
            return [
                {"topic": point, "agents": [], "position": point} if isinstance(point, str) else point
                for point in value
            ]
        return value


# --- Personas ---


class Persona(WireModel):
    type: AgentType
    name: str
    title: str = ""
    icon: str = ""
    expertise: list[str] = Field(default_factory=list)
    perspective: str = ""
    identity: str = ""
    communication_style: str = ""
    principles: list[str] = Field(default_factory=list)


class AgentReference(WireModel):
    agent: AgentType
    type: ReferenceType


class AgentDiscussionResponse(WireModel):
    agent: AgentType
    agent_name: str
    icon: str = ""
    response: str
    references: list[AgentReference] = Field(default_factory=list)
    key_points: list[str] = Field(default_factory=list)


# --- Discussion session ---


class DiscussionRound(WireModel):
    finding_id: str
    finding_title: str
    finding_severity: FindingSeverity
    finding_category: FindingCategory
    participants: list[AgentType] = Field(default_factory=list)
    decision: ReviewDecision
    decision_reason: str | None = None
    deferred_to: str | None = None


class AgendaItem(WireModel):
    id: str
    finding_id: str
    topic: str
    type: AgendaItemType
    severity: FindingSeverity
    category: FindingCategory
    relevant_agents: list[AgentType] = Field(default_factory=list)
    agent_positions: dict[AgentType, str] = Field(default_factory=dict)
    discussed: bool = False
    round: DiscussionRound | None = None


class Phase2Summary(WireModel):
    consensus_count: int = 0
    dispute_count: int = 0


class DiscussionSession(WireModel):
    session_id: str
    scope: str = ""
    identifier: str = ""
    agenda: list[AgendaItem] = Field(default_factory=list)
    current_item_index: int = 0
    completed_rounds: list[DiscussionRound] = Field(default_factory=list)
    active_agents: list[AgentType] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_utcnow)
    phase1_summary: FindingCounts = Field(default_factory=FindingCounts)
    phase2_summary: Phase2Summary | None = None
    agent_summaries: dict[AgentType, str] = Field(default_factory=dict)


class DecisionCounts(WireModel):
    accepted: int = 0
    deferred: int = 0
    rejected: int = 0
    pending: int = 0


class StoryUpdate(WireModel):
    story_id: str
    additions: list[str] = Field(default_factory=list)


class DiscussionSummary(WireModel):
    total_discussed: int = 0
    decisions: DecisionCounts = Field(default_factory=DecisionCounts)
    story_updates_needed: list[StoryUpdate] = Field(default_factory=list)


# --- Tool contract ---


class DiscussionArgs(WireModel):
    action: DiscussionAction
    session_id: str | None = None
    phase1_result: str | None = None
    phase2_result: str | None = None
    finding_id: str | None = None
    decision: ReviewDecision | None = None
    reason: str | None = None
    deferred_to: str | None = None


class DiscussionResult(WireModel):
    success: bool
    session_id: str = ""
    state: DiscussionSession | None = None
    current_item: AgendaItem | None = None
    current_responses: list[AgentDiscussionResponse] | None = None
    has_more_items: bool = False
    summary: DiscussionSummary | None = None
    error: str | None = None
    suggestion: str | None = None

    def to_payload(self) -> dict:
        """Dump as the camelCase JSON object returned to callers."""
        payload = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        payload.setdefault("state", None)
        return payload
