"""Response synthesis across independent agent analyses.

Consensus is approximated by normalizing agreement/concern text to a 5-token
key; debates are agent pairs whose priority on the same finding is two ranks
apart; priorities are aggregated per finding by vote.
"""

from __future__ import annotations

import json
import math
import re

from pydantic import ValidationError

from party_review.models import (
    PRIORITY_RANK,
    AgentAnalysis,
    AgentPriority,
    AgentType,
    AggregatedPriority,
    ConsensusLevel,
    ConsensusPoint,
    DebatePoint,
    DebatePosition,
    ParseResult,
    PrioritizedIssue,
    SynthesizedResult,
)

_MIN_CONSENSUS_AGENTS = 2
_CONSENSUS_RATIO = 0.5
_NORMALIZED_TOKENS = 5
_DEBATE_RANK_GAP = 2

_NON_WORD_RE = re.compile(r"[^\w\s]")
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

# Distinct vote count -> consensus level
_LEVEL_BY_DISTINCT: dict[int, ConsensusLevel] = {
    1: ConsensusLevel.STRONG,
    2: ConsensusLevel.MODERATE,
    3: ConsensusLevel.DISPUTED,
}


def consensus_threshold(total_agents: int) -> int:
    """Minimum number of agents that must share a point for consensus."""
    return max(_MIN_CONSENSUS_AGENTS, math.ceil(total_agents * _CONSENSUS_RATIO))


def normalize_for_comparison(text: str) -> str:
    words = _NON_WORD_RE.sub("", text.lower()).split()
    return " ".join(words[:_NORMALIZED_TOKENS])


def find_consensus_points(analyses: list[AgentAnalysis]) -> list[ConsensusPoint]:
    """Group agreements and concerns by normalized key; keep buckets reaching the threshold."""
    buckets: dict[str, tuple[list[AgentType], list[str]]] = {}

    for analysis in analyses:
        for text in [*analysis.findings.concerns, *analysis.findings.agreements]:
            agents, positions = buckets.setdefault(normalize_for_comparison(text), ([], []))
            # An agent repeating itself still counts once
            if analysis.agent not in agents:
                agents.append(analysis.agent)
            positions.append(text)

    threshold = consensus_threshold(len(analyses))
    return [
        ConsensusPoint(topic=positions[0], agents=agents, position=positions[0])
        for agents, positions in buckets.values()
        if len(agents) >= threshold
    ]


def _ids_match(a: str, b: str) -> bool:
    a, b = a.lower(), b.lower()
    return a in b or b in a


def find_conflicting_priorities(
    first: AgentAnalysis, second: AgentAnalysis,
) -> list[tuple[PrioritizedIssue, PrioritizedIssue]]:
    """Return (first's issue, second's issue) pairs whose priorities are far apart."""
    conflicts: list[tuple[PrioritizedIssue, PrioritizedIssue]] = []
    for issue in first.prioritized_issues:
        match = next(
            (other for other in second.prioritized_issues if _ids_match(issue.finding_id, other.finding_id)),
            None,
        )
        if match is None:
            continue
        gap = abs(PRIORITY_RANK[issue.agent_priority] - PRIORITY_RANK[match.agent_priority])
        if gap >= _DEBATE_RANK_GAP:
            conflicts.append((issue, match))
    return conflicts


def find_debate_points(analyses: list[AgentAnalysis]) -> list[DebatePoint]:
    debate_points: list[DebatePoint] = []
    processed_pairs: set[frozenset[AgentType]] = set()

    for i, first in enumerate(analyses):
        for second in analyses[i + 1:]:
            pair = frozenset((first.agent, second.agent))
            if pair in processed_pairs:
                continue
            processed_pairs.add(pair)

            for issue, match in find_conflicting_priorities(first, second):
                debate_points.append(DebatePoint(
                    topic=f"Priority disagreement on {issue.finding_id}",
                    positions=[
                        DebatePosition(agent=first.agent, position=f"{issue.agent_priority.value}: {issue.rationale}"),
                        DebatePosition(agent=second.agent, position=f"{match.agent_priority.value}: {match.rationale}"),
                    ],
                ))
    return debate_points


def determine_consensus_level(votes: list[AgentPriority]) -> ConsensusLevel:
    if len(votes) <= 1:
        return ConsensusLevel.STRONG
    return _LEVEL_BY_DISTINCT[len(set(votes))]


def determine_average_priority(votes: list[AgentPriority]) -> AgentPriority:
    """Round the mean priority rank back to a priority (no votes -> minor)."""
    if not votes:
        return AgentPriority.MINOR
    avg = sum(PRIORITY_RANK[v] for v in votes) / len(votes)
    if avg < 0.5:
        return AgentPriority.CRITICAL
    if avg < 1.5:
        return AgentPriority.IMPORTANT
    return AgentPriority.MINOR


def aggregate_priorities(analyses: list[AgentAnalysis]) -> list[AggregatedPriority]:
    votes_by_finding: dict[str, dict[AgentType, AgentPriority]] = {}
    for analysis in analyses:
        for issue in analysis.prioritized_issues:
            votes_by_finding.setdefault(issue.finding_id, {})[analysis.agent] = issue.agent_priority

    aggregated: list[AggregatedPriority] = []
    for finding_id, votes in votes_by_finding.items():
        values = list(votes.values())
        aggregated.append(AggregatedPriority(
            finding_id=finding_id,
            votes=votes,
            consensus_level=determine_consensus_level(values),
            average_priority=determine_average_priority(values),
        ))
    return aggregated


def synthesize_agent_responses(analyses: list[AgentAnalysis]) -> SynthesizedResult:
    """Reduce independent agent analyses into consensus, debates and priority votes."""
    return SynthesizedResult(
        agent_analyses=analyses,
        consensus_points=find_consensus_points(analyses),
        debate_points=find_debate_points(analyses),
        aggregated_priorities=aggregate_priorities(analyses),
    )


def parse_agent_response(text: str | None) -> ParseResult[AgentAnalysis]:
    """Parse an agent's analysis JSON from potentially noisy LLM output."""
    if not text or not isinstance(text, str):
        return ParseResult.failure("No response provided")
    match = _JSON_OBJECT_RE.search(text)
    if not match:
        return ParseResult.failure("No JSON found in agent response")
    try:
        raw = json.loads(match.group(0))
    except json.JSONDecodeError:
        return ParseResult.failure("Invalid JSON in agent response")
    if not isinstance(raw, dict) or not raw.get("agent") or raw.get("findings") is None:
        return ParseResult.failure("Agent response missing 'agent' or 'findings'")
    try:
        return ParseResult.success(AgentAnalysis.model_validate(raw))
    except ValidationError as exc:
        return ParseResult.failure(f"Agent response failed validation: {exc.error_count()} error(s)")
