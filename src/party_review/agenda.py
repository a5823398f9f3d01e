"""Agenda building: high-severity findings first, then unresolved agent debates."""

from __future__ import annotations

from party_review.models import (
    AgendaItem,
    AgendaItemType,
    AgentType,
    Finding,
    FindingCategory,
    FindingSeverity,
    SynthesizedResult,
)
from party_review.personas import select_agents_for_finding


def get_agent_positions_for_finding(
    finding_id: str,
    relevant_agents: list[AgentType],
    synthesized: SynthesizedResult | None,
) -> dict[AgentType, str]:
    """Seed each relevant agent's position from its prioritized issue or first concern."""
    if synthesized is None:
        return {}

    needle = finding_id.lower()
    positions: dict[AgentType, str] = {}
    for analysis in synthesized.agent_analyses:
        if analysis.agent not in relevant_agents or analysis.agent in positions:
            continue
        prioritized = next(
            (p for p in analysis.prioritized_issues if needle in p.finding_id.lower()),
            None,
        )
        if prioritized is not None:
            positions[analysis.agent] = f"{prioritized.agent_priority.value}: {prioritized.rationale}"
        elif analysis.findings.concerns:
            positions[analysis.agent] = analysis.findings.concerns[0]
    return positions


def build_agenda(findings: list[Finding], synthesized: SynthesizedResult | None = None) -> list[AgendaItem]:
    agenda: list[AgendaItem] = []

    for finding in findings:
        relevant = select_agents_for_finding(finding.category, finding.severity)
        agenda.append(AgendaItem(
            id=f"agenda-{finding.id}",
            finding_id=finding.id,
            topic=finding.title,
            type=AgendaItemType.HIGH_SEVERITY,
            severity=finding.severity,
            category=finding.category,
            relevant_agents=relevant,
            agent_positions=get_agent_positions_for_finding(finding.id, relevant, synthesized),
        ))

    if synthesized is None:
        return agenda

    for debate in synthesized.debate_points:
        if any(item.topic == debate.topic for item in agenda):
            continue
        n = len(agenda)
        agenda.append(AgendaItem(
            id=f"agenda-debate-{n}",
            finding_id=f"debate-{n}",
            topic=debate.topic,
            type=AgendaItemType.DISPUTED,
            severity=FindingSeverity.MEDIUM,
            category=FindingCategory.LOGIC,
            relevant_agents=[p.agent for p in debate.positions],
            agent_positions={p.agent: p.position for p in debate.positions},
        ))

    return agenda
