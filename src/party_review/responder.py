"""Simulated in-character agent reactions to one agenda item."""

from __future__ import annotations

import re

from party_review.models import (
    AgendaItem,
    AgentDiscussionResponse,
    AgentReference,
    AgentType,
    FindingSeverity,
    Persona,
    ReferenceType,
)
from party_review.personas import get_persona

_INTROS: dict[AgentType, str] = {
    AgentType.ARCHITECT: 'From an architecture perspective on "{topic}":',
    AgentType.DEV: 'Looking at implementation for "{topic}":',
    AgentType.TEA: 'From a testing standpoint on "{topic}":',
    AgentType.PM: 'Considering business impact of "{topic}":',
    AgentType.ANALYST: 'Analyzing requirements around "{topic}":',
    AgentType.UX_DESIGNER: 'From a user experience view on "{topic}":',
    AgentType.TECH_WRITER: 'Regarding documentation for "{topic}":',
    AgentType.SM: 'From a process perspective on "{topic}":',
}

COLLABORATIVE_TYPES = frozenset({AgentType.ARCHITECT, AgentType.PM, AgentType.ANALYST})

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_MIN_KEY_POINT_LENGTH = 10
_MAX_KEY_POINTS = 2


def response_intro(persona: Persona, item: AgendaItem) -> str:
    return _INTROS[persona.type].format(topic=item.topic)


def default_position(item: AgendaItem) -> str:
    if item.severity == FindingSeverity.HIGH:
        return (
            f"This is a {item.severity.value} severity {item.category.value} issue "
            "that needs attention before we proceed."
        )
    return f"This {item.category.value} concern should be addressed to maintain quality."


def cross_talk(persona: Persona, previous: list[AgentDiscussionResponse]) -> str:
    if not previous or persona.type not in COLLABORATIVE_TYPES:
        return ""
    last = previous[-1]
    return f" Building on {last.agent_name}'s point, I'd add that we should prioritize this appropriately."


def extract_references(response: str, previous: list[AgentDiscussionResponse]) -> list[AgentReference]:
    """Classify how a response relates to earlier responders it names."""
    lower = response.lower()
    if "disagree" in lower:
        kind = ReferenceType.DISAGREES
    elif "building on" in lower:
        kind = ReferenceType.BUILDS_ON
    else:
        kind = ReferenceType.AGREES
    return [AgentReference(agent=prev.agent, type=kind) for prev in previous if prev.agent_name in response]


def extract_key_points(response: str) -> list[str]:
    sentences = [s.strip() for s in _SENTENCE_SPLIT_RE.split(response)]
    return [s for s in sentences if len(s) > _MIN_KEY_POINT_LENGTH][:_MAX_KEY_POINTS]


def generate_agent_responses(
    item: AgendaItem,
    personas: dict[AgentType, Persona],
    agent_summaries: dict[AgentType, str] | None = None,
) -> list[AgentDiscussionResponse]:
    """Voice each relevant agent in turn; later speakers may build on earlier ones."""
    summaries = agent_summaries or {}
    responses: list[AgentDiscussionResponse] = []

    for agent_type in item.relevant_agents:
        persona = get_persona(personas, agent_type)
        body = item.agent_positions.get(agent_type) or summaries.get(agent_type) or default_position(item)
        text = f"{response_intro(persona, item)} {body}{cross_talk(persona, responses)}"

        responses.append(AgentDiscussionResponse(
            agent=agent_type,
            agent_name=persona.name,
            icon=persona.icon,
            response=text,
            references=extract_references(text, responses),
            key_points=extract_key_points(text),
        ))

    return responses
