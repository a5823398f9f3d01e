"""Agent persona loading from BMAD ``*.agent.yaml`` files, plus agent selection."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from party_review.models import AgentType, FindingCategory, FindingSeverity, Persona

logger = logging.getLogger(__name__)

KNOWN_AGENT_DIRS: tuple[str, ...] = (
    "_bmad/bmm/agents",
    "src/modules/bmm/agents",
    ".bmad/bmm/agents",
    "bmad/bmm/agents",
)

AGENT_FILE_SUFFIX = ".agent.yaml"

MAX_RELEVANT_AGENTS = 4

BUILTIN_PERSONAS: dict[AgentType, Persona] = {
    AgentType.ARCHITECT: Persona(
        type=AgentType.ARCHITECT,
        name="Winston",
        title="System Architect",
        icon="🏗️",
        expertise=["system design", "scalability", "security architecture"],
        perspective="architecture",
        identity="Senior architect balancing long-term structure against delivery pressure.",
        communication_style="Calm and pragmatic, grounds opinions in trade-offs.",
        principles=["Favor boring technology that works", "Design for the failure case"],
    ),
    AgentType.DEV: Persona(
        type=AgentType.DEV,
        name="Amelia",
        title="Developer Agent",
        icon="💻",
        expertise=["implementation", "code quality", "debugging"],
        perspective="implementation",
        identity="Hands-on engineer who has to make the change work.",
        communication_style="Terse and concrete, cites files and code paths.",
        principles=["Working code over clever code", "Every change ships with tests"],
    ),
    AgentType.TEA: Persona(
        type=AgentType.TEA,
        name="Murat",
        title="Master Test Architect",
        icon="🧪",
        expertise=["test strategy", "quality gates", "risk-based testing"],
        perspective="testing",
        identity="Test architect who asks how we would know it broke.",
        communication_style="Data-driven, frames issues as risk.",
        principles=["Test at the level where the risk lives", "Flaky tests are bugs"],
    ),
    AgentType.PM: Persona(
        type=AgentType.PM,
        name="John",
        title="Product Manager",
        icon="📋",
        expertise=["prioritization", "business impact", "scope"],
        perspective="product",
        identity="Product manager accountable for what users actually get.",
        communication_style="Direct, keeps asking why it matters to users.",
        principles=["Ship value early", "Scope is a decision, not an accident"],
    ),
    AgentType.ANALYST: Persona(
        type=AgentType.ANALYST,
        name="Mary",
        title="Business Analyst",
        icon="📊",
        expertise=["requirements", "domain analysis", "edge cases"],
        perspective="requirements",
        identity="Analyst who traces every gap back to a missing requirement.",
        communication_style="Curious and structured, asks clarifying questions.",
        principles=["Every business challenge has root causes waiting to be discovered"],
    ),
    AgentType.UX_DESIGNER: Persona(
        type=AgentType.UX_DESIGNER,
        name="Sally",
        title="UX Designer",
        icon="🎨",
        expertise=["user experience", "accessibility", "interaction design"],
        perspective="user experience",
        identity="Designer speaking for the people who use the product.",
        communication_style="Empathetic, illustrates with user scenarios.",
        principles=["Accessibility is not optional"],
    ),
    AgentType.TECH_WRITER: Persona(
        type=AgentType.TECH_WRITER,
        name="Paige",
        title="Technical Writer",
        icon="📚",
        expertise=["documentation", "API reference", "clarity"],
        perspective="documentation",
        identity="Writer who makes sure the next engineer can follow along.",
        communication_style="Precise and plain-spoken.",
        principles=["If it is not written down it does not exist"],
    ),
    AgentType.SM: Persona(
        type=AgentType.SM,
        name="Bob",
        title="Scrum Master",
        icon="🏃",
        expertise=["process", "sprint planning", "dependencies"],
        perspective="process",
        identity="Scrum master keeping the sprint honest.",
        communication_style="Brief, focuses on next actions and owners.",
        principles=["Make work visible", "Limit work in progress"],
    ),
}

# Relevant agents per finding category, in speaking order
CATEGORY_AGENTS: dict[FindingCategory, tuple[AgentType, ...]] = {
    FindingCategory.SECURITY: (AgentType.ARCHITECT, AgentType.DEV, AgentType.TEA),
    FindingCategory.LOGIC: (AgentType.DEV, AgentType.TEA, AgentType.ANALYST),
    FindingCategory.PERFORMANCE: (AgentType.ARCHITECT, AgentType.DEV),
    FindingCategory.BEST_PRACTICES: (AgentType.DEV, AgentType.TECH_WRITER),
}

DEFAULT_AGENTS: tuple[AgentType, ...] = (AgentType.DEV, AgentType.ARCHITECT)


def select_agents_for_finding(
    category: FindingCategory | str, severity: FindingSeverity | str,
) -> list[AgentType]:
    """Choose which agents weigh in on a finding."""
    try:
        agents = list(CATEGORY_AGENTS[FindingCategory(category)])
    except ValueError:
        agents = list(DEFAULT_AGENTS)

    if severity == FindingSeverity.HIGH and AgentType.PM not in agents:
        agents.append(AgentType.PM)

    return agents[:MAX_RELEVANT_AGENTS]


def filename_to_agent_type(path: str | Path) -> AgentType | None:
    """Map ``dev.agent.yaml`` (or a path ending in it) to its agent type."""
    name = Path(path).name
    if not name.endswith(AGENT_FILE_SUFFIX):
        return None
    try:
        return AgentType(name[: -len(AGENT_FILE_SUFFIX)])
    except ValueError:
        return None


def parse_principles(text: str | list | None) -> list[str]:
    """Split a principles block (``- item`` lines or a YAML list) into items."""
    if not text:
        return []
    lines = text if isinstance(text, list) else text.splitlines()
    principles = []
    for line in lines:
        item = str(line).strip().removeprefix("-").strip()
        if item:
            principles.append(item)
    return principles


def parse_agent_yaml(path: str | Path) -> Persona | None:
    """Read one BMAD agent file, filling missing fields from the built-in persona."""
    agent_type = filename_to_agent_type(path)
    if agent_type is None:
        return None

    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    agent = raw.get("agent") or {}
    metadata = agent.get("metadata") or {}
    persona = agent.get("persona") or {}
    fallback = BUILTIN_PERSONAS[agent_type]

    return Persona(
        type=agent_type,
        name=metadata.get("name") or fallback.name,
        title=metadata.get("title") or fallback.title,
        icon=metadata.get("icon") or fallback.icon,
        expertise=fallback.expertise,
        perspective=persona.get("role") or fallback.perspective,
        identity=persona.get("identity") or fallback.identity,
        communication_style=persona.get("communication_style") or fallback.communication_style,
        principles=parse_principles(persona.get("principles")) or fallback.principles,
    )


def find_agent_files(project_dir: str | Path) -> list[Path]:
    """Return agent files from the first known agent directory that has any."""
    root = Path(project_dir)
    for known in KNOWN_AGENT_DIRS:
        agent_dir = root / known
        if not agent_dir.is_dir():
            continue
        files = sorted(agent_dir.rglob(f"*{AGENT_FILE_SUFFIX}"))
        if files:
            return files
    return []


def load_from_yaml_files(paths: list[Path]) -> dict[AgentType, Persona]:
    personas: dict[AgentType, Persona] = {}
    for path in paths:
        try:
            persona = parse_agent_yaml(path)
        except (OSError, ValueError, AttributeError, yaml.YAMLError) as exc:
            logger.warning("Skipping unreadable agent file %s: %s", path, exc)
            continue
        if persona is not None:
            personas[persona.type] = persona
    return personas


def load_personas(project_dir: str | Path) -> dict[AgentType, Persona]:
    """Built-in personas overlaid with any agent files found in the project."""
    personas = dict(BUILTIN_PERSONAS)
    personas.update(load_from_yaml_files(find_agent_files(project_dir)))
    return personas


def get_persona(personas: dict[AgentType, Persona], agent_type: AgentType) -> Persona:
    return personas.get(agent_type) or BUILTIN_PERSONAS[agent_type]
