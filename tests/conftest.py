"""Shared fixtures for Party Review tests."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from party_review.discussion import DiscussionEngine
from party_review.models import (
    AgentAnalysis,
    AgentFindings,
    AgentPriority,
    AgentType,
    Finding,
    FindingCategory,
    FindingSeverity,
    PrioritizedIssue,
)
from party_review.personas import BUILTIN_PERSONAS
from party_review.session_store import SessionStore


@pytest.fixture(autouse=True)
def _isolate_project_dir(tmp_path, monkeypatch):
    """Keep persona discovery away from the real working directory."""
    monkeypatch.chdir(tmp_path)


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> SessionStore:
    return SessionStore(clock=clock)


@pytest.fixture
def engine(store, tmp_path) -> DiscussionEngine:
    return DiscussionEngine(store=store, project_dir=tmp_path, persona_loader=lambda _: dict(BUILTIN_PERSONAS))


@pytest.fixture
def phase1_json() -> str:
    return json.dumps({
        "scope": "story",
        "identifier": "1-2-login",
        "findings": {"total": 3, "high": 1, "medium": 1, "low": 1},
        "oracleAnalysis": "Review notes:\n[HIGH] Missing auth check\n[MEDIUM] Long function",
    })


@pytest.fixture
def phase2_json() -> str:
    return json.dumps({
        "identifier": "1-2-login",
        "agentAnalyses": [],
        "consensusPoints": [],
        "debatePoints": [
            {
                "topic": "Caching strategy",
                "positions": [
                    {"agent": "architect", "position": "Use a shared cache"},
                    {"agent": "dev", "position": "Keep it in-process for now"},
                ],
            },
        ],
        "aggregatedPriorities": [],
    })


@pytest.fixture
def sample_findings() -> list[Finding]:
    return [
        Finding(id="sec-1", title="SQL injection in search", category=FindingCategory.SECURITY),
        Finding(id="perf-1", title="N+1 query on dashboard", category=FindingCategory.PERFORMANCE),
        Finding(
            id="bp-1",
            title="Missing tests",
            category=FindingCategory.BEST_PRACTICES,
            severity=FindingSeverity.MEDIUM,
        ),
    ]


@pytest.fixture
def make_analysis():
    def _make(agent: AgentType, *issues: tuple[str, AgentPriority], **findings) -> AgentAnalysis:
        return AgentAnalysis(
            agent=agent,
            perspective=agent.value,
            findings=AgentFindings(**findings),
            prioritized_issues=[
                PrioritizedIssue(finding_id=fid, agent_priority=priority, rationale=f"{agent.value} view")
                for fid, priority in issues
            ],
            summary=f"{agent.value} summary",
        )

    return _make
