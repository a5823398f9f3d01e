"""Tests for the discussion engine protocol."""

import json

import pytest

from party_review.discussion import DiscussionEngine, parse_phase_json, synthesize_phase2
from party_review.models import (
    AgendaItemType,
    AgentPriority,
    AgentType,
    DiscussionArgs,
    DiscussionSession,
    Phase1Result,
    Phase2Result,
    ReviewDecision,
)
from party_review.personas import BUILTIN_PERSONAS
from party_review.session_store import SessionStore


async def _start(engine, phase1_json, phase2_json=None):
    args = {"action": "start", "phase1Result": phase1_json}
    if phase2_json is not None:
        args["phase2Result"] = phase2_json
    result = await engine.handle(args)
    assert result.success, result.error
    return result


class TestStart:
    @pytest.mark.asyncio
    async def test_builds_agenda_from_both_phases(self, engine, phase1_json, phase2_json):
        result = await _start(engine, phase1_json, phase2_json)
        session = result.state

        assert [item.type for item in session.agenda] == [AgendaItemType.HIGH_SEVERITY, AgendaItemType.DISPUTED]
        assert [item.finding_id for item in session.agenda] == ["high-1", "debate-1"]
        assert session.agenda[0].topic == "Missing auth check"
        assert session.identifier == "1-2-login"
        assert session.scope == "story"
        assert session.active_agents == [AgentType.ARCHITECT, AgentType.DEV, AgentType.TEA, AgentType.PM]
        assert session.phase2_summary.consensus_count == 0
        assert session.phase2_summary.dispute_count == 1
        assert session.phase1_summary.high == 1

        assert result.has_more_items is True
        assert result.current_item.id == "agenda-high-1"
        assert [r.agent for r in result.current_responses] == session.agenda[0].relevant_agents
        assert result.session_id in engine.store

    @pytest.mark.asyncio
    async def test_single_item_has_no_more(self, engine, phase1_json):
        result = await _start(engine, phase1_json)
        assert len(result.state.agenda) == 1
        assert result.has_more_items is False
        assert result.state.phase2_summary is None

    @pytest.mark.asyncio
    async def test_placeholders_without_oracle(self, engine):
        phase1 = json.dumps({"identifier": "x", "findings": {"total": 2, "high": 2}})
        result = await _start(engine, phase1)
        assert [item.topic for item in result.state.agenda] == [
            "High severity finding 1", "High severity finding 2",
        ]

    @pytest.mark.asyncio
    async def test_empty_agenda(self, engine):
        result = await _start(engine, json.dumps({"findings": {"total": 0, "high": 0}}))
        assert result.state.agenda == []
        assert result.current_item is None
        assert result.current_responses is None
        assert result.has_more_items is False

    @pytest.mark.asyncio
    async def test_session_ids_are_unique(self, engine, phase1_json):
        first = await _start(engine, phase1_json)
        second = await _start(engine, phase1_json)
        assert first.session_id != second.session_id
        assert len(engine.store) == 2

    @pytest.mark.asyncio
    async def test_plain_string_consensus_points(self, engine, phase1_json):
        phase2 = json.dumps({"consensusPoints": ["Auth approach agreed"], "debatePoints": []})
        result = await _start(engine, phase1_json, phase2)
        assert result.state.phase2_summary.consensus_count == 1

    @pytest.mark.asyncio
    async def test_loads_personas_from_project(self, tmp_path, phase1_json):
        agents_dir = tmp_path / "_bmad" / "bmm" / "agents"
        agents_dir.mkdir(parents=True)
        (agents_dir / "dev.agent.yaml").write_text("agent:\n  metadata:\n    name: Dana\n")
        engine = DiscussionEngine(project_dir=tmp_path)

        result = await _start(engine, phase1_json)
        names = {r.agent: r.agent_name for r in result.current_responses}
        assert names[AgentType.DEV] == "Dana"
        assert names[AgentType.ARCHITECT] == "Winston"


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_accept_then_reject(self, engine, phase1_json, phase2_json):
        started = await _start(engine, phase1_json, phase2_json)
        sid = started.session_id

        first = await engine.handle({"action": "decide", "sessionId": sid, "findingId": "high-1", "decision": "accept"})
        assert first.success
        assert first.has_more_items is True
        assert first.summary is None

        nxt = await engine.handle({"action": "continue", "sessionId": sid})
        assert nxt.current_item.finding_id == "debate-1"
        assert nxt.current_item.relevant_agents == [AgentType.ARCHITECT, AgentType.DEV]
        assert "Use a shared cache" in nxt.current_responses[0].response

        last = await engine.handle({
            "action": "decide", "sessionId": sid, "findingId": "debate-1",
            "decision": "reject", "reason": "Out of scope",
        })
        assert last.has_more_items is False
        assert last.summary.decisions.model_dump() == {"accepted": 1, "deferred": 0, "rejected": 1, "pending": 0}
        assert last.summary.total_discussed == 2

        rounds = last.state.completed_rounds
        assert [(r.finding_id, r.decision) for r in rounds] == [
            ("high-1", ReviewDecision.ACCEPT), ("debate-1", ReviewDecision.REJECT),
        ]
        assert rounds[1].decision_reason == "Out of scope"
        assert rounds[0].participants == started.state.agenda[0].relevant_agents

    @pytest.mark.asyncio
    async def test_continue_is_idempotent(self, engine, phase1_json, phase2_json):
        sid = (await _start(engine, phase1_json, phase2_json)).session_id
        first = await engine.handle({"action": "continue", "sessionId": sid})
        second = await engine.handle({"action": "continue", "sessionId": sid})
        assert first.current_item.id == second.current_item.id == "agenda-high-1"
        assert first.has_more_items is second.has_more_items is True
        assert second.state.current_item_index == 0
        assert second.state.completed_rounds == []

    @pytest.mark.asyncio
    async def test_continue_after_completion_returns_summary(self, engine, phase1_json):
        sid = (await _start(engine, phase1_json)).session_id
        await engine.handle({"action": "decide", "sessionId": sid, "findingId": "high-1", "decision": "defer",
                             "deferredTo": "2-3"})
        result = await engine.handle({"action": "continue", "sessionId": sid})
        assert result.success
        assert result.current_item is None
        assert result.has_more_items is False
        assert result.summary.story_updates_needed[0].story_id == "2-3"
        assert result.summary.story_updates_needed[0].additions == ["Deferred: Missing auth check"]

    @pytest.mark.asyncio
    async def test_redecide_replaces_round(self, engine, phase1_json, phase2_json):
        sid = (await _start(engine, phase1_json, phase2_json)).session_id
        await engine.handle({"action": "decide", "sessionId": sid, "findingId": "high-1", "decision": "accept"})
        result = await engine.handle({"action": "decide", "sessionId": sid, "findingId": "high-1", "decision": "defer"})
        assert [r.decision for r in result.state.completed_rounds] == [ReviewDecision.DEFER]
        assert result.state.agenda[0].round.decision == ReviewDecision.DEFER

    @pytest.mark.asyncio
    async def test_decide_unknown_finding_is_noop(self, engine, phase1_json, phase2_json):
        sid = (await _start(engine, phase1_json, phase2_json)).session_id
        result = await engine.handle({"action": "decide", "sessionId": sid, "findingId": "nope", "decision": "accept"})
        assert result.success
        assert result.has_more_items is True
        assert result.state.completed_rounds == []

    @pytest.mark.asyncio
    async def test_skip_everything(self, engine, phase1_json, phase2_json):
        sid = (await _start(engine, phase1_json, phase2_json)).session_id
        first = await engine.handle({"action": "skip", "sessionId": sid, "findingId": "high-1"})
        assert first.has_more_items is True
        assert first.state.current_item_index == 1

        last = await engine.handle({"action": "skip", "sessionId": sid, "findingId": "debate-1"})
        assert last.has_more_items is False
        assert last.summary.decisions.pending == 2
        assert last.state.completed_rounds == []

    @pytest.mark.asyncio
    async def test_decide_out_of_order_keeps_cursor_on_first_pending(self, engine, phase1_json, phase2_json):
        sid = (await _start(engine, phase1_json, phase2_json)).session_id
        result = await engine.handle({"action": "decide", "sessionId": sid, "findingId": "debate-1", "decision": "accept"})
        assert result.state.current_item_index == 0
        nxt = await engine.handle({"action": "continue", "sessionId": sid})
        assert nxt.current_item.finding_id == "high-1"

    @pytest.mark.asyncio
    async def test_end_removes_session(self, engine, phase1_json):
        sid = (await _start(engine, phase1_json)).session_id
        await engine.handle({"action": "decide", "sessionId": sid, "findingId": "high-1", "decision": "accept"})

        ended = await engine.handle({"action": "end", "sessionId": sid})
        assert ended.success
        assert ended.summary.decisions.accepted == 1
        assert sid not in engine.store

        again = await engine.handle({"action": "continue", "sessionId": sid})
        assert not again.success
        assert again.error == "Session not found"


class TestSessionLifetime:
    @pytest.mark.asyncio
    async def test_expired_session_not_found(self, engine, clock, phase1_json):
        sid = (await _start(engine, phase1_json)).session_id
        clock.advance(minutes=31)
        result = await engine.handle({"action": "continue", "sessionId": sid})
        assert not result.success
        assert result.error == "Session not found"
        assert result.suggestion
        assert result.session_id == sid

    @pytest.mark.asyncio
    async def test_capacity_evicts_oldest(self, clock, phase1_json):
        engine = DiscussionEngine(
            store=SessionStore(capacity=2, clock=clock), persona_loader=lambda _: dict(BUILTIN_PERSONAS),
        )
        ids = []
        for _ in range(3):
            ids.append((await _start(engine, phase1_json)).session_id)
            clock.advance(seconds=1)
        assert ids[0] not in engine.store
        assert ids[1] in engine.store and ids[2] in engine.store

    @pytest.mark.asyncio
    async def test_session_json_round_trip(self, engine, phase1_json, phase2_json):
        sid = (await _start(engine, phase1_json, phase2_json)).session_id
        result = await engine.handle({"action": "decide", "sessionId": sid, "findingId": "high-1", "decision": "accept"})
        session = result.state
        restored = DiscussionSession.model_validate_json(session.model_dump_json(by_alias=True))
        assert restored.model_dump() == session.model_dump()


class TestErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "args,message",
        [
            ({"action": "start"}, "phase1Result is required for start action"),
            ({"action": "continue"}, "sessionId is required for continue action"),
            ({"action": "decide", "sessionId": "x"}, "sessionId, findingId, and decision are required for decide action"),
            ({"action": "skip", "sessionId": "x"}, "sessionId and findingId are required for skip action"),
            ({"action": "end"}, "sessionId is required for end action"),
            ({"action": "dance"}, "Unknown action: dance"),
            ({"action": "end", "sessionId": "missing"}, "Session not found"),
        ],
    )
    async def test_failures(self, engine, args, message):
        result = await engine.handle(args)
        assert result.success is False
        assert result.error == message

    @pytest.mark.asyncio
    async def test_malformed_json(self, engine):
        result = await engine.handle({"action": "start", "phase1Result": "{oops"})
        assert not result.success
        assert result.error.startswith("Invalid JSON in phase1Result")
        assert result.suggestion

    @pytest.mark.asyncio
    async def test_missing_findings_field(self, engine):
        result = await engine.handle({"action": "start", "phase1Result": json.dumps({"scope": "story"})})
        assert result.error == "phase1Result missing required 'findings' field"

    @pytest.mark.asyncio
    async def test_bad_phase2(self, engine, phase1_json):
        result = await engine.handle({"action": "start", "phase1Result": phase1_json, "phase2Result": "[1, 2]"})
        assert not result.success
        assert result.error == "phase2Result must be a JSON object"
        assert len(engine.store) == 0

    @pytest.mark.asyncio
    async def test_invalid_decision(self, engine, phase1_json):
        sid = (await _start(engine, phase1_json)).session_id
        result = await engine.handle({"action": "decide", "sessionId": sid, "findingId": "high-1", "decision": "maybe"})
        assert not result.success
        assert "decision" in result.error

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, store, phase1_json):
        def boom(_):
            raise RuntimeError("boom")

        engine = DiscussionEngine(store=store, persona_loader=boom)
        result = await engine.handle({"action": "start", "phase1Result": phase1_json})
        assert not result.success
        assert result.error == "Internal error: boom"

    @pytest.mark.asyncio
    async def test_accepts_typed_args(self, engine, phase1_json):
        result = await engine.handle(DiscussionArgs(action="start", phase1_result=phase1_json))
        assert result.success

    @pytest.mark.asyncio
    async def test_failure_payload_shape(self, engine):
        payload = (await engine.handle({"action": "continue", "sessionId": "nope"})).to_payload()
        assert payload["success"] is False
        assert payload["sessionId"] == "nope"
        assert payload["state"] is None
        assert payload["hasMoreItems"] is False
        assert "currentItem" not in payload


class TestPhaseParsing:
    def test_parse_phase_json(self, phase1_json):
        result = parse_phase_json(phase1_json, Phase1Result, "phase1Result")
        assert result.ok
        assert result.value.oracle_analysis.startswith("Review notes")

    def test_invalid_field_reports_location(self):
        raw = json.dumps({"findings": {"high": "lots"}})
        result = parse_phase_json(raw, Phase1Result, "phase1Result")
        assert not result.ok
        assert "findings.high" in result.error

    def test_synthesize_phase2_merges_computed_points(self, make_analysis):
        phase2 = Phase2Result(
            agent_analyses=[
                make_analysis(AgentType.ARCHITECT, ("F1", AgentPriority.CRITICAL)),
                make_analysis(AgentType.DEV, ("F1", AgentPriority.MINOR)),
            ],
        )
        synthesized = synthesize_phase2(phase2)
        assert [d.topic for d in synthesized.debate_points] == ["Priority disagreement on F1"]
        assert synthesized.aggregated_priorities[0].finding_id == "F1"
