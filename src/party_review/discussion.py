"""Discussion engine: the start/continue/decide/skip/end protocol over an agenda.

Each engine owns its ``SessionStore``. Every public call goes through
``handle`` in practice, which runs store eviction first and turns any failure
into a ``DiscussionResult`` with ``success=False``; nothing raises past it.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar
from uuid import uuid4

import pydantic

from party_review.agenda import build_agenda
from party_review.findings import extract_high_severity_findings
from party_review.models import (
    AgendaItem,
    AgentType,
    DiscussionAction,
    DiscussionArgs,
    DiscussionResult,
    DiscussionRound,
    DiscussionSession,
    ParseResult,
    Persona,
    Phase1Result,
    Phase2Result,
    Phase2Summary,
    ReviewDecision,
    SynthesizedResult,
)
from party_review.personas import load_personas
from party_review.responder import generate_agent_responses
from party_review.session_store import SessionStore
from party_review.state import is_complete, mark_decided, mark_skipped, sync_cursor
from party_review.summary import calculate_summary
from party_review.synthesis import synthesize_agent_responses

logger = logging.getLogger(__name__)

PersonaLoader = Callable[[Path], dict[AgentType, Persona]]

M = TypeVar("M", bound=pydantic.BaseModel)

_START_SUGGESTION = "Pass the raw JSON string produced by the review analysis step"
_RESTART_SUGGESTION = "The session may have expired; start a new discussion with action 'start'"


class DiscussionError(Exception):
    def __init__(self, message: str, suggestion: str | None = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)


class ValidationError(DiscussionError):
    """Missing arguments for an action, or malformed phase input."""


class SessionNotFound(DiscussionError):
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__("Session not found", suggestion=_RESTART_SUGGESTION)


def parse_phase_json(raw: str, model: type[M], field: str) -> ParseResult[M]:
    """Decode a JSON-encoded phase result string into its model."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        return ParseResult.failure(f"Invalid JSON in {field}: {exc}")
    if not isinstance(data, dict):
        return ParseResult.failure(f"{field} must be a JSON object")
    if model is Phase1Result and "findings" not in data:
        return ParseResult.failure(f"{field} missing required 'findings' field")
    try:
        return ParseResult.success(model.model_validate(data))
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        return ParseResult.failure(f"{field} is invalid at '{location}': {first['msg']}")


def _merge_by_topic(precomputed: list[M], computed: list[M]) -> list[M]:
    seen = {point.topic for point in precomputed}
    merged = list(precomputed)
    for point in computed:
        if point.topic not in seen:
            seen.add(point.topic)
            merged.append(point)
    return merged


def synthesize_phase2(phase2: Phase2Result) -> SynthesizedResult:
    """Combine upstream phase 2 points with those synthesized from its agent analyses."""
    computed = synthesize_agent_responses(phase2.agent_analyses)
    return SynthesizedResult(
        agent_analyses=phase2.agent_analyses,
        consensus_points=_merge_by_topic(phase2.consensus_points, computed.consensus_points),
        debate_points=_merge_by_topic(phase2.debate_points, computed.debate_points),
        aggregated_priorities=phase2.aggregated_priorities or computed.aggregated_priorities,
    )


def _find_item_index(session: DiscussionSession, finding_id: str) -> int | None:
    for i, item in enumerate(session.agenda):
        if item.finding_id == finding_id:
            return i
    return None


class DiscussionEngine:
    """Runs multi-turn discussion sessions held in an owned SessionStore."""

    def __init__(
        self,
        store: SessionStore | None = None,
        project_dir: str | Path | None = None,
        persona_loader: PersonaLoader = load_personas,
    ) -> None:
        self.store = store if store is not None else SessionStore()
        self.project_dir = Path(project_dir) if project_dir is not None else Path.cwd()
        self._persona_loader = persona_loader
        self._handlers: dict[DiscussionAction, Callable[[DiscussionArgs], Awaitable[DiscussionResult]]] = {
            DiscussionAction.START: self._handle_start,
            DiscussionAction.CONTINUE: self._handle_continue,
            DiscussionAction.DECIDE: self._handle_decide,
            DiscussionAction.SKIP: self._handle_skip,
            DiscussionAction.END: self._handle_end,
        }

    async def _load_personas(self) -> dict[AgentType, Persona]:
        return await asyncio.to_thread(self._persona_loader, self.project_dir)

    def _require_session(self, session_id: str) -> DiscussionSession:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle(self, args: DiscussionArgs | dict) -> DiscussionResult:
        """Run one tool call. Never raises."""
        self.store.cleanup()
        session_id = ""
        action = "unknown"
        try:
            if not isinstance(args, DiscussionArgs):
                session_id = str(args.get("sessionId") or args.get("session_id") or "")
                try:
                    args = DiscussionArgs.model_validate(args)
                except pydantic.ValidationError as exc:
                    first = exc.errors()[0]
                    if first["loc"] == ("action",) and "action" in args:
                        raise ValidationError(f"Unknown action: {args['action']}") from exc
                    field = ".".join(str(part) for part in first["loc"]) or "arguments"
                    raise ValidationError(f"Invalid '{field}': {first['msg']}") from exc
            session_id = args.session_id or ""
            action = args.action.value
            return await self._handlers[args.action](args)
        except DiscussionError as exc:
            logger.warning("Discussion %s failed: %s", action, exc.message)
            return DiscussionResult(
                success=False, session_id=session_id, error=exc.message, suggestion=exc.suggestion,
            )
        except Exception as exc:
            logger.exception("Unexpected error handling discussion %s", action)
            return DiscussionResult(success=False, session_id=session_id, error=f"Internal error: {exc}")

    async def _handle_start(self, args: DiscussionArgs) -> DiscussionResult:
        if not args.phase1_result:
            raise ValidationError("phase1Result is required for start action", suggestion=_START_SUGGESTION)
        return await self.start(args.phase1_result, args.phase2_result)

    async def _handle_continue(self, args: DiscussionArgs) -> DiscussionResult:
        if not args.session_id:
            raise ValidationError("sessionId is required for continue action")
        return await self.continue_(args.session_id)

    async def _handle_decide(self, args: DiscussionArgs) -> DiscussionResult:
        if not args.session_id or not args.finding_id or args.decision is None:
            raise ValidationError("sessionId, findingId, and decision are required for decide action")
        return self.decide(args.session_id, args.finding_id, args.decision, args.reason, args.deferred_to)

    async def _handle_skip(self, args: DiscussionArgs) -> DiscussionResult:
        if not args.session_id or not args.finding_id:
            raise ValidationError("sessionId and findingId are required for skip action")
        return self.skip(args.session_id, args.finding_id)

    async def _handle_end(self, args: DiscussionArgs) -> DiscussionResult:
        if not args.session_id:
            raise ValidationError("sessionId is required for end action")
        return self.end(args.session_id)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def create_session(self, phase1: Phase1Result, phase2: Phase2Result | None = None) -> DiscussionSession:
        """Build the agenda and register a new session in the store."""
        if phase1.oracle_analysis is None and phase1.findings.high > 0:
            logger.warning(
                "phase1Result for %s has no oracleAnalysis; using placeholder findings",
                phase1.identifier,
            )
        findings = extract_high_severity_findings(phase1)
        synthesized = synthesize_phase2(phase2) if phase2 is not None else None
        agenda = build_agenda(findings, synthesized)

        active_agents: list[AgentType] = []
        for item in agenda:
            for agent in item.relevant_agents:
                if agent not in active_agents:
                    active_agents.append(agent)

        session = DiscussionSession(
            session_id=str(uuid4()),
            scope=phase1.scope,
            identifier=phase1.identifier,
            agenda=agenda,
            active_agents=active_agents,
            phase1_summary=phase1.findings,
        )
        if synthesized is not None:
            session.phase2_summary = Phase2Summary(
                consensus_count=len(synthesized.consensus_points),
                dispute_count=len(synthesized.debate_points),
            )
            session.agent_summaries = {a.agent: a.summary for a in synthesized.agent_analyses if a.summary}

        self.store.set(session)
        return session

    async def start(self, phase1_result: str, phase2_result: str | None = None) -> DiscussionResult:
        parsed1 = parse_phase_json(phase1_result, Phase1Result, "phase1Result")
        if not parsed1.ok:
            raise ValidationError(parsed1.error, suggestion=_START_SUGGESTION)
        phase2 = None
        if phase2_result:
            parsed2 = parse_phase_json(phase2_result, Phase2Result, "phase2Result")
            if not parsed2.ok:
                raise ValidationError(parsed2.error, suggestion=_START_SUGGESTION)
            phase2 = parsed2.value

        session = self.create_session(parsed1.value, phase2)
        logger.info(
            "Discussion session %s started for %s (%d agenda items, phase2=%s)",
            session.session_id, session.identifier, len(session.agenda), phase2 is not None,
        )

        current_item = session.agenda[0] if session.agenda else None
        responses = None
        if current_item is not None:
            personas = await self._load_personas()
            responses = generate_agent_responses(current_item, personas, session.agent_summaries)

        return DiscussionResult(
            success=True,
            session_id=session.session_id,
            state=session,
            current_item=current_item,
            current_responses=responses,
            has_more_items=len(session.agenda) > 1,
        )

    async def continue_(self, session_id: str) -> DiscussionResult:
        """Present the current item. Repeating the call without a decision is a no-op."""
        session = self._require_session(session_id)

        index = session.current_item_index
        if index >= len(session.agenda) or session.agenda[index].discussed:
            sync_cursor(session)
            if is_complete(session):
                return DiscussionResult(
                    success=True,
                    session_id=session.session_id,
                    state=session,
                    has_more_items=False,
                    summary=calculate_summary(session),
                )

        item = session.agenda[session.current_item_index]
        personas = await self._load_personas()
        return DiscussionResult(
            success=True,
            session_id=session.session_id,
            state=session,
            current_item=item,
            current_responses=generate_agent_responses(item, personas, session.agent_summaries),
            has_more_items=session.current_item_index < len(session.agenda) - 1,
        )

    def _progress_result(self, session: DiscussionSession) -> DiscussionResult:
        has_more = not is_complete(session)
        return DiscussionResult(
            success=True,
            session_id=session.session_id,
            state=session,
            has_more_items=has_more,
            summary=None if has_more else calculate_summary(session),
        )

    def decide(
        self,
        session_id: str,
        finding_id: str,
        decision: ReviewDecision | str,
        reason: str | None = None,
        deferred_to: str | None = None,
    ) -> DiscussionResult:
        session = self._require_session(session_id)
        try:
            decision = ReviewDecision(decision)
        except ValueError:
            raise ValidationError(f"Unknown decision: {decision}") from None

        index = _find_item_index(session, finding_id)
        if index is None:
            logger.debug("decide: finding %s not on agenda of %s", finding_id, session_id)
            return self._progress_result(session)

        item: AgendaItem = session.agenda[index]
        previous = item.round
        round_ = DiscussionRound(
            finding_id=finding_id,
            finding_title=item.topic,
            finding_severity=item.severity,
            finding_category=item.category,
            participants=list(item.relevant_agents),
            decision=decision,
            decision_reason=reason,
            deferred_to=deferred_to,
        )
        mark_decided(item, round_)
        if previous is None:
            session.completed_rounds.append(round_)
        else:
            session.completed_rounds = [round_ if r is previous else r for r in session.completed_rounds]
        sync_cursor(session)

        logger.debug("Decision recorded: session=%s finding=%s decision=%s", session_id, finding_id, decision.value)
        return self._progress_result(session)

    def skip(self, session_id: str, finding_id: str) -> DiscussionResult:
        session = self._require_session(session_id)
        index = _find_item_index(session, finding_id)
        if index is not None and not session.agenda[index].discussed:
            mark_skipped(session.agenda[index])
            sync_cursor(session)
        return self._progress_result(session)

    def end(self, session_id: str) -> DiscussionResult:
        session = self.store.delete(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        summary = calculate_summary(session)
        logger.info(
            "Discussion session %s ended: %d discussed (%s)",
            session_id, summary.total_discussed, summary.decisions.model_dump(),
        )
        return DiscussionResult(
            success=True,
            session_id=session.session_id,
            state=session,
            has_more_items=False,
            summary=summary,
        )
