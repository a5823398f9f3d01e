"""FastMCP tool definitions for Party Review."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastmcp import FastMCP

if TYPE_CHECKING:
    from party_review.discussion import DiscussionEngine

mcp = FastMCP(
    "party-review",
    instructions="Multi-agent discussion of code review findings, one agenda item at a time",
)

# Will be set by server.py at startup
_engine: DiscussionEngine | None = None


def set_engine(engine: DiscussionEngine) -> None:
    global _engine
    _engine = engine


def _get_engine() -> DiscussionEngine:
    if _engine is None:
        raise RuntimeError("DiscussionEngine not initialized")
    return _engine


@mcp.tool()
async def party_discussion(
    action: str,
    session_id: str | None = None,
    phase1_result: str | None = None,
    phase2_result: str | None = None,
    finding_id: str | None = None,
    decision: str | None = None,
    reason: str | None = None,
    deferred_to: str | None = None,
) -> dict:
    """Run a party-mode discussion over review findings.

    action: start (phase1_result, optional phase2_result as raw JSON strings),
    continue (session_id), decide (session_id, finding_id, decision of
    accept/defer/reject, optional reason and deferred_to story id),
    skip (session_id, finding_id), end (session_id).
    """
    args = {
        "action": action,
        "session_id": session_id,
        "phase1_result": phase1_result,
        "phase2_result": phase2_result,
        "finding_id": finding_id,
        "decision": decision,
        "reason": reason,
        "deferred_to": deferred_to,
    }
    result = await _get_engine().handle({k: v for k, v in args.items() if v is not None})
    return result.to_payload()
