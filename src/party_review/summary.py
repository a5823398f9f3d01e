"""Decision summary for a discussion session."""

from __future__ import annotations

from party_review.models import (
    DecisionCounts,
    DiscussionSession,
    DiscussionSummary,
    ReviewDecision,
    StoryUpdate,
)

# Decision -> DecisionCounts field it increments
_DECISION_FIELDS: dict[ReviewDecision, str] = {
    ReviewDecision.ACCEPT: "accepted",
    ReviewDecision.DEFER: "deferred",
    ReviewDecision.REJECT: "rejected",
}


def calculate_summary(session: DiscussionSession) -> DiscussionSummary:
    """Tally decisions and collect per-story follow-ups for deferred findings.

    Items without a round (never reached, or skipped) count as pending, so the
    four counts always add up to the agenda length.
    """
    counts = DecisionCounts()
    story_updates: dict[str, list[str]] = {}

    for round_ in session.completed_rounds:
        field = _DECISION_FIELDS[round_.decision]
        setattr(counts, field, getattr(counts, field) + 1)
        if round_.decision == ReviewDecision.DEFER and round_.deferred_to:
            story_updates.setdefault(round_.deferred_to, []).append(f"Deferred: {round_.finding_title}")

    counts.pending = sum(1 for item in session.agenda if item.round is None)

    return DiscussionSummary(
        total_discussed=len(session.completed_rounds),
        decisions=counts,
        story_updates_needed=[
            StoryUpdate(story_id=story_id, additions=additions)
            for story_id, additions in story_updates.items()
        ],
    )
