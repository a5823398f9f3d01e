"""State machine for agenda items and the session cursor."""

from __future__ import annotations

import enum

from party_review.models import AgendaItem, DiscussionRound, DiscussionSession


class ItemStatus(str, enum.Enum):
    PENDING = "pending"
    SKIPPED = "skipped"
    DECIDED = "decided"


# Valid transitions: from_status -> set of allowed to_statuses
TRANSITIONS: dict[ItemStatus, set[ItemStatus]] = {
    ItemStatus.PENDING: {ItemStatus.SKIPPED, ItemStatus.DECIDED},
    ItemStatus.SKIPPED: {ItemStatus.DECIDED},
    ItemStatus.DECIDED: {ItemStatus.DECIDED},
}


class InvalidTransitionError(Exception):
    def __init__(self, from_status: ItemStatus, to_status: ItemStatus) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid transition: {from_status.value} -> {to_status.value}"
        )


def item_status(item: AgendaItem) -> ItemStatus:
    if item.round is not None:
        return ItemStatus.DECIDED
    if item.discussed:
        return ItemStatus.SKIPPED
    return ItemStatus.PENDING


def can_transition(item: AgendaItem, to: ItemStatus) -> bool:
    return to in TRANSITIONS.get(item_status(item), set())


def transition(item: AgendaItem, to: ItemStatus, round_: DiscussionRound | None = None) -> AgendaItem:
    """Transition an agenda item. Raises InvalidTransitionError if not allowed."""
    if not can_transition(item, to):
        raise InvalidTransitionError(item_status(item), to)
    if to == ItemStatus.DECIDED and round_ is None:
        raise ValueError("a decided item needs a round")
    item.discussed = True
    if to == ItemStatus.DECIDED:
        item.round = round_
    return item


def mark_decided(item: AgendaItem, round_: DiscussionRound) -> AgendaItem:
    return transition(item, ItemStatus.DECIDED, round_)


def mark_skipped(item: AgendaItem) -> AgendaItem:
    return transition(item, ItemStatus.SKIPPED)


def next_pending_index(agenda: list[AgendaItem]) -> int:
    """Index of the first undiscussed item, or len(agenda) when all are done."""
    for i, item in enumerate(agenda):
        if not item.discussed:
            return i
    return len(agenda)


def sync_cursor(session: DiscussionSession) -> int:
    session.current_item_index = next_pending_index(session.agenda)
    return session.current_item_index


def is_complete(session: DiscussionSession) -> bool:
    return session.current_item_index >= len(session.agenda)
