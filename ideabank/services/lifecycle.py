"""Idea status state machine.

Closed set of states plus an explicit transition table. Preconditions that
depend on related rows (chapter, drafts, publish results) are checked here
against the loaded idea so that every caller gets the same rules.
"""

from ideabank.db.models import ContentLifecycle, Idea, IdeaStatus
from ideabank.exceptions import InvalidTransitionError

TRANSITIONS: dict[IdeaStatus, frozenset[IdeaStatus]] = {
    IdeaStatus.NEW: frozenset({IdeaStatus.ORGANIZING, IdeaStatus.ON_HOLD}),
    IdeaStatus.ON_HOLD: frozenset({IdeaStatus.ORGANIZING, IdeaStatus.NEW}),
    IdeaStatus.ORGANIZING: frozenset({IdeaStatus.IN_CREATION, IdeaStatus.ON_HOLD}),
    IdeaStatus.IN_CREATION: frozenset({IdeaStatus.USED, IdeaStatus.ORGANIZING}),
    IdeaStatus.USED: frozenset({IdeaStatus.ARCHIVED}),
    IdeaStatus.ARCHIVED: frozenset(),
}

# Emoji labels used in hand-kept trackers
STATUS_EMOJI = {
    IdeaStatus.NEW: "🔵",
    IdeaStatus.ON_HOLD: "⏸️",
    IdeaStatus.ORGANIZING: "🟡",
    IdeaStatus.IN_CREATION: "🟠",
    IdeaStatus.USED: "🟢",
    IdeaStatus.ARCHIVED: "⚪️",
}

STATUS_LABELS = {
    IdeaStatus.NEW: "New",
    IdeaStatus.ON_HOLD: "On hold",
    IdeaStatus.ORGANIZING: "Organizing",
    IdeaStatus.IN_CREATION: "In creation",
    IdeaStatus.USED: "Used",
    IdeaStatus.ARCHIVED: "Archived",
}


def parse_status(value: str) -> IdeaStatus:
    """Parse a status name, accepting enum values and display labels."""
    normalized = value.strip().lower().replace(" ", "_").replace("-", "_")
    for status in IdeaStatus:
        if normalized in (status.value, status.name.lower()):
            return status
    raise ValueError(f"Unknown status: {value}")


def is_allowed(current: IdeaStatus, target: IdeaStatus) -> bool:
    """Whether the table permits current -> target."""
    return target in TRANSITIONS[current]


def pending_contents(idea: Idea) -> list:
    """Entries still holding the idea back from Used.

    A failed entry stops counting once a redraft has replaced it.
    """
    replaced = {c.retry_of_id for c in idea.contents if c.retry_of_id is not None}
    return [c for c in idea.contents if not c.is_settled and c.id not in replaced]


def all_settled(idea: Idea) -> bool:
    """Every derived entry is posted, waived or replaced by a redraft."""
    return not pending_contents(idea)


def check_transition(idea: Idea, target: IdeaStatus) -> IdeaStatus:
    """Validate a move and return the current status.

    Raises:
        InvalidTransitionError: the edge is not in the table or a
            precondition of the target state is not met.
    """
    current = IdeaStatus(idea.status)
    if not is_allowed(current, target):
        raise InvalidTransitionError(
            f"Idea {idea.id}: {current.value} -> {target.value} is not allowed",
            current=current.value,
            target=target.value,
        )

    if target == IdeaStatus.ORGANIZING and idea.chapter_id is None:
        raise InvalidTransitionError(
            f"Idea {idea.id}: a chapter must be assigned before organizing",
            current=current.value,
            target=target.value,
        )

    if target == IdeaStatus.IN_CREATION and not any(
        c.lifecycle == ContentLifecycle.DRAFTED.value for c in idea.contents
    ):
        raise InvalidTransitionError(
            f"Idea {idea.id}: at least one drafted content entry is required",
            current=current.value,
            target=target.value,
        )

    if target == IdeaStatus.USED and not all_settled(idea):
        pending = [c.id for c in pending_contents(idea)]
        raise InvalidTransitionError(
            f"Idea {idea.id}: content entries {pending} are neither posted nor waived",
            current=current.value,
            target=target.value,
        )

    return current
