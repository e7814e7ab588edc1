"""Error taxonomy for Idea Bank.

Every error raised by the coordinator is raised inside its write
transaction, so the transaction is rolled back and no partial state is
committed.
"""


class IdeaBankError(Exception):
    """Base class for all domain errors."""


class ValidationError(IdeaBankError):
    """Malformed input: empty quote, bad tag, self link, unknown channel."""


class ArchivedIdeaError(ValidationError):
    """Attempt to mutate an idea that has been sealed."""

    def __init__(self, idea_id: int):
        super().__init__(f"Idea {idea_id} is archived and cannot be modified")
        self.idea_id = idea_id


class NotFoundError(IdeaBankError):
    """Referenced idea, content entry or alert does not exist."""


class AllocationError(IdeaBankError):
    """The durable id watermark could not be persisted. Nothing was issued."""


class InvalidTransitionError(IdeaBankError):
    """Illegal status or lifecycle move. No mutation was performed."""

    def __init__(self, message: str, current: str | None = None, target: str | None = None):
        super().__init__(message)
        self.current = current
        self.target = target


class CrossReferenceError(IdeaBankError):
    """Link to an idea id that does not exist."""


class DuplicateChannelPublishError(IdeaBankError):
    """An active entry already exists for this (idea, channel) pair."""

    def __init__(self, idea_id: int, channel: str):
        super().__init__(
            f"Idea {idea_id} already has an active or posted entry for channel '{channel}'"
        )
        self.idea_id = idea_id
        self.channel = channel


class ChannelPublishError(IdeaBankError):
    """External channel API failure. Retried by the publisher, then surfaced."""

    def __init__(self, channel: str, message: str, status_code: int | None = None):
        super().__init__(f"{channel}: {message}")
        self.channel = channel
        self.status_code = status_code
