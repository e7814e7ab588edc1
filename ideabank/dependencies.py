"""FastAPI dependencies for the coordinator and the publisher."""

from typing import Annotated, Optional

from fastapi import Depends

from ideabank.channels import load_channel_configs
from ideabank.db.connection import get_session_factory
from ideabank.services.coordinator import IdeaCoordinator
from ideabank.services.publisher import PublishScheduler

_coordinator: Optional[IdeaCoordinator] = None
_publisher: Optional[PublishScheduler] = None


def get_coordinator() -> IdeaCoordinator:
    """Process-wide coordinator (created on first use)."""
    global _coordinator
    if _coordinator is None:
        _coordinator = IdeaCoordinator(get_session_factory(), load_channel_configs())
    return _coordinator


def set_publisher(publisher: Optional[PublishScheduler]) -> None:
    global _publisher
    _publisher = publisher


def get_publisher() -> Optional[PublishScheduler]:
    """Running publisher, or None when PUBLISHER_ENABLED is off."""
    return _publisher


CoordinatorDep = Annotated[IdeaCoordinator, Depends(get_coordinator)]
PublisherDep = Annotated[Optional[PublishScheduler], Depends(get_publisher)]
