"""Durable, strictly increasing idea id allocation."""

import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ideabank.db.models import IdCounter
from ideabank.exceptions import AllocationError

logger = logging.getLogger(__name__)


class IdAllocator:
    """Issues ids from a durable counter row.

    Each call runs in its own committed transaction, so the watermark is on
    disk before the id is handed out. A failed commit issues nothing; an id
    that was committed but never used by its capture is simply skipped.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], sequence: str = "idea"):
        self._session_factory = session_factory
        self.sequence = sequence
        self._lock = asyncio.Lock()
        self._last_issued = 0

    async def allocate(self) -> int:
        """Return an id strictly greater than every id issued before.

        Raises:
            AllocationError: if the increment could not be persisted.
        """
        async with self._lock:
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        counter = await session.get(IdCounter, self.sequence, with_for_update=True)
                        if counter is None:
                            counter = IdCounter(name=self.sequence, value=0)
                            session.add(counter)
                        counter.value = (counter.value or 0) + 1
                        value = counter.value
            except SQLAlchemyError as e:
                logger.error(f"Id allocation failed for sequence '{self.sequence}': {e}")
                raise AllocationError(f"Could not persist id watermark: {e}") from e

            if value <= self._last_issued:
                # Counter row moved backwards (restored from an old backup)
                raise AllocationError(
                    f"Counter '{self.sequence}' regressed to {value}, last issued {self._last_issued}"
                )
            self._last_issued = value
            logger.debug(f"Allocated id {value} from '{self.sequence}'")
            return value

    async def watermark(self) -> int:
        """Highest id issued so far (0 if none)."""
        async with self._session_factory() as session:
            counter = await session.get(IdCounter, self.sequence)
            return counter.value if counter else 0
