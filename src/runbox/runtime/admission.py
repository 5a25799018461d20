"""AdmissionGate: bounds the number of sandboxes allocated at once."""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType

logger = logging.getLogger(__name__)


class AdmissionGate:
    """Async semaphore that counts in-flight executions.

    Every ``execute()`` holds one slot for the lifetime of its sandbox;
    callers beyond the limit wait (in FIFO order) for a slot to free up.
    """

    def __init__(self, limit: int) -> None:
        if limit < 1:
            msg = "admission limit must be at least 1"
            raise ValueError(msg)
        self._limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._in_flight = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def __aenter__(self) -> AdmissionGate:
        if self._semaphore.locked():
            logger.info("Admission gate full (%d in flight); waiting for a slot", self._in_flight)
        await self._semaphore.acquire()
        self._in_flight += 1
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._in_flight -= 1
        self._semaphore.release()
