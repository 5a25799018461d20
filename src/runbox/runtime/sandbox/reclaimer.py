"""ResourceReclaimer: scoped teardown of everything one execution allocates.

Runners register a release callback for each resource *before* (or right
after) acquiring it.  Leaving the ``async with`` block runs every callback
in reverse order, whether the block returned, raised or was cancelled.
Release failures are logged and counted, never raised, so a broken cleanup
cannot replace the real classification of the run.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import Awaitable, Callable
from pathlib import Path
from types import TracebackType

logger = logging.getLogger(__name__)

ReleaseCallback = Callable[[], Awaitable[None]]


class ResourceReclaimer:
    """LIFO stack of async release callbacks with swallow-and-log semantics."""

    def __init__(self) -> None:
        self._callbacks: list[tuple[str, ReleaseCallback]] = []
        self._failures: list[str] = []

    @property
    def pending(self) -> int:
        """Number of resources registered and not yet released."""
        return len(self._callbacks)

    @property
    def failures(self) -> list[str]:
        """Labels of resources whose release raised."""
        return list(self._failures)

    def defer(self, label: str, callback: ReleaseCallback) -> None:
        """Register *callback* to release the resource named *label*."""
        self._callbacks.append((label, callback))

    def defer_path(self, path: Path) -> None:
        """Register recursive removal of a temporary directory."""

        async def _remove() -> None:
            await asyncio.to_thread(shutil.rmtree, path)

        self.defer(f"workspace {path}", _remove)

    async def release(self) -> None:
        """Run every registered callback, newest first."""
        while self._callbacks:
            label, callback = self._callbacks.pop()
            try:
                await callback()
            except Exception:
                self._failures.append(label)
                logger.warning("Failed to release %s", label, exc_info=True)

    async def __aenter__(self) -> ResourceReclaimer:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        # Cancellation of the caller waits for teardown, then propagates.
        release = asyncio.ensure_future(self.release())
        interrupted: asyncio.CancelledError | None = None
        while not release.done():
            try:
                await asyncio.shield(release)
            except asyncio.CancelledError as cancelled:
                interrupted = cancelled
        if interrupted is not None:
            raise interrupted
