"""Fire-and-forget embedding writes.

Storing an embedding must never delay the reply it belongs to. The queue
runs each write as its own asyncio task, keeps a reference until it
finishes, and lets shutdown wait for whatever is still in flight.
"""

import asyncio
import logging
from collections.abc import Iterable

from lexi.context.service import ContextService
from lexi.core.models import MessageEntry

logger = logging.getLogger(__name__)


class EmbeddingWriteQueue:
    """Track background embedding writes for a ContextService.

    Example:
        >>> queue = EmbeddingWriteQueue(context_service)
        >>> queue.submit(user_entry)
        >>> queue.submit(assistant_entry)
        >>> await queue.drain(timeout=5.0)
    """

    def __init__(self, context: ContextService) -> None:
        self.context = context
        self._tasks: set[asyncio.Task] = set()
        self.completed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        """Number of writes still in flight."""
        return len(self._tasks)

    def submit(self, entry: MessageEntry) -> asyncio.Task | None:
        """Schedule one write and return immediately.

        Must be called from a running event loop. System messages are
        skipped without scheduling anything.
        """
        if entry.role == "system":
            return None
        task = asyncio.get_running_loop().create_task(
            self.context.store_message_embedding(entry),
            name=f"embed:{entry.message_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def submit_many(self, entries: Iterable[MessageEntry]) -> int:
        """Schedule several writes; returns how many were scheduled."""
        return sum(1 for entry in entries if self.submit(entry) is not None)

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight writes.

        Args:
            timeout: Maximum seconds to wait (None = no limit)

        Returns:
            True if every write finished, False if the timeout expired
        """
        if not self._tasks:
            return True

        logger.info(f"Draining {len(self._tasks)} pending embedding writes")
        _, still_pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if still_pending:
            logger.warning(
                f"{len(still_pending)} embedding writes still pending after {timeout}s"
            )
            return False
        return True

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self.failed += 1
            return
        error = task.exception()
        if error is not None or task.result() is None:
            # store_message_embedding already logged the cause
            self.failed += 1
            if error is not None:
                logger.error(f"Background embedding write failed: {error}")
        else:
            self.completed += 1
