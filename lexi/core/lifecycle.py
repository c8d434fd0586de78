"""Graceful shutdown for Lexi services.

A process hosting Lexi owns three things that must be released in order:
background embedding writes (drained, so no message loses its embedding),
the cache sweep task (cancelled and awaited) and the embedding store
connection (closed last, after nothing else can write to it).

Usage:
    >>> from lexi.core.lifecycle import LifecycleManager
    >>>
    >>> lifecycle = LifecycleManager(write_queue=queue, cache=cache, store=store)
    >>> lifecycle.install_signal_handlers()
    >>> await lifecycle.wait_for_shutdown()
"""

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lexi.cache.service import CacheService
    from lexi.context.background import EmbeddingWriteQueue
    from lexi.context.stores import EmbeddingStore

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class ShutdownPhase(Enum):
    """Where the shutdown sequence currently is."""

    NOT_STARTED = "not_started"
    SIGNAL_RECEIVED = "signal_received"
    DRAINING_WRITES = "draining_writes"
    STOPPING_CACHE = "stopping_cache"
    CLOSING_CONNECTIONS = "closing_connections"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class ShutdownState:
    """Outcome of a shutdown run.

    Attributes:
        phase: Last phase entered (COMPLETE or FAILED once finished)
        started_at: When the sequence began (UTC)
        completed_at: When it finished (UTC)
        signal_received: Name of the signal that triggered it, if any
        pending_writes: Embedding writes in flight when draining began
        errors: One message per failed step
    """

    phase: ShutdownPhase = ShutdownPhase.NOT_STARTED
    started_at: datetime | None = None
    completed_at: datetime | None = None
    signal_received: str | None = None
    pending_writes: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float | None:
        """Seconds elapsed since start (until completion if finished)."""
        if self.started_at is None:
            return None
        finished = self.completed_at or datetime.now(timezone.utc)
        return (finished - self.started_at).total_seconds()


class LifecycleManager:
    """Runs the shutdown sequence exactly once.

    Every step is optional (a component left as None is skipped) and no
    step failure stops the ones after it. Failures end up in
    state.errors and turn the final phase into FAILED; shutdown() itself
    never raises.
    """

    def __init__(
        self,
        write_queue: "EmbeddingWriteQueue | None" = None,
        cache: "CacheService | None" = None,
        store: "EmbeddingStore | None" = None,
        shutdown_timeout: float = 30.0,
        on_shutdown_complete: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize lifecycle manager.

        Args:
            write_queue: Background embedding writes to drain
            cache: Cache whose sweep task is stopped
            store: Embedding store to close
            shutdown_timeout: Seconds allowed for draining writes
            on_shutdown_complete: Awaited after the last step
        """
        self.write_queue = write_queue
        self.cache = cache
        self.store = store
        self.shutdown_timeout = shutdown_timeout
        self.on_shutdown_complete = on_shutdown_complete

        self.state = ShutdownState()
        self._requested = asyncio.Event()
        self._lock = asyncio.Lock()
        self._signal_handlers_installed = False

    @property
    def is_shutting_down(self) -> bool:
        """True from the first step until a clean finish."""
        return self.state.phase not in (ShutdownPhase.NOT_STARTED, ShutdownPhase.COMPLETE)

    @property
    def shutdown_requested(self) -> bool:
        """True once SIGTERM/SIGINT has been received."""
        return self._requested.is_set()

    def install_signal_handlers(self) -> None:
        """Run shutdown() on SIGTERM/SIGINT.

        Needs a running event loop on the main thread. Repeated calls are
        ignored.
        """
        if self._signal_handlers_installed:
            return

        loop = asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            loop.add_signal_handler(
                sig, lambda s=sig: loop.create_task(self._on_signal(s))
            )
        self._signal_handlers_installed = True
        logger.info(f"Graceful shutdown on {', '.join(s.name for s in HANDLED_SIGNALS)}")

    def remove_signal_handlers(self) -> None:
        """Restore default signal handling."""
        if not self._signal_handlers_installed:
            return

        loop = asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            try:
                loop.remove_signal_handler(sig)
            except (ValueError, RuntimeError) as e:
                logger.debug(f"Could not remove {sig.name} handler: {e}")
        self._signal_handlers_installed = False

    async def _on_signal(self, sig: signal.Signals) -> None:
        logger.info(f"{sig.name} received, shutting down")
        self.state.signal_received = sig.name
        self._requested.set()
        await self.shutdown()

    async def drain_writes(self) -> bool:
        """Wait up to shutdown_timeout for background embedding writes.

        Returns:
            False if writes were abandoned or draining failed
        """
        if self.write_queue is None:
            return True

        self.state.pending_writes = self.write_queue.pending
        drained = await self._guard(
            "drain embedding writes",
            lambda: self.write_queue.drain(timeout=self.shutdown_timeout),
        )
        if drained is False:
            self.state.errors.append(
                f"{self.write_queue.pending} embedding writes abandoned at shutdown"
            )
        return bool(drained)

    async def stop_cache(self) -> bool:
        """Cancel the cache sweep task."""
        if self.cache is None:
            return True
        return await self._guard("stop cache sweep", self.cache.stop) is not None

    async def close_store(self) -> bool:
        """Close the embedding store connection."""
        if self.store is None:
            return True
        return await self._guard("close embedding store", self.store.close) is not None

    async def shutdown(self) -> ShutdownState:
        """Drain writes, stop the cache, close the store.

        Idempotent: later calls return the state of the first run.
        """
        async with self._lock:
            if self.state.phase != ShutdownPhase.NOT_STARTED:
                return self.state

            self.state.phase = ShutdownPhase.SIGNAL_RECEIVED
            self.state.started_at = datetime.now(timezone.utc)
            self.remove_signal_handlers()

            steps: list[tuple[ShutdownPhase, Callable[[], Awaitable[bool]]]] = [
                (ShutdownPhase.DRAINING_WRITES, self.drain_writes),
                (ShutdownPhase.STOPPING_CACHE, self.stop_cache),
                (ShutdownPhase.CLOSING_CONNECTIONS, self.close_store),
            ]
            for number, (phase, step) in enumerate(steps, start=1):
                self.state.phase = phase
                logger.info(f"Shutdown {number}/{len(steps)}: {phase.value}")
                await step()

            self.state.completed_at = datetime.now(timezone.utc)
            self.state.phase = (
                ShutdownPhase.FAILED if self.state.errors else ShutdownPhase.COMPLETE
            )
            logger.info(
                f"Shutdown {self.state.phase.value} in {self.state.duration_seconds:.1f}s "
                f"({len(self.state.errors)} errors)"
            )

            if self.on_shutdown_complete is not None:
                await self._guard("run shutdown callback", self.on_shutdown_complete)

            return self.state

    async def wait_for_shutdown(self) -> None:
        """Block until a shutdown signal arrives."""
        await self._requested.wait()

    async def _guard(self, action: str, call: Callable[[], Awaitable]) -> object | None:
        """Await call(); on failure record the error and return None.

        A successful call returning None yields True so callers can tell
        success from failure.
        """
        try:
            result = await call()
        except Exception as e:
            message = f"Failed to {action}: {e}"
            logger.error(message)
            self.state.errors.append(message)
            return None
        return True if result is None else result
