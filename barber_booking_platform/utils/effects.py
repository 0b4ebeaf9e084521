"""
Runner for best-effort side effects.

History writes and cache invalidation happen after the booking transaction
commits. They are scheduled here as background tasks; a failure is logged on
the ``barber_booking_platform.effects`` logger and never reaches the caller.
Effects submitted under the same key run one after another, in submission order.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set

logger = logging.getLogger("barber_booking_platform.effects")

EffectFactory = Callable[[], Awaitable[None]]


class NonCriticalEffects:
    """Schedule fire-and-forget coroutines and keep track of them until they finish."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        # Last task submitted per ordering key
        self._tails: Dict[str, asyncio.Task] = {}
        self.failures = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, name: str, effect: EffectFactory, key: Optional[str] = None) -> Optional[asyncio.Task]:
        """
        Run ``effect()`` in the background.

        Args:
            name: Label used in log records
            effect: Zero-argument callable returning the coroutine to run
            key: Ordering key; the effect starts only after the previous effect with the same key finished
        """
        previous = self._tails.get(key) if key is not None else None
        task = asyncio.create_task(self._run(name, effect, previous), name=f"effect:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        if key is not None:
            self._tails[key] = task
            task.add_done_callback(lambda done, key=key: self._release(key, done))
        return task

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._tails.get(key) is task:
            del self._tails[key]

    async def _run(self, name: str, effect: EffectFactory, after: Optional[asyncio.Task] = None) -> None:
        try:
            if after is not None:
                # Outcome of the previous effect does not matter, only that it is over
                await asyncio.wait([after])
            await effect()
        except asyncio.CancelledError:
            logger.warning(f"Non-critical effect '{name}' was cancelled")
            raise
        except Exception as e:
            self.failures += 1
            logger.warning(f"Non-critical effect '{name}' failed: {e}", exc_info=True)
        else:
            logger.debug(f"Non-critical effect '{name}' completed")

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every scheduled effect; cancel the stragglers after ``timeout``."""
        if not self._tasks:
            return

        tasks = list(self._tasks)
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Cancelled {len(pending)} non-critical effects on shutdown")
            await asyncio.gather(*pending, return_exceptions=True)
