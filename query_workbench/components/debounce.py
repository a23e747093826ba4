"""Cancellable timer for search-as-you-type flows.

Each ``trigger`` re-arms the timer and supersedes every earlier trigger.
Only a timer that fires without being superseded runs the action, and an
action result is delivered only if no newer trigger arrived while it ran.
Must be used from a running asyncio event loop.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    """Runs ``action(arg)`` once input has been quiet for ``delay_seconds``."""

    def __init__(
        self,
        delay_seconds: float,
        action: Callable[[Any], Any],
        on_result: Callable[[Any], None],
    ):
        self.delay_seconds = delay_seconds
        self._action = action
        self._on_result = on_result
        self._generation = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._timer is not None or (self._task is not None and not self._task.done())

    def trigger(self, arg: Any) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay_seconds, self._fire, self._generation, arg)

    def cancel(self) -> None:
        """Drop the pending trigger and any result still in flight."""
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, generation: int, arg: Any) -> None:
        self._timer = None
        self._task = asyncio.ensure_future(self._run(generation, arg))

    async def _run(self, generation: int, arg: Any) -> None:
        try:
            result = self._action(arg)
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            logger.exception("Debounced call failed for %r", arg)
            return
        if generation != self._generation:
            logger.debug("Discarded superseded result for %r", arg)
            return
        self._on_result(result)
