"""Debounced autosave.

``AutosaveScheduler.notify`` is called after every accepted change. With a
positive delay the scheduler waits for ``delay_ms`` of quiet after the most
recent notification and then submits once. With a zero delay each
notification gets its own submission. Submissions that overlap are serialized
by the submission controller, not here.

Timers run on the running asyncio event loop, so ``notify`` must be called
from code executing inside that loop.
"""

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from formflow.config import AutosaveConfig

logger = logging.getLogger(__name__)


class AutosaveScheduler:
    """Schedules autosave submissions for one form.

    Attributes:
        config: The autosave configuration

    Examples:
        >>> scheduler = AutosaveScheduler(submit=None, config=AutosaveConfig())
        >>> scheduler.notify({"name": "Ada"})
        False
    """

    def __init__(
        self,
        submit: Callable[[], Awaitable[Any]],
        config: AutosaveConfig,
        on_scheduled: Optional[Callable[[int], None]] = None,
    ) -> None:
        self._submit = submit
        self.config = config
        self._on_scheduled = on_scheduled
        self._generation = 0
        self._tokens = itertools.count(1)
        self._handles: Dict[int, asyncio.Handle] = {}
        self._tasks: Set["asyncio.Task[Any]"] = set()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def pending(self) -> bool:
        """True while a submission is scheduled but has not fired yet."""
        return bool(self._handles)

    @property
    def running(self) -> int:
        """Number of autosave submission tasks that have not finished."""
        return len(self._tasks)

    def notify(self, model: Dict[str, Any]) -> bool:
        """Schedule a submission for a model change.

        Returns:
            True if a submission was scheduled, False when autosave is off
        """
        if not self.config.enabled:
            return False

        loop = asyncio.get_running_loop()
        token = next(self._tokens)
        if self.config.delay_ms == 0:
            self._handles[token] = loop.call_soon(self._fire, token, self._generation)
        else:
            self._cancel_timers()
            self._handles[token] = loop.call_later(
                self.config.delay_seconds, self._fire, token, self._generation
            )
        logger.debug("Autosave scheduled in %d ms (%d field(s) in model)", self.config.delay_ms, len(model))
        if self._on_scheduled is not None:
            self._on_scheduled(self.config.delay_ms)
        return True

    def _fire(self, token: int, generation: int) -> None:
        self._handles.pop(token, None)
        if generation != self._generation:
            return
        task = asyncio.ensure_future(self._run(generation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, generation: int) -> None:
        # The task may only start after a cancel() issued in the meantime.
        if generation != self._generation:
            logger.debug("Skipping autosave cancelled before it started")
            return
        try:
            await self._submit()
        except Exception:
            logger.exception("Autosave submission raised")

    def _cancel_timers(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def cancel(self) -> None:
        """Cancel scheduled submissions.

        Submissions whose external operation already started are left to
        finish; tasks that have not started yet do nothing when they run.
        """
        self._generation += 1
        if self._handles:
            logger.debug("Cancelling %d pending autosave(s)", len(self._handles))
        self._cancel_timers()

    async def join(self) -> None:
        """Wait for every autosave submission task started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = [
    "AutosaveScheduler",
]
