"""
Serial task queue for summarization work.

Tasks run one at a time on the event loop, in the order they were
enqueued. Re-enqueueing a mini-summary for a turn that is still waiting
replaces the waiting task (the turn moves to the back of the queue);
a task that has already started is never affected.

Handlers return Outcomes. This is the only place outcomes and handler
exceptions become log lines; nothing propagates out of the queue.
"""

import asyncio
import itertools
import logging
from collections import OrderedDict
from typing import Awaitable, Callable, Optional

from .types import Outcome, QueuedTask, TaskKind

logger = logging.getLogger(__name__)

MiniSummaryHandler = Callable[[int], Awaitable[Outcome]]
VolumeSummaryHandler = Callable[[], Awaitable[Outcome]]


class TaskQueue:
    """
    Single-flight FIFO of QueuedTasks with per-turn deduplication.

    enqueue() never blocks: when an event loop is running it schedules a
    drain; otherwise tasks wait for an explicit drain() or join().
    """

    def __init__(self, cooldown: float = 0):
        """
        Args:
            cooldown: Seconds to wait between consecutive tasks
        """
        self._cooldown = cooldown
        self._tasks: "OrderedDict[tuple, QueuedTask]" = OrderedDict()
        self._sequence = itertools.count()
        self._processing = False
        self._drain_task: Optional[asyncio.Task] = None
        self._mini_handler: Optional[MiniSummaryHandler] = None
        self._volume_handler: Optional[VolumeSummaryHandler] = None
        self._counts = {"processed": 0, "skipped": 0, "failed": 0, "superseded": 0}

    def set_handlers(
        self,
        mini_summary: MiniSummaryHandler,
        volume_summary: VolumeSummaryHandler,
    ) -> None:
        """Register the coroutine functions that run each task kind."""
        self._mini_handler = mini_summary
        self._volume_handler = volume_summary

    def __len__(self) -> int:
        return len(self._tasks)

    @property
    def processing(self) -> bool:
        return self._processing

    def pending(self) -> list[QueuedTask]:
        """Tasks waiting to run, in run order."""
        return list(self._tasks.values())

    def stats(self) -> dict:
        """Counters for waiting and finished tasks."""
        return {"pending": len(self._tasks), **self._counts}

    # -------------------------------------------------------------------------
    # Enqueue
    # -------------------------------------------------------------------------

    def enqueue(self, task: QueuedTask) -> None:
        """Add a task and make sure a drain is scheduled."""
        if task.kind == TaskKind.MINI_SUMMARY:
            key = (task.kind, task.turn_id)
            if self._tasks.pop(key, None) is not None:
                self._counts["superseded"] += 1
                logger.debug("Superseded waiting %s", task)
        else:
            key = (task.kind, next(self._sequence))
        self._tasks[key] = task
        self._schedule()

    def _schedule(self) -> None:
        if self._processing:
            return
        if self._drain_task is not None and not self._drain_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; %d task(s) wait for drain()", len(self._tasks))
            return
        self._drain_task = loop.create_task(self.drain())

    # -------------------------------------------------------------------------
    # Drain
    # -------------------------------------------------------------------------

    async def drain(self) -> None:
        """Run queued tasks until the queue is empty. No-op if already running."""
        if self._processing:
            return
        self._processing = True
        try:
            first = True
            while self._tasks:
                if not first and self._cooldown > 0:
                    await asyncio.sleep(self._cooldown)
                first = False
                if not self._tasks:
                    break
                _, task = self._tasks.popitem(last=False)
                await self._run(task)
        finally:
            self._processing = False

    async def _run(self, task: QueuedTask) -> None:
        if task.kind == TaskKind.MINI_SUMMARY:
            handler = self._mini_handler
            call = (lambda: handler(task.turn_id)) if handler else None
        else:
            handler = self._volume_handler
            call = handler
        if call is None:
            logger.error("No handler registered for %s", task)
            self._counts["failed"] += 1
            return

        logger.debug("Running %s", task)
        try:
            outcome = await call()
        except Exception:
            logger.exception("Task %s raised", task)
            self._counts["failed"] += 1
            return

        if outcome.is_ok:
            self._counts["processed"] += 1
            logger.info("Task %s done", task)
        elif outcome.is_skipped:
            self._counts["skipped"] += 1
            logger.info("Task %s skipped: %s", task, outcome.reason)
        else:
            self._counts["failed"] += 1
            logger.warning("Task %s failed: %s", task, outcome.reason)

    async def join(self) -> None:
        """Wait until every queued task has run."""
        while True:
            if self._drain_task is not None and not self._drain_task.done():
                await self._drain_task
            elif self._processing:
                # Someone else is draining directly; poll until they finish
                await asyncio.sleep(0.01)
            elif self._tasks:
                await self.drain()
            else:
                return
