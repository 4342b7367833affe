"""Tests for the serial summarization task queue."""

import asyncio

import pytest

from hilo.queue import TaskQueue
from hilo.types import Outcome, QueuedTask, TaskKind


class Recorder:
    """Handlers that log what ran and track overlap."""

    def __init__(self, delay: float = 0):
        self.delay = delay
        self.ran: list[str] = []
        self.active = 0
        self.max_active = 0

    async def _run(self, label: str) -> Outcome:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            self.ran.append(label)
        finally:
            self.active -= 1
        return Outcome.ok()

    async def mini(self, turn_id: int) -> Outcome:
        return await self._run(f"mini{turn_id}")

    async def volume(self) -> Outcome:
        return await self._run("volume")


def _queue(recorder: Recorder, cooldown: float = 0) -> TaskQueue:
    q = TaskQueue(cooldown=cooldown)
    q.set_handlers(mini_summary=recorder.mini, volume_summary=recorder.volume)
    return q


class TestEnqueue:

    def test_duplicate_mini_summary_replaces_waiting_task(self):
        q = _queue(Recorder())
        q.enqueue(QueuedTask.mini_summary(5))
        q.enqueue(QueuedTask.mini_summary(5))
        assert len(q) == 1
        assert q.pending() == [QueuedTask.mini_summary(5)]
        assert q.stats()["superseded"] == 1

    def test_supersede_moves_task_to_the_back(self):
        q = _queue(Recorder())
        q.enqueue(QueuedTask.mini_summary(1))
        q.enqueue(QueuedTask.mini_summary(2))
        q.enqueue(QueuedTask.mini_summary(1))
        assert [t.turn_id for t in q.pending()] == [2, 1]

    def test_volume_tasks_are_not_deduplicated(self):
        q = _queue(Recorder())
        q.enqueue(QueuedTask.volume_summary())
        q.enqueue(QueuedTask.volume_summary())
        assert [t.kind for t in q.pending()] == [TaskKind.VOLUME_SUMMARY] * 2

    def test_without_event_loop_tasks_wait(self):
        recorder = Recorder()
        q = _queue(recorder)
        q.enqueue(QueuedTask.mini_summary(1))
        assert recorder.ran == []
        asyncio.run(q.join())
        assert recorder.ran == ["mini1"]
        assert q.stats()["pending"] == 0


class TestDrain:

    @pytest.mark.asyncio
    async def test_duplicate_runs_once(self):
        recorder = Recorder()
        q = _queue(recorder)
        q.enqueue(QueuedTask.mini_summary(5))
        q.enqueue(QueuedTask.mini_summary(5))
        await q.join()
        assert recorder.ran == ["mini5"]
        assert q.stats()["processed"] == 1

    @pytest.mark.asyncio
    async def test_fifo_modulo_dedup(self):
        recorder = Recorder()
        q = _queue(recorder)
        q.enqueue(QueuedTask.mini_summary(1))
        q.enqueue(QueuedTask.volume_summary())
        q.enqueue(QueuedTask.mini_summary(2))
        q.enqueue(QueuedTask.mini_summary(1))
        await q.join()
        assert recorder.ran == ["volume", "mini2", "mini1"]

    @pytest.mark.asyncio
    async def test_tasks_never_overlap(self):
        recorder = Recorder(delay=0.01)
        q = _queue(recorder)
        for i in range(3):
            q.enqueue(QueuedTask.mini_summary(i))
        await asyncio.sleep(0.005)
        # Enqueued while the first task is running
        q.enqueue(QueuedTask.mini_summary(3))
        q.enqueue(QueuedTask.volume_summary())
        await q.join()
        assert recorder.ran == ["mini0", "mini1", "mini2", "mini3", "volume"]
        assert recorder.max_active == 1

    @pytest.mark.asyncio
    async def test_running_task_is_not_superseded(self):
        started = asyncio.Event()
        release = asyncio.Event()
        ran = []

        async def mini(turn_id):
            ran.append(turn_id)
            if len(ran) == 1:
                started.set()
                await release.wait()
            return Outcome.ok()

        async def volume():
            return Outcome.ok()

        q = TaskQueue()
        q.set_handlers(mini_summary=mini, volume_summary=volume)
        q.enqueue(QueuedTask.mini_summary(7))
        await started.wait()
        q.enqueue(QueuedTask.mini_summary(7))
        release.set()
        await q.join()
        assert ran == [7, 7]

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_stop_the_queue(self, caplog):
        ran = []

        async def mini(turn_id):
            if turn_id == 1:
                raise RuntimeError("handler bug")
            ran.append(turn_id)
            return Outcome.ok()

        async def volume():
            return Outcome.ok()

        q = TaskQueue()
        q.set_handlers(mini_summary=mini, volume_summary=volume)
        for i in range(3):
            q.enqueue(QueuedTask.mini_summary(i))
        await q.join()
        assert ran == [0, 2]
        assert q.stats()["failed"] == 1
        assert q.stats()["processed"] == 2
        assert "handler bug" in caplog.text

    @pytest.mark.asyncio
    async def test_outcomes_are_counted(self):
        async def mini(turn_id):
            return Outcome.skipped("empty") if turn_id == 0 else Outcome.failed("generator down")

        async def volume():
            return Outcome.ok()

        q = TaskQueue()
        q.set_handlers(mini_summary=mini, volume_summary=volume)
        q.enqueue(QueuedTask.mini_summary(0))
        q.enqueue(QueuedTask.mini_summary(1))
        q.enqueue(QueuedTask.volume_summary())
        await q.join()
        assert q.stats() == {
            "pending": 0, "processed": 1, "skipped": 1, "failed": 1, "superseded": 0,
        }

    @pytest.mark.asyncio
    async def test_missing_handlers(self):
        q = TaskQueue()
        q.enqueue(QueuedTask.volume_summary())
        await q.join()
        assert q.stats()["failed"] == 1

    @pytest.mark.asyncio
    async def test_cooldown_between_tasks(self, monkeypatch):
        sleeps = []
        real_sleep = asyncio.sleep

        async def fake_sleep(delay):
            sleeps.append(delay)
            await real_sleep(0)

        monkeypatch.setattr("hilo.queue.asyncio.sleep", fake_sleep)
        recorder = Recorder()
        q = _queue(recorder, cooldown=5)
        for i in range(3):
            q.enqueue(QueuedTask.mini_summary(i))
        await q.join()
        assert sleeps == [5, 5]
        assert recorder.ran == ["mini0", "mini1", "mini2"]

    @pytest.mark.asyncio
    async def test_join_when_idle(self):
        q = _queue(Recorder())
        await q.join()
        assert q.stats()["pending"] == 0
