import asyncio
import threading
import time
from datetime import timedelta

import pytest

from relay.errors import StoreFailure
from relay.models import DEVICE_OFFLINE
from relay.sweeper import LivenessSweeper


@pytest.fixture()
def sweeper(registry, queue, mailbox):
    return LivenessSweeper(registry, queue, mailbox)


class TestRunOnce:
    def test_completed_purged_pending_kept(self, sweeper, queue, clock):
        queue.enqueue("ext-install-ABC123", "ABC123", {"a": 1})
        queue.enqueue("ext-install-XYZ789", "XYZ789", {"b": 2})
        queue.drain_pending("ext-install-ABC123", 10)
        clock.advance(hours=2)

        report = sweeper.run_once()
        assert report.commands_purged == 1
        assert queue.counts() == {"pending": 1, "completed": 0, "total": 1}
        assert queue.drain_pending("ext-install-XYZ789", 10) == [{"b": 2}]

    def test_all_steps(self, sweeper, registry, mailbox, clock):
        registry.register("ext-install-ABC123")
        mailbox.post("ext-install-ABC123", "ABC123", {"status": "locked"})
        clock.advance(hours=2)

        report = sweeper.run_once()
        assert report.responses_purged == 1
        assert report.devices_expired == 1
        assert report.failed == []
        assert registry.get("ext-install-ABC123").status == DEVICE_OFFLINE

    def test_failed_step_does_not_stop_the_rest(self, sweeper, registry, queue, clock, monkeypatch):
        registry.register("ext-install-ABC123")
        clock.advance(hours=1)

        def boom(older_than):
            raise StoreFailure("database is locked")

        monkeypatch.setattr(queue, "purge_completed", boom)
        report = sweeper.run_once()
        assert report.failed == ["commands"]
        assert report.devices_expired == 1

    def test_idempotent(self, sweeper, registry, clock):
        registry.register("ext-install-ABC123")
        clock.advance(hours=1)
        sweeper.run_once()
        again = sweeper.run_once()
        assert (again.commands_purged, again.responses_purged, again.devices_expired) == (0, 0, 0)


class TestSchedule:
    @pytest.mark.asyncio
    async def test_ticks_until_stopped(self, registry, queue, mailbox, monkeypatch):
        sweeper = LivenessSweeper(registry, queue, mailbox, interval=timedelta(milliseconds=10))
        runs = []
        monkeypatch.setattr(sweeper, "run_once", lambda: runs.append(1))

        sweeper.start()
        await asyncio.sleep(0.2)
        await sweeper.stop()
        seen = len(runs)
        assert seen >= 2

        await asyncio.sleep(0.05)
        assert len(runs) == seen

    @pytest.mark.asyncio
    async def test_slow_run_never_overlaps(self, registry, queue, mailbox, monkeypatch):
        sweeper = LivenessSweeper(registry, queue, mailbox, interval=timedelta(milliseconds=5))
        guard = threading.Lock()
        active = []
        peak = []

        def slow_run():
            with guard:
                active.append(1)
                peak.append(len(active))
            time.sleep(0.05)
            with guard:
                active.pop()

        monkeypatch.setattr(sweeper, "run_once", slow_run)
        sweeper.start()
        await asyncio.sleep(0.3)
        await sweeper.stop()

        assert len(peak) >= 2
        assert max(peak) == 1

    @pytest.mark.asyncio
    async def test_disabled_with_zero_interval(self, registry, queue, mailbox):
        sweeper = LivenessSweeper(registry, queue, mailbox, interval=timedelta(0))
        task = sweeper.start()
        await asyncio.wait_for(task, timeout=1)
        assert task.done()
