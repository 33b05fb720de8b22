import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta

from .command_queue import CommandQueue
from .mailbox import ResponseMailbox
from .registry import DeviceRegistry

log = logging.getLogger("relay.sweeper")

@dataclass
class SweepReport:
    commands_purged: int = 0
    responses_purged: int = 0
    devices_expired: int = 0
    failed: list[str] = field(default_factory=list)

class LivenessSweeper:
    """Periodic retention and liveness pass over the queue, mailbox and registry.

    Ticks run strictly one after another: the next sleep only starts when the
    previous run has returned, so a slow run pushes the schedule back instead
    of stacking runs on top of each other.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        queue: CommandQueue,
        mailbox: ResponseMailbox,
        interval: timedelta = timedelta(minutes=5),
        commands_ttl: timedelta = timedelta(hours=1),
        responses_ttl: timedelta = timedelta(hours=1),
        offline_after: timedelta = timedelta(minutes=10),
    ) -> None:
        self.registry = registry
        self.queue = queue
        self.mailbox = mailbox
        self.interval = interval
        self.commands_ttl = commands_ttl
        self.responses_ttl = responses_ttl
        self.offline_after = offline_after
        self._task: asyncio.Task | None = None

    def run_once(self) -> SweepReport:
        report = SweepReport()
        steps = (
            ("commands", lambda: self.queue.purge_completed(self.commands_ttl), "commands_purged"),
            ("responses", lambda: self.mailbox.purge_older_than(self.responses_ttl), "responses_purged"),
            ("devices", lambda: self.registry.sweep_expired(self.offline_after), "devices_expired"),
        )
        for name, step, attr in steps:
            try:
                setattr(report, attr, step())
            except Exception:
                log.exception("sweep step %r failed", name)
                report.failed.append(name)
        log.debug("sweep done: %s", report)
        return report

    async def run_forever(self) -> None:
        seconds = self.interval.total_seconds()
        if seconds <= 0:
            log.info("sweeper disabled")
            return
        log.info("sweeper running every %ss", int(seconds))
        while True:
            await asyncio.sleep(seconds)
            await asyncio.to_thread(self.run_once)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
