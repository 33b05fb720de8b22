"""Shared fixtures for the relay tests."""

from datetime import datetime, timedelta, timezone

import pytest

from relay.command_queue import CommandQueue
from relay.db import Store
from relay.mailbox import ResponseMailbox
from relay.registry import DeviceRegistry
from relay.service import RelayService


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def store(tmp_path):
    s = Store(f"sqlite:///{tmp_path / 'relay.db'}")
    s.init_schema()
    yield s
    s.dispose()


@pytest.fixture()
def registry(store, clock):
    return DeviceRegistry(store, offline_after=timedelta(minutes=10), clock=clock)


@pytest.fixture()
def queue(store, clock):
    return CommandQueue(store, clock=clock)


@pytest.fixture()
def mailbox(store, clock):
    return ResponseMailbox(store, clock=clock)


@pytest.fixture()
def service(registry, queue, mailbox):
    return RelayService(registry, queue, mailbox, responses_ttl=timedelta(hours=1))
