import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from .command_queue import CommandQueue
from .db import Store
from .errors import InvalidInput, NotFound, StoreFailure
from .identity import derive_code, normalize_code
from .mailbox import ResponseMailbox
from .models import Device, utcnow
from .registry import DeviceRegistry
from .settings import Settings
from .sweeper import LivenessSweeper

log = logging.getLogger("relay.service")

def _response_item(payload: Any, created_at: datetime) -> dict:
    ts = created_at.isoformat()
    # payloads with their own "timestamp" key are nested whole
    if isinstance(payload, dict) and "timestamp" not in payload:
        return {**payload, "timestamp": ts}
    return {"payload": payload, "timestamp": ts}

class RelayService:
    """Boundary operations composed from the registry, queue and mailbox."""

    def __init__(
        self,
        registry: DeviceRegistry,
        queue: CommandQueue,
        mailbox: ResponseMailbox,
        responses_ttl: timedelta = timedelta(hours=1),
        poll_limit: int = 50,
        read_limit: int = 20,
    ) -> None:
        self.registry = registry
        self.queue = queue
        self.mailbox = mailbox
        self.responses_ttl = responses_ttl
        self.poll_limit = poll_limit
        self.read_limit = read_limit

    @classmethod
    def from_settings(
        cls, store: Store, cfg: Settings, clock: Callable[[], datetime] = utcnow
    ) -> "RelayService":
        return cls(
            registry=DeviceRegistry(
                store, offline_after=timedelta(seconds=cfg.offline_after_seconds), clock=clock
            ),
            queue=CommandQueue(store, clock=clock),
            mailbox=ResponseMailbox(store, clock=clock),
            responses_ttl=timedelta(seconds=cfg.responses_ttl_seconds),
            poll_limit=cfg.poll_limit,
            read_limit=cfg.read_limit,
        )

    def build_sweeper(self, cfg: Settings) -> LivenessSweeper:
        return LivenessSweeper(
            self.registry,
            self.queue,
            self.mailbox,
            interval=timedelta(seconds=cfg.cleanup_interval_seconds),
            commands_ttl=timedelta(seconds=cfg.commands_ttl_seconds),
            # same horizon the read window uses, so sweep and read agree on expiry
            responses_ttl=self.responses_ttl,
            offline_after=self.registry.offline_after,
        )

    def _touch(self, device_id: str) -> None:
        # best effort: a failed heartbeat never blocks delivery
        try:
            if not self.registry.heartbeat(device_id):
                log.debug("heartbeat from unregistered device=%s", device_id)
        except StoreFailure as e:
            log.warning("heartbeat for device=%s failed: %s", device_id, e)

    def register(self, device_id: str, kind: str | None = None) -> str:
        return self.registry.register(device_id, kind)

    def find_by_code(self, code: str) -> Device | None:
        normalized = normalize_code(code)
        try:
            return self.registry.locate_by_code(normalized)
        except NotFound:
            return None

    def list_online(self) -> list[Device]:
        return self.registry.list_online()

    def send_command(self, code: str, payload: Any) -> int:
        normalized = normalize_code(code)
        if payload is None:
            raise InvalidInput("command is required")
        device = self.registry.locate_by_code(normalized)
        return self.queue.enqueue(device.id, device.code, payload)

    def poll_commands(self, device_id: str) -> list[Any]:
        if not device_id:
            return []
        self._touch(device_id)
        return self.queue.drain_pending(device_id, self.poll_limit)

    def post_response(self, device_id: str, payload: Any) -> int:
        if not isinstance(device_id, str) or not device_id.strip():
            raise InvalidInput("deviceId is required")
        self._touch(device_id)
        return self.mailbox.post(device_id, derive_code(device_id), payload)

    def read_responses(self, code: str) -> list[dict]:
        normalized = normalize_code(code)
        taken = self.mailbox.read_recent(normalized, self.responses_ttl, self.read_limit)
        return [_response_item(d.payload, d.created_at) for d in taken]

    def stats(self) -> dict:
        return {
            "devices": self.registry.counts(),
            "commands": self.queue.counts(),
            "responses": {"unread": self.mailbox.unread()},
        }
