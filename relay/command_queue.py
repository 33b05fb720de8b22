import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy import delete, func, update
from sqlmodel import select

from . import payloads
from .db import Store
from .locks import KeyedLock
from .models import COMMAND_COMPLETED, COMMAND_PENDING, Command, utcnow

log = logging.getLogger("relay.queue")

class CommandQueue:
    """Per-device FIFO of pending commands, delivered at most once."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.clock = clock
        self._locks = KeyedLock()

    def enqueue(self, device_id: str, device_code: str, payload: Any) -> int:
        rec = Command(
            device_id=device_id,
            device_code=device_code,
            payload=payloads.encode(payload),
            status=COMMAND_PENDING,
            created_at=self.clock(),
        )
        with self.store.session() as session:
            session.add(rec)
            session.flush()
            command_id = rec.id
        log.debug("queued command id=%s for device=%s", command_id, device_id)
        return command_id

    def drain_pending(self, device_id: str, limit: int) -> list[Any]:
        """Claim up to ``limit`` oldest pending commands and return their payloads.

        Selection and the pending->completed flip share one transaction. Each
        row is claimed with a conditional UPDATE, so a row another drain got
        to first (another worker process, say) is skipped rather than
        delivered twice. Within this process drains for the same device are
        also serialized, which keeps FIFO order across back-to-back polls.
        """
        if limit <= 0:
            return []
        with self._locks.hold(device_id):
            now = self.clock()
            claimed: list[Command] = []
            with self.store.session() as session:
                stmt = (
                    select(Command)
                    .where(Command.device_id == device_id, Command.status == COMMAND_PENDING)
                    .order_by(Command.id)
                    .limit(limit)
                )
                if self.store.supports_row_locks:
                    stmt = stmt.with_for_update(skip_locked=True)
                rows = session.exec(stmt).all()
                for row in rows:
                    result = session.execute(
                        update(Command)
                        .where(Command.id == row.id, Command.status == COMMAND_PENDING)
                        .values(status=COMMAND_COMPLETED, executed_at=now)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 1:
                        claimed.append(row)
        if claimed:
            log.info("delivered %d command(s) to device=%s", len(claimed), device_id)
        return [payloads.decode(row.id, row.payload) for row in claimed]

    def purge_completed(self, older_than: timedelta) -> int:
        cutoff = self.clock() - older_than
        with self.store.session() as session:
            result = session.execute(
                delete(Command)
                .where(Command.status == COMMAND_COMPLETED, Command.created_at < cutoff)
                .execution_options(synchronize_session=False)
            )
            purged = result.rowcount
        if purged:
            log.info("purged %d completed command(s)", purged)
        return purged

    def counts(self) -> dict[str, int]:
        with self.store.session() as session:
            rows = session.exec(
                select(Command.status, func.count()).group_by(Command.status)
            ).all()
        out = {COMMAND_PENDING: 0, COMMAND_COMPLETED: 0}
        for status, n in rows:
            out[status] = n
        out["total"] = sum(out.values())
        return out
