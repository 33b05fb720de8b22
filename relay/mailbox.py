import logging
from datetime import datetime, timedelta
from typing import Any, Callable, NamedTuple

from sqlalchemy import delete, func
from sqlmodel import select

from . import payloads
from .db import Store
from .locks import KeyedLock
from .models import Response, utcnow

log = logging.getLogger("relay.mailbox")

class Delivered(NamedTuple):
    id: int
    payload: Any
    created_at: datetime

class ResponseMailbox:
    """Short-lived responses posted by devices, consumed on read."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.clock = clock
        self._locks = KeyedLock()

    def post(self, device_id: str, device_code: str, payload: Any) -> int:
        rec = Response(
            device_id=device_id,
            device_code=device_code,
            payload=payloads.encode(payload),
            created_at=self.clock(),
        )
        with self.store.session() as session:
            session.add(rec)
            session.flush()
            response_id = rec.id
        return response_id

    def read_recent(self, device_code: str, window: timedelta, limit: int) -> list[Delivered]:
        """Newest-first responses younger than ``window``, deleted as they are read."""
        if limit <= 0:
            return []
        with self._locks.hold(device_code):
            since = self.clock() - window
            taken: list[Response] = []
            with self.store.session() as session:
                stmt = (
                    select(Response)
                    .where(Response.device_code == device_code, Response.created_at >= since)
                    .order_by(Response.created_at.desc(), Response.id.desc())
                    .limit(limit)
                )
                if self.store.supports_row_locks:
                    stmt = stmt.with_for_update(skip_locked=True)
                rows = session.exec(stmt).all()
                for row in rows:
                    result = session.execute(
                        delete(Response)
                        .where(Response.id == row.id)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 1:
                        taken.append(row)
        return [Delivered(r.id, payloads.decode(r.id, r.payload), r.created_at) for r in taken]

    def purge_older_than(self, threshold: timedelta) -> int:
        cutoff = self.clock() - threshold
        with self.store.session() as session:
            result = session.execute(
                delete(Response)
                .where(Response.created_at < cutoff)
                .execution_options(synchronize_session=False)
            )
            purged = result.rowcount
        if purged:
            log.info("purged %d unread response(s)", purged)
        return purged

    def unread(self) -> int:
        with self.store.session() as session:
            return session.exec(select(func.count()).select_from(Response)).one()
