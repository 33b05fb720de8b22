import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from .db import Store
from .errors import CodeConflict, InvalidInput, NotFound, StoreFailure
from .identity import derive_code, is_valid_code
from .models import DEVICE_OFFLINE, DEVICE_ONLINE, Device, utcnow

log = logging.getLogger("relay.registry")

class DeviceRegistry:
    """Known devices, their derived codes and liveness."""

    def __init__(
        self,
        store: Store,
        offline_after: timedelta = timedelta(minutes=10),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.offline_after = offline_after
        self.clock = clock

    def _fresh_since(self) -> datetime:
        return self.clock() - self.offline_after

    def register(self, device_id: str, kind: str | None = None) -> str:
        if not isinstance(device_id, str) or not device_id.strip():
            raise InvalidInput("deviceId is required")
        code = derive_code(device_id)
        if not is_valid_code(code):
            raise InvalidInput(f"deviceId {device_id!r} does not end in an addressable code")

        now = self.clock()
        try:
            self._upsert(device_id, code, kind, now)
        except StoreFailure as e:
            # lost a race with a concurrent first registration; the row exists now
            if not isinstance(e.__cause__, IntegrityError):
                raise
            log.debug("concurrent registration of device=%s, retrying as update", device_id)
            self._upsert(device_id, code, kind, now)
        return code

    def _upsert(self, device_id: str, code: str, kind: str | None, now: datetime) -> None:
        with self.store.session() as session:
            clash = session.exec(
                select(Device).where(
                    Device.code == code,
                    Device.id != device_id,
                    Device.status == DEVICE_ONLINE,
                    Device.last_seen >= self._fresh_since(),
                )
            ).first()
            if clash:
                raise CodeConflict(f"code {code} is held by another online device")

            d = session.get(Device, device_id)
            if d is None:
                d = Device(id=device_id, code=code, last_seen=now, created_at=now)
                log.info("registered new device id=%s code=%s", device_id, code)
            d.code = code
            d.kind = kind or ""
            d.status = DEVICE_ONLINE
            d.last_seen = max(d.last_seen, now)
            session.add(d)

    def heartbeat(self, device_id: str) -> bool:
        """Mark the device online; False (not an error) when the id is unknown.

        last_seen never moves backwards: a heartbeat stamped earlier than the
        stored value leaves the row alone.
        """
        now = self.clock()
        with self.store.session() as session:
            result = session.execute(
                update(Device)
                .where(Device.id == device_id, Device.last_seen <= now)
                .values(last_seen=now, status=DEVICE_ONLINE)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    def locate_by_code(self, code: str) -> Device:
        """Most recently seen online device holding ``code`` (already normalized)."""
        with self.store.session() as session:
            d = session.exec(
                select(Device)
                .where(
                    Device.code == code,
                    Device.status == DEVICE_ONLINE,
                    Device.last_seen >= self._fresh_since(),
                )
                .order_by(Device.last_seen.desc())
            ).first()
        if d is None:
            raise NotFound(f"no online device with code {code}")
        return d

    def get(self, device_id: str) -> Device:
        with self.store.session() as session:
            d = session.get(Device, device_id)
        if d is None:
            raise NotFound(f"unknown device {device_id}")
        return d

    def list_online(self) -> list[Device]:
        with self.store.session() as session:
            rows = session.exec(
                select(Device)
                .where(Device.status == DEVICE_ONLINE, Device.last_seen >= self._fresh_since())
                .order_by(Device.last_seen.desc())
            ).all()
        return list(rows)

    def sweep_expired(self, stale_after: timedelta) -> int:
        cutoff = self.clock() - stale_after
        with self.store.session() as session:
            result = session.execute(
                update(Device)
                .where(Device.status == DEVICE_ONLINE, Device.last_seen < cutoff)
                .values(status=DEVICE_OFFLINE)
                .execution_options(synchronize_session=False)
            )
            expired = result.rowcount
        if expired:
            log.info("marked %d device(s) offline (silent since %s)", expired, cutoff.isoformat())
        return expired

    def counts(self) -> dict[str, int]:
        with self.store.session() as session:
            rows = session.exec(
                select(Device.status, func.count()).group_by(Device.status)
            ).all()
        out = {DEVICE_ONLINE: 0, DEVICE_OFFLINE: 0}
        for status, n in rows:
            out[status] = n
        out["total"] = sum(out.values())
        return out
