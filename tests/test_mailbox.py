from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from relay.models import Response

WINDOW = timedelta(hours=1)


class TestPost:
    def test_returns_ids(self, mailbox):
        assert mailbox.post("ext-install-ABC123", "ABC123", {"status": "locked"}) == 1
        assert mailbox.post("ext-install-ABC123", "ABC123", {"status": "open"}) == 2
        assert mailbox.unread() == 2


class TestReadRecent:
    def test_newest_first_and_consumed(self, mailbox, clock):
        mailbox.post("ext-install-ABC123", "ABC123", {"n": 1})
        clock.advance(seconds=5)
        mailbox.post("ext-install-ABC123", "ABC123", {"n": 2})

        out = mailbox.read_recent("ABC123", WINDOW, 10)
        assert [d.payload for d in out] == [{"n": 2}, {"n": 1}]
        assert out[0].created_at == clock.now
        assert mailbox.read_recent("ABC123", WINDOW, 10) == []
        assert mailbox.unread() == 0

    def test_limit_leaves_older_entries(self, mailbox, clock):
        for i in range(3):
            mailbox.post("ext-install-ABC123", "ABC123", {"n": i})
            clock.advance(seconds=1)
        assert [d.payload for d in mailbox.read_recent("ABC123", WINDOW, 2)] == [{"n": 2}, {"n": 1}]
        assert [d.payload for d in mailbox.read_recent("ABC123", WINDOW, 2)] == [{"n": 0}]

    def test_outside_window_not_returned(self, mailbox, clock):
        mailbox.post("ext-install-ABC123", "ABC123", {"old": True})
        clock.advance(hours=2)
        assert mailbox.read_recent("ABC123", WINDOW, 10) == []

    def test_empty_mailbox(self, mailbox):
        assert mailbox.read_recent("ABC123", WINDOW, 10) == []

    def test_scoped_to_code(self, mailbox):
        mailbox.post("ext-install-ABC123", "ABC123", {"mine": True})
        mailbox.post("ext-install-XYZ789", "XYZ789", {"mine": False})
        assert [d.payload for d in mailbox.read_recent("ABC123", WINDOW, 10)] == [{"mine": True}]
        assert mailbox.unread() == 1

    def test_concurrent_readers_never_overlap(self, mailbox):
        for i in range(25):
            mailbox.post("ext-install-ABC123", "ABC123", {"n": i})
        with ThreadPoolExecutor(max_workers=6) as pool:
            batches = list(pool.map(lambda _: mailbox.read_recent("ABC123", WINDOW, 4), range(10)))
        seen = [d.payload["n"] for batch in batches for d in batch]
        assert sorted(seen) == list(range(25))
        assert len(seen) == len(set(seen))

    def test_malformed_payload_isolated(self, mailbox, store, clock):
        mailbox.post("ext-install-ABC123", "ABC123", {"ok": 1})
        with store.session() as session:
            session.add(Response(device_id="ext-install-ABC123", device_code="ABC123",
                                 payload="][", created_at=clock.now))
        out = mailbox.read_recent("ABC123", WINDOW, 10)
        assert len(out) == 2
        assert {"error": "malformed_payload", "id": 2} in [d.payload for d in out]
        assert {"ok": 1} in [d.payload for d in out]


class TestPurge:
    def test_purges_only_old(self, mailbox, clock):
        mailbox.post("ext-install-ABC123", "ABC123", {"old": True})
        clock.advance(minutes=90)
        mailbox.post("ext-install-ABC123", "ABC123", {"old": False})

        assert mailbox.purge_older_than(timedelta(hours=1)) == 1
        assert [d.payload for d in mailbox.read_recent("ABC123", WINDOW, 10)] == [{"old": False}]
