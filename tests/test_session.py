"""
Tests for lease-backed sessions.
"""

from coordclient.local import LocalClient
from coordclient.session import Session


class CountingClient(LocalClient):
    """Local client that counts lease refreshes."""

    def __init__(self, store, **kwargs):
        super().__init__(store, **kwargs)
        self.keepalives = 0

    def keepalive(self, lease_id):
        self.keepalives += 1
        return super().keepalive(lease_id)


class TestSession:
    """Liveness checks and shutdown."""

    def test_is_alive_does_not_refresh_lease(self, store):
        client = CountingClient(store)
        session = Session(client, ttl=30)
        try:
            assert session.is_alive()
            assert session.is_alive()
            assert client.keepalives == 0
        finally:
            session.close()

    def test_orphaned_session_is_not_alive(self, store):
        """Test: An orphaned session reports dead and stops refreshing its lease."""
        client = CountingClient(store)
        session = Session(client, ttl=30)
        try:
            session.orphan()
            assert not session.is_alive()
            assert client.keepalives == 0
            assert store.time_to_live(session.lease)["remaining"] > 25
        finally:
            session.close()

    def test_revoked_lease_marks_session_lost(self, store, client):
        session = Session(client, ttl=30)
        store.revoke(session.lease)
        assert not session.is_alive()
        assert session.done.is_set()
        session.close()

    def test_close_is_idempotent(self, store, client):
        session = Session(client, ttl=30)
        session.close()
        session.close()
        assert not session.is_alive()
        assert store.get_stats()["lease_count"] == 0
