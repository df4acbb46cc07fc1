"""
Lease-backed session with background keep-alive.
"""

import logging
import threading

from coordstore.errors import LeaseNotFound, StoreError, StoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TTL = 60


class Session:
    def __init__(self, client, ttl: float = DEFAULT_TTL):
        """
        Open a session by granting a lease on the store.

        Args:
            client: Coordination client (HTTP or local)
            ttl: Lease time-to-live in seconds

        Raises StoreError immediately if the lease cannot be granted.
        """
        self.client = client
        self.ttl = ttl
        self.lease = client.grant(ttl)

        # Set once the session is closed or its lease is lost
        self.done = threading.Event()
        self._closed = False
        self._lock = threading.Lock()

        self._stop_keepalive = threading.Event()
        self._keepalive_thread = threading.Thread(
            target=self._keepalive_loop,
            name=f"keepalive-{self.lease:x}",
            daemon=True
        )
        self._keepalive_thread.start()
        logger.debug("Opened session with lease %x (ttl=%ss)", self.lease, ttl)

    def _keepalive_loop(self):
        """Refresh the lease every ttl/3 seconds until stopped."""
        interval = self.ttl / 3.0
        while not self._stop_keepalive.wait(interval):
            try:
                self.client.keepalive(self.lease)
            except LeaseNotFound:
                logger.error("Lease %x expired, session lost", self.lease)
                self._mark_lost()
                return
            except StoreUnavailable as e:
                logger.warning("Failed to refresh lease %x: %s", self.lease, e)

    def _mark_lost(self):
        self._stop_keepalive.set()
        self.done.set()

    def is_alive(self) -> bool:
        """
        Confirm with the store that the lease is still held, without
        refreshing it. An orphaned session is never alive.
        """
        if self.done.is_set() or self._stop_keepalive.is_set():
            return False
        try:
            self.client.time_to_live(self.lease)
        except LeaseNotFound:
            self._mark_lost()
            return False
        except StoreUnavailable:
            return False
        return True

    def orphan(self):
        """Stop refreshing the lease without revoking it; it will expire after ttl."""
        self._stop_keepalive.set()

    def close(self):
        """
        Revoke the lease, deleting every key bound to it.
        Safe to call more than once and after the lease was lost.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._stop_keepalive.set()
        try:
            self.client.revoke(self.lease)
        except LeaseNotFound:
            logger.debug("Lease %x already gone on close", self.lease)
        except StoreError as e:
            logger.warning("Failed to revoke lease %x, it will expire in %ss: %s", self.lease, self.ttl, e)
        finally:
            self.done.set()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
