"""
Core coordination store: leases, revisioned keys and prefix watches.

Every mutation bumps a store-wide revision and is appended to a bounded
event history that watchers read from. Keys attached to a lease are
deleted when the lease is revoked or expires.
"""

import bisect
import itertools
import logging
import threading
import time

from .errors import LeaseNotFound, RevisionCompacted

logger = logging.getLogger(__name__)

PUT = "put"
DELETE = "delete"


class CoordinationStore:
    def __init__(self, reap_interval: float = 0.5, history_size: int = 10000):
        self.reap_interval = reap_interval
        self.history_size = history_size

        # Core data structures
        self._data = {}      # key -> kv dict
        self._leases = {}    # lease id -> {"ttl", "deadline", "keys"}
        self._events = []    # [(revision, event)], ordered by revision
        self._revision = 0
        self._compacted = 0
        self._lease_ids = itertools.count(1)

        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._closed = False

        # Background lease reaper
        self._stop_reaper = threading.Event()
        self._reaper_thread = threading.Thread(target=self._reaper_loop, daemon=True)
        self._reaper_thread.start()

    # ============== Leases ==============

    def grant(self, ttl: float) -> dict:
        """
        Grant a new lease.
        Returns {"id": int, "ttl": float}
        """
        if ttl <= 0:
            raise ValueError("ttl must be positive")

        with self._lock:
            lease_id = next(self._lease_ids)
            self._leases[lease_id] = {
                "ttl": ttl,
                "deadline": time.monotonic() + ttl,
                "keys": set(),
            }
            logger.debug("Granted lease %x (ttl=%ss)", lease_id, ttl)
            return {"id": lease_id, "ttl": ttl}

    def keepalive(self, lease_id: int) -> dict:
        """Reset the lease deadline to now + ttl."""
        with self._lock:
            lease = self._live_lease(lease_id)
            lease["deadline"] = time.monotonic() + lease["ttl"]
            return {"id": lease_id, "ttl": lease["ttl"]}

    def revoke(self, lease_id: int) -> dict:
        """
        Revoke a lease and delete every key attached to it.
        Returns {"id": int, "deleted": int}
        """
        with self._lock:
            self._live_lease(lease_id)
            deleted = self._drop_lease(lease_id)
            logger.debug("Revoked lease %x, deleted %d keys", lease_id, deleted)
            return {"id": lease_id, "deleted": deleted}

    def time_to_live(self, lease_id: int) -> dict:
        with self._lock:
            lease = self._live_lease(lease_id)
            return {
                "id": lease_id,
                "ttl": lease["ttl"],
                "remaining": max(0.0, lease["deadline"] - time.monotonic()),
                "keys": sorted(lease["keys"]),
            }

    def expire_leases(self) -> int:
        """Drop every lease whose deadline has passed. Returns the number expired."""
        now = time.monotonic()
        with self._lock:
            expired = [lid for lid, lease in self._leases.items() if lease["deadline"] <= now]
            for lease_id in expired:
                deleted = self._drop_lease(lease_id)
                logger.info("Lease %x expired, deleted %d keys", lease_id, deleted)
            return len(expired)

    # ============== Key-Value ==============

    def put(self, key: str, value: str, lease: int = 0) -> dict:
        """
        Set a key, optionally attaching it to a lease.
        Returns {"revision": int, "kv": dict}
        """
        with self._lock:
            if lease:
                self._live_lease(lease)

            revision = self._next_revision()
            old = self._data.get(key)
            if old is not None and old["lease"] and old["lease"] != lease:
                self._leases.get(old["lease"], {"keys": set()})["keys"].discard(key)

            kv = {
                "key": key,
                "value": value,
                "lease": lease,
                "create_revision": old["create_revision"] if old else revision,
                "mod_revision": revision,
                "version": old["version"] + 1 if old else 1,
            }
            self._data[key] = kv
            if lease:
                self._leases[lease]["keys"].add(key)

            self._record(PUT, kv, revision)
            return {"revision": revision, "kv": dict(kv)}

    def get(self, key: str) -> dict:
        """
        Get a key.
        Returns {"revision": int, "kv": dict or None}
        """
        with self._lock:
            kv = self._data.get(key)
            return {"revision": self._revision, "kv": dict(kv) if kv else None}

    def range(self, prefix: str) -> dict:
        """
        All keys starting with prefix, oldest creation first.
        Returns {"revision": int, "kvs": [dict]}
        """
        with self._lock:
            kvs = [dict(kv) for key, kv in self._data.items() if key.startswith(prefix)]
            kvs.sort(key=lambda kv: kv["create_revision"])
            return {"revision": self._revision, "kvs": kvs}

    def delete(self, key: str) -> dict:
        """
        Delete a key.
        Returns {"revision": int, "deleted": int}
        """
        with self._lock:
            if key not in self._data:
                return {"revision": self._revision, "deleted": 0}
            self._delete_key(key)
            return {"revision": self._revision, "deleted": 1}

    # ============== Watch ==============

    def watch_events(self, prefix: str, start_revision: int, timeout: float = 0.0) -> dict:
        """
        Events for keys under prefix with revision >= start_revision.

        Blocks up to timeout seconds until at least one such event exists.
        Returns {"revision": int, "events": [dict]}; "revision" is the store
        revision the scan covered, so callers may resume from revision + 1.
        """
        start_revision = max(start_revision, 1)
        deadline = time.monotonic() + timeout

        with self._changed:
            while True:
                if start_revision <= self._compacted:
                    raise RevisionCompacted(self._compacted)

                index = bisect.bisect_left(self._events, (start_revision,))
                events = [
                    event for _, event in self._events[index:]
                    if event["kv"]["key"].startswith(prefix)
                ]
                remaining = deadline - time.monotonic()
                if events or remaining <= 0 or self._closed:
                    return {"revision": self._revision, "events": events}
                self._changed.wait(remaining)

    # ============== Internals ==============

    def _live_lease(self, lease_id: int) -> dict:
        lease = self._leases.get(lease_id)
        if lease is None:
            raise LeaseNotFound(lease_id)
        if lease["deadline"] <= time.monotonic():
            self._drop_lease(lease_id)
            raise LeaseNotFound(lease_id)
        return lease

    def _drop_lease(self, lease_id: int) -> int:
        lease = self._leases.pop(lease_id)
        keys = sorted(lease["keys"], key=lambda k: self._data[k]["create_revision"])
        for key in keys:
            self._delete_key(key)
        return len(keys)

    def _delete_key(self, key: str):
        kv = self._data.pop(key)
        if kv["lease"] in self._leases:
            self._leases[kv["lease"]]["keys"].discard(key)

        revision = self._next_revision()
        gone = dict(kv, mod_revision=revision)
        self._record(DELETE, gone, revision)

    def _next_revision(self) -> int:
        self._revision += 1
        return self._revision

    def _record(self, event_type: str, kv: dict, revision: int):
        self._events.append((revision, {"type": event_type, "kv": dict(kv), "revision": revision}))

        overflow = len(self._events) - self.history_size
        if overflow > 0:
            self._compacted = self._events[overflow - 1][0]
            del self._events[:overflow]

        self._changed.notify_all()

    def _reaper_loop(self):
        """Periodically expire leases whose deadline passed."""
        while not self._stop_reaper.wait(self.reap_interval):
            self.expire_leases()

    def shutdown(self):
        """Stop the reaper and release any blocked watchers."""
        self._stop_reaper.set()
        with self._changed:
            self._closed = True
            self._changed.notify_all()

    def get_stats(self) -> dict:
        """Get store statistics."""
        with self._lock:
            return {
                "key_count": len(self._data),
                "lease_count": len(self._leases),
                "revision": self._revision,
                "compact_revision": self._compacted,
            }
