"""
Coordination Store Client classes.
"""

import threading
from typing import Iterator, List, Optional, Tuple

import requests

from coordstore.errors import LeaseNotFound, RevisionCompacted, StoreUnavailable

from .models import KeyValue, WatchEvent


class BaseClient:
    """
    Behaviour shared by every client transport.

    Subclasses provide the primitive calls (grant, keepalive, revoke,
    time_to_live, put, get, range, delete, watch_events); this class
    builds the long-running watch stream on top of them.
    """

    poll_timeout = 1.0

    def watch(self, prefix: str, start_revision: Optional[int] = None,
              cancel: Optional[threading.Event] = None) -> Iterator[WatchEvent]:
        """
        Stream events for keys under prefix.

        Starts after the current revision unless start_revision is given.
        Runs until cancel is set; raises RevisionCompacted if the store no
        longer holds the history needed to continue.
        """
        if start_revision is None:
            revision, _ = self.range(prefix)
            start_revision = revision + 1

        next_revision = start_revision
        while cancel is None or not cancel.is_set():
            revision, events = self.watch_events(prefix, next_revision, self.poll_timeout)
            for event in events:
                if cancel is not None and cancel.is_set():
                    return
                next_revision = event.revision + 1
                yield event
            next_revision = max(next_revision, revision + 1)


class CoordinationClient(BaseClient):
    def __init__(self, host: str = "localhost", port: int = 5000,
                 timeout: float = 10, poll_timeout: float = 1.0):
        self.base_url = f"http://{host}:{port}"
        self.timeout = timeout
        self.poll_timeout = poll_timeout
        self.http = requests.Session()

    def _post(self, path: str, payload: dict, timeout: float = None) -> dict:
        """POST a JSON body and return the decoded reply, mapping store errors."""
        try:
            response = self.http.post(
                f"{self.base_url}{path}",
                json=payload,
                timeout=timeout or self.timeout
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise StoreUnavailable(f"{path}: {e}") from e

        if response.status_code == 404 and "lease" in data:
            raise LeaseNotFound(data["lease"])
        if response.status_code == 410:
            raise RevisionCompacted(data["compact_revision"])
        if response.status_code != 200:
            raise StoreUnavailable(f"{path} returned {response.status_code}: {data.get('error')}")
        return data

    # ============== Leases ==============

    def grant(self, ttl: float) -> int:
        """Grant a lease. Returns the lease id."""
        return self._post("/lease/grant", {"ttl": ttl})["id"]

    def keepalive(self, lease_id: int) -> float:
        """Refresh a lease. Returns its TTL."""
        return self._post("/lease/keepalive", {"id": lease_id})["ttl"]

    def revoke(self, lease_id: int) -> int:
        """Revoke a lease. Returns the number of keys deleted with it."""
        return self._post("/lease/revoke", {"id": lease_id})["deleted"]

    def time_to_live(self, lease_id: int) -> dict:
        return self._post("/lease/ttl", {"id": lease_id})

    # ============== Key-Value ==============

    def put(self, key: str, value: str, lease: int = 0) -> KeyValue:
        """Set a key, bound to lease when given."""
        data = self._post("/kv/put", {"key": key, "value": value, "lease": lease})
        return KeyValue.from_dict(data["kv"])

    def get(self, key: str) -> Optional[KeyValue]:
        """
        Get a key.
        Returns None if it does not exist.
        """
        data = self._post("/kv/get", {"key": key})
        return KeyValue.from_dict(data["kv"]) if data.get("kv") else None

    def range(self, prefix: str) -> Tuple[int, List[KeyValue]]:
        """
        All keys under prefix, oldest creation first.
        Returns (revision, kvs).
        """
        data = self._post("/kv/range", {"prefix": prefix})
        return data["revision"], [KeyValue.from_dict(kv) for kv in data["kvs"]]

    def delete(self, key: str) -> bool:
        """
        Delete a key.
        Returns True if the key existed.
        """
        return self._post("/kv/delete", {"key": key})["deleted"] > 0

    def watch_events(self, prefix: str, start_revision: int, timeout: float = 0.0) -> Tuple[int, List[WatchEvent]]:
        """Single long poll for events. Returns (revision, events)."""
        data = self._post(
            "/watch",
            {"prefix": prefix, "start_revision": start_revision, "timeout": timeout},
            timeout=timeout + self.timeout
        )
        return data["revision"], [WatchEvent.from_dict(e) for e in data["events"]]

    def stats(self) -> dict:
        """Get store statistics."""
        try:
            response = self.http.get(f"{self.base_url}/stats", timeout=self.timeout)
            if response.status_code == 200:
                return response.json()
            return {}
        except requests.RequestException:
            return {}

    def health(self) -> bool:
        """Check if the store is healthy."""
        try:
            response = self.http.get(f"{self.base_url}/health", timeout=5)
            return response.status_code == 200
        except requests.RequestException:
            return False

    def close(self):
        """Close the HTTP session."""
        self.http.close()
