"""
In-process client for a CoordinationStore living in the same interpreter.
"""

from typing import List, Optional, Tuple

from coordstore.store import CoordinationStore

from .client import BaseClient
from .models import KeyValue, WatchEvent


class LocalClient(BaseClient):
    def __init__(self, store: CoordinationStore, poll_timeout: float = 0.5):
        self.store = store
        self.poll_timeout = poll_timeout

    def grant(self, ttl: float) -> int:
        return self.store.grant(ttl)["id"]

    def keepalive(self, lease_id: int) -> float:
        return self.store.keepalive(lease_id)["ttl"]

    def revoke(self, lease_id: int) -> int:
        return self.store.revoke(lease_id)["deleted"]

    def time_to_live(self, lease_id: int) -> dict:
        return self.store.time_to_live(lease_id)

    def put(self, key: str, value: str, lease: int = 0) -> KeyValue:
        return KeyValue.from_dict(self.store.put(key, value, lease=lease)["kv"])

    def get(self, key: str) -> Optional[KeyValue]:
        kv = self.store.get(key)["kv"]
        return KeyValue.from_dict(kv) if kv else None

    def range(self, prefix: str) -> Tuple[int, List[KeyValue]]:
        result = self.store.range(prefix)
        return result["revision"], [KeyValue.from_dict(kv) for kv in result["kvs"]]

    def delete(self, key: str) -> bool:
        return self.store.delete(key)["deleted"] > 0

    def watch_events(self, prefix: str, start_revision: int, timeout: float = 0.0) -> Tuple[int, List[WatchEvent]]:
        result = self.store.watch_events(prefix, start_revision, timeout)
        return result["revision"], [WatchEvent.from_dict(e) for e in result["events"]]

    def stats(self) -> dict:
        return self.store.get_stats()

    def health(self) -> bool:
        return True

    def close(self):
        pass
