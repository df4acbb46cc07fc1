"""
Leader election on top of lease-bound keys.

Each candidate writes <prefix>/<lease-hex> bound to its session lease. The
candidate whose key has the lowest create revision leads; everyone else
waits for the namespace to change and checks again. A crashed leader's key
disappears with its lease, which hands leadership to the next candidate.
"""

import logging
import threading
from typing import Iterator, Optional

from coordstore.errors import StoreError

from .models import KeyValue, LeaderChange

logger = logging.getLogger(__name__)


class Election:
    def __init__(self, session, prefix: str):
        self.session = session
        self.client = session.client
        self.prefix = prefix.rstrip("/")
        self._key = None

    @property
    def key(self) -> Optional[str]:
        """Candidate key held by this election handle, if any."""
        return self._key

    def _namespace(self) -> str:
        return self.prefix + "/"

    def campaign(self, value: str, cancel: Optional[threading.Event] = None) -> Optional[int]:
        """
        Block until elected.

        Returns the revision at which this candidate was found leading, or
        None if cancel was set or the candidate key vanished (lease lost).
        In both of those cases the candidacy is withdrawn.
        """
        key = f"{self.prefix}/{self.session.lease:x}"
        self.client.put(key, value, lease=self.session.lease)
        self._key = key

        while True:
            if (cancel is not None and cancel.is_set()) or self.session.done.is_set():
                self._withdraw()
                return None

            revision, kvs = self.client.range(self._namespace())
            if not any(kv.key == key for kv in kvs):
                logger.warning("Candidate key %s vanished during campaign", key)
                self._key = None
                return None
            if kvs[0].key == key:
                return revision

            # Wait for any change in the namespace, then re-check
            for _ in self.client.watch(self._namespace(), start_revision=revision + 1, cancel=cancel):
                break

    def _withdraw(self):
        try:
            self.resign()
        except StoreError as e:
            logger.debug("Could not withdraw candidate key %s: %s", self._key, e)
            self._key = None

    def resign(self) -> Optional[int]:
        """
        Delete this candidate's key. No-op when none is held.
        Returns a store revision at or after the deletion, or None.
        """
        if self._key is None:
            return None
        key = self._key
        self.client.delete(key)
        self._key = None
        revision, _ = self.client.range(self._namespace())
        return revision

    def leader(self) -> Optional[KeyValue]:
        """Current leader's key, or None when nobody campaigns."""
        _, kvs = self.client.range(self._namespace())
        return kvs[0] if kvs else None

    def observe(self, cancel: Optional[threading.Event] = None) -> Iterator[LeaderChange]:
        """
        Yield a LeaderChange every time the leading candidate changes.

        A LeaderChange with leader=None is yielded when the namespace empties
        after having had a leader. Runs until cancel is set.
        """
        last = None
        while cancel is None or not cancel.is_set():
            revision, kvs = self.client.range(self._namespace())
            current = (kvs[0].key, kvs[0].value) if kvs else None
            if current != last:
                last = current
                yield LeaderChange(leader=current[1] if current else None, revision=revision)

            for _ in self.client.watch(self._namespace(), start_revision=revision + 1, cancel=cancel):
                break
