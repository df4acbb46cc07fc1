"""
Election coordinator: campaign for leadership on the coordination store
and keep a local view of who currently leads.
"""

import logging
import threading
from typing import Iterator, Optional

from coordclient.election import Election
from coordstore.errors import StoreError

from .errors import CampaignAborted, ObservationInterrupted

logger = logging.getLogger(__name__)

ELECTION_PREFIX = "/simple-ds/elections"


class ElectionCoordinator:
    def __init__(self, session, namespace: str = ELECTION_PREFIX, election=None):
        """
        Initialize the coordinator.

        Args:
            session: Session the candidate key is bound to
            namespace: Election namespace shared by all candidates
            election: Election handle; built from session and namespace if omitted
        """
        self.session = session
        self.namespace = namespace
        self.election = election or Election(session, namespace)

        # Current leader as last observed, and the store revision it was seen at
        self._current_leader = None
        self._revision = 0
        self._lock = threading.Lock()

        # Node id this coordinator last campaigned for
        self._candidate = None

    @property
    def current_leader(self) -> Optional[str]:
        with self._lock:
            return self._current_leader

    def is_leader(self, node_id: str) -> bool:
        """True iff the last observed leader is node_id."""
        with self._lock:
            return self._current_leader is not None and self._current_leader == node_id

    def _record(self, leader: Optional[str], revision: int) -> bool:
        """Overwrite the current leader unless the update is older than what we hold."""
        with self._lock:
            if revision < self._revision:
                return False
            self._current_leader = leader
            self._revision = revision
            return True

    def campaign(self, node_id: str, cancel: threading.Event = None):
        """
        Block until node_id is elected leader.

        The leader observer should already be running alongside; the win is
        also recorded here so is_leader(node_id) holds once this returns.
        Raises CampaignAborted on cancellation, session loss or store failure.
        """
        logger.info("[Node %s] Running for leadership", node_id)
        self._candidate = node_id
        try:
            revision = self.election.campaign(node_id, cancel)
        except StoreError as e:
            raise CampaignAborted(f"campaign for {node_id} failed: {e}") from e

        if revision is None:
            raise CampaignAborted(f"campaign for {node_id} was cancelled or lost its session")

        self._record(node_id, revision)
        logger.info("[Node %s] Elected leader at revision %d", node_id, revision)

    def observe_leader_changes(self, cancel: threading.Event = None) -> Iterator[Optional[str]]:
        """
        Yield the leader's id on every leadership change, updating the
        current leader before each yield.

        Must be consumed continuously. Raises ObservationInterrupted if the
        underlying stream fails or stops while cancel is not set.
        """
        try:
            for change in self.election.observe(cancel):
                if self._record(change.leader, change.revision):
                    yield change.leader
        except StoreError as e:
            raise ObservationInterrupted(f"leader observation failed: {e}") from e

        if cancel is None or not cancel.is_set():
            raise ObservationInterrupted("leader observation ended unexpectedly")

    def resign(self):
        """
        Give up leadership or a pending candidacy. Idempotent; errors are
        logged and swallowed so shutdown can carry on.
        """
        try:
            revision = self.election.resign()
        except StoreError as e:
            logger.warning("Failed to resign from %s: %s", self.namespace, e)
            return
        self._drop_own_leadership(revision, "resigned")

    def release(self):
        """Forget our own leadership once the session backing it is closed."""
        self._drop_own_leadership(None, "session closed")

    def _drop_own_leadership(self, revision: Optional[int], reason: str):
        with self._lock:
            if self._candidate is None or self._current_leader != self._candidate:
                return
            self._current_leader = None
            if revision is not None:
                self._revision = max(self._revision, revision)
        logger.info("[Node %s] Leadership lost (%s)", self._candidate, reason)
