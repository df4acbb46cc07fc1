"""
Membership registry: announce this node under a shared namespace and
watch other nodes join and leave.

Member records are bound to the node's session lease, so a node that dies
disappears once its lease lapses. There is no explicit deregistration.
"""

import json
import logging
import re
import threading
from enum import Enum
from typing import Callable, Iterator, NamedTuple, Optional

from coordstore.errors import RevisionCompacted, StoreError

from .errors import ObservationInterrupted, ParseFailure, RegistrationFailed

logger = logging.getLogger(__name__)

MEMBER_PREFIX = "/simple-ds/members"


class MemberEventType(Enum):
    JOINED = "joined"
    LEFT = "left"


class MembershipEvent(NamedTuple):
    type: MemberEventType
    node_id: str
    descriptor: Optional[dict] = None


class MembershipRegistry:
    def __init__(self, node_id: str, session, namespace: str = MEMBER_PREFIX):
        """
        Initialize the registry.

        Args:
            node_id: Identity of the observing node (its own events are suppressed)
            session: Session member records are bound to
            namespace: Shared member namespace
        """
        self.node_id = node_id
        self.session = session
        self.client = session.client
        self.namespace = namespace.rstrip("/")
        self._key_pattern = re.compile("^" + re.escape(self.namespace) + "/(.+)$")

        # Where a restarted observation resumes
        self._next_revision = None

    def member_key(self, node_id: str) -> str:
        return f"{self.namespace}/{node_id}"

    def parse_member_id(self, key: str) -> str:
        match = self._key_pattern.match(key)
        if not match:
            raise ParseFailure(key)
        return match.group(1)

    def register(self, node_id: str, descriptor: dict):
        """
        Write the member record for node_id, bound to the session lease.
        Raises RegistrationFailed if the store write fails.
        """
        try:
            value = json.dumps(descriptor)
            self.client.put(self.member_key(node_id), value, lease=self.session.lease)
        except (StoreError, TypeError, ValueError) as e:
            raise RegistrationFailed(f"failed to register member {node_id}: {e}") from e
        logger.info("[Node %s] Registered member record %s", node_id, self.member_key(node_id))

    def members(self) -> dict:
        """Snapshot of the namespace as {node_id: descriptor}."""
        _, kvs = self.client.range(self.namespace + "/")
        result = {}
        for kv in kvs:
            try:
                result[self.parse_member_id(kv.key)] = _decode(kv.value)
            except ParseFailure as e:
                logger.warning("%s", e)
        return result

    def observe_membership(self, cancel: threading.Event = None,
                           on_self: Callable[[MembershipEvent], None] = None) -> Iterator[MembershipEvent]:
        """
        Yield joined/left events for other nodes.

        Events for this node's own identity are passed to on_self instead of
        being yielded. Unparseable keys are logged and dropped. After an
        interruption, a new call resumes after the last delivered event.
        Raises ObservationInterrupted if the watch fails or stops while
        cancel is not set.
        """
        try:
            for event in self.client.watch(self.namespace + "/", start_revision=self._next_revision, cancel=cancel):
                self._next_revision = event.revision + 1
                try:
                    member_id = self.parse_member_id(event.kv.key)
                except ParseFailure as e:
                    logger.warning("%s", e)
                    continue

                if event.type == "put":
                    membership_event = MembershipEvent(MemberEventType.JOINED, member_id, _decode(event.kv.value))
                else:
                    membership_event = MembershipEvent(MemberEventType.LEFT, member_id)

                if member_id == self.node_id:
                    if on_self is not None:
                        on_self(membership_event)
                    continue
                yield membership_event
        except RevisionCompacted as e:
            self._next_revision = None
            raise ObservationInterrupted(f"membership watch fell behind: {e}") from e
        except StoreError as e:
            raise ObservationInterrupted(f"membership watch failed: {e}") from e

        if cancel is None or not cancel.is_set():
            raise ObservationInterrupted("membership watch ended unexpectedly")


def _decode(value: str) -> Optional[dict]:
    try:
        return json.loads(value)
    except ValueError:
        return None
