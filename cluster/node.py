"""
Cluster node lifecycle: session, membership, election and shutdown.

    Created -> Registering -> Running -> ShuttingDown -> Stopped
"""

import logging
import os
import socket
import threading
import time
from enum import Enum
from typing import Callable

from coordclient.session import Session
from coordstore.errors import StoreError

from .election import ELECTION_PREFIX, ElectionCoordinator
from .errors import CampaignAborted, ObservationInterrupted, RegistrationFailed, SessionError
from .membership import MEMBER_PREFIX, MemberEventType, MembershipRegistry

logger = logging.getLogger(__name__)


class NodeState(Enum):
    CREATED = "created"
    REGISTERING = "registering"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class ClusterNode:
    def __init__(self, node_id: str, client, ttl: float = 30, poll_interval: float = 1.0,
                 election_prefix: str = ELECTION_PREFIX, member_prefix: str = MEMBER_PREFIX,
                 descriptor: dict = None, max_restarts: int = 5, restart_backoff: float = 1.0,
                 healthy_interval: float = 10.0,
                 on_leader_tick: Callable = None, on_leader_change: Callable = None,
                 on_member_change: Callable = None):
        """
        Initialize a cluster node.

        Args:
            node_id: Cluster-unique node identity
            client: Coordination client shared by every component
            ttl: Session lease TTL in seconds
            poll_interval: Seconds between leadership checks
            election_prefix: Election namespace
            member_prefix: Membership namespace
            descriptor: Member record payload (defaults to id, host and pid)
            max_restarts: Consecutive failures tolerated per activity before giving up
            restart_backoff: Seconds to wait before restarting a failed activity
            healthy_interval: Seconds an activity must run before its failure count resets
            on_leader_tick: Called with the node on every poll while leader
            on_leader_change: Called with the new leader id (or None)
            on_member_change: Called with each MembershipEvent for other nodes
        """
        self.node_id = node_id
        self.client = client
        self.ttl = ttl
        self.poll_interval = poll_interval
        self.election_prefix = election_prefix
        self.member_prefix = member_prefix
        self.descriptor = descriptor if descriptor is not None else {
            "id": node_id,
            "host": socket.gethostname(),
            "pid": os.getpid(),
        }
        self.max_restarts = max_restarts
        self.restart_backoff = restart_backoff
        self.healthy_interval = healthy_interval

        self.on_leader_tick = on_leader_tick
        self.on_leader_change = on_leader_change
        self.on_member_change = on_member_change

        self.session = None
        self.election = None
        self.membership = None

        self.state = NodeState.CREATED
        self.ready = threading.Event()

        # Shared cancellation for every activity tied to the node's lifetime
        self._stop_event = threading.Event()
        self._threads = []
        self._failure = None
        self._failure_lock = threading.Lock()

    def _set_state(self, state: NodeState):
        logger.info("[Node %s] %s -> %s", self.node_id, self.state.value, state.value)
        self.state = state

    def is_leader(self) -> bool:
        return self.election is not None and self.election.is_leader(self.node_id)

    # ============== Lifecycle ==============

    def start(self):
        """
        Run the node until stop() is called or an activity fails fatally.

        Raises SessionError or RegistrationFailed if startup fails, and
        re-raises the fatal error that ended the node otherwise.
        """
        self._open()
        try:
            try:
                self.membership.register(self.node_id, self.descriptor)
            except RegistrationFailed as e:
                logger.error("[Node %s] Registration failed: %s", self.node_id, e)
                raise

            self._set_state(NodeState.RUNNING)
            self.ready.set()

            self._run_for_leadership()
            self._spawn("member-observer", self._observe_members)
            self._poll()
        finally:
            self._cleanup()

        if self._failure is not None:
            raise self._failure

    def stop(self):
        """Request graceful shutdown."""
        logger.info("[Node %s] Received terminate signal. Resign leadership if possible", self.node_id)
        self._stop_event.set()

    def wait_until_ready(self, timeout: float = None) -> bool:
        return self.ready.wait(timeout)

    def _open(self):
        """Created -> Registering: open the session and build components on it."""
        self._set_state(NodeState.REGISTERING)
        try:
            self.session = Session(self.client, ttl=self.ttl)
        except StoreError as e:
            logger.error("[Node %s] Failed to open session: %s", self.node_id, e)
            self._set_state(NodeState.STOPPED)
            raise SessionError(f"failed to open session: {e}") from e

        self.election = ElectionCoordinator(self.session, self.election_prefix)
        self.membership = MembershipRegistry(self.node_id, self.session, self.member_prefix)

    def _poll(self):
        """Check leadership every poll_interval until stopped."""
        while not self._stop_event.is_set():
            if self.session.done.is_set():
                self._fail(SessionError("session lost"))
                break
            if self.is_leader():
                if self.on_leader_tick:
                    self.on_leader_tick(self)
                else:
                    logger.debug("[Node %s] Acting as leader", self.node_id)
            self._stop_event.wait(self.poll_interval)

    def _cleanup(self):
        """ShuttingDown -> Stopped: resign if leader, then always close the session."""
        self._set_state(NodeState.SHUTTING_DOWN)
        self._stop_event.set()
        try:
            if self.is_leader():
                self.election.resign()
        finally:
            self.session.close()

        for thread in self._threads:
            thread.join(timeout=max(self.poll_interval, 1.0) * 5)
        self.election.release()
        self.ready.clear()
        self._set_state(NodeState.STOPPED)

    def _fail(self, error: Exception):
        """Record the first fatal error and trigger shutdown."""
        with self._failure_lock:
            if self._failure is None:
                self._failure = error
        logger.error("[Node %s] Fatal: %s", self.node_id, error)
        self._stop_event.set()

    # ============== Activities ==============

    def _spawn(self, name: str, target: Callable):
        thread = threading.Thread(
            target=self._supervise,
            args=(name, target),
            name=f"{self.node_id}-{name}",
            daemon=True
        )
        self._threads.append(thread)
        thread.start()
        return thread

    def _supervise(self, name: str, target: Callable):
        """
        Run target, restarting it after ObservationInterrupted while the
        session is alive. Escalates to a node failure otherwise.
        """
        failures = 0
        while not self._stop_event.is_set():
            started = time.monotonic()
            try:
                target()
                return
            except ObservationInterrupted as e:
                if self._stop_event.is_set():
                    return
                failures = self._count_failure(failures, started)
                if failures > self.max_restarts:
                    self._fail(SessionError(f"{name} failed {failures} times: {e}"))
                    return
                if not self.session.is_alive():
                    self._fail(SessionError(f"{name} interrupted and session lost: {e}"))
                    return
                logger.warning("[Node %s] %s interrupted (%s), restarting", self.node_id, name, e)
                self._stop_event.wait(self.restart_backoff)
            except SessionError as e:
                self._fail(e)
                return
            except Exception as e:
                logger.exception("[Node %s] %s crashed", self.node_id, name)
                self._fail(e)
                return

    def _count_failure(self, failures: int, started: float) -> int:
        """Consecutive failure count; a run longer than healthy_interval starts it over."""
        if time.monotonic() - started >= self.healthy_interval:
            failures = 0
        return failures + 1

    def _run_for_leadership(self):
        """Start the leader observer, then campaign alongside it."""
        self._spawn("leader-observer", self._observe_leader)
        self._spawn("campaign", self._campaign)

    def _campaign(self):
        failures = 0
        while not self._stop_event.is_set():
            started = time.monotonic()
            try:
                self.election.campaign(self.node_id, self._stop_event)
                return
            except CampaignAborted as e:
                if self._stop_event.is_set():
                    return
                if not self.session.is_alive():
                    raise SessionError(f"campaign aborted and session lost: {e}") from e
                failures = self._count_failure(failures, started)
                if failures > self.max_restarts:
                    raise SessionError(f"campaign aborted {failures} times: {e}") from e
                logger.warning("[Node %s] Campaign aborted (%s), retrying", self.node_id, e)
                self._stop_event.wait(self.restart_backoff)

    def _observe_leader(self):
        was_leader = self.is_leader()
        for leader in self.election.observe_leader_changes(self._stop_event):
            now_leader = leader == self.node_id
            if now_leader and not was_leader:
                logger.info("[Node %s] Leadership acquired", self.node_id)
            elif was_leader and not now_leader:
                logger.warning("[Node %s] Leadership lost, current leader: %s", self.node_id, leader)
            else:
                logger.info("[Node %s] Leader is now %s", self.node_id, leader)
            was_leader = now_leader

            if self.on_leader_change:
                self.on_leader_change(leader)

    def _observe_members(self):
        for event in self.membership.observe_membership(self._stop_event, on_self=self._on_self_event):
            if event.type is MemberEventType.JOINED:
                logger.info("[Node %s] New member joined cluster. Member ID: %s", self.node_id, event.node_id)
            else:
                logger.info("[Node %s] Member left cluster. Member ID: %s", self.node_id, event.node_id)

            if self.on_member_change:
                self.on_member_change(event)

    def _on_self_event(self, event):
        """Re-register if our own record disappeared while the session lives."""
        if event.type is not MemberEventType.LEFT or self._stop_event.is_set():
            return
        if not self.session.is_alive():
            return

        logger.warning("[Node %s] Own member record removed, re-registering", self.node_id)
        try:
            self.membership.register(self.node_id, self.descriptor)
        except RegistrationFailed as e:
            logger.error("[Node %s] Re-registration failed: %s", self.node_id, e)
