"""
Tests for the membership registry.
"""

import threading
import time

import pytest

from cluster.errors import ObservationInterrupted, ParseFailure, RegistrationFailed
from cluster.membership import MemberEventType, MembershipEvent, MembershipRegistry
from coordclient.session import Session
from conftest import wait_for


def collect(registry, cancel, on_self=None):
    """Gather membership events in the background until cancel is set."""
    events = []

    def run():
        try:
            for event in registry.observe_membership(cancel, on_self=on_self):
                events.append(event)
        except ObservationInterrupted:
            pass

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    time.sleep(0.2)
    return events


class TestMemberKeys:
    """Member key naming convention."""

    def test_parse_member_id(self, client):
        session = Session(client, ttl=30)
        try:
            registry = MembershipRegistry("client-1", session)
            assert registry.member_key("client-7") == "/simple-ds/members/client-7"
            assert registry.parse_member_id("/simple-ds/members/client-7") == "client-7"
        finally:
            session.close()

    def test_parse_failure(self, client):
        session = Session(client, ttl=30)
        try:
            registry = MembershipRegistry("client-1", session)
            with pytest.raises(ParseFailure):
                registry.parse_member_id("/simple-ds/members/")
            with pytest.raises(ParseFailure):
                registry.parse_member_id("/elsewhere/client-7")
        finally:
            session.close()


class TestRegistration:
    """Lease-bound member records."""

    def test_register_and_snapshot(self, client):
        session = Session(client, ttl=30)
        try:
            registry = MembershipRegistry("client-1", session)
            registry.register("client-1", {"id": "client-1", "port": 7000})
            assert registry.members() == {"client-1": {"id": "client-1", "port": 7000}}
        finally:
            session.close()

    def test_register_on_closed_session_fails(self, client):
        session = Session(client, ttl=30)
        registry = MembershipRegistry("client-1", session)
        session.close()
        with pytest.raises(RegistrationFailed):
            registry.register("client-1", {"id": "client-1"})

    def test_session_close_removes_record(self, client):
        s1 = Session(client, ttl=30)
        s2 = Session(client, ttl=30)
        try:
            r1 = MembershipRegistry("client-1", s1)
            r2 = MembershipRegistry("client-2", s2)
            r1.register("client-1", {"id": "client-1"})
            r2.register("client-2", {"id": "client-2"})

            s2.close()
            assert set(r1.members()) == {"client-1"}
        finally:
            s1.close()


class TestObserveMembership:
    """Join/leave events seen by an observing node."""

    def test_own_put_round_trips_identity(self, client):
        """Test: Identity extracted from our own put equals the registered one."""
        cancel = threading.Event()
        session = Session(client, ttl=30)
        own = []
        try:
            registry = MembershipRegistry("client-1", session)
            events = collect(registry, cancel, on_self=own.append)
            registry.register("client-1", {"id": "client-1"})

            assert wait_for(lambda: len(own) == 1)
            assert own[0] == MembershipEvent(MemberEventType.JOINED, "client-1", {"id": "client-1"})
            assert events == []
        finally:
            cancel.set()
            session.close()

    def test_new_member_joins(self, client):
        """Scenario C: client-1 sees exactly one joined event, for client-2."""
        cancel = threading.Event()
        s1 = Session(client, ttl=30)
        s2 = Session(client, ttl=30)
        try:
            r1 = MembershipRegistry("client-1", s1)
            r1.register("client-1", {"id": "client-1"})
            events = collect(r1, cancel)

            r2 = MembershipRegistry("client-2", s2)
            r2.register("client-2", {"id": "client-2"})
            r1.register("client-1", {"id": "client-1"})

            assert wait_for(lambda: len(events) >= 1)
            time.sleep(0.3)
            assert events == [MembershipEvent(MemberEventType.JOINED, "client-2", {"id": "client-2"})]
        finally:
            cancel.set()
            s1.close()
            s2.close()

    def test_unparseable_key_is_dropped(self, client):
        cancel = threading.Event()
        session = Session(client, ttl=30)
        try:
            registry = MembershipRegistry("client-1", session)
            events = collect(registry, cancel)

            client.put("/simple-ds/members/", "garbage")
            client.put("/simple-ds/members/client-3", '{"id": "client-3"}')

            assert wait_for(lambda: len(events) == 1)
            assert events[0].node_id == "client-3"
        finally:
            cancel.set()
            session.close()

    def test_crashed_member_leaves(self, client):
        """Scenario D: lapsed lease removes the record and emits left."""
        cancel = threading.Event()
        s1 = Session(client, ttl=30)
        s2 = Session(client, ttl=0.5)
        try:
            r1 = MembershipRegistry("client-1", s1)
            r2 = MembershipRegistry("client-2", s2)
            r1.register("client-1", {"id": "client-1"})
            r2.register("client-2", {"id": "client-2"})
            events = collect(r1, cancel)

            s2.orphan()
            assert wait_for(lambda: any(e.type is MemberEventType.LEFT for e in events))
            assert events == [MembershipEvent(MemberEventType.LEFT, "client-2")]
            assert "client-2" not in r1.members()
        finally:
            cancel.set()
            s1.close()
            s2.close()

    def test_restart_resumes_after_last_event(self, client):
        """Test: A new observation continues where the previous one stopped."""
        session = Session(client, ttl=30)
        try:
            registry = MembershipRegistry("client-1", session)
            stream = registry.observe_membership(threading.Event())
            timer = threading.Timer(0.2, lambda: client.put("/simple-ds/members/client-2", "{}"))
            timer.start()
            first = next(stream)
            stream.close()

            client.put("/simple-ds/members/client-3", "{}")
            client.put("/simple-ds/members/client-4", "{}")
            resumed = registry.observe_membership(threading.Event())
            assert first.node_id == "client-2"
            assert next(resumed).node_id == "client-3"
            assert next(resumed).node_id == "client-4"
            resumed.close()
        finally:
            session.close()
