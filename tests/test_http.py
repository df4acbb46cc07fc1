"""
Integration tests against a coordination store process over HTTP.
"""

import threading

import pytest

from cluster.node import ClusterNode
from coordclient.client import CoordinationClient
from coordclient.session import Session
from coordstore.errors import LeaseNotFound, StoreUnavailable
from conftest import start_store, stop_store, wait_for

STORE_PORT = 5031


@pytest.fixture(scope="module")
def store_process():
    proc = start_store(port=STORE_PORT)
    checker = CoordinationClient(port=STORE_PORT)
    try:
        assert wait_for(checker.health, timeout=15, interval=0.2)
        yield proc
    finally:
        checker.close()
        stop_store(proc)


@pytest.fixture
def http_client(store_process):
    c = CoordinationClient(port=STORE_PORT, poll_timeout=0.2)
    yield c
    c.close()


class TestHttpClient:
    """Client calls map onto the store over HTTP."""

    def test_put_get_range(self, http_client):
        http_client.put("/http/a", "1")
        http_client.put("/http/b", "2")
        assert http_client.get("/http/a").value == "1"
        assert http_client.get("/http/missing") is None

        _, kvs = http_client.range("/http/")
        assert [kv.key for kv in kvs] == ["/http/a", "/http/b"]
        assert http_client.delete("/http/a")
        assert not http_client.delete("/http/a")

    def test_lease_errors(self, http_client):
        with pytest.raises(LeaseNotFound):
            http_client.keepalive(987654321)

    def test_session_close_removes_keys(self, http_client):
        with Session(http_client, ttl=10) as session:
            http_client.put("/http/leased", "x", lease=session.lease)
            assert http_client.get("/http/leased") is not None
        assert http_client.get("/http/leased") is None

    def test_watch_over_http(self, http_client):
        cancel = threading.Event()
        revision, _ = http_client.range("/http/w/")
        http_client.put("/http/w/1", "a")

        stream = http_client.watch("/http/w/", start_revision=revision + 1, cancel=cancel)
        event = next(stream)
        cancel.set()
        stream.close()
        assert (event.type, event.kv.key, event.kv.value) == ("put", "/http/w/1", "a")

    def test_unreachable_store(self):
        c = CoordinationClient(port=1, timeout=1)
        with pytest.raises(StoreUnavailable):
            c.grant(10)
        assert not c.health()
        c.close()


class TestHttpNode:
    """A node running against the store process."""

    def test_node_elects_itself(self, http_client):
        node = ClusterNode("client-http", http_client, ttl=10, poll_interval=0.1)
        errors = []

        def run():
            try:
                node.start()
            except Exception as e:
                errors.append(e)

        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        try:
            assert node.wait_until_ready(timeout=10)
            assert wait_for(node.is_leader, timeout=10)
        finally:
            node.stop()
            thread.join(timeout=15)

        assert errors == []
        _, kvs = http_client.range("/simple-ds/")
        assert kvs == []
