"""
Pytest fixtures for coordination store and node tests.
"""

import os
import signal
import subprocess
import sys
import time

import pytest

from coordstore.store import CoordinationStore
from coordclient.local import LocalClient

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


@pytest.fixture(scope="function")
def store():
    """Fresh in-process store with a fast lease reaper."""
    s = CoordinationStore(reap_interval=0.05)
    yield s
    s.shutdown()


@pytest.fixture(scope="function")
def client(store):
    """Client bound to the in-process store."""
    c = LocalClient(store, poll_timeout=0.1)
    yield c
    c.close()


def wait_for(predicate, timeout=5.0, interval=0.05):
    """Poll predicate until it returns truthy or timeout elapses."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


def start_store(port=5031):
    """Helper to start a coordination store process."""
    proc = subprocess.Popen(
        [sys.executable, "-m", "coordstore.run_store", "--port", str(port), "--reap-interval", "0.1"],
        cwd=PROJECT_ROOT,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL
    )
    return proc


def stop_store(proc):
    """Gracefully stop store."""
    proc.terminate()
    try:
        proc.wait(timeout=5)
    except subprocess.TimeoutExpired:
        os.kill(proc.pid, signal.SIGKILL)
        proc.wait()
