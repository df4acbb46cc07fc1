# coordclient/__init__.py
from .client import CoordinationClient
from .local import LocalClient
from .session import Session
from .election import Election
from .models import KeyValue, WatchEvent, LeaderChange

__all__ = [
    'CoordinationClient', 'LocalClient', 'Session', 'Election',
    'KeyValue', 'WatchEvent', 'LeaderChange',
]
