# coordstore/__init__.py
from .store import CoordinationStore
from .errors import StoreError, LeaseNotFound, RevisionCompacted, StoreUnavailable

__all__ = ['CoordinationStore', 'StoreError', 'LeaseNotFound', 'RevisionCompacted', 'StoreUnavailable']
