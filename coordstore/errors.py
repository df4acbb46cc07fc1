"""
Errors shared by the coordination store and its clients.
"""


class StoreError(Exception):
    """Base class for coordination store failures."""


class LeaseNotFound(StoreError):
    def __init__(self, lease_id):
        name = f"{lease_id:x}" if isinstance(lease_id, int) else repr(lease_id)
        super().__init__(f"lease {name} not found or expired")
        self.lease_id = lease_id


class RevisionCompacted(StoreError):
    def __init__(self, compact_revision: int):
        super().__init__(f"requested revision has been compacted (compact revision {compact_revision})")
        self.compact_revision = compact_revision


class StoreUnavailable(StoreError):
    """The store could not be reached or answered with an unexpected error."""
