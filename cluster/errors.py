"""
Failure taxonomy of the node agent.
"""


class ClusterError(Exception):
    """Base class for node agent failures."""


class SessionError(ClusterError):
    """Session could not be opened or was lost. Fatal for the node."""


class RegistrationFailed(ClusterError):
    """Membership record could not be written."""


class CampaignAborted(ClusterError):
    """Campaign returned without election (cancelled, session lost or store error)."""


class ObservationInterrupted(ClusterError):
    """A watch or observe stream ended unexpectedly."""


class ParseFailure(ClusterError):
    """A membership key did not match <namespace>/<node id>."""

    def __init__(self, key: str):
        super().__init__(f"Unable to extract member id from key {key!r}")
        self.key = key
