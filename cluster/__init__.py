# cluster/__init__.py
from .node import ClusterNode, NodeState
from .election import ElectionCoordinator
from .membership import MembershipRegistry, MembershipEvent, MemberEventType
from .errors import (
    ClusterError, SessionError, RegistrationFailed, CampaignAborted,
    ObservationInterrupted, ParseFailure,
)

__all__ = [
    'ClusterNode', 'NodeState', 'ElectionCoordinator',
    'MembershipRegistry', 'MembershipEvent', 'MemberEventType',
    'ClusterError', 'SessionError', 'RegistrationFailed', 'CampaignAborted',
    'ObservationInterrupted', 'ParseFailure',
]
