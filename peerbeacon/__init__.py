"""
peerbeacon - serverless service discovery for LAN peers

Every program announces itself over UDP broadcast; every program listens
and keeps a registry of who else is out there.
"""

from .config import DiscoveryConfig, load_config
from .discovery import (
    COORDINATOR_TCP_PORT,
    DEFAULT_UDP_PORT,
    LocalIdentity,
    ServiceCallback,
    ServiceInfo,
)
from .errors import DiscoveryError, NotInitializedError, TransportError
from .node import DiscoveryNode

__version__ = '0.1.0'

__all__ = [
    'DiscoveryConfig',
    'load_config',
    'COORDINATOR_TCP_PORT',
    'DEFAULT_UDP_PORT',
    'LocalIdentity',
    'ServiceCallback',
    'ServiceInfo',
    'DiscoveryError',
    'NotInitializedError',
    'TransportError',
    'DiscoveryNode',
]
