"""
Discovery Module - LAN Service Discovery

UDP broadcast presence protocol:
- Announcer: periodic helo, bye on stop
- Listener: builds the registry from other peers' broadcasts
"""

from .protocol import (
    Command,
    LocalIdentity,
    Message,
    ProtocolError,
    ServiceInfo,
    decode,
    encode_bye,
    encode_helo,
)
from .interfaces import broadcast_addresses, resolve_local_ip
from .transport import BroadcastTransport, DEFAULT_UDP_PORT, COORDINATOR_TCP_PORT
from .registry import ServiceRegistry, UpsertResult
from .announcer import Announcer
from .listener import Listener, ServiceCallback

__all__ = [
    'Command',
    'LocalIdentity',
    'Message',
    'ProtocolError',
    'ServiceInfo',
    'decode',
    'encode_bye',
    'encode_helo',
    'broadcast_addresses',
    'resolve_local_ip',
    'BroadcastTransport',
    'DEFAULT_UDP_PORT',
    'COORDINATOR_TCP_PORT',
    'ServiceRegistry',
    'UpsertResult',
    'Announcer',
    'Listener',
    'ServiceCallback',
]
