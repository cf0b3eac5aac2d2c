"""
UDP Broadcast Transport

Owns the single discovery socket. Both background loops use it: the
announcer sends through broadcast(), the listener blocks in receive().
UDP sockets tolerate a concurrent sendto/recvfrom, so no lock is needed
around the socket itself.
"""

import logging
import socket
from typing import Optional, Tuple

from ..errors import TransportError
from .interfaces import LIMITED_BROADCAST, broadcast_addresses
from .protocol import MAX_MESSAGE_SIZE

logger = logging.getLogger(__name__)

# Discovery port (UDP)
DEFAULT_UDP_PORT = 5400

# Reserved for the edge/hub coordinator protocol (TCP). Never opened here.
COORDINATOR_TCP_PORT = 5401

# Receive poll interval; bounds how long a stop request can go unnoticed
DEFAULT_RECEIVE_TIMEOUT = 1.0


class BroadcastTransport:
    """
    One UDP socket bound to the discovery port.

    Sends go to the directed broadcast address of every local interface,
    receives are bounded by a timeout so the calling loop can poll its
    stop flag.
    """

    def __init__(self, port: int = DEFAULT_UDP_PORT, bind_host: str = '',
                 receive_timeout: float = DEFAULT_RECEIVE_TIMEOUT):
        """
        Initialize the transport (does not open the socket).

        Args:
            port: UDP port to bind and broadcast to (0 = ephemeral)
            bind_host: Local address to bind ('' = all interfaces)
            receive_timeout: Maximum seconds a receive() call blocks
        """
        self.port = port
        self.bind_host = bind_host
        self.receive_timeout = receive_timeout

        self._socket: Optional[socket.socket] = None

    @property
    def is_open(self) -> bool:
        return self._socket is not None

    def open(self):
        """
        Create, configure and bind the socket.

        Raises:
            TransportError: if any step fails; no socket is left open
        """
        if self._socket:
            return

        sock = None
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

            # Several peers on one host share the port (Linux/macOS)
            if hasattr(socket, 'SO_REUSEPORT'):
                try:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
                except OSError:
                    pass

            sock.bind((self.bind_host, self.port))
            sock.settimeout(self.receive_timeout)
        except OSError as e:
            if sock is not None:
                sock.close()
            raise TransportError(
                f"Cannot open discovery socket on UDP port {self.port}: {e}"
            ) from e

        self._socket = sock
        self.port = sock.getsockname()[1]
        logger.debug(f"Discovery socket bound to {self.bind_host or '*'}:{self.port}")

    def close(self):
        """Close the socket. Safe to call more than once."""
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

    def broadcast(self, data: bytes) -> int:
        """
        Send a datagram to every local broadcast domain.

        Falls back to a single send to 255.255.255.255 if the interfaces
        cannot be enumerated (or none has a broadcast address).

        Returns:
            Number of datagrams handed to the OS
        """
        if not self._socket:
            raise TransportError("Transport is not open")

        try:
            targets = broadcast_addresses()
        except OSError as e:
            logger.debug(f"Interface enumeration failed, using limited broadcast: {e}")
            targets = []

        if not targets:
            targets = [LIMITED_BROADCAST]

        sent = 0
        for addr in targets:
            try:
                self._socket.sendto(data, (addr, self.port))
                sent += 1
            except OSError as e:
                # Interfaces come and go; one bad address must not stop the rest
                logger.debug(f"Broadcast to {addr}:{self.port} failed: {e}")

        return sent

    def receive(self) -> Optional[Tuple[bytes, str]]:
        """
        Wait up to receive_timeout seconds for one datagram.

        Returns:
            (payload, sender_ip), or None on timeout
        """
        if not self._socket:
            raise TransportError("Transport is not open")

        try:
            data, addr = self._socket.recvfrom(MAX_MESSAGE_SIZE)
        except socket.timeout:
            return None
        return data, addr[0]

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *args):
        self.close()
