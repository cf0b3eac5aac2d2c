"""
Discovery Node - Main Controller

Ties the discovery components together behind one handle:
- BroadcastTransport: the shared UDP socket
- Announcer: our own helo/bye
- Listener: other peers' helo/bye -> ServiceRegistry
- ServiceRegistry: queried directly by consumers

Each DiscoveryNode is independent; there is no module-level state, so
several nodes (on different ports) can live in one process.
"""

import logging
from typing import List, Optional

from .config import DiscoveryConfig
from .discovery import (
    Announcer,
    BroadcastTransport,
    Listener,
    LocalIdentity,
    ServiceCallback,
    ServiceInfo,
    ServiceRegistry,
    resolve_local_ip,
)
from .errors import NotInitializedError

logger = logging.getLogger(__name__)


class DiscoveryNode:
    """
    A LAN discovery participant.

    Usage:
        with DiscoveryNode() as node:
            node.listen(on_service)
            node.announce("KY4OLB-SDR1", "sdr_server", 4535, 4536, "rsp2pro,2mhz")
            ...
            sdr = node.find_service("sdr_server")
    """

    def __init__(self, config: Optional[DiscoveryConfig] = None,
                 transport: Optional[BroadcastTransport] = None):
        """
        Initialize a discovery node (no socket is opened yet).

        Args:
            config: Node configuration (uses defaults if not provided)
            transport: Transport to use instead of a BroadcastTransport
                built from config
        """
        self.config = (config or DiscoveryConfig()).validate()

        self.transport = transport or BroadcastTransport(
            port=self.config.udp_port,
            bind_host=self.config.bind_host,
            receive_timeout=self.config.receive_timeout,
        )
        self.registry = ServiceRegistry(capacity=self.config.capacity)

        self.announcer: Optional[Announcer] = None
        self.listener: Optional[Listener] = None
        self._local_ip: Optional[str] = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def port(self) -> int:
        return self.transport.port

    @property
    def local_ip(self) -> str:
        """Address advertised in our helo messages."""
        self._require_initialized()
        return self._local_ip

    def initialize(self):
        """
        Open the discovery socket and prepare the loops.

        Raises:
            TransportError: if the socket cannot be opened; the node stays
                uninitialized
        """
        if self._initialized:
            return

        self.transport.open()

        self._local_ip = resolve_local_ip()
        self.registry.clear()

        self.announcer = Announcer(
            self.transport,
            self._local_ip,
            interval=(self.config.announce_min_interval, self.config.announce_max_interval),
            join_timeout=self.config.join_timeout,
        )
        self.listener = Listener(
            self.transport,
            self.registry,
            is_local=self.announcer.is_local_id,
            join_timeout=self.config.join_timeout,
            stale_timeout=self.config.stale_timeout,
        )

        self._initialized = True
        logger.info(
            f"Discovery initialized on UDP port {self.transport.port}, "
            f"local IP {self._local_ip}"
        )

    def shutdown(self):
        """Send bye if announcing, stop both loops and close the socket."""
        if not self._initialized:
            return

        logger.info("Shutting down discovery...")

        self.announcer.stop()
        self.listener.stop()
        self.transport.close()

        self._initialized = False
        logger.info("Discovery shutdown complete")

    def _require_initialized(self):
        if not self._initialized:
            raise NotInitializedError("Discovery node is not initialized")

    # === Announcing ===

    def announce(self, instance_id: str, service: str, ctrl_port: int = 0,
                 data_port: int = 0, caps: Optional[str] = None) -> LocalIdentity:
        """
        Start announcing this process.

        Broadcasts immediately, then every 30-60 seconds. Announcing again
        replaces the current identity (a bye goes out for the old one).

        Args:
            instance_id: Unique instance id (e.g. "KY4OLB-SDR1")
            service: Service type (e.g. "sdr_server")
            ctrl_port: Control/command port (0 = unspecified)
            data_port: Data port (0 = none)
            caps: Capabilities string

        Returns:
            The identity being announced

        Raises:
            NotInitializedError: if initialize() has not been called
            ValueError: if the identity is invalid
        """
        self._require_initialized()

        identity = LocalIdentity(
            id=instance_id,
            service=service,
            ctrl_port=ctrl_port,
            data_port=data_port,
            caps=caps or "",
        )
        self.announcer.start(identity)
        return identity

    def stop_announcing(self):
        """Send bye and stop the announce loop."""
        if self._initialized:
            self.announcer.stop()

    @property
    def is_announcing(self) -> bool:
        return self._initialized and self.announcer.is_announcing

    # === Listening ===

    def listen(self, callback: Optional[ServiceCallback] = None) -> bool:
        """
        Start listening for other services.

        Args:
            callback: Called as callback(info, is_bye) once when a service
                appears and once when it leaves

        Returns:
            False if already listening (the first callback stays in place)
        """
        self._require_initialized()
        return self.listener.start(callback)

    def stop_listening(self):
        """Stop the listen loop. Known services stay in the registry."""
        if self._initialized:
            self.listener.stop()

    @property
    def is_listening(self) -> bool:
        return self._initialized and self.listener.is_listening

    # === Registry queries ===

    def find_service(self, service: str) -> Optional[ServiceInfo]:
        """Get the first known service of a type, or None."""
        self._require_initialized()
        return self.registry.find_by_type(service)

    def find_service_by_id(self, instance_id: str) -> Optional[ServiceInfo]:
        """Get a service by instance id, or None."""
        self._require_initialized()
        return self.registry.find_by_id(instance_id)

    def get_services(self) -> List[ServiceInfo]:
        """Get all known services."""
        self._require_initialized()
        return self.registry.list_active()

    def get_service_count(self) -> int:
        """Get the number of known services."""
        self._require_initialized()
        return self.registry.count()

    def get_local_ip(self) -> str:
        return self.local_ip

    def purge_stale(self, max_age: Optional[float] = None) -> int:
        """
        Drop services not heard from within max_age seconds.

        Departures are reported through the listen callback. Defaults to
        config.stale_timeout; does nothing if neither is set.

        Returns:
            Number of services removed
        """
        self._require_initialized()
        return self.listener.sweep(max_age=max_age)

    def get_stats(self) -> dict:
        """Get complete node statistics."""
        stats = {
            'initialized': self._initialized,
            'port': self.transport.port,
            'local_ip': self._local_ip,
            'registry': self.registry.get_stats(),
        }
        if self._initialized:
            stats['announcer'] = self.announcer.get_stats()
            stats['listener'] = self.listener.get_stats()
        return stats

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, *args):
        self.shutdown()
