"""
Listener

Receives discovery datagrams and keeps the registry up to date:

- helo from an unknown id  -> new record, callback(info, False)
- helo from a known id     -> record refreshed, no callback
- bye from a known id      -> record removed, callback(info, True)
- bye from an unknown id   -> ignored
- our own id               -> ignored (we hear our own broadcasts)
- anything malformed       -> dropped silently

The port is shared with whatever else happens to broadcast on the LAN,
so garbage is expected and never treated as an error.
"""

import logging
import threading
import time
from typing import Callable, Optional

from ..errors import DiscoveryError
from .protocol import Command, Message, ProtocolError, ServiceInfo, decode
from .registry import ServiceRegistry, UpsertResult
from .transport import BroadcastTransport

logger = logging.getLogger(__name__)

# Callback type for service discovery events
ServiceCallback = Callable[[ServiceInfo, bool], None]  # (info, is_bye)

# How long stop() waits for the loop thread
DEFAULT_JOIN_TIMEOUT = 5.0

# Pause after a socket error before receiving again
ERROR_BACKOFF = 1.0


class Listener:
    """Background receive loop feeding a ServiceRegistry."""

    def __init__(self, transport: BroadcastTransport, registry: ServiceRegistry,
                 is_local: Optional[Callable[[str], bool]] = None,
                 join_timeout: float = DEFAULT_JOIN_TIMEOUT,
                 stale_timeout: float = 0.0):
        """
        Args:
            transport: Open transport to receive from
            registry: Registry to update
            is_local: Returns True for ids announced by this process
            join_timeout: Seconds stop() waits for the loop to exit
            stale_timeout: Expire records older than this (0 = never)
        """
        self.transport = transport
        self.registry = registry
        self.is_local = is_local or (lambda instance_id: False)
        self.join_timeout = join_timeout
        self.stale_timeout = stale_timeout

        self._callback: Optional[ServiceCallback] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._last_sweep = time.time()

        # Statistics
        self.received = 0
        self.malformed = 0
        self.ignored_self = 0
        self.joined = 0
        self.left = 0
        self.expired = 0

    @property
    def is_listening(self) -> bool:
        return self._thread is not None

    def start(self, callback: Optional[ServiceCallback] = None) -> bool:
        """
        Start the receive loop.

        Returns:
            False if already listening (the existing callback is kept)

        Raises:
            DiscoveryError: if the listen thread cannot be started
        """
        if self._thread is not None:
            return False

        self._callback = callback
        self._stop_event = threading.Event()
        self._last_sweep = time.time()

        thread = threading.Thread(
            target=self._receive_loop,
            args=(self._stop_event,),
            name="listener",
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError as e:
            self._callback = None
            raise DiscoveryError(f"Cannot start listen thread: {e}") from e
        self._thread = thread

        logger.info(f"Listening for services on UDP port {self.transport.port}")
        return True

    def stop(self):
        """Stop the receive loop and wait for it (bounded)."""
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(self.join_timeout)
        if self._thread.is_alive():
            logger.warning(f"Listen thread did not exit within {self.join_timeout}s")
        self._thread = None
        self._callback = None

        logger.info("Stopped listening")

    def _receive_loop(self, stop_event: threading.Event):
        """Receive and process datagrams until stopped."""
        while not stop_event.is_set():
            try:
                packet = self.transport.receive()
            except (OSError, DiscoveryError) as e:
                if stop_event.is_set():
                    break
                logger.error(f"Error receiving discovery datagram: {e}")
                stop_event.wait(ERROR_BACKOFF)
                continue

            if packet is not None:
                data, sender_ip = packet
                self.handle_datagram(data, sender_ip)

            # Throttled by _last_sweep
            self._maybe_sweep()

    def handle_datagram(self, data: bytes, sender_ip: str):
        """Process one received datagram."""
        self.received += 1

        try:
            message = decode(data, sender_ip)
        except ProtocolError as e:
            self.malformed += 1
            logger.debug(f"Dropped datagram from {sender_ip}: {e}")
            return

        if self.is_local(message.id):
            self.ignored_self += 1
            return

        if message.command is Command.HELO:
            self._handle_helo(message)
        elif message.command is Command.BYE:
            self._handle_bye(message)

    def _handle_helo(self, message: Message):
        info = message.to_service_info()
        result = self.registry.upsert(info, now=info.last_seen)

        if result is UpsertResult.CREATED:
            self.joined += 1
            logger.info(f"Found {info}")
            self._notify(info, False)
        elif result is UpsertResult.REFRESHED:
            logger.debug(f"Refreshed '{info.id}'")

    def _handle_bye(self, message: Message):
        removed = self.registry.remove(message.id)
        if removed is None:
            logger.debug(f"bye from unknown '{message.id}'")
            return

        self.left += 1
        logger.info(f"'{message.id}' left the network")
        self._notify(self._departure(removed), True)

    def _maybe_sweep(self):
        """Expire stale records if stale_timeout is enabled."""
        if self.stale_timeout <= 0:
            return
        now = time.time()
        if now - self._last_sweep < self.stale_timeout / 2:
            return
        self._last_sweep = now
        self.sweep(now)

    def sweep(self, now: Optional[float] = None, max_age: Optional[float] = None) -> int:
        """
        Remove records not refreshed within max_age (default stale_timeout)
        and report each as a departure.

        Returns:
            Number of records removed
        """
        max_age = self.stale_timeout if max_age is None else max_age
        if max_age <= 0:
            return 0

        removed = self.registry.purge_stale(max_age, now)
        for record in removed:
            self.expired += 1
            logger.info(f"'{record.id}' timed out")
            self._notify(self._departure(record), True)
        return len(removed)

    @staticmethod
    def _departure(record: ServiceInfo) -> ServiceInfo:
        # Departures carry identity and address only
        return ServiceInfo(
            id=record.id,
            service=record.service,
            ip=record.ip,
            ctrl_port=record.ctrl_port,
            data_port=0,
            caps="",
            last_seen=record.last_seen,
            active=False,
        )

    def _notify(self, info: ServiceInfo, is_bye: bool):
        callback = self._callback
        if callback is None:
            return
        try:
            callback(info, is_bye)
        except Exception as e:
            logger.error(f"Callback error: {e}")

    def get_stats(self) -> dict:
        """Get listener statistics."""
        return {
            'listening': self.is_listening,
            'received': self.received,
            'malformed': self.malformed,
            'ignored_self': self.ignored_self,
            'joined': self.joined,
            'left': self.left,
            'expired': self.expired,
        }
