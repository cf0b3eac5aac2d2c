"""
Announcer

Broadcasts the local identity: one helo right away, then one every
30-60 seconds (randomized so peers that started together drift apart),
and a bye when stopped.
"""

import logging
import random
import threading
from typing import Optional, Set, Tuple

from ..errors import DiscoveryError
from .protocol import LocalIdentity, ProtocolError, encode_bye, encode_helo
from .transport import BroadcastTransport

logger = logging.getLogger(__name__)

# Re-announce interval bounds (seconds)
ANNOUNCE_MIN_INTERVAL = 30.0
ANNOUNCE_MAX_INTERVAL = 60.0

# How long stop() waits for the loop thread
DEFAULT_JOIN_TIMEOUT = 5.0


class Announcer:
    """
    Periodic helo sender for a single local identity.

    Only one identity is announced at a time; start() with a new identity
    retires the old one (bye) before the new one goes out.
    """

    def __init__(self, transport: BroadcastTransport, local_ip: str,
                 interval: Tuple[float, float] = (ANNOUNCE_MIN_INTERVAL, ANNOUNCE_MAX_INTERVAL),
                 join_timeout: float = DEFAULT_JOIN_TIMEOUT):
        """
        Args:
            transport: Open transport to send through
            local_ip: Address advertised in helo messages
            interval: (min, max) seconds between re-announcements
            join_timeout: Seconds stop() waits for the loop to exit
        """
        if interval[0] > interval[1]:
            raise ValueError(f"Invalid announce interval: {interval}")

        self.transport = transport
        self.local_ip = local_ip
        self.interval = interval
        self.join_timeout = join_timeout

        self._identity: Optional[LocalIdentity] = None
        # Ids we announced earlier; their datagrams may still be in flight
        self._retired_ids: Set[str] = set()
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        # Serializes start/stop against each other
        self._state_lock = threading.RLock()

        self.helo_sent = 0
        self.bye_sent = 0

    @property
    def is_announcing(self) -> bool:
        return self._identity is not None

    @property
    def identity(self) -> Optional[LocalIdentity]:
        return self._identity

    def is_local_id(self, instance_id: str) -> bool:
        """Whether an id is, or was, announced by this announcer."""
        identity = self._identity
        if identity is not None and identity.id == instance_id:
            return True
        return instance_id in self._retired_ids

    def start(self, identity: LocalIdentity):
        """
        Start announcing an identity.

        Raises:
            ProtocolError: if the helo for this identity cannot be encoded
            DiscoveryError: if the announce thread cannot be started
        """
        with self._state_lock:
            if self._identity is not None:
                self.stop()

            # Fail before touching any state if the frame is unusable
            encode_helo(identity, self.local_ip)

            self._identity = identity
            # Fresh event per run: a thread that outlived its join keeps
            # seeing its own (set) event and cannot be revived
            self._stop_event = threading.Event()
            try:
                self.send_helo()
            except (OSError, DiscoveryError):
                self._identity = None
                raise

            thread = threading.Thread(
                target=self._announce_loop,
                args=(self._stop_event,),
                name=f"announcer-{identity.id}",
                daemon=True,
            )
            try:
                thread.start()
            except RuntimeError as e:
                self._retired_ids.add(identity.id)
                self._identity = None
                raise DiscoveryError(f"Cannot start announce thread: {e}") from e
            self._thread = thread

        logger.info(
            f"Announcing as {identity.service} '{identity.id}' "
            f"on port {identity.ctrl_port}"
        )

    def stop(self):
        """Send bye, stop the loop and wait for it (bounded)."""
        with self._state_lock:
            identity = self._identity
            if identity is None:
                return

            try:
                self._send(encode_bye(identity.id))
                self.bye_sent += 1
            except (OSError, DiscoveryError) as e:
                logger.warning(f"Could not send bye for '{identity.id}': {e}")

            self._stop_event.set()
            if self._thread is not None:
                self._thread.join(self.join_timeout)
                if self._thread.is_alive():
                    logger.warning(
                        f"Announce thread did not exit within {self.join_timeout}s"
                    )
                self._thread = None

            self._retired_ids.add(identity.id)
            self._identity = None

        logger.info(f"Stopped announcing '{identity.id}'")

    def send_helo(self):
        """Broadcast one helo for the current identity (no-op when idle)."""
        identity = self._identity
        if identity is None:
            return
        try:
            self._send(encode_helo(identity, self.local_ip))
        except ProtocolError as e:
            logger.error(f"Cannot encode helo for '{identity.id}': {e}")
            return
        self.helo_sent += 1

    def next_interval(self) -> float:
        """Random delay before the next helo."""
        return random.uniform(*self.interval)

    def _send(self, data: bytes):
        sent = self.transport.broadcast(data)
        logger.debug(f"Broadcast {len(data)} bytes to {sent} address(es)")

    def _announce_loop(self, stop_event: threading.Event):
        """Re-announce until stopped."""
        while not stop_event.is_set():
            # wait() returns True as soon as stop() sets the event
            if stop_event.wait(self.next_interval()):
                break
            try:
                self.send_helo()
            except (OSError, DiscoveryError) as e:
                logger.error(f"Error sending helo: {e}")

    def get_stats(self) -> dict:
        """Get announcer statistics."""
        identity = self._identity
        return {
            'announcing': identity is not None,
            'id': identity.id if identity else None,
            'helo_sent': self.helo_sent,
            'bye_sent': self.bye_sent,
        }
