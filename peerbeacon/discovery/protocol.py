"""
Discovery Wire Protocol

Design Decision: Message Format
===============================

Options Considered:
1. Binary struct framing
   - Compact, but opaque on the wire and painful to extend
2. Full JSON documents (nested payloads)
   - Flexible, but invites peers to depend on structure we never promised
3. Flat JSON object with fixed short keys
   - Readable in a packet capture
   - One datagram, one line, no nesting
   - Compatible with the existing C peers on the network

Decision: Flat JSON object, fixed key order, no whitespace

Message Types:
- helo: "I am here" (identity, address, ports, capabilities)
- bye:  "I am leaving"

Example helo:
```
{"m":"PNSD","v":1,"cmd":"helo","id":"KY4OLB-SDR1","svc":"sdr_server",
 "ip":"192.168.1.20","port":4535,"data":4536,"caps":"rsp2pro,2mhz","ts":1700000000}
```
(shown wrapped; on the wire it is a single line)

`data` is only sent when the data port is non-zero and `caps` only when
non-empty. Receivers ignore keys they do not know.
"""

import json
import math
import time
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional, Tuple

# Protocol constants
MAGIC = "PNSD"
PROTOCOL_VERSION = 1
MAX_MESSAGE_SIZE = 1024  # bytes, one datagram

# Field limits (characters)
MAX_ID_LEN = 63
MAX_SERVICE_LEN = 31
MAX_IP_LEN = 63
MAX_CAPS_LEN = 127

MAX_PORT = 65535


class ProtocolError(ValueError):
    """A datagram could not be encoded or decoded."""


class Command(Enum):
    """Discovery message types."""
    HELO = "helo"
    BYE = "bye"


@dataclass
class ServiceInfo:
    """A service instance as seen on the network."""
    id: str
    service: str
    ip: str
    ctrl_port: int = 0
    data_port: int = 0
    caps: str = ""
    last_seen: float = 0.0
    active: bool = True

    @property
    def address(self) -> Tuple[str, int]:
        """Return (ip, ctrl_port) tuple for connecting."""
        return (self.ip, self.ctrl_port)

    def to_dict(self) -> dict:
        return asdict(self)

    def __str__(self) -> str:
        return f"{self.service} '{self.id}' at {self.ip}:{self.ctrl_port}"


@dataclass
class LocalIdentity:
    """
    The identity this process broadcasts.

    Validated on construction so a bad identity fails at announce() time
    instead of producing frames other peers will truncate or reject.
    """
    id: str
    service: str
    ctrl_port: int = 0
    data_port: int = 0
    caps: str = ""

    def __post_init__(self):
        if not self.id:
            raise ValueError("Instance id must not be empty")
        _check_length("id", self.id, MAX_ID_LEN)
        _check_length("service", self.service, MAX_SERVICE_LEN)
        _check_length("caps", self.caps, MAX_CAPS_LEN)
        for name in ("ctrl_port", "data_port"):
            port = getattr(self, name)
            if not 0 <= port <= MAX_PORT:
                raise ValueError(f"{name} out of range: {port}")


def _check_length(name: str, value: str, limit: int):
    if len(value) > limit:
        raise ValueError(f"{name} longer than {limit} characters: {value!r}")


@dataclass
class Message:
    """A decoded discovery message."""
    command: Command
    id: str
    service: str = ""
    ip: str = ""
    ctrl_port: int = 0
    data_port: int = 0
    caps: str = ""
    timestamp: int = 0
    version: int = PROTOCOL_VERSION

    def to_bytes(self) -> bytes:
        """
        Serialize to a single datagram.

        Raises:
            ProtocolError: if the frame would exceed MAX_MESSAGE_SIZE
        """
        fields: Dict[str, Any] = {
            'm': MAGIC,
            'v': self.version,
            'cmd': self.command.value,
            'id': self.id,
        }
        if self.command is Command.HELO:
            fields['svc'] = self.service
            fields['ip'] = self.ip
            fields['port'] = self.ctrl_port
            if self.data_port > 0:
                fields['data'] = self.data_port
            if self.caps:
                fields['caps'] = self.caps
        fields['ts'] = self.timestamp

        data = json.dumps(
            fields, separators=(',', ':'), ensure_ascii=False
        ).encode('utf-8')
        if len(data) > MAX_MESSAGE_SIZE:
            raise ProtocolError(
                f"Message too large: {len(data)} > {MAX_MESSAGE_SIZE} bytes"
            )
        return data

    @classmethod
    def from_bytes(cls, data: bytes, sender_ip: str) -> 'Message':
        """
        Parse a datagram.

        Args:
            data: Raw datagram payload
            sender_ip: Source address, used when a helo carries no "ip"

        Raises:
            ProtocolError: for anything that is not a well-formed message
        """
        if len(data) > MAX_MESSAGE_SIZE:
            raise ProtocolError(f"Datagram too large: {len(data)} bytes")

        try:
            fields = json.loads(data.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ProtocolError(f"Malformed datagram: {e}") from e

        if not isinstance(fields, dict):
            raise ProtocolError("Datagram is not a flat object")
        if fields.get('m') != MAGIC:
            raise ProtocolError(f"Bad magic: {fields.get('m')!r}")

        cmd = _get_str(fields, 'cmd', 16)
        if not cmd:
            raise ProtocolError("Missing cmd")
        try:
            command = Command(cmd)
        except ValueError:
            raise ProtocolError(f"Unknown cmd: {cmd!r}") from None

        instance_id = _get_str(fields, 'id', MAX_ID_LEN)
        if not instance_id:
            raise ProtocolError("Missing id")

        version = _get_int(fields, 'v')
        timestamp = _get_timestamp(fields)

        if command is Command.BYE:
            return cls(
                command=command,
                id=instance_id,
                timestamp=timestamp,
                version=version,
            )

        service = _get_str(fields, 'svc', MAX_SERVICE_LEN)
        if service is None:
            raise ProtocolError("helo without svc")

        return cls(
            command=command,
            id=instance_id,
            service=service,
            ip=_get_str(fields, 'ip', MAX_IP_LEN) or sender_ip,
            ctrl_port=_get_port(fields, 'port'),
            data_port=_get_port(fields, 'data'),
            caps=_get_str(fields, 'caps', MAX_CAPS_LEN) or "",
            timestamp=timestamp,
            version=version,
        )

    def to_service_info(self, now: Optional[float] = None) -> ServiceInfo:
        """Registry record for a helo."""
        return ServiceInfo(
            id=self.id,
            service=self.service,
            ip=self.ip,
            ctrl_port=self.ctrl_port,
            data_port=self.data_port,
            caps=self.caps,
            last_seen=time.time() if now is None else now,
        )


def _get_str(fields: dict, key: str, limit: int) -> Optional[str]:
    value = fields.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ProtocolError(f"{key} is not a string")
    return value[:limit]


def _get_int(fields: dict, key: str) -> int:
    value = fields.get(key, 0)
    # bool is an int subclass; "port": true is still garbage
    if isinstance(value, bool) or not isinstance(value, int):
        raise ProtocolError(f"{key} is not an integer")
    return value


def _get_port(fields: dict, key: str) -> int:
    value = _get_int(fields, key)
    if not 0 <= value <= MAX_PORT:
        raise ProtocolError(f"{key} out of range: {value}")
    return value


def _get_timestamp(fields: dict) -> int:
    value = fields.get('ts', 0)
    if isinstance(value, float):
        # json accepts NaN and Infinity
        if not math.isfinite(value):
            raise ProtocolError(f"ts is not finite: {value}")
        return int(value)
    return _get_int(fields, 'ts')


def encode_helo(identity: LocalIdentity, ip: str,
                timestamp: Optional[int] = None) -> bytes:
    """Build the helo datagram for a local identity."""
    return Message(
        command=Command.HELO,
        id=identity.id,
        service=identity.service,
        ip=ip,
        ctrl_port=identity.ctrl_port,
        data_port=identity.data_port,
        caps=identity.caps,
        timestamp=int(time.time()) if timestamp is None else timestamp,
    ).to_bytes()


def encode_bye(instance_id: str, timestamp: Optional[int] = None) -> bytes:
    """Build the bye datagram for an instance id."""
    return Message(
        command=Command.BYE,
        id=instance_id,
        timestamp=int(time.time()) if timestamp is None else timestamp,
    ).to_bytes()


def decode(data: bytes, sender_ip: str) -> Message:
    """Decode a datagram; see Message.from_bytes."""
    return Message.from_bytes(data, sender_ip)
