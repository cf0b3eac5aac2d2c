import os
import socket

import pytest

from peerbeacon.discovery import transport as transport_module
from peerbeacon.discovery.transport import BroadcastTransport
from peerbeacon.errors import TransportError


class RecordingSocket:
    """Stands in for the UDP socket; fails for addresses in `refuse`."""

    def __init__(self, refuse=()):
        self.sent = []
        self.refuse = set(refuse)

    def sendto(self, data, addr):
        if addr[0] in self.refuse:
            raise OSError("Network is unreachable")
        self.sent.append((data, addr))
        return len(data)

    def close(self):
        pass


@pytest.fixture
def fake_socket_transport():
    t = BroadcastTransport(port=5400)
    t._socket = RecordingSocket()
    return t


def test_broadcast_to_every_interface(monkeypatch, fake_socket_transport):
    monkeypatch.setattr(transport_module, 'broadcast_addresses',
                        lambda: ['192.168.1.255', '10.0.255.255'])

    sent = fake_socket_transport.broadcast(b'hello')

    assert sent == 2
    assert fake_socket_transport._socket.sent == [
        (b'hello', ('192.168.1.255', 5400)),
        (b'hello', ('10.0.255.255', 5400)),
    ]


def test_broadcast_falls_back_when_enumeration_fails(monkeypatch, fake_socket_transport):
    def boom():
        raise OSError("getifaddrs failed")
    monkeypatch.setattr(transport_module, 'broadcast_addresses', boom)

    assert fake_socket_transport.broadcast(b'x') == 1
    assert fake_socket_transport._socket.sent == [(b'x', ('255.255.255.255', 5400))]


def test_broadcast_falls_back_when_no_interfaces(monkeypatch, fake_socket_transport):
    monkeypatch.setattr(transport_module, 'broadcast_addresses', lambda: [])

    fake_socket_transport.broadcast(b'x')
    assert fake_socket_transport._socket.sent == [(b'x', ('255.255.255.255', 5400))]


def test_broadcast_skips_failing_address(monkeypatch):
    t = BroadcastTransport(port=5400)
    t._socket = RecordingSocket(refuse={'192.168.1.255'})
    monkeypatch.setattr(transport_module, 'broadcast_addresses',
                        lambda: ['192.168.1.255', '10.0.255.255'])

    assert t.broadcast(b'x') == 1
    assert t._socket.sent == [(b'x', ('10.0.255.255', 5400))]


def test_closed_transport_refuses_io():
    t = BroadcastTransport()
    with pytest.raises(TransportError):
        t.broadcast(b'x')
    with pytest.raises(TransportError):
        t.receive()


def test_open_binds_ephemeral_port():
    t = BroadcastTransport(port=0, bind_host='127.0.0.1', receive_timeout=0.05)
    with t:
        assert t.is_open
        assert t.port != 0
    assert not t.is_open


def test_receive_times_out():
    with BroadcastTransport(port=0, bind_host='127.0.0.1', receive_timeout=0.05) as t:
        assert t.receive() is None


def test_send_and_receive_over_loopback(monkeypatch):
    monkeypatch.setattr(transport_module, 'broadcast_addresses', lambda: ['127.0.0.1'])

    with BroadcastTransport(port=0, receive_timeout=1.0) as t:
        assert t.broadcast(b'{"m":"PNSD"}') == 1
        data, sender_ip = t.receive()

    assert data == b'{"m":"PNSD"}'
    assert sender_ip == '127.0.0.1'


def test_receive_from_another_socket():
    with BroadcastTransport(port=0, bind_host='127.0.0.1', receive_timeout=1.0) as t:
        sender = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sender.sendto(b'ping', ('127.0.0.1', t.port))
        finally:
            sender.close()
        assert t.receive() == (b'ping', '127.0.0.1')


@pytest.mark.skipif(os.name == 'nt', reason='Windows lets SO_REUSEADDR steal bound ports')
def test_bind_failure_raises_and_leaves_nothing_open():
    blocker = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    blocker.bind(('127.0.0.1', 0))
    port = blocker.getsockname()[1]
    try:
        t = BroadcastTransport(port=port, bind_host='127.0.0.1')
        with pytest.raises(TransportError):
            t.open()
        assert not t.is_open
    finally:
        blocker.close()


def test_close_is_idempotent():
    t = BroadcastTransport(port=0, bind_host='127.0.0.1')
    t.open()
    t.close()
    t.close()
    assert not t.is_open
