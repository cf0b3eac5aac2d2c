import socket
from collections import namedtuple

import psutil
import pytest

from peerbeacon.discovery import interfaces
from peerbeacon.discovery.interfaces import (
    InterfaceAddress,
    broadcast_addresses,
    iter_ipv4_interfaces,
    resolve_local_ip,
)

snicaddr = namedtuple('snicaddr', ['family', 'address', 'netmask', 'broadcast', 'ptp'])
snicstats = namedtuple('snicstats', ['isup'])


def ipv4(address, netmask=None, broadcast=None):
    return snicaddr(socket.AF_INET, address, netmask, broadcast, None)


def fake_interfaces(monkeypatch, addrs, down=()):
    stats = {name: snicstats(name not in down) for name in addrs}
    monkeypatch.setattr(interfaces.psutil, 'net_if_addrs', lambda: addrs)
    monkeypatch.setattr(interfaces.psutil, 'net_if_stats', lambda: stats)


def failing(exc):
    def raiser():
        raise exc
    return raiser


def test_broadcast_addresses_per_interface(monkeypatch):
    fake_interfaces(monkeypatch, {
        'lo': [ipv4('127.0.0.1', '255.0.0.0')],
        'eth0': [
            ipv4('192.168.1.20', '255.255.255.0'),
            snicaddr(socket.AF_INET6, 'fe80::1', 'ffff:ffff:ffff:ffff::', None, None),
        ],
        'eth1': [ipv4('10.1.2.3', '255.255.0.0')],
    })
    assert broadcast_addresses() == ['192.168.1.255', '10.1.255.255']


def test_broadcast_addresses_skips_down_and_point_to_point(monkeypatch):
    fake_interfaces(monkeypatch, {
        'eth0': [ipv4('192.168.1.20', '255.255.255.0')],
        'eth1': [ipv4('172.16.0.5', '255.255.255.0')],
        'tun0': [ipv4('10.8.0.2', '255.255.255.255')],
    }, down=('eth1',))
    assert broadcast_addresses() == ['192.168.1.255']


def test_broadcast_addresses_uses_reported_broadcast_without_netmask(monkeypatch):
    fake_interfaces(monkeypatch, {
        'eth0': [ipv4('192.168.5.9', None, '192.168.5.255')],
    })
    assert broadcast_addresses() == ['192.168.5.255']


def test_broadcast_addresses_deduplicates(monkeypatch):
    fake_interfaces(monkeypatch, {
        'br0': [ipv4('192.168.1.2', '255.255.255.0')],
        'eth0': [ipv4('192.168.1.3', '255.255.255.0')],
    })
    assert broadcast_addresses() == ['192.168.1.255']


def test_enumeration_failure_raises_oserror(monkeypatch):
    monkeypatch.setattr(interfaces.psutil, 'net_if_addrs', failing(psutil.AccessDenied()))
    monkeypatch.setattr(interfaces.psutil, 'net_if_stats', lambda: {})
    with pytest.raises(OSError):
        list(iter_ipv4_interfaces())


def test_resolve_local_ip_first_non_loopback(monkeypatch):
    fake_interfaces(monkeypatch, {
        'lo': [ipv4('127.0.0.1', '255.0.0.0')],
        'eth0': [ipv4('192.168.1.20', '255.255.255.0')],
        'eth1': [ipv4('10.0.0.4', '255.0.0.0')],
    })
    assert resolve_local_ip() == '192.168.1.20'


def test_resolve_local_ip_prefers_routable_over_link_local(monkeypatch):
    fake_interfaces(monkeypatch, {
        'eth0': [ipv4('169.254.10.10', '255.255.0.0')],
        'wlan0': [ipv4('192.168.1.30', '255.255.255.0')],
    })
    assert resolve_local_ip() == '192.168.1.30'


def test_resolve_local_ip_link_local_when_nothing_else(monkeypatch):
    fake_interfaces(monkeypatch, {
        'lo': [ipv4('127.0.0.1', '255.0.0.0')],
        'eth0': [ipv4('169.254.10.10', '255.255.0.0')],
    })
    assert resolve_local_ip() == '169.254.10.10'


def test_resolve_local_ip_loopback_only(monkeypatch):
    fake_interfaces(monkeypatch, {'lo': [ipv4('127.0.0.1', '255.0.0.0')]})
    assert resolve_local_ip() == '127.0.0.1'


@pytest.mark.parametrize('exc', (OSError("no netlink"), psutil.AccessDenied()))
def test_resolve_local_ip_enumeration_failure(monkeypatch, exc):
    monkeypatch.setattr(interfaces.psutil, 'net_if_addrs', failing(exc))
    assert resolve_local_ip() == '127.0.0.1'


@pytest.mark.parametrize('address, netmask, expected', (
    ('192.168.1.20', '255.255.255.0', '192.168.1.255'),
    ('10.0.0.5', '255.0.0.0', '10.255.255.255'),
    ('172.16.4.1', '255.255.252.0', '172.16.7.255'),
    ('10.8.0.2', '255.255.255.254', None),
))
def test_interface_broadcast_address(address, netmask, expected):
    assert InterfaceAddress('eth0', address, netmask).broadcast_address() == expected


def test_real_host_resolves_something():
    ip = resolve_local_ip()
    socket.inet_aton(ip)
