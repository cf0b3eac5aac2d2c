import json

import pytest

from peerbeacon.config import ENV_VARS, DiscoveryConfig, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # Keep a stray .env or exported variable from leaking into the tests
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr('peerbeacon.config.load_dotenv', lambda: False)
    for suffix in ENV_VARS.values():
        monkeypatch.delenv(f'PEERBEACON_{suffix}', raising=False)


def test_defaults():
    config = DiscoveryConfig()
    assert config.udp_port == 5400
    assert config.capacity == 32
    assert config.announce_min_interval == 30.0
    assert config.announce_max_interval == 60.0
    assert config.receive_timeout == 1.0
    assert config.join_timeout == 5.0
    assert config.stale_timeout == 0.0


def test_from_env(monkeypatch):
    monkeypatch.setenv('PEERBEACON_UDP_PORT', '6000')
    monkeypatch.setenv('PEERBEACON_CAPACITY', '8')
    monkeypatch.setenv('PEERBEACON_STALE_TIMEOUT', '180')
    monkeypatch.setenv('PEERBEACON_LOG_LEVEL', 'DEBUG')

    config = DiscoveryConfig.from_env()

    assert config.udp_port == 6000
    assert config.capacity == 8
    assert config.stale_timeout == 180.0
    assert config.log_level == 'DEBUG'


def test_file_round_trip(tmp_path):
    path = tmp_path / 'discovery.json'
    DiscoveryConfig(udp_port=7000, announce_min_interval=5, announce_max_interval=10).save(path)

    config = DiscoveryConfig.from_file(path)

    assert config.udp_port == 7000
    assert config.announce_min_interval == 5.0
    assert config.announce_max_interval == 10.0


def test_missing_file_gives_defaults(tmp_path):
    assert DiscoveryConfig.from_file(tmp_path / 'nope.json') == DiscoveryConfig()


def test_env_overrides_file(monkeypatch, tmp_path):
    path = tmp_path / 'discovery.json'
    path.write_text(json.dumps({'udp_port': 7000, 'capacity': 16}))
    monkeypatch.setenv('PEERBEACON_UDP_PORT', '7100')

    config = load_config(path)

    assert config.udp_port == 7100
    assert config.capacity == 16


def test_env_set_to_default_still_overrides_file(monkeypatch, tmp_path):
    path = tmp_path / 'discovery.json'
    path.write_text(json.dumps({'udp_port': 7000, 'log_level': 'DEBUG'}))
    monkeypatch.setenv('PEERBEACON_UDP_PORT', '5400')
    monkeypatch.setenv('PEERBEACON_LOG_LEVEL', 'INFO')

    config = load_config(path)

    assert config.udp_port == 5400
    assert config.log_level == 'INFO'


@pytest.mark.parametrize('kwargs', (
    dict(udp_port=70000),
    dict(capacity=0),
    dict(announce_min_interval=61),
    dict(receive_timeout=0),
    dict(stale_timeout=-1),
))
def test_validate_rejects(kwargs):
    with pytest.raises(ValueError):
        DiscoveryConfig(**kwargs).validate()


def test_load_config_validates(tmp_path):
    path = tmp_path / 'discovery.json'
    path.write_text(json.dumps({'capacity': 0}))
    with pytest.raises(ValueError):
        load_config(path)
