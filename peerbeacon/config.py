"""
Configuration Management

Handles loading discovery configuration from environment variables and
config files.
"""

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .discovery.announcer import (
    ANNOUNCE_MAX_INTERVAL, ANNOUNCE_MIN_INTERVAL, DEFAULT_JOIN_TIMEOUT,
)
from .discovery.protocol import MAX_PORT
from .discovery.registry import DEFAULT_CAPACITY
from .discovery.transport import DEFAULT_RECEIVE_TIMEOUT, DEFAULT_UDP_PORT

ENV_PREFIX = 'PEERBEACON_'

# Config field -> environment variable (after ENV_PREFIX)
ENV_VARS = {
    'udp_port': 'UDP_PORT',
    'bind_host': 'BIND_HOST',
    'capacity': 'CAPACITY',
    'announce_min_interval': 'ANNOUNCE_MIN',
    'announce_max_interval': 'ANNOUNCE_MAX',
    'receive_timeout': 'RECEIVE_TIMEOUT',
    'join_timeout': 'JOIN_TIMEOUT',
    'stale_timeout': 'STALE_TIMEOUT',
    'log_level': 'LOG_LEVEL',
}


@dataclass
class DiscoveryConfig:
    """
    Discovery node configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (PEERBEACON_*)
    2. Config file (JSON)
    3. Default values
    """
    # Network
    udp_port: int = DEFAULT_UDP_PORT
    bind_host: str = ''

    # Registry
    capacity: int = DEFAULT_CAPACITY

    # Timing (seconds)
    announce_min_interval: float = ANNOUNCE_MIN_INTERVAL
    announce_max_interval: float = ANNOUNCE_MAX_INTERVAL
    receive_timeout: float = DEFAULT_RECEIVE_TIMEOUT
    join_timeout: float = DEFAULT_JOIN_TIMEOUT
    stale_timeout: float = 0.0  # 0 = records never expire

    # Logging
    log_level: str = 'INFO'

    def validate(self) -> 'DiscoveryConfig':
        """
        Check value ranges.

        Raises:
            ValueError: on the first invalid setting
        """
        if not 0 <= self.udp_port <= MAX_PORT:
            raise ValueError(f"udp_port out of range: {self.udp_port}")
        if self.capacity < 1:
            raise ValueError(f"capacity must be positive: {self.capacity}")
        if self.announce_min_interval < 0:
            raise ValueError("announce_min_interval must not be negative")
        if self.announce_min_interval > self.announce_max_interval:
            raise ValueError(
                f"announce_min_interval ({self.announce_min_interval}) exceeds "
                f"announce_max_interval ({self.announce_max_interval})"
            )
        if self.receive_timeout <= 0:
            raise ValueError("receive_timeout must be positive")
        if self.stale_timeout < 0:
            raise ValueError("stale_timeout must not be negative")
        return self

    @classmethod
    def from_env(cls) -> 'DiscoveryConfig':
        """Load configuration from environment variables."""
        load_dotenv()
        return cls().apply_env()

    def apply_env(self) -> 'DiscoveryConfig':
        """
        Override fields from the PEERBEACON_* variables that are set.

        A variable set to the default value still counts as set.
        """
        defaults = asdict(self)
        for key, suffix in ENV_VARS.items():
            value = os.getenv(f'{ENV_PREFIX}{suffix}')
            if value is not None:
                setattr(self, key, type(defaults[key])(value))
        return self

    @classmethod
    def from_file(cls, path: Path) -> 'DiscoveryConfig':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()
        for key, default in asdict(config).items():
            if key in data:
                setattr(config, key, type(default)(data[key]))

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> DiscoveryConfig:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    config = DiscoveryConfig()

    if config_path and config_path.exists():
        config = DiscoveryConfig.from_file(config_path)

    load_dotenv()
    return config.apply_env().validate()


# Example config file template
EXAMPLE_CONFIG = """
{
  "udp_port": 5400,
  "bind_host": "",
  "capacity": 32,
  "announce_min_interval": 30.0,
  "announce_max_interval": 60.0,
  "receive_timeout": 1.0,
  "join_timeout": 5.0,
  "stale_timeout": 0.0,
  "log_level": "INFO"
}
"""
