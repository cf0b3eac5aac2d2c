"""
Service Registry

Design Decision: Table Structure
================================

Options Considered:
1. Fixed array of slots + linear scan
   - Bounded memory, but O(n) for every lookup
2. Dict keyed by instance id + capacity check
   - O(1) upsert/find/remove
   - Same "drop when full" policy as a slot table
3. Actor thread owning the table, requests over a queue
   - No lock, but every query pays a round trip

Decision: Dict keyed by instance id, guarded by one lock
- Listener thread writes, any thread reads
- Every read hands out copies, never the stored object
- Callers must not be called back while the lock is held

Capacity policy: when the table is full, a helo from an unknown id is
dropped. The drop is counted and logged so it is visible, but it is not an
error: the sender re-announces and will get in once a slot frees up.
"""

import logging
import threading
import time
from dataclasses import replace
from enum import Enum
from typing import Dict, List, Optional

from .protocol import ServiceInfo

logger = logging.getLogger(__name__)

# Default maximum number of tracked services
DEFAULT_CAPACITY = 32


class UpsertResult(Enum):
    """Outcome of ServiceRegistry.upsert()."""
    CREATED = "created"      # first helo for this id
    REFRESHED = "refreshed"  # known id, fields overwritten
    DROPPED = "dropped"      # unknown id, registry full


class ServiceRegistry:
    """Thread-safe table of currently known services."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"Registry capacity must be positive: {capacity}")
        self.capacity = capacity

        self._services: Dict[str, ServiceInfo] = {}
        self._lock = threading.Lock()

        # Inserts lost because the table was full
        self.dropped = 0

    def upsert(self, info: ServiceInfo, now: Optional[float] = None) -> UpsertResult:
        """
        Insert or refresh a service record.

        Args:
            info: Record from a helo (its id is the key)
            now: Timestamp for last_seen (default: current time)
        """
        record = replace(
            info,
            last_seen=time.time() if now is None else now,
            active=True,
        )

        with self._lock:
            if info.id in self._services:
                self._services[info.id] = record
                return UpsertResult.REFRESHED

            if len(self._services) >= self.capacity:
                self.dropped += 1
                dropped_total = self.dropped
            else:
                self._services[info.id] = record
                return UpsertResult.CREATED

        logger.warning(
            f"Registry full ({self.capacity} services), dropped '{info.id}' "
            f"({dropped_total} dropped so far)"
        )
        return UpsertResult.DROPPED

    def remove(self, instance_id: str) -> Optional[ServiceInfo]:
        """
        Remove a service.

        Returns:
            The last known record (marked inactive), or None if unknown
        """
        with self._lock:
            record = self._services.pop(instance_id, None)

        if record is None:
            return None
        record.active = False
        return record

    def find_by_id(self, instance_id: str) -> Optional[ServiceInfo]:
        """Get a copy of the record for an instance id."""
        with self._lock:
            record = self._services.get(instance_id)
            return replace(record) if record else None

    def find_by_type(self, service: str) -> Optional[ServiceInfo]:
        """Get a copy of the first record with the given service type."""
        with self._lock:
            for record in self._services.values():
                if record.service == service:
                    return replace(record)
        return None

    def list_active(self) -> List[ServiceInfo]:
        """Get copies of all records."""
        with self._lock:
            return [replace(record) for record in self._services.values()]

    def count(self) -> int:
        with self._lock:
            return len(self._services)

    def clear(self):
        with self._lock:
            self._services.clear()

    def purge_stale(self, max_age: float, now: Optional[float] = None) -> List[ServiceInfo]:
        """
        Remove records not refreshed within max_age seconds.

        Not called by default; see DiscoveryConfig.stale_timeout.

        Returns:
            The removed records (marked inactive)
        """
        now = time.time() if now is None else now

        with self._lock:
            stale = [
                instance_id for instance_id, record in self._services.items()
                if now - record.last_seen > max_age
            ]
            removed = [self._services.pop(instance_id) for instance_id in stale]

        for record in removed:
            record.active = False
        return removed

    def get_stats(self) -> dict:
        """Get registry statistics."""
        with self._lock:
            count = len(self._services)
        return {
            'services': count,
            'capacity': self.capacity,
            'dropped': self.dropped,
        }

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, instance_id: str) -> bool:
        with self._lock:
            return instance_id in self._services
