"""
Discovery Errors

Exceptions surfaced to callers of the discovery engine. Malformed datagrams
are not errors at this level: they are dropped inside the listener.
"""


class DiscoveryError(Exception):
    """Base class for discovery failures."""


class NotInitializedError(DiscoveryError):
    """An operation was attempted before initialize() (or after shutdown())."""


class TransportError(DiscoveryError):
    """The discovery socket could not be created, configured or bound."""
