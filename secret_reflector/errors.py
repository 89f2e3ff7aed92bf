"""Exceptions raised while reflecting secrets into Kubernetes.

Every error names the source path and/or the destination Secret so an
operator can act on the log line alone.  Nothing here is retried.
"""
from __future__ import annotations


class ReflectorError(Exception):
    """Base class for every secret-reflector failure."""


class ConfigError(ReflectorError):
    """The configuration file is missing something or has a bad value."""


# ---------------------------------------------------------------------------
# Source side
# ---------------------------------------------------------------------------

class SourceError(ReflectorError):
    def __init__(self, path: str, message: str):
        super().__init__(message)
        self.path = path


class SourceNotFound(SourceError):
    def __init__(self, path: str):
        super().__init__(path, f"secret {path} not found")


class SourceFetchError(SourceError):
    pass


class UnsupportedEngineVariant(SourceError):
    pass


class UnsupportedSourceType(SourceError):
    pass


class MalformedPayload(SourceError):
    pass


# ---------------------------------------------------------------------------
# Destination side
# ---------------------------------------------------------------------------

class DestinationError(ReflectorError):
    def __init__(self, name: str, message: str):
        super().__init__(message)
        self.name = name


class DestinationListError(DestinationError):
    pass


class DestinationWriteError(DestinationError):
    pass


class DestinationNotFound(DestinationError):
    """Raised by a sink when the named Secret does not exist."""

    def __init__(self, name: str):
        super().__init__(name, f"secret {name} not found")


class ReflectCancelled(ReflectorError):
    pass
