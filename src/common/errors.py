"""Error taxonomy for the speed monitor.

None of these are fatal: the monitor degrades to the default limit,
to an unknown limit or to a safe alert level instead of stopping.
"""

from __future__ import annotations


class SpeedMonitorError(Exception):
    """Base exception for all speed monitor errors."""


class SensorUnavailable(SpeedMonitorError):
    """No position fix is available (signal lost or never acquired)."""


class MirrorError(SpeedMonitorError):
    """A geospatial mirror timed out, failed or returned a malformed payload."""

    def __init__(self, message: str, *, mirror: str = "") -> None:
        self.mirror = mirror
        super().__init__(message)


class PersistenceCorrupt(SpeedMonitorError):
    """A stored record is not well-formed."""


class PublishError(SpeedMonitorError):
    """Filing a correction note failed."""
