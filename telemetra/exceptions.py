from __future__ import annotations


class TelemetraError(Exception):
    """Base exception for all Telemetra metric storage errors."""


class ItemNotFound(TelemetraError):
    """
    Raised when reading a metric whose `(type, id)` key was never set.
    """


class IncorrectMetricType(TelemetraError):
    """
    Raised when a metric kind is neither `gauge` nor `counter`.
    """


class IncorrectMetricValue(TelemetraError):
    """
    Raised when a textual metric value cannot be parsed for its declared kind.

    Gauges expect a floating point literal, counters a signed 64-bit integer.
    """


class NilGaugeValue(TelemetraError):
    """Raised when a gauge update carries no `value`."""


class NilCounterDelta(TelemetraError):
    """Raised when a counter update carries no `delta`."""


class StorageError(TelemetraError):
    """
    Raised when a storage backend cannot be built or fails outside of the
    metric-level error kinds.

    This can happen if:
    - the relational backend cannot be reached at construction time,
    - schema migrations fail,
    - no pooled connection becomes available before the acquire timeout.
    """


class SnapshotError(TelemetraError):
    """
    Raised when a snapshot cannot be written, read or decoded.
    """
