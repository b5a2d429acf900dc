__version__ = "0.1.0"

from .exceptions import (
    IncorrectMetricType,
    IncorrectMetricValue,
    ItemNotFound,
    NilCounterDelta,
    NilGaugeValue,
    SnapshotError,
    StorageError,
    TelemetraError,
)
from .models import Metric, MetricKey, MetricKind, MetricSet, MetricUpdate
from .service import MetricService, SnapshotConfig

__all__ = [
    "IncorrectMetricType",
    "IncorrectMetricValue",
    "ItemNotFound",
    "Metric",
    "MetricKey",
    "MetricKind",
    "MetricService",
    "MetricSet",
    "MetricUpdate",
    "NilCounterDelta",
    "NilGaugeValue",
    "SnapshotConfig",
    "SnapshotError",
    "StorageError",
    "TelemetraError",
]
