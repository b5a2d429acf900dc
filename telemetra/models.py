"""
Metric value types shared by every storage backend.

A metric is identified by its `MetricKey`, the `(type, id)` pair. The stored
payload depends on the kind:
- gauges keep a float `value` that is replaced on every update,
- counters keep an int `delta` that accumulates on every update.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Union

from .exceptions import (
    IncorrectMetricType,
    IncorrectMetricValue,
    NilCounterDelta,
    NilGaugeValue,
)

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")


class MetricKind(str, Enum):
    """The two supported metric kinds."""

    GAUGE = "gauge"
    COUNTER = "counter"


KNOWN_KINDS = frozenset(kind.value for kind in MetricKind)


@dataclass(frozen=True, slots=True)
class MetricKey:
    """
    Unique identity of a metric.

    Two metrics with the same id but a different type are distinct entries.
    """

    type: str
    id: str

    def __post_init__(self) -> None:
        if isinstance(self.type, MetricKind):
            object.__setattr__(self, "type", self.type.value)


Payload = Union[int, float]
MetricSet = dict[MetricKey, Payload]


@dataclass(frozen=True, slots=True)
class Metric:
    """
    A single metric as exchanged with storage backends.

    Attributes
    ----------
    id : str
        Metric name.
    type : str
        `"gauge"` or `"counter"`. Kept as a plain string so that unknown kinds
        coming from the outside can be represented and rejected.
    delta : int | None
        Counter payload.
    value : float | None
        Gauge payload.
    """

    id: str
    type: str
    delta: int | None = None
    value: float | None = None

    def __post_init__(self) -> None:
        if isinstance(self.type, MetricKind):
            object.__setattr__(self, "type", self.type.value)

    @property
    def key(self) -> MetricKey:
        return MetricKey(type=self.type, id=self.id)

    @property
    def payload(self) -> Payload | None:
        """Return the payload relevant for this metric's kind."""
        if self.type == MetricKind.COUNTER:
            return self.delta
        return self.value

    @classmethod
    def gauge(cls, id: str, value: float | None) -> Metric:
        return cls(id=id, type=MetricKind.GAUGE.value, value=value)

    @classmethod
    def counter(cls, id: str, delta: int | None) -> Metric:
        return cls(id=id, type=MetricKind.COUNTER.value, delta=delta)

    @classmethod
    def from_payload(cls, key: MetricKey, payload: Payload) -> Metric:
        """
        Rebuild a metric from its key and stored payload.

        Raises
        ------
        IncorrectMetricType
            If the key carries an unknown kind.
        """
        if key.type == MetricKind.COUNTER:
            return cls.counter(key.id, int(payload))
        if key.type == MetricKind.GAUGE:
            return cls.gauge(key.id, float(payload))
        raise IncorrectMetricType(f"Unknown metric type: {key.type!r}")


@dataclass(frozen=True, slots=True)
class MetricUpdate:
    """A string-encoded update request, as received from text endpoints."""

    type: str
    id: str
    value: str


def ensure_known_kind(kind: str) -> str:
    """
    Return `kind` as a plain string, raising `IncorrectMetricType` unless it is
    a supported metric kind.
    """
    if isinstance(kind, MetricKind):
        return kind.value
    if kind not in KNOWN_KINDS:
        raise IncorrectMetricType(f"Unknown metric type: {kind!r}")
    return kind


def validate_metric(metric: Metric) -> None:
    """
    Check that a metric carries the payload its kind requires.

    Raises
    ------
    NilGaugeValue
        A gauge without `value`.
    NilCounterDelta
        A counter without `delta`.
    IncorrectMetricValue
        A counter `delta` outside the signed 64-bit range.
    IncorrectMetricType
        Any other kind.
    """
    if metric.type == MetricKind.GAUGE:
        if metric.value is None:
            raise NilGaugeValue(f"Gauge {metric.id!r} has no value")
        return
    if metric.type == MetricKind.COUNTER:
        if metric.delta is None:
            raise NilCounterDelta(f"Counter {metric.id!r} has no delta")
        if not INT64_MIN <= metric.delta <= INT64_MAX:
            raise IncorrectMetricValue(f"Counter {metric.id!r} delta out of range: {metric.delta}")
        return
    raise IncorrectMetricType(f"Unknown metric type: {metric.type!r}")


def add_delta(id: str, total: int | None, delta: int) -> int:
    """
    Add `delta` to the stored counter `total` (`None` for a new counter).

    Raises `IncorrectMetricValue` when the sum leaves the signed 64-bit range.
    """
    result = (total or 0) + delta
    if not INT64_MIN <= result <= INT64_MAX:
        raise IncorrectMetricValue(f"Counter {id!r} overflows: {total} + {delta}")
    return result


def parse_metric(update: MetricUpdate) -> Metric:
    """
    Convert a textual update into a typed `Metric`.

    Raises
    ------
    IncorrectMetricValue
        If the value does not parse for the declared kind.
    IncorrectMetricType
        If the kind is unknown.
    """
    if update.type == MetricKind.GAUGE:
        return Metric.gauge(update.id, _parse_float(update.value))
    if update.type == MetricKind.COUNTER:
        return Metric.counter(update.id, _parse_int64(update.value))
    raise IncorrectMetricType(f"Unknown metric type: {update.type!r}")


def format_payload(metric: Metric) -> str:
    """
    Render the current value of a metric as text.

    Gauges use the shortest positional decimal form (`36.6`, `37`), counters
    a plain integer.
    """
    if metric.type == MetricKind.COUNTER:
        return str(int(metric.delta or 0))
    if metric.type == MetricKind.GAUGE:
        value = float(metric.value or 0.0)
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "+Inf" if value > 0 else "-Inf"
        return f"{Decimal(repr(value)).normalize():f}"
    raise IncorrectMetricType(f"Unknown metric type: {metric.type!r}")


def _parse_float(text: str) -> float:
    if "_" in text or text != text.strip():
        raise IncorrectMetricValue(f"Invalid gauge value: {text!r}")
    try:
        return float(text)
    except ValueError:
        raise IncorrectMetricValue(f"Invalid gauge value: {text!r}") from None


def _parse_int64(text: str) -> int:
    if not _INTEGER_RE.fullmatch(text):
        raise IncorrectMetricValue(f"Invalid counter value: {text!r}")
    value = int(text)
    if not INT64_MIN <= value <= INT64_MAX:
        raise IncorrectMetricValue(f"Counter value out of range: {text!r}")
    return value
