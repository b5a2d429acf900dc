from __future__ import annotations

import importlib

import pytest

from telemetra.exceptions import IncorrectMetricType, IncorrectMetricValue, NilCounterDelta, NilGaugeValue
from telemetra.models import (
    INT64_MAX,
    INT64_MIN,
    Metric,
    MetricKey,
    MetricKind,
    MetricUpdate,
    add_delta,
    ensure_known_kind,
    format_payload,
    parse_metric,
    validate_metric,
)


def test_kind_enum_is_normalized_to_plain_string():
    key = MetricKey(type=MetricKind.COUNTER, id="hits")

    assert key == MetricKey(type="counter", id="hits")
    assert hash(key) == hash(MetricKey(type="counter", id="hits"))
    assert Metric(id="x", type=MetricKind.GAUGE, value=1.0).type == "gauge"


def test_payload_follows_kind():
    assert Metric.counter("hits", 5).payload == 5
    assert Metric.gauge("temp", 36.6).payload == 36.6


def test_validate_rejects_missing_payloads():
    with pytest.raises(NilGaugeValue):
        validate_metric(Metric.gauge("x", None))

    with pytest.raises(NilCounterDelta):
        validate_metric(Metric.counter("x", None))

    with pytest.raises(IncorrectMetricType):
        validate_metric(Metric(id="x", type="histogram", value=1.0))


def test_ensure_known_kind():
    assert ensure_known_kind("gauge") == "gauge"
    assert ensure_known_kind(MetricKind.COUNTER) == "counter"

    with pytest.raises(IncorrectMetricType):
        ensure_known_kind("summary")


@pytest.mark.parametrize(
    "update,expected",
    [
        (MetricUpdate(type="gauge", id="temp", value="36.6"), Metric.gauge("temp", 36.6)),
        (MetricUpdate(type="gauge", id="temp", value="-1e3"), Metric.gauge("temp", -1000.0)),
        (MetricUpdate(type="counter", id="hits", value="5"), Metric.counter("hits", 5)),
        (MetricUpdate(type="counter", id="hits", value="-7"), Metric.counter("hits", -7)),
    ],
)
def test_parse_metric(update, expected):
    assert parse_metric(update) == expected


@pytest.mark.parametrize(
    "update",
    [
        MetricUpdate(type="gauge", id="temp", value="warm"),
        MetricUpdate(type="gauge", id="temp", value=""),
        MetricUpdate(type="gauge", id="temp", value="1_000"),
        MetricUpdate(type="counter", id="hits", value="1.5"),
        MetricUpdate(type="counter", id="hits", value="ten"),
        MetricUpdate(type="counter", id="hits", value=str(2**63)),
    ],
)
def test_parse_metric_rejects_bad_values(update):
    with pytest.raises(IncorrectMetricValue):
        parse_metric(update)


def test_parse_metric_rejects_unknown_kind():
    with pytest.raises(IncorrectMetricType):
        parse_metric(MetricUpdate(type="timer", id="t", value="1"))


def test_counter_accepts_int64_bounds():
    assert parse_metric(MetricUpdate(type="counter", id="c", value=str(2**63 - 1))).delta == 2**63 - 1
    assert parse_metric(MetricUpdate(type="counter", id="c", value=str(-(2**63)))).delta == -(2**63)


@pytest.mark.parametrize(
    "metric,text",
    [
        (Metric.gauge("t", 36.6), "36.6"),
        (Metric.gauge("t", 37.0), "37"),
        (Metric.gauge("t", 0.0000001), "0.0000001"),
        (Metric.gauge("t", 1e20), "100000000000000000000"),
        (Metric.counter("c", 8), "8"),
    ],
)
def test_format_payload(metric, text):
    assert format_payload(metric) == text


def test_validate_rejects_out_of_range_delta():
    validate_metric(Metric.counter("hits", INT64_MAX))
    validate_metric(Metric.counter("hits", INT64_MIN))

    with pytest.raises(IncorrectMetricValue):
        validate_metric(Metric.counter("hits", INT64_MAX + 1))
    with pytest.raises(IncorrectMetricValue):
        validate_metric(Metric.counter("hits", INT64_MIN - 1))


def test_add_delta():
    assert add_delta("hits", None, 5) == 5
    assert add_delta("hits", 5, -7) == -2
    assert add_delta("hits", INT64_MAX - 1, 1) == INT64_MAX

    with pytest.raises(IncorrectMetricValue):
        add_delta("hits", INT64_MAX, 1)
    with pytest.raises(IncorrectMetricValue):
        add_delta("hits", INT64_MIN, -1)


@pytest.mark.parametrize("module", ["telemetra.models", "telemetra.service", "telemetra.storage.migrations"])
def test_module_docstrings_are_exposed(module):
    assert importlib.import_module(module).__doc__
