import logging
import sys

import pytest

from promboard.modules.promql.rewriter import (
    Edit,
    apply_edits,
    inject_instance_filter,
    quote_label_value,
)


@pytest.mark.parametrize(
    "query,expected",
    [
        (
            'node_load1 / count without (cpu, mode) (node_cpu_seconds_total{mode="idle"})',
            'node_load1{instance="i-123"} / count without (cpu, mode) '
            '(node_cpu_seconds_total{mode="idle",instance="i-123"})',
        ),
        (
            "rate(http_requests_total[5m])",
            'rate(http_requests_total{instance="i-123"}[5m])',
        ),
        (
            '100 - (avg by (instance) (rate(node_cpu_seconds_total{mode="idle"}[1m]))'
            " * 100)",
            '100 - (avg by (instance) (rate(node_cpu_seconds_total{mode="idle",'
            'instance="i-123"}[1m])) * 100)',
        ),
        (
            "count(windows_os_info) or vector(0)",
            'count(windows_os_info{instance="i-123"}) or vector(0)',
        ),
        ("up offset 5m", 'up{instance="i-123"} offset 5m'),
        ("up{}", 'up{instance="i-123"}'),
        ('up{job="node",}', 'up{job="node",instance="i-123"}'),
        ('{__name__="up"}', '{__name__="up",instance="i-123"}'),
        ('up{instance!="a"}', 'up{instance!="a",instance="i-123"}'),
        (
            "sum(rate(a[1m])) by (job) / on (job) group_left sum(b)",
            'sum(rate(a{instance="i-123"}[1m])) by (job) / on (job) group_left '
            'sum(b{instance="i-123"})',
        ),
        (
            "max_over_time(rate(x[1m])[10m:1m])",
            'max_over_time(rate(x{instance="i-123"}[1m])[10m:1m])',
        ),
        (
            "max_over_time(up[1h:5m])",
            'max_over_time(up{instance="i-123"}[1h:5m])',
        ),
        ("rate(x[5m:])", 'rate(x{instance="i-123"}[5m:])'),
        ("(x)[30m:]", '(x{instance="i-123"})[30m:]'),
        ("42", "42"),
    ],
)
def test_inject_instance_filter(query, expected):
    assert inject_instance_filter(query, "i-123") == expected


@pytest.mark.parametrize(
    "query",
    [
        'up{instance="host:9100"}',
        'rate(node_network_receive_bytes_total{instance=~"host.*"}[1m]) * 8',
        'a{instance="x"} + b{job="y", instance="x"}',
    ],
)
def test_existing_instance_matcher_is_left_alone(query):
    assert inject_instance_filter(query, "i-123") == query


@pytest.mark.parametrize("instance_id", ["", "observability-node"])
def test_no_specific_instance(instance_id):
    query = "rate(prometheus_http_requests_total[5m])"
    assert inject_instance_filter(query, instance_id) == query


def test_blank_query_is_returned_unchanged():
    assert inject_instance_filter("", "i-123") == ""
    assert inject_instance_filter("   ", "i-123") == "   "


@pytest.mark.parametrize(
    "query",
    [
        "rate(foo[5m]",
        "sum(",
        'up{job="node"',
        "up[5x]",
        'up{job=~"unterminated}',
    ],
)
def test_parse_failure_returns_original(query, caplog):
    with caplog.at_level(logging.WARNING):
        assert inject_instance_filter(query, "i-123") == query
    assert "Failed to parse PromQL query" in caplog.text


def test_string_arguments_are_not_mistaken_for_matchers():
    query = 'label_replace(up, "dst", "instance=foo", "src", "(.*)")'
    assert inject_instance_filter(query, "i-1") == (
        'label_replace(up{instance="i-1"}, "dst", "instance=foo", "src", "(.*)")'
    )


@pytest.mark.parametrize(
    "query",
    [
        'node_load1 / count without (cpu, mode) (node_cpu_seconds_total{mode="idle"})',
        "rate(node_disk_read_time_seconds_total[1m]) / "
        "rate(node_disk_reads_completed_total[1m])",
        "100 * (1 - (node_memory_MemAvailable_bytes / node_memory_MemTotal_bytes))",
        "topk(5, sum by (job) (rate(http_requests_total[5m])))",
    ],
)
def test_injection_is_idempotent(query):
    once = inject_instance_filter(query, "i-123")
    assert once != query
    assert inject_instance_filter(once, "i-123") == once
    # Removing the injected clauses gives back the original text.
    stripped = once.replace(',instance="i-123"', "").replace(
        '{instance="i-123"}', ""
    )
    assert stripped == query


def test_instance_id_is_quoted():
    assert inject_instance_filter("up", 'a"b\\c') == 'up{instance="a\\"b\\\\c"}'
    assert quote_label_value("plain") == '"plain"'


def test_apply_edits_uses_original_offsets():
    query = "a + b"
    edits = [Edit(1, 1, "{x}"), Edit(5, 5, "{y}")]
    assert apply_edits(query, edits) == "a{x} + b{y}"
    assert apply_edits(query, list(reversed(edits))) == "a{x} + b{y}"


if __name__ == "__main__":
    sys.exit(pytest.main(["-v", __file__]))
