import sys
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from promboard._private.test_utils import FakeResponse, FakeSession, range_body
from promboard.modules.chart.chart_panel import ChartPanel, normalize_queries
from promboard.modules.panel_state.models import Panel, Query, SeriesAlias
from promboard.modules.panel_state.store import PanelStateStore
from promboard.modules.range_query.client import RangeQueryClient
from promboard.modules.range_query.coordinator import RangeFetchCoordinator

NOW = datetime(2024, 1, 1, 0, 30, tzinfo=timezone.utc)


def _handler(query):
    return FakeResponse(
        200,
        range_body(
            ({"device": "eth0"}, [(1704067200, "1500"), (1704067215, None)]),
            ({"device": "eth1"}, [(1704067200, "0.25"), (1704067215, "2")]),
        ),
    )


def _coordinator(handler=_handler):
    session = FakeSession(handler)
    client = RangeQueryClient("http://gateway", http_session=session)
    return RangeFetchCoordinator(client), session


def test_normalize_plain_strings():
    queries = normalize_queries(["up", "rate(x[1m])"])
    assert [(q.id, q.query) for q in queries] == [
        ("temp-0-up", "up"),
        ("temp-1-rate(x[1m])", "rate(x[1m])"),
    ]


def test_normalize_filters_invisible_queries():
    queries = normalize_queries(
        [
            {"id": "a", "query": "up", "visible": True},
            {"id": "b", "query": "down", "visible": False},
        ]
    )
    assert [q.id for q in queries] == ["a"]


def test_normalize_store_queries_with_instance_filter():
    queries = normalize_queries(
        [Query(id="a", query="rate(x[1m])"), Query(id="b", query="")], "i-123"
    )
    assert [(q.id, q.query) for q in queries] == [
        ("a", 'rate(x{instance="i-123"}[1m])'),
        ("b", ""),
    ]


def test_normalize_sentinel_instance_is_not_injected():
    (query,) = normalize_queries(["up"], "observability-node")
    assert query.query == "up"


def test_normalize_empty():
    assert normalize_queries([]) == []
    assert normalize_queries(None, "i-1") == []


@pytest.mark.asyncio
async def test_refresh_reconciles_into_store():
    query = Query(
        id="q1",
        query="rate(node_network_receive_bytes_total[1m])",
        units="bits/s",
        resolution=1,
    )
    store = PanelStateStore(default_panels=[Panel(id="p1", queries=[query])])
    coordinator, session = _coordinator()
    listener = MagicMock()
    store.subscribe(listener)
    chart = ChartPanel(coordinator, store=store, panel_id="p1", instance_id="i-9")

    state = await chart.refresh(now=NOW)

    assert state.error is None
    ((_, params),) = session.requests
    assert params["query"] == (
        'rate(node_network_receive_bytes_total{instance="i-9"}[1m])'
    )
    names = [a.series_name for a in store.get_panel("p1").queries[0].series]
    assert names == [
        "node_network_receive_bytes_total__device_eth0",
        "node_network_receive_bytes_total__device_eth1",
    ]
    assert listener.call_count == 1

    # An unchanged refresh neither fetches nor writes to the store.
    await chart.refresh(now=NOW)
    assert len(session.requests) == 1
    assert listener.call_count == 1


@pytest.mark.asyncio
async def test_renames_survive_refresh():
    store = PanelStateStore(
        default_panels=[Panel(id="p1", queries=[Query(id="q1", query="x")])]
    )
    coordinator, session = _coordinator()
    chart = ChartPanel(coordinator, store=store, panel_id="p1")
    await chart.refresh(now=NOW)
    store.update_series_rename("p1", "q1", "x__device_eth0", "Primary")

    await chart.refresh(refresh_tick=1, now=NOW)

    assert len(session.requests) == 2
    aliases = store.get_panel("p1").queries[0].series
    assert [(a.series_name, a.series_rename) for a in aliases] == [
        ("x__device_eth0", "Primary"),
        ("x__device_eth1", "x__device_eth1"),
    ]
    assert [c.label for c in chart.series_configs()] == ["Primary", "x__device_eth1"]


@pytest.mark.asyncio
async def test_on_data_fetched_callback():
    coordinator, _ = _coordinator()
    callback = MagicMock()
    chart = ChartPanel(coordinator, queries=["up"], on_data_fetched=callback)
    await chart.refresh(now=NOW)
    (data,), _ = callback.call_args
    assert [s.query_id for s in data] == ["temp-0-up", "temp-0-up"]


@pytest.mark.asyncio
async def test_widget_inputs():
    queries = [
        Query(
            id="q1",
            query="x",
            units="B",
            resolution=1,
            series=[
                SeriesAlias(series_name="x__device_eth1", series_rename="Backup")
            ],
        )
    ]
    coordinator, _ = _coordinator()
    chart = ChartPanel(coordinator, queries=queries)
    await chart.refresh(now=NOW)

    assert chart.aligned_data() == [
        [1704067200, 1704067215],
        [1500.0, None],
        [0.25, 2.0],
    ]
    configs = chart.series_configs()
    assert [c.label for c in configs] == ["x__device_eth0", "Backup"]
    assert configs[0].value_formatter(1500.0) == "1.5K B"

    assert chart.format_axis_values([0, 1500]) == ["0.0", "1.5K"]

    tooltip = chart.tooltip(0)
    assert tooltip.timestamp == 1704067200
    assert tooltip.title == "Jan 01, 2024, 00:00:00"
    assert [(r.label, r.value, r.units) for r in tooltip.rows] == [
        ("x__device_eth0", "1.5K", "B"),
        ("Backup", "250.0m", "B"),
    ]

    # Missing values and hidden series are left out.
    tooltip = chart.tooltip(1, shown=[True, False])
    assert tooltip is None
    tooltip = chart.tooltip(1)
    assert [r.label for r in tooltip.rows] == ["Backup"]
    assert tooltip.rows[0].color == "#EAB839"

    assert chart.tooltip(None) is None
    assert chart.tooltip(5) is None


@pytest.mark.asyncio
async def test_axis_uses_first_shown_series():
    queries = [
        {"id": "a", "query": "x", "visible": True, "resolution": 0},
        {"id": "b", "query": "y", "visible": True, "resolution": 3},
    ]

    def handler(query):
        return FakeResponse(200, range_body(({}, [(1704067200, "1")])))

    coordinator, _ = _coordinator(handler)
    chart = ChartPanel(coordinator, queries=queries)
    await chart.refresh(now=NOW)

    assert chart.format_axis_values([1.5]) == ["2"]
    assert chart.format_axis_values([1.5], shown=[False, True]) == ["1.500"]
    assert chart.format_axis_values([1.5], shown=[False, False]) == ["1.50"]


@pytest.mark.asyncio
async def test_failed_refresh_keeps_store_untouched():
    store = PanelStateStore(
        default_panels=[Panel(id="p1", queries=[Query(id="q1", query="x")])]
    )
    coordinator, _ = _coordinator(lambda q: FakeResponse(500, text="down"))
    chart = ChartPanel(coordinator, store=store, panel_id="p1")
    state = await chart.refresh(now=NOW)
    assert state.error == "Failed to fetch metrics."
    assert store.get_panel("p1").queries[0].series == []
    assert chart.aligned_data() == [[], []]


if __name__ == "__main__":
    sys.exit(pytest.main(["-v", __file__]))
