import sys

import pytest

from promboard.modules.chart.aligner import (
    PALETTE,
    align,
    build_series_configs,
    color_for_index,
    legend_label,
    resolve_display,
)
from promboard.modules.panel_state.models import Query, SeriesAlias
from promboard.modules.range_query.common import FetchedSeries


def _series(name, query_id="q1", timestamps=(10, 25), values=(1.0, None)):
    return FetchedSeries(
        labels={"__name__": name, "query": "up", "job": "node"},
        timestamps=list(timestamps),
        values=list(values),
        query_id=query_id,
    )


def test_align_uses_first_series_timestamps():
    series = [
        _series("a", values=(1.0, 2.0)),
        _series("b", timestamps=(10, 25, 40), values=(3.0, None, 5.0)),
    ]
    assert align(series) == [[10, 25], [1.0, 2.0], [3.0, None, 5.0]]


@pytest.mark.parametrize("series", [None, []])
def test_align_without_series(series):
    assert align(series) == [[], []]


def test_color_for_index_wraps():
    assert color_for_index(0) == "#7EB26D"
    assert color_for_index(len(PALETTE)) == color_for_index(0)
    assert color_for_index(len(PALETTE) + 5) == PALETTE[5]


def test_colors_are_stable_for_a_fixed_order():
    series = [_series(f"s{i}") for i in range(10)]
    first = [c.color for c in build_series_configs(series)]
    second = [c.color for c in build_series_configs(series)]
    assert first == second == [PALETTE[i % len(PALETTE)] for i in range(10)]


def test_legend_label():
    labels = {"__name__": "up__job_node", "job": "node", "query": "up", "x": "1"}
    assert legend_label(labels) == 'up__job_node{job="node", x="1"}'
    assert legend_label({"__name__": "up", "query": "up"}) == "up"


def test_resolve_display_uses_alias_units_and_resolution():
    query = Query(
        id="q1",
        query="up",
        units="req/s",
        resolution=1,
        series=[
            SeriesAlias(series_name="other", series_rename="Other"),
            SeriesAlias(series_name="a", series_rename="Renamed"),
        ],
    )
    display = resolve_display(_series("a"), query)
    assert (display.label, display.units, display.resolution) == (
        "Renamed",
        "req/s",
        1,
    )


def test_resolve_display_placeholder_alias_matches_any_series():
    query = {
        "id": "q1",
        "series": [{"series_name": "", "series_rename": "CPU Utilization"}],
    }
    display = resolve_display(_series("whatever"), query)
    assert display.label == "CPU Utilization"
    assert display.units == ""
    assert display.resolution == 2


def test_resolve_display_empty_rename_falls_back_to_name():
    query = Query(id="q1", series=[SeriesAlias(series_name="a", series_rename="")])
    assert resolve_display(_series("a"), query).label == "a"


def test_resolve_display_unknown_series():
    series = FetchedSeries(labels={}, timestamps=[], values=[], query_id="q1")
    assert resolve_display(series, None).label == "unknown_series"


def test_build_series_configs():
    queries = [
        Query(id="q1", units="%", resolution=1),
        Query(
            id="q2",
            series=[SeriesAlias(series_name="b", series_rename="Bee")],
        ),
    ]
    configs = build_series_configs(
        [_series("a", query_id="q1"), _series("b", query_id="q2")], queries
    )
    assert [c.label for c in configs] == ["a", "Bee"]
    assert configs[0].color == PALETTE[0]
    assert configs[0].fill == "rgba(126, 178, 109, 0)"
    assert configs[0].value_formatter(12345) == "12.3K %"
    assert configs[1].value_formatter(0.5) == "500.00m"


def test_build_series_configs_with_plain_string_queries():
    configs = build_series_configs([_series("a", query_id="temp-0-up")], ["up"])
    assert configs[0].label == "a"


def test_build_series_configs_without_data():
    (config,) = build_series_configs(None)
    assert config.label == "Value"
    assert config.color == "#73bf69"


if __name__ == "__main__":
    sys.exit(pytest.main(["-v", __file__]))
