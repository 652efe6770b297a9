"""Shapes fetched series into the inputs of the plotting widget.

The widget takes aligned columns (``[timestamps, *value_columns]``) and one
config per value column. Every series of a panel is assumed to share the
timestamp grid of the first series, which holds when they come from the same
fetch window and step. Series with a different grid are not resampled.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from promboard import consts
from promboard.modules.chart.formatting import format_with_units, hex_to_rgba
from promboard.modules.promql.naming import METRIC_NAME_LABEL
from promboard.modules.range_query.common import FetchedSeries
from promboard.modules.range_query.coordinator import QUERY_LABEL

PALETTE = [
    "#7EB26D",  # green
    "#EAB839",  # yellow
    "#6ED0E0",  # cyan
    "#EF843C",  # orange
    "#E24D42",  # red
    "#1F78C1",  # blue
    "#BA43A9",  # purple
    "#705DA0",  # dark purple
]
DEFAULT_SERIES_COLOR = "#73bf69"
DEFAULT_SERIES_LABEL = "Value"
UNKNOWN_SERIES = "unknown_series"

AlignedColumns = List[List[Any]]


@dataclass
class SeriesDisplay:
    label: str
    units: str = ""
    resolution: int = consts.DEFAULT_RESOLUTION


@dataclass
class SeriesConfig:
    label: str
    color: str
    fill: str = ""
    width: int = 2
    show: bool = True
    value_formatter: Callable[[Optional[float]], str] = field(
        default=format_with_units, repr=False
    )


def align(series: Optional[Sequence[FetchedSeries]]) -> AlignedColumns:
    if not series:
        return [[], []]
    timestamps = list(series[0].timestamps)
    return [timestamps] + [list(s.values) for s in series]


def color_for_index(index: int) -> str:
    return PALETTE[index % len(PALETTE)]


def legend_label(labels: Dict[str, str]) -> str:
    """Compact ``name{k="v", ...}`` label, without ``__name__`` and ``query``."""
    name = labels.get(METRIC_NAME_LABEL, "")
    parts = [
        f'{key}="{value}"'
        for key, value in labels.items()
        if key not in (METRIC_NAME_LABEL, QUERY_LABEL)
    ]
    if parts:
        return f"{name}{{{', '.join(parts)}}}"
    return name


def get_field(obj: Any, name: str, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def find_query(queries: Optional[Sequence[Any]], query_id: str) -> Optional[Any]:
    """Find the query with ``query_id`` among store queries or mappings.

    Plain query strings carry no display settings and never match.
    """
    for query in queries or []:
        if isinstance(query, str):
            continue
        if get_field(query, "id") == query_id:
            return query
    return None


def resolve_display(series: FetchedSeries, query: Optional[Any]) -> SeriesDisplay:
    """Legend label, units and resolution of one series.

    The label is the ``series_rename`` of the first alias whose
    ``series_name`` matches the series name or is empty, falling back to the
    series name itself.

    Args:
        series: The fetched series.
        query: The owning query (store ``Query`` or a mapping), if known.
    """
    name = series.labels.get(METRIC_NAME_LABEL) or UNKNOWN_SERIES
    display = SeriesDisplay(label=name)
    if query is None:
        return display

    for alias in get_field(query, "series") or []:
        alias_name = get_field(alias, "series_name")
        if alias_name == series.labels.get(METRIC_NAME_LABEL) or alias_name == "":
            rename = get_field(alias, "series_rename")
            if rename:
                display.label = rename
            break

    units = get_field(query, "units")
    resolution = get_field(query, "resolution")
    if units is not None:
        display.units = units
    if resolution is not None:
        display.resolution = resolution
    return display


def build_series_configs(
    series: Optional[Sequence[FetchedSeries]],
    queries: Optional[Sequence[Any]] = None,
) -> List[SeriesConfig]:
    """One widget config per series, colored by position.

    With no data a single placeholder config is returned so the widget can
    still draw empty axes.
    """
    if not series:
        return [SeriesConfig(label=DEFAULT_SERIES_LABEL, color=DEFAULT_SERIES_COLOR)]

    configs = []
    for index, s in enumerate(series):
        display = resolve_display(s, find_query(queries, s.query_id))
        color = color_for_index(index)
        configs.append(
            SeriesConfig(
                label=display.label,
                color=color,
                fill=hex_to_rgba(color, 0),
                value_formatter=_formatter(display.resolution, display.units),
            )
        )
    return configs


def _formatter(resolution: int, units: str) -> Callable[[Optional[float]], str]:
    def value_formatter(value: Optional[float]) -> str:
        return format_with_units(value, resolution, units)

    return value_formatter
