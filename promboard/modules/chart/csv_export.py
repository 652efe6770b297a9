import csv
import io
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from promboard.modules.chart.aligner import get_field
from promboard.modules.promql.naming import METRIC_NAME_LABEL
from promboard.modules.range_query.common import FetchedSeries

TIME_COLUMN = "Time"
_WHITESPACE_RE = re.compile(r"\s+")


def csv_file_name(title: str) -> str:
    stem = _WHITESPACE_RE.sub("_", title) or "chart-data"
    return f"{stem}.csv"


def _format_time(timestamp: int) -> str:
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _format_value(value: Optional[float]) -> str:
    if value is None:
        return ""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def series_to_csv(
    series: Optional[Sequence[FetchedSeries]], queries: Sequence[Any] = ()
) -> str:
    """Render fetched series as CSV, one row per timestamp.

    Columns are ``Time`` followed by the sorted display names of the series,
    where a display name is the series' rename (if the user set one) or its
    canonical name. Series are joined on their timestamps, cells without a
    sample are left empty.

    Args:
        series: Series of the last fetch.
        queries: Queries of the panel, used for their aliases.
    """
    aliases: Dict[str, str] = {}
    for query in queries:
        for alias in get_field(query, "series") or []:
            rename = get_field(alias, "series_rename")
            if rename:
                aliases[get_field(alias, "series_name")] = rename

    rows_by_time: Dict[int, Dict[str, str]] = {}
    names = set()
    for s in series or []:
        name = s.labels.get(METRIC_NAME_LABEL, "")
        display_name = aliases.get(name) or name
        names.add(display_name)
        for timestamp, value in zip(s.timestamps, s.values):
            rows_by_time.setdefault(timestamp, {})[display_name] = _format_value(value)

    sorted_names = sorted(names)
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([TIME_COLUMN] + sorted_names)
    for timestamp in sorted(rows_by_time):
        row = rows_by_time[timestamp]
        writer.writerow(
            [_format_time(timestamp)] + [row.get(name, "") for name in sorted_names]
        )
    return buffer.getvalue().rstrip("\n")
