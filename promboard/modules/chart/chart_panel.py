from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence

from promboard import consts
from promboard.modules.chart.aligner import (
    AlignedColumns,
    SeriesConfig,
    align,
    build_series_configs,
    color_for_index,
    find_query,
    get_field,
    resolve_display,
)
from promboard.modules.chart.formatting import format_scientific
from promboard.modules.panel_state.store import PanelStateStore
from promboard.modules.promql.rewriter import inject_instance_filter
from promboard.modules.range_query.common import (
    FetchedSeries,
    FetchState,
    QueryWithId,
    TimeRange,
    as_query_with_id,
)
from promboard.modules.range_query.coordinator import RangeFetchCoordinator

TOOLTIP_TIME_FORMAT = "%b %d, %Y, %H:%M:%S"


@dataclass
class TooltipRow:
    label: str
    color: str
    value: str
    units: str = ""


@dataclass
class Tooltip:
    timestamp: int
    rows: List[TooltipRow] = field(default_factory=list)

    @property
    def title(self) -> str:
        moment = datetime.fromtimestamp(self.timestamp, tz=timezone.utc)
        return moment.strftime(TOOLTIP_TIME_FORMAT)


def normalize_queries(
    queries: Optional[Sequence[Any]], instance_id: Optional[str] = None
) -> List[QueryWithId]:
    """Turn the accepted query inputs into the list handed to the coordinator.

    Three inputs are accepted, decided by the first element: plain strings
    (given temporary ids ``temp-{i}-{query}``), queries with a ``visible``
    flag (only visible ones are kept) and store queries (kept as they are).
    When ``instance_id`` is set every query is scoped to that instance.
    """
    if not queries:
        return []

    first = queries[0]
    if isinstance(first, str):
        processed = [
            QueryWithId(id=f"temp-{i}-{q}", query=q) for i, q in enumerate(queries)
        ]
    elif _has_visibility(first):
        processed = [
            QueryWithId(id=get_field(q, "id"), query=get_field(q, "query"))
            for q in queries
            if get_field(q, "visible")
        ]
    else:
        processed = [as_query_with_id(q) for q in queries]

    if instance_id:
        processed = [
            q.model_copy(update={"query": inject_instance_filter(q.query, instance_id)})
            for q in processed
        ]
    return processed


def _has_visibility(query: Any) -> bool:
    if isinstance(query, dict):
        return "visible" in query
    return hasattr(query, "visible")


def _is_shown(shown: Optional[Sequence[bool]], index: int) -> bool:
    if shown is None or index >= len(shown):
        return True
    return bool(shown[index])


class ChartPanel:
    """Drives one chart: fetching, reconciling and building widget inputs.

    Args:
        coordinator: Coordinator the panel fetches through.
        queries: Plain query strings, queries with a ``visible`` flag or
            store ``Query`` objects. Ignored when ``store`` and ``panel_id``
            are given, the panel's current queries are used instead.
        title: Chart title.
        instance_id: Instance to scope every query to, if any.
        time_range: Window to fetch. Defaults to the last 30 minutes.
        store: Store to reconcile observed series names into.
        panel_id: Id of the panel in ``store``.
        on_data_fetched: Called with the fetched series (or None) after
            every refresh.
    """

    def __init__(
        self,
        coordinator: RangeFetchCoordinator,
        queries: Optional[Sequence[Any]] = None,
        title: str = "",
        instance_id: Optional[str] = None,
        time_range: Optional[TimeRange] = None,
        store: Optional[PanelStateStore] = None,
        panel_id: Optional[str] = None,
        on_data_fetched: Optional[
            Callable[[Optional[List[FetchedSeries]]], None]
        ] = None,
    ):
        self._queries = list(queries or [])
        self._coordinator = coordinator
        self.title = title
        self.instance_id = instance_id
        self.time_range = time_range or TimeRange()
        self._store = store
        self._panel_id = panel_id
        self._on_data_fetched = on_data_fetched

    @property
    def queries(self) -> List[Any]:
        if self._store is not None and self._panel_id is not None:
            panel = self._store.get_panel(self._panel_id)
            return list(panel.queries) if panel else []
        return self._queries

    @queries.setter
    def queries(self, queries: Sequence[Any]):
        self._queries = list(queries)

    @property
    def visible_queries(self) -> List[QueryWithId]:
        return normalize_queries(self.queries, self.instance_id)

    @property
    def data(self) -> Optional[List[FetchedSeries]]:
        return self._coordinator.data

    @property
    def state(self) -> FetchState:
        return self._coordinator.state

    async def refresh(
        self, refresh_tick: int = 0, now: Optional[datetime] = None
    ) -> FetchState:
        """Fetch if anything changed since the last refresh, then reconcile.

        Only a successful fetch with data is reconciled into the store.
        """
        state = await self._coordinator.refresh(
            self.visible_queries, self.time_range, refresh_tick, now=now
        )
        if state.error is None and state.data:
            if self._store is not None and self._panel_id is not None:
                self._store.reconcile_panel(self._panel_id, state.data)
        if self._on_data_fetched is not None:
            self._on_data_fetched(state.data)
        return state

    def aligned_data(self) -> AlignedColumns:
        return align(self.data)

    def series_configs(self) -> List[SeriesConfig]:
        return build_series_configs(self.data, self.queries)

    def format_axis_values(
        self, values: Sequence[float], shown: Optional[Sequence[bool]] = None
    ) -> List[str]:
        """Format y-axis ticks with the resolution of the first shown series.

        Args:
            values: Tick values chosen by the widget.
            shown: Visibility flag per series, as toggled in the legend.
        """
        resolution = consts.DEFAULT_RESOLUTION
        for index, series in enumerate(self.data or []):
            if _is_shown(shown, index):
                query = find_query(self.queries, series.query_id)
                resolution = resolve_display(series, query).resolution
                break
        return [format_scientific(v, resolution) for v in values]

    def tooltip(
        self, index: Optional[int], shown: Optional[Sequence[bool]] = None
    ) -> Optional[Tooltip]:
        """Tooltip content for the cursor at data ``index``.

        Returns None when there is nothing to show: no index, an index past
        the data, or no shown series with a value at that index.
        """
        if index is None or index < 0:
            return None
        columns = self.aligned_data()
        timestamps = columns[0]
        if index >= len(timestamps):
            return None

        tooltip = Tooltip(timestamp=timestamps[index])
        queries = self.queries
        for i, series in enumerate(self.data or []):
            column = columns[i + 1]
            value = column[index] if index < len(column) else None
            if value is None or not _is_shown(shown, i):
                continue
            display = resolve_display(series, find_query(queries, series.query_id))
            tooltip.rows.append(
                TooltipRow(
                    label=display.label,
                    color=color_for_index(i),
                    value=format_scientific(value, display.resolution),
                    units=display.units,
                )
            )
        if not tooltip.rows:
            return None
        return tooltip
