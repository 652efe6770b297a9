import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from promboard import consts
from promboard.modules.promql.naming import METRIC_NAME_LABEL, extract_series_name
from promboard.modules.range_query.client import RangeQueryClient
from promboard.modules.range_query.common import (
    FetchedSeries,
    FetchState,
    QueryWithId,
    RawSeries,
    TimeRange,
    TimeWindow,
    as_query_with_id,
    fetch_key,
)

logger = logging.getLogger(__name__)

QUERY_LABEL = "query"


class RangeFetchCoordinator:
    """Fans a batch of queries out to the gateway and joins the results.

    A batch is all-or-nothing: if any query fails, ``error`` is set and
    ``data`` keeps the series of the last successful batch. Every call to
    :meth:`fetch` starts a new generation. Responses that arrive for an older
    generation are dropped, so the most recently started batch always wins.

    Args:
        client: Client used to issue the individual range queries.
        series_namer: Maps (query text, labels) to the canonical series name.
    """

    def __init__(
        self,
        client: RangeQueryClient,
        series_namer: Callable[[str, Dict[str, str]], str] = extract_series_name,
    ):
        self._client = client
        self._series_namer = series_namer
        self._generation = 0
        self._last_key: Optional[str] = None
        self.data: Optional[List[FetchedSeries]] = None
        self.loading = True
        self.error: Optional[str] = None
        self.query_errors: Dict[str, str] = {}

    @property
    def state(self) -> FetchState:
        return FetchState(
            data=self.data,
            loading=self.loading,
            error=self.error,
            query_errors=dict(self.query_errors),
        )

    async def fetch(self, queries: Sequence[Any], window: TimeWindow) -> FetchState:
        """Fetch every non-blank query over ``window`` concurrently.

        Args:
            queries: ``QueryWithId`` instances, mappings with ``id`` and
                ``query`` keys, or objects with those attributes.
            window: Time window shared by every query of the batch.
        """
        active = [as_query_with_id(q) for q in queries]
        active = [q for q in active if q.query.strip()]

        self._generation += 1
        generation = self._generation

        if not active:
            self.data = None
            self.loading = False
            self.error = None
            self.query_errors = {}
            return self.state

        self.loading = True
        self.error = None
        results = await asyncio.gather(
            *[self._client.query_range(q.query, window) for q in active],
            return_exceptions=True,
        )

        if generation != self._generation:
            logger.debug(
                f"Dropping responses of fetch generation {generation}, "
                f"generation {self._generation} is newer."
            )
            return self.state

        failures = {}
        for query, result in zip(active, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"Range query {query.id} ({query.query!r}) failed: {result}",
                    exc_info=result,
                )
                failures[query.id] = str(result)

        self.loading = False
        if failures:
            self.error = consts.FETCH_ERROR_MESSAGE
            self.query_errors = failures
            return self.state

        series = []
        for query, raw_series in zip(active, results):
            series.extend(self._label_series(query, raw_series))
        self.data = series or None
        self.error = None
        self.query_errors = {}
        return self.state

    async def refresh(
        self,
        queries: Sequence[Any],
        time_range: Optional[TimeRange] = None,
        refresh_tick: int = 0,
        now: Optional[datetime] = None,
    ) -> FetchState:
        """Fetch only if the query list, range or refresh tick changed.

        Repeated calls with equal inputs return the current state without
        touching the network.
        """
        time_range = time_range or TimeRange()
        normalized = [as_query_with_id(q) for q in queries]
        key = fetch_key(normalized, refresh_tick, time_range)
        if key == self._last_key:
            return self.state
        self._last_key = key
        return await self.fetch(normalized, time_range.to_window(now))

    def _label_series(
        self, query: QueryWithId, raw_series: List[RawSeries]
    ) -> List[FetchedSeries]:
        labeled = []
        for raw in raw_series:
            labels = dict(raw.labels)
            labels[METRIC_NAME_LABEL] = self._series_namer(query.query, raw.labels)
            labels[QUERY_LABEL] = query.query
            labeled.append(
                FetchedSeries(
                    labels=labels,
                    timestamps=raw.timestamps,
                    values=raw.values,
                    query_id=query.id,
                )
            )
        return labeled
