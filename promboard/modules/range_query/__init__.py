from promboard.modules.range_query.client import RangeQueryClient
from promboard.modules.range_query.common import (
    FetchedSeries,
    FetchState,
    QueryWithId,
    TimeRange,
    TimeWindow,
)
from promboard.modules.range_query.coordinator import RangeFetchCoordinator

__all__ = [
    "RangeQueryClient",
    "RangeFetchCoordinator",
    "FetchedSeries",
    "FetchState",
    "QueryWithId",
    "TimeRange",
    "TimeWindow",
]
