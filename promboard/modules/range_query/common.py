import hashlib
import json
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from promboard import consts


class QueryWithId(BaseModel):
    """A query to fetch, tagged with the id of the query that owns it."""

    id: str = Field(..., description="Id of the owning query.")
    query: str = Field(..., description="PromQL text to evaluate.")


class TimeWindow(BaseModel):
    """Absolute window of a range query."""

    start: datetime = Field(..., description="Start of the window.")
    end: datetime = Field(..., description="End of the window.")
    step: str = Field(consts.DEFAULT_STEP, description="Resolution step, e.g. 15s.")

    def to_params(self) -> Dict[str, str]:
        return {
            "start": _isoformat(self.start),
            "end": _isoformat(self.end),
            "step": self.step,
        }


class TimeRange(BaseModel):
    """A window relative to now, e.g. "the last 30 minutes".

    Unlike :class:`TimeWindow` this stays equal across refreshes, which makes
    it usable as part of a fetch trigger key.
    """

    minutes: int = Field(
        default_factory=lambda: consts.DEFAULT_RANGE_MINUTES,
        gt=0,
        description="Length of the window in minutes.",
    )
    step: str = Field(consts.DEFAULT_STEP, description="Resolution step, e.g. 15s.")

    def to_window(self, now: Optional[datetime] = None) -> TimeWindow:
        end = now or datetime.now(timezone.utc)
        start = end - timedelta(minutes=self.minutes)
        return TimeWindow(start=start, end=end, step=self.step)


class RawSeries(BaseModel):
    """One series as returned by the backend, before naming."""

    labels: Dict[str, str] = Field(default_factory=dict)
    timestamps: List[int] = Field(default_factory=list)
    values: List[Optional[float]] = Field(default_factory=list)


class FetchedSeries(BaseModel):
    """One labeled series of a fetch cycle.

    ``labels`` contains the backend labels plus a synthesized ``__name__``
    (the canonical series name) and ``query`` (the query text).
    """

    labels: Dict[str, str] = Field(..., description="Series labels.")
    timestamps: List[int] = Field(..., description="Unix seconds, ascending.")
    values: List[Optional[float]] = Field(
        ..., description="One value per timestamp, None where missing."
    )
    query_id: str = Field(..., description="Id of the query that produced it.")

    @property
    def name(self) -> str:
        return self.labels.get("__name__", "")


class FetchState(BaseModel):
    data: Optional[List[FetchedSeries]] = None
    loading: bool = True
    error: Optional[str] = None
    # Per-query failure messages of the last failed batch, keyed by query id.
    query_errors: Dict[str, str] = Field(default_factory=dict)


def as_query_with_id(query: Any) -> QueryWithId:
    """Accept a ``QueryWithId``, a mapping or any object with id/query."""
    if isinstance(query, QueryWithId):
        return query
    if isinstance(query, dict):
        return QueryWithId(id=query["id"], query=query["query"])
    return QueryWithId(id=query.id, query=query.query)


def fetch_key(
    queries: Sequence[QueryWithId], refresh_tick: int, time_range: TimeRange
) -> str:
    """Hash of everything that should trigger a new fetch.

    The query list keeps its order (series colors follow it) but each entry
    is serialized with sorted keys.
    """
    payload = {
        "queries": [{"id": q.id, "query": q.query} for q in queries],
        "refresh_tick": refresh_tick,
        "time_range": time_range.model_dump(),
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def to_unix_seconds(value: Any) -> int:
    """Convert a sample time (unix number or ISO-8601 string) to unix seconds."""
    if isinstance(value, (int, float)):
        return math.floor(value)
    text = str(value).strip()
    try:
        return math.floor(float(text))
    except ValueError:
        pass
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return math.floor(parsed.timestamp())


def to_sample_value(value: Any) -> Optional[float]:
    if value is None:
        return None
    result = float(value)
    if math.isnan(result):
        return None
    return result


def _isoformat(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
