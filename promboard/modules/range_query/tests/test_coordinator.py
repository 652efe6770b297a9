import asyncio
import sys
from datetime import datetime, timezone

import pytest

from promboard._private.test_utils import FakeResponse, FakeSession, range_body
from promboard.modules.range_query.client import RangeQueryClient
from promboard.modules.range_query.common import QueryWithId, TimeRange, TimeWindow
from promboard.modules.range_query.coordinator import RangeFetchCoordinator

WINDOW = TimeWindow(
    start=datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc),
    end=datetime(2024, 1, 1, 0, 30, tzinfo=timezone.utc),
)
NOW = datetime(2024, 1, 1, 0, 30, tzinfo=timezone.utc)


def _series_for(query):
    return range_body(
        ({"instance": "a"}, [(1704067200, "1"), (1704067215, "2")]),
        ({"instance": "b"}, [(1704067200, "3")]),
    )


def _coordinator(handler):
    session = FakeSession(handler)
    client = RangeQueryClient("http://gateway", http_session=session)
    return RangeFetchCoordinator(client), session


@pytest.mark.asyncio
async def test_fetch_labels_every_series():
    coordinator, session = _coordinator(lambda q: FakeResponse(200, _series_for(q)))
    state = await coordinator.fetch(
        [QueryWithId(id="q1", query="rate(node_load1[1m])")], WINDOW
    )

    assert state.loading is False
    assert state.error is None
    assert [s.labels["__name__"] for s in state.data] == [
        "node_load1__instance_a",
        "node_load1__instance_b",
    ]
    assert all(s.labels["query"] == "rate(node_load1[1m])" for s in state.data)
    assert all(s.query_id == "q1" for s in state.data)
    assert state.data[0].timestamps == [1704067200, 1704067215]
    assert state.data[0].values == [1.0, 2.0]


@pytest.mark.asyncio
async def test_blank_queries_are_skipped():
    coordinator, session = _coordinator(lambda q: FakeResponse(200, _series_for(q)))
    state = await coordinator.fetch(
        [{"id": "q1", "query": "  "}, {"id": "q2", "query": "up"}], WINDOW
    )
    assert [params["query"] for _, params in session.requests] == ["up"]
    assert {s.query_id for s in state.data} == {"q2"}


@pytest.mark.asyncio
async def test_no_active_queries_clears_data_without_requests():
    coordinator, session = _coordinator(lambda q: FakeResponse(200, _series_for(q)))
    await coordinator.fetch([QueryWithId(id="q1", query="up")], WINDOW)
    assert coordinator.data is not None

    state = await coordinator.fetch([QueryWithId(id="q1", query="")], WINDOW)
    assert state.data is None
    assert state.loading is False
    assert state.error is None
    assert len(session.requests) == 1


@pytest.mark.asyncio
async def test_empty_results_give_no_data():
    coordinator, _ = _coordinator(lambda q: FakeResponse(200, range_body()))
    state = await coordinator.fetch([QueryWithId(id="q1", query="up")], WINDOW)
    assert state.data is None
    assert state.error is None


@pytest.mark.asyncio
async def test_one_failure_fails_the_batch_and_keeps_previous_data():
    failing = {"value": False}

    def handler(query):
        if failing["value"] and query == "q_two":
            return ConnectionError("connection refused")
        return FakeResponse(200, _series_for(query))

    coordinator, _ = _coordinator(handler)
    queries = [
        QueryWithId(id="1", query="q_one"),
        QueryWithId(id="2", query="q_two"),
        QueryWithId(id="3", query="q_three"),
    ]
    first = await coordinator.fetch(queries, WINDOW)
    assert first.error is None
    assert len(first.data) == 6

    failing["value"] = True
    second = await coordinator.fetch(queries, WINDOW)
    assert second.error == "Failed to fetch metrics."
    assert second.loading is False
    assert second.data == first.data
    assert list(second.query_errors) == ["2"]
    assert "connection refused" in second.query_errors["2"]

    failing["value"] = False
    third = await coordinator.fetch(queries, WINDOW)
    assert third.error is None
    assert third.query_errors == {}


@pytest.mark.asyncio
async def test_http_error_fails_the_batch():
    coordinator, _ = _coordinator(lambda q: FakeResponse(500, text="boom"))
    state = await coordinator.fetch([QueryWithId(id="q1", query="up")], WINDOW)
    assert state.error == "Failed to fetch metrics."
    assert state.data is None
    assert "status: 500" in state.query_errors["q1"]


@pytest.mark.asyncio
async def test_stale_generation_is_dropped():
    coordinator, session = _coordinator(
        lambda q: FakeResponse(200, range_body(({"q": q}, [(1704067200, "1")])))
    )
    session.gates["slow"] = asyncio.Event()

    slow = asyncio.ensure_future(
        coordinator.fetch([QueryWithId(id="a", query="slow")], WINDOW)
    )
    await asyncio.sleep(0)
    fast = await coordinator.fetch([QueryWithId(id="b", query="fast")], WINDOW)
    session.gates["slow"].set()
    await slow

    assert [s.query_id for s in fast.data] == ["b"]
    assert [s.query_id for s in coordinator.data] == ["b"]


@pytest.mark.asyncio
async def test_refresh_only_fetches_on_changes():
    coordinator, session = _coordinator(lambda q: FakeResponse(200, _series_for(q)))
    queries = [{"id": "q1", "query": "up"}]

    await coordinator.refresh(queries, TimeRange(minutes=30), 0, now=NOW)
    await coordinator.refresh(queries, TimeRange(minutes=30), 0, now=NOW)
    assert len(session.requests) == 1

    await coordinator.refresh(queries, TimeRange(minutes=30), 1, now=NOW)
    assert len(session.requests) == 2

    await coordinator.refresh(
        [{"id": "q1", "query": "up"}, {"id": "q2", "query": "down"}],
        TimeRange(minutes=30),
        1,
        now=NOW,
    )
    assert len(session.requests) == 4

    await coordinator.refresh(queries, TimeRange(minutes=60), 1, now=NOW)
    assert len(session.requests) == 5
    assert session.requests[-1][1]["start"] == "2023-12-31T23:30:00Z"


if __name__ == "__main__":
    sys.exit(pytest.main(["-v", __file__]))
