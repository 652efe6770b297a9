import logging
from typing import Any, Dict, List, Optional

import aiohttp

from promboard import consts
from promboard.exceptions import PrometheusQueryError
from promboard.modules.range_query.common import (
    RawSeries,
    TimeWindow,
    to_sample_value,
    to_unix_seconds,
)

logger = logging.getLogger(__name__)


class RangeQueryClient:
    """Issues range queries against the monitoring gateway.

    Args:
        endpoint: Base URL of the gateway. Defaults to the value of
            ``PROMBOARD_MONITORING_ENDPOINT``.
        http_session: Session to issue requests with. When omitted one is
            created lazily and closed by :meth:`close`.
        range_path: Path of the range query route below ``endpoint``.
        timeout_s: Total timeout of a single request.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        http_session: Optional[aiohttp.ClientSession] = None,
        range_path: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ):
        self._endpoint = (endpoint or consts.MONITORING_ENDPOINT).rstrip("/")
        self._range_path = range_path or consts.RANGE_QUERY_PATH
        self._timeout_s = timeout_s or consts.HTTP_TIMEOUT_SECONDS
        self.http_session = http_session
        self._owns_session = http_session is None

    @property
    def url(self) -> str:
        return f"{self._endpoint}{self._range_path}"

    def _get_session(self):
        if self.http_session is None:
            self.http_session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_s)
            )
        return self.http_session

    async def close(self):
        if self._owns_session and self.http_session is not None:
            await self.http_session.close()
            self.http_session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def query_range(self, query: str, window: TimeWindow) -> List[RawSeries]:
        """Evaluate ``query`` over ``window``.

        Raises:
            PrometheusQueryError: If the gateway answers with a non-200
                status or a body that is not a range query result.
        """
        params = {"query": query, **window.to_params()}
        logger.debug(f"Querying {self.url} with {params}")
        async with self._get_session().get(self.url, params=params) as resp:
            if resp.status == 200:
                body = await resp.json()
                return parse_range_response(body)

            message = await resp.text()
            raise PrometheusQueryError(resp.status, message)


def parse_range_response(body: Dict[str, Any]) -> List[RawSeries]:
    """Convert a range query response body into series.

    Two shapes are understood: the gateway's
    ``{"queryResult": {"result": [{"metric": {"labels": ...},
    "values": [{"time": ..., "value": ...}]}]}}`` and Prometheus'
    ``{"status": "success", "data": {"result": [{"metric": ...,
    "values": [[ts, "v"]]}]}}``.
    """
    try:
        if "queryResult" in body:
            result = body["queryResult"]["result"]
        elif body.get("status") == "success":
            result = body["data"]["result"]
        elif body.get("status") == "error":
            raise PrometheusQueryError(200, body.get("error", "unknown error"))
        else:
            raise PrometheusQueryError(200, "unexpected response body")
        return [_parse_series(series) for series in result or []]
    except (KeyError, TypeError, ValueError) as e:
        raise PrometheusQueryError(200, f"malformed response body: {e}") from e


def _parse_series(series: Dict[str, Any]) -> RawSeries:
    metric = series.get("metric") or {}
    labels = metric.get("labels", metric) if isinstance(metric, dict) else {}
    timestamps = []
    values = []
    for sample in series.get("values") or []:
        if isinstance(sample, dict):
            time, value = sample["time"], sample["value"]
        else:
            time, value = sample
        timestamps.append(to_unix_seconds(time))
        values.append(to_sample_value(value))
    return RawSeries(
        labels={str(k): str(v) for k, v in (labels or {}).items()},
        timestamps=timestamps,
        values=values,
    )
