import re
from typing import Mapping

# Functions whose first argument names the metric the result is derived from,
# e.g. "rate(my_metric{foo="bar"}[5m])" -> "my_metric".
_WRAPPED_METRIC_RE = re.compile(r"(?:rate|increase|irate|sum|avg|count)\(([\w:]+)")
_LEADING_METRIC_RE = re.compile(r"^([\w:]+)")

METRIC_NAME_LABEL = "__name__"
SERIES_NAME_SEPARATOR = "__"


def extract_base_name(query: str) -> str:
    match = _WRAPPED_METRIC_RE.search(query)
    if match:
        return match.group(1)
    match = _LEADING_METRIC_RE.match(query)
    if match:
        return match.group(1)
    return query


def extract_series_name(query: str, labels: Mapping[str, str]) -> str:
    """Derive the canonical name of one result series.

    The name is the base metric of ``query`` followed by every label of the
    series as ``key_value``, so each label combination gets its own name.
    Labels are taken in the mapping's iteration order.

    Example:
        >>> extract_series_name(
        ...     "rate(http_requests_total[5m])", {"code": "200", "job": "api"}
        ... )
        'http_requests_total__code_200__job_api'
    """
    parts = [extract_base_name(query)]
    for key, value in labels.items():
        if key == METRIC_NAME_LABEL:
            continue
        parts.append(f"{key}_{value}")
    return SERIES_NAME_SEPARATOR.join(parts)
