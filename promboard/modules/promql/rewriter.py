import logging
from typing import Iterable, List, NamedTuple

from promboard import consts
from promboard.exceptions import QueryParseError
from promboard.modules.promql.parser import Node, parse

logger = logging.getLogger(__name__)

# Matchers that already pin the instance label. A negative matcher
# (``instance!=``) does not, so the filter is still added next to it.
_PINNING_MATCH_OPS = {"=", "=~"}


class Edit(NamedTuple):
    """Replace ``query[start:end]`` with ``insert``."""

    start: int
    end: int
    insert: str


def apply_edits(query: str, edits: Iterable[Edit]) -> str:
    """Apply edits computed against the original ``query``.

    Edits are applied from the highest offset down so the offsets of the
    remaining edits stay valid.
    """
    result = query
    for edit in sorted(edits, key=lambda e: e.start, reverse=True):
        result = result[: edit.start] + edit.insert + result[edit.end :]
    return result


def quote_label_value(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _pins_label(selector: Node, label: str) -> bool:
    for matcher in selector.find_all("LabelMatcher"):
        op = matcher.child("MatchOp")
        if matcher.value == label and op is not None and op.value in _PINNING_MATCH_OPS:
            return True
    return False


def _selector_edit(query: str, selector: Node, matcher_text: str) -> Edit:
    matchers = selector.child("LabelMatchers")
    if matchers is None:
        return Edit(selector.end, selector.end, "{" + matcher_text + "}")
    closing_brace = matchers.end - 1
    inner = query[matchers.start + 1 : closing_brace].rstrip()
    if not matchers.children or inner.endswith(","):
        return Edit(closing_brace, closing_brace, matcher_text)
    return Edit(closing_brace, closing_brace, "," + matcher_text)


def label_filter_edits(query: str, tree: Node, label: str, value: str) -> List[Edit]:
    """Compute the edits that add ``label="value"`` to every selector.

    Selectors that already match on ``label`` are skipped.
    """
    matcher_text = f"{label}={quote_label_value(value)}"
    edits = []
    for node in tree.walk():
        if node.name != "VectorSelector" or _pins_label(node, label):
            continue
        edits.append(_selector_edit(query, node, matcher_text))
    return edits


def inject_instance_filter(query: str, instance_id: str) -> str:
    """Scope every metric selector in ``query`` to one monitored instance.

    Returns ``query`` unchanged when ``instance_id`` is empty or the
    observability node itself, and when ``query`` cannot be parsed.

    Example:
        >>> inject_instance_filter('up{job="node"}', "i-123")
        'up{job="node",instance="i-123"}'
    """
    if not instance_id or instance_id == consts.NO_SPECIFIC_INSTANCE:
        return query
    if not query.strip():
        return query

    try:
        tree = parse(query)
    except QueryParseError as e:
        logger.warning(
            f"Failed to parse PromQL query, returning original: {query!r}: {e}"
        )
        return query

    edits = label_filter_edits(query, tree, consts.INSTANCE_LABEL, instance_id)
    return apply_edits(query, edits)
