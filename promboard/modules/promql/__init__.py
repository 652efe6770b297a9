from promboard.modules.promql.naming import extract_series_name
from promboard.modules.promql.parser import Node, parse
from promboard.modules.promql.rewriter import inject_instance_filter

__all__ = ["Node", "parse", "inject_instance_filter", "extract_series_name"]
