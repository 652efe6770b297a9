"""Recursive-descent parser for PromQL.

The parser builds a concrete syntax tree of :class:`Node` objects. Node names
follow the grammar used by the Prometheus UI (``VectorSelector``,
``MatrixSelector``, ``AggregateExpr``, ``BinaryExpr``, ...) and each node
records the ``[start, end)`` span of the source text it covers. The tree is
read-only input for rewriting; rewriters compute edits against the original
string instead of mutating nodes.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from promboard.exceptions import QueryParseError
from promboard.modules.promql import lexer
from promboard.modules.promql.lexer import Token

AGGREGATION_OPERATORS = {
    "avg",
    "bottomk",
    "count",
    "count_values",
    "group",
    "limitk",
    "limit_ratio",
    "max",
    "min",
    "quantile",
    "stddev",
    "stdvar",
    "sum",
    "topk",
}

# Binary operator precedence, lowest first. ``^`` is right associative.
_PRECEDENCE = {
    "or": 1,
    "and": 2,
    "unless": 2,
    "==": 3,
    "!=": 3,
    "<=": 3,
    "<": 3,
    ">=": 3,
    ">": 3,
    "+": 4,
    "-": 4,
    "*": 5,
    "/": 5,
    "%": 5,
    "atan2": 5,
    "^": 6,
}
_COMPARISON_OPERATORS = {"==", "!=", "<=", "<", ">=", ">"}
_LABEL_MATCH_OPS = {"=", "!=", "=~", "!~"}


@dataclass
class Node:
    """One node of the syntax tree.

    ``value`` holds the node's distinguishing text: the metric name of a
    selector, the function or aggregation name, the operator of a binary
    expression, or the label name of a matcher.
    """

    name: str
    start: int
    end: int
    children: List["Node"] = field(default_factory=list)
    value: Optional[str] = None

    def walk(self) -> Iterator["Node"]:
        """Yield this node and all of its descendants in document order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def find_all(self, name: str) -> List["Node"]:
        return [node for node in self.walk() if node.name == name]

    def child(self, name: str) -> Optional["Node"]:
        for node in self.children:
            if node.name == name:
                return node
        return None

    def text(self, source: str) -> str:
        return source[self.start : self.end]


class Parser:
    def __init__(self, query: str):
        self._query = query
        self._tokens = lexer.tokenize(query)
        self._pos = 0

    def parse(self) -> Node:
        if self._peek().type == lexer.EOF:
            raise QueryParseError("empty query", 0)
        expr = self._parse_expr()
        token = self._peek()
        if token.type != lexer.EOF:
            raise QueryParseError(f"unexpected {token.value!r}", token.start)
        return Node("PromQL", 0, len(self._query), [expr])

    # Token helpers

    def _peek(self, offset: int = 0) -> Token:
        index = min(self._pos + offset, len(self._tokens) - 1)
        return self._tokens[index]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        if token.type != lexer.EOF:
            self._pos += 1
        return token

    def _expect(self, token_type: str, what: str) -> Token:
        token = self._peek()
        if token.type != token_type:
            found = token.value or "end of query"
            raise QueryParseError(f"expected {what}, found {found!r}", token.start)
        return self._advance()

    def _binary_operator(self) -> Optional[str]:
        token = self._peek()
        if token.type == lexer.OPERATOR:
            return token.value
        if token.is_keyword("and", "or", "unless", "atan2"):
            return token.value.lower()
        return None

    # Expressions

    def _parse_expr(self, min_precedence: int = 1) -> Node:
        left = self._parse_unary()
        while True:
            op = self._binary_operator()
            if op is None or _PRECEDENCE[op] < min_precedence:
                return left
            self._advance()
            children = [left]
            if op in _COMPARISON_OPERATORS and self._peek().is_keyword("bool"):
                token = self._advance()
                children.append(Node("BoolModifier", token.start, token.end))
            matching = self._parse_vector_matching()
            if matching is not None:
                children.append(matching)
            next_precedence = _PRECEDENCE[op] if op == "^" else _PRECEDENCE[op] + 1
            right = self._parse_expr(next_precedence)
            children.append(right)
            left = Node("BinaryExpr", left.start, right.end, children, value=op)

    def _parse_vector_matching(self) -> Optional[Node]:
        token = self._peek()
        if not token.is_keyword("on", "ignoring"):
            return None
        self._advance()
        labels = self._parse_grouping_labels()
        children = [labels]
        end = labels.end
        group = self._peek()
        if group.is_keyword("group_left", "group_right"):
            self._advance()
            end = group.end
            if self._peek().type == lexer.LEFT_PAREN:
                include = self._parse_grouping_labels()
                children.append(include)
                end = include.end
        return Node(
            "MatchingModifierClause", token.start, end, children, value=token.value
        )

    def _parse_unary(self) -> Node:
        token = self._peek()
        if token.type == lexer.OPERATOR and token.value in ("+", "-"):
            self._advance()
            operand = self._parse_unary()
            return Node(
                "UnaryExpr", token.start, operand.end, [operand], value=token.value
            )
        return self._parse_postfix(self._parse_primary())

    def _parse_postfix(self, expr: Node) -> Node:
        while True:
            token = self._peek()
            if token.type == lexer.LEFT_BRACKET:
                expr = self._parse_range(expr)
            elif token.is_keyword("offset"):
                self._advance()
                sign = self._peek()
                if sign.type == lexer.OPERATOR and sign.value in ("+", "-"):
                    self._advance()
                duration = self._expect(lexer.DURATION, "duration after offset")
                expr = Node(
                    "OffsetExpr",
                    expr.start,
                    duration.end,
                    [expr],
                    value=self._query[token.start : duration.end],
                )
            elif token.type == lexer.AT:
                self._advance()
                end = self._parse_at_target()
                expr = Node("StepInvariantExpr", expr.start, end, [expr])
            else:
                return expr

    def _parse_at_target(self) -> int:
        token = self._peek()
        if token.type == lexer.OPERATOR and token.value in ("+", "-"):
            self._advance()
            token = self._peek()
        if token.type == lexer.NUMBER:
            return self._advance().end
        if token.is_keyword("start", "end"):
            self._advance()
            self._expect(lexer.LEFT_PAREN, "'('")
            return self._expect(lexer.RIGHT_PAREN, "')'").end
        raise QueryParseError("expected timestamp after '@'", token.start)

    def _parse_range(self, expr: Node) -> Node:
        self._expect(lexer.LEFT_BRACKET, "'['")
        range_token = self._expect(lexer.DURATION, "range duration")
        if self._peek().type == lexer.COLON:
            self._advance()
            if self._peek().type == lexer.DURATION:
                self._advance()
            close = self._expect(lexer.RIGHT_BRACKET, "']'")
            return Node("SubqueryExpr", expr.start, close.end, [expr])
        close = self._expect(lexer.RIGHT_BRACKET, "']'")
        if expr.name != "VectorSelector":
            raise QueryParseError(
                "ranges only allowed for vector selectors", range_token.start
            )
        return Node(
            "MatrixSelector", expr.start, close.end, [expr], value=range_token.value
        )

    def _parse_primary(self) -> Node:
        token = self._peek()
        if token.type == lexer.LEFT_PAREN:
            self._advance()
            inner = self._parse_expr()
            close = self._expect(lexer.RIGHT_PAREN, "')'")
            return Node("ParenExpr", token.start, close.end, [inner])
        if token.type == lexer.NUMBER or token.is_keyword("inf", "nan"):
            self._advance()
            return Node("NumberLiteral", token.start, token.end, value=token.value)
        if token.type == lexer.STRING:
            self._advance()
            return Node("StringLiteral", token.start, token.end, value=token.value)
        if token.type == lexer.LEFT_BRACE:
            matchers = self._parse_label_matchers()
            return Node("VectorSelector", matchers.start, matchers.end, [matchers])
        if token.type == lexer.IDENTIFIER:
            following = self._peek(1)
            name = token.value.lower()
            if name in AGGREGATION_OPERATORS and (
                following.type == lexer.LEFT_PAREN
                or following.is_keyword("by", "without")
            ):
                return self._parse_aggregation()
            if following.type == lexer.LEFT_PAREN:
                return self._parse_function_call()
            return self._parse_vector_selector()
        found = token.value or "end of query"
        raise QueryParseError(f"unexpected {found!r}", token.start)

    def _parse_vector_selector(self) -> Node:
        token = self._advance()
        metric = Node("Identifier", token.start, token.end, value=token.value)
        children = [metric]
        end = token.end
        if self._peek().type == lexer.LEFT_BRACE:
            matchers = self._parse_label_matchers()
            children.append(matchers)
            end = matchers.end
        return Node("VectorSelector", token.start, end, children, value=token.value)

    def _parse_label_matchers(self) -> Node:
        open_brace = self._expect(lexer.LEFT_BRACE, "'{'")
        matchers = []
        while self._peek().type != lexer.RIGHT_BRACE:
            matchers.append(self._parse_label_matcher())
            if self._peek().type == lexer.COMMA:
                self._advance()
            elif self._peek().type != lexer.RIGHT_BRACE:
                token = self._peek()
                raise QueryParseError(
                    f"expected ',' or '}}' in label matchers, found {token.value!r}",
                    token.start,
                )
        close = self._advance()
        return Node("LabelMatchers", open_brace.start, close.end, matchers)

    def _parse_label_matcher(self) -> Node:
        token = self._peek()
        if token.type not in (lexer.IDENTIFIER, lexer.STRING):
            raise QueryParseError(
                f"expected label name, found {token.value!r}", token.start
            )
        self._advance()
        op = self._peek()
        if token.type == lexer.STRING and op.value not in _LABEL_MATCH_OPS:
            # A lone quoted string inside braces names the metric.
            return Node(
                "QuotedMetricName", token.start, token.end, value=_unquote(token.value)
            )
        if op.type not in (lexer.MATCH_OP, lexer.OPERATOR) or (
            op.value not in _LABEL_MATCH_OPS
        ):
            raise QueryParseError("expected label matching operator", op.start)
        self._advance()
        value = self._expect(lexer.STRING, "label value string")
        label = _unquote(token.value) if token.type == lexer.STRING else token.value
        return Node(
            "LabelMatcher",
            token.start,
            value.end,
            [
                Node("LabelName", token.start, token.end, value=label),
                Node("MatchOp", op.start, op.end, value=op.value),
                Node("StringLiteral", value.start, value.end, value=value.value),
            ],
            value=label,
        )

    def _parse_grouping_labels(self) -> Node:
        open_paren = self._expect(lexer.LEFT_PAREN, "'('")
        labels = []
        while self._peek().type != lexer.RIGHT_PAREN:
            token = self._peek()
            if token.type not in (lexer.IDENTIFIER, lexer.STRING):
                raise QueryParseError(
                    f"expected label name, found {token.value!r}", token.start
                )
            self._advance()
            labels.append(Node("LabelName", token.start, token.end, value=token.value))
            if self._peek().type == lexer.COMMA:
                self._advance()
            elif self._peek().type != lexer.RIGHT_PAREN:
                token = self._peek()
                raise QueryParseError(f"expected ',' or ')'", token.start)
        close = self._advance()
        return Node("GroupingLabels", open_paren.start, close.end, labels)

    def _parse_aggregation_modifier(self) -> Optional[Node]:
        token = self._peek()
        if not token.is_keyword("by", "without"):
            return None
        self._advance()
        labels = self._parse_grouping_labels()
        return Node(
            "AggregateModifier",
            token.start,
            labels.end,
            [labels],
            value=token.value.lower(),
        )

    def _parse_aggregation(self) -> Node:
        token = self._advance()
        children = []
        modifier = self._parse_aggregation_modifier()
        if modifier is not None:
            children.append(modifier)
        args, close = self._parse_call_args()
        children.extend(args)
        end = close.end
        if modifier is None:
            modifier = self._parse_aggregation_modifier()
            if modifier is not None:
                children.append(modifier)
                end = modifier.end
        if not args:
            raise QueryParseError(
                f"no arguments for aggregation {token.value}", close.start
            )
        return Node("AggregateExpr", token.start, end, children, value=token.value)

    def _parse_function_call(self) -> Node:
        token = self._advance()
        args, close = self._parse_call_args()
        return Node("FunctionCall", token.start, close.end, args, value=token.value)

    def _parse_call_args(self):
        self._expect(lexer.LEFT_PAREN, "'('")
        args = []
        while self._peek().type != lexer.RIGHT_PAREN:
            args.append(self._parse_expr())
            if self._peek().type == lexer.COMMA:
                self._advance()
            elif self._peek().type != lexer.RIGHT_PAREN:
                token = self._peek()
                found = token.value or "end of query"
                raise QueryParseError(
                    f"expected ',' or ')', found {found!r}", token.start
                )
        close = self._advance()
        return args, close


def _unquote(literal: str) -> str:
    body = literal[1:-1]
    if literal[0] == "`":
        return body
    return body.encode("latin-1", "backslashreplace").decode("unicode_escape")


def parse(query: str) -> Node:
    """Parse ``query`` into a syntax tree rooted at a ``PromQL`` node.

    Raises:
        QueryParseError: If ``query`` is not valid PromQL.
    """
    return Parser(query).parse()
