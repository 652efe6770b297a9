"""Tokenizer for the Prometheus query language.

Every token keeps the ``start``/``end`` offsets of its text in the original
query so that callers can splice edits into the source without
re-serializing it.
"""

import re
from dataclasses import dataclass
from typing import List

from promboard.exceptions import QueryParseError

IDENTIFIER = "IDENTIFIER"
NUMBER = "NUMBER"
DURATION = "DURATION"
STRING = "STRING"
LEFT_PAREN = "LEFT_PAREN"
RIGHT_PAREN = "RIGHT_PAREN"
LEFT_BRACE = "LEFT_BRACE"
RIGHT_BRACE = "RIGHT_BRACE"
LEFT_BRACKET = "LEFT_BRACKET"
RIGHT_BRACKET = "RIGHT_BRACKET"
COMMA = "COMMA"
COLON = "COLON"
AT = "AT"
OPERATOR = "OPERATOR"
MATCH_OP = "MATCH_OP"
EOF = "EOF"

# Order matters: durations before numbers, two-character operators before
# their one-character prefixes.
_TOKEN_SPEC = [
    ("SKIP", r"[ \t\r\n]+|\#[^\n]*"),
    (DURATION, r"(?:\d+(?:ms|[smhdwy]))+(?!\w)"),
    (
        NUMBER,
        r"0[xX][0-9a-fA-F]+|(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?",
    ),
    (STRING, r'"(?:[^"\\\n]|\\.)*"|\'(?:[^\'\\\n]|\\.)*\'|`[^`]*`'),
    # A leading colon only starts a name when a name character follows, so
    # the colon of a subquery range such as [10m:1m] or [30m:] stays COLON.
    (IDENTIFIER, r"[a-zA-Z_][a-zA-Z0-9_:]*|:[a-zA-Z_:][a-zA-Z0-9_:]*"),
    (OPERATOR, r"==|!=|>=|<=|[+\-*/%^<>]"),
    (MATCH_OP, r"=~|!~|="),
    (LEFT_PAREN, r"\("),
    (RIGHT_PAREN, r"\)"),
    (LEFT_BRACE, r"\{"),
    (RIGHT_BRACE, r"\}"),
    (LEFT_BRACKET, r"\["),
    (RIGHT_BRACKET, r"\]"),
    (COMMA, r","),
    (COLON, r":"),
    (AT, r"@"),
]
_MASTER_PATTERN = re.compile(
    "|".join(f"(?P<{name}>{pattern})" for name, pattern in _TOKEN_SPEC)
)


@dataclass(frozen=True)
class Token:
    type: str
    value: str
    start: int
    end: int

    def is_keyword(self, *words: str) -> bool:
        return self.type == IDENTIFIER and self.value.lower() in words


def tokenize(query: str) -> List[Token]:
    """Split ``query`` into tokens, ending with a single ``EOF`` token.

    Raises:
        QueryParseError: On a character that starts no valid token, such as
            an unterminated string literal.
    """
    tokens = []
    pos = 0
    while pos < len(query):
        match = _MASTER_PATTERN.match(query, pos)
        if match is None:
            raise QueryParseError(f"unexpected character {query[pos]!r}", pos)
        kind = match.lastgroup
        if kind != "SKIP":
            tokens.append(Token(kind, match.group(), match.start(), match.end()))
        pos = match.end()
    tokens.append(Token(EOF, "", len(query), len(query)))
    return tokens
