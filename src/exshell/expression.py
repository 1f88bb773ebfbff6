"""Expression parsing and evaluation of expression argument lists.

The language is deliberately small: integers, quoted strings, environment
($NAME) and session (g:name) variables, arithmetic, string concatenation,
comparisons and logical operators.
"""

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum, auto

_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER_RE = re.compile(r"\d+")
_COMPARISONS = ("==", "!=", "<=", ">=", "<", ">")
_DQUOTE_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"'}


class ExpressionError(ValueError):
    """Invalid expression; position is the offset where evaluation stopped."""

    def __init__(self, message: str, position: int) -> None:
        super().__init__(message)
        self.position = position


class ParsingError(Enum):
    NO_ERROR = auto()
    INVALID_EXPRESSION = auto()


@dataclass(frozen=True)
class Value:
    data: int | str

    def to_string(self) -> str:
        return str(self.data)

    def to_int(self) -> int:
        if isinstance(self.data, int):
            return self.data
        match = re.match(r"\s*-?\d+", self.data)
        return int(match.group()) if match else 0

    def to_bool(self) -> bool:
        if isinstance(self.data, int):
            return self.data != 0
        return self.data not in ("", "0")


@dataclass(frozen=True)
class ParseResult:
    value: Value | None
    error: ParsingError
    # Offset of the first character not consumed by the expression.
    position: int
    # Whether the expression ended on whitespace before unparsable text.
    prev_token_whitespace: bool = False


class _Parser:
    def __init__(self, text: str, variables: Mapping[str, Value]) -> None:
        self.text = text
        self.pos = 0
        self.variables = variables

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def skip_ws(self) -> None:
        while not self.at_end() and self.text[self.pos].isspace():
            self.pos += 1

    def accept(self, token: str) -> bool:
        self.skip_ws()
        if self.text.startswith(token, self.pos):
            self.pos += len(token)
            return True
        return False

    def error(self, message: str) -> ExpressionError:
        return ExpressionError(message, self.pos)

    # Grammar, lowest precedence first.

    def expr(self) -> Value:
        left = self.and_expr()
        while self.accept("||"):
            right = self.and_expr()
            left = Value(int(left.to_bool() or right.to_bool()))
        return left

    def and_expr(self) -> Value:
        left = self.comparison()
        while self.accept("&&"):
            right = self.comparison()
            left = Value(int(left.to_bool() and right.to_bool()))
        return left

    def comparison(self) -> Value:
        left = self.additive()
        for op in _COMPARISONS:
            if self.accept(op):
                return Value(int(_compare(op, left, self.additive())))
        return left

    def additive(self) -> Value:
        left = self.term()
        while True:
            self.skip_ws()
            if self.text.startswith("||", self.pos):
                return left
            if self.accept("+"):
                left = Value(left.to_int() + self.term().to_int())
            elif self.accept("-"):
                left = Value(left.to_int() - self.term().to_int())
            elif self.accept("."):
                left = Value(left.to_string() + self.term().to_string())
            else:
                return left

    def term(self) -> Value:
        self.skip_ws()
        if self.at_end():
            raise self.error("Expression expected")

        ch = self.text[self.pos]
        if ch == "!":
            self.pos += 1
            return Value(int(not self.term().to_bool()))
        if ch == "-":
            self.pos += 1
            return Value(-self.term().to_int())
        if ch == "(":
            self.pos += 1
            value = self.expr()
            if not self.accept(")"):
                raise self.error("Missing closing parenthesis")
            return value
        if ch == "'":
            return Value(self.single_quoted())
        if ch == '"':
            return Value(self.double_quoted())
        if ch == "$":
            return Value(self.envvar())
        if number := _NUMBER_RE.match(self.text, self.pos):
            self.pos = number.end()
            return Value(int(number.group()))
        if self.text.startswith("g:", self.pos):
            return self.variable()
        raise self.error("Invalid expression")

    def single_quoted(self) -> str:
        start = self.pos
        self.pos += 1
        chars: list[str] = []
        while not self.at_end():
            ch = self.text[self.pos]
            if ch == "'":
                if self.text.startswith("''", self.pos):
                    chars.append("'")
                    self.pos += 2
                    continue
                self.pos += 1
                return "".join(chars)
            chars.append(ch)
            self.pos += 1
        self.pos = start
        raise self.error("Unterminated single quoted string")

    def double_quoted(self) -> str:
        start = self.pos
        self.pos += 1
        chars: list[str] = []
        while not self.at_end():
            ch = self.text[self.pos]
            if ch == '"':
                self.pos += 1
                return "".join(chars)
            if ch == "\\" and self.pos + 1 < len(self.text):
                nxt = self.text[self.pos + 1]
                chars.append(_DQUOTE_ESCAPES.get(nxt, nxt))
                self.pos += 2
                continue
            chars.append(ch)
            self.pos += 1
        self.pos = start
        raise self.error("Unterminated double quoted string")

    def envvar(self) -> str:
        name = _IDENT_RE.match(self.text, self.pos + 1)
        if name is None:
            raise self.error("Invalid environment variable name")
        self.pos = name.end()
        return os.environ.get(name.group(), "")

    def variable(self) -> Value:
        name = _IDENT_RE.match(self.text, self.pos + 2)
        if name is None:
            raise self.error("Invalid variable name")
        full_name = "g:" + name.group()
        if full_name not in self.variables:
            raise self.error(f"Undefined variable: {full_name}")
        self.pos = name.end()
        return self.variables[full_name]


def _compare(op: str, left: Value, right: Value) -> bool:
    if isinstance(left.data, int) or isinstance(right.data, int):
        a, b = left.to_int(), right.to_int()
    else:
        a, b = left.to_string(), right.to_string()
    match op:
        case "==":
            return a == b
        case "!=":
            return a != b
        case "<":
            return a < b
        case "<=":
            return a <= b
        case ">":
            return a > b
        case _:
            return a >= b


def parse(text: str, variables: Mapping[str, Value] | None = None) -> ParseResult:
    """Parse one expression from the front of text.

    NO_ERROR means the whole text was consumed.  INVALID_EXPRESSION with
    a value means a valid prefix was followed by something else; the
    prev_token_whitespace flag tells whether whitespace separated the two.
    """
    parser = _Parser(text, variables or {})
    try:
        value = parser.expr()
    except ExpressionError as exc:
        return ParseResult(None, ParsingError.INVALID_EXPRESSION, exc.position)

    parser.skip_ws()
    if parser.at_end():
        return ParseResult(value, ParsingError.NO_ERROR, parser.pos)

    prev_ws = parser.pos > 0 and text[parser.pos - 1].isspace()
    return ParseResult(value, ParsingError.INVALID_EXPRESSION, parser.pos, prev_ws)


def evaluate(text: str, variables: Mapping[str, Value] | None = None) -> Value:
    """Evaluate text that must be exactly one expression."""
    result = parse(text, variables)
    if result.error is not ParsingError.NO_ERROR or result.value is None:
        raise ExpressionError("Invalid expression", result.position)
    return result.value


def eval_arglist(args: str, variables: Mapping[str, Value] | None = None) -> str:
    """Evaluate whitespace-separated expressions and join their values.

    Raises ExpressionError positioned at the start of the first expression
    that failed to evaluate.  An empty args string is a caller error.
    """
    if not args:
        raise ValueError("eval_arglist() requires a non-empty argument list")

    result = ""
    pos = 0
    while pos < len(args):
        parsed = parse(args[pos:], variables)
        accepted = parsed.error is ParsingError.NO_ERROR or parsed.prev_token_whitespace
        if not accepted or parsed.value is None:
            raise ExpressionError("Invalid expression", pos)

        if result:
            result += " "
        result += parsed.value.to_string()

        pos += parsed.position
        while pos < len(args) and args[pos].isspace():
            pos += 1
    return result
