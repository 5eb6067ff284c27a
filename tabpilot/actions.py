"""Action grammar: navigate/click/type/press codes parsed into typed actions.

    navigate("<url>")
    click("<selector>")
    type("<selector>", "<text>")
    press("<key>")

Verb names are case-sensitive. Arguments are double-quoted, non-empty and taken
verbatim; embedded quotes cannot be escaped.
"""
import re
from dataclasses import dataclass
from typing import List, NamedTuple, Union

from tabpilot.core.errors import MalformedArgumentsError, UnsupportedActionError


@dataclass(frozen=True)
class Navigate:
    url: str
    verb = "navigate"

    @property
    def args(self):
        return (self.url,)


@dataclass(frozen=True)
class Click:
    selector: str
    verb = "click"

    @property
    def args(self):
        return (self.selector,)


@dataclass(frozen=True)
class Type:
    selector: str
    text: str
    verb = "type"

    @property
    def args(self):
        return (self.selector, self.text)


@dataclass(frozen=True)
class Press:
    key: str
    verb = "press"

    @property
    def args(self):
        return (self.key,)


ParsedAction = Union[Navigate, Click, Type, Press]

# Order matters: the first verb that matches wins.
VERBS = (Navigate, Click, Type, Press)


def to_code(parsed: ParsedAction) -> str:
    return "{}({})".format(parsed.verb, ", ".join(f'"{a}"' for a in parsed.args))


class Token(NamedTuple):
    kind: str
    value: str
    pos: int


_TOKEN_RE = re.compile(
    r"""
    (?P<IDENT>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<STRING>"[^"]*")
  | (?P<UNTERMINATED>"[^"]*$)
  | (?P<LPAREN>\()
  | (?P<RPAREN>\))
  | (?P<COMMA>,)
  | (?P<SPACE>\s+)
  | (?P<OTHER>.)
    """,
    re.VERBOSE | re.DOTALL,
)


def tokenize(code: str) -> List[Token]:
    tokens = []
    for m in _TOKEN_RE.finditer(code):
        kind = m.lastgroup
        if kind == "SPACE":
            continue
        tokens.append(Token(kind, m.group(), m.start()))
    return tokens


def _arguments(code: str, tokens: List[Token]) -> List[str]:
    """Parse `( string (, string)* )` starting right after the verb."""
    if not tokens or tokens[0].kind != "LPAREN":
        raise MalformedArgumentsError(code, "expected '('")
    args: List[str] = []
    i = 1
    while True:
        if i >= len(tokens):
            raise MalformedArgumentsError(code, "missing ')'")
        tok = tokens[i]
        if tok.kind == "UNTERMINATED":
            raise MalformedArgumentsError(code, f"unterminated string at {tok.pos}")
        if tok.kind != "STRING":
            raise MalformedArgumentsError(code, f"expected a quoted string at {tok.pos}")
        value = tok.value[1:-1]
        if not value:
            raise MalformedArgumentsError(code, f"empty argument at {tok.pos}")
        args.append(value)
        i += 1
        if i >= len(tokens):
            raise MalformedArgumentsError(code, "missing ')'")
        sep = tokens[i]
        if sep.kind == "RPAREN":
            i += 1
            break
        if sep.kind != "COMMA":
            raise MalformedArgumentsError(code, f"unexpected {sep.value!r} at {sep.pos}")
        i += 1
    if i != len(tokens):
        raise MalformedArgumentsError(code, f"trailing input at {tokens[i].pos}")
    return args


def parse(code: str) -> ParsedAction:
    """Parse an action code into Navigate, Click, Type or Press.

    Raises UnsupportedActionError when the code does not start with a known
    verb and MalformedArgumentsError (a subclass) when the verb is known but
    its arguments have the wrong shape.
    """
    tokens = tokenize(code or "")
    if len(tokens) < 2 or tokens[0].kind != "IDENT" or tokens[1].kind != "LPAREN":
        raise UnsupportedActionError(code)
    verb = tokens[0].value
    for cls in VERBS:
        if cls.verb != verb:
            continue
        args = _arguments(code, tokens[1:])
        expected = len(cls.__dataclass_fields__)
        if len(args) != expected:
            raise MalformedArgumentsError(
                code, f"{verb} takes {expected} argument(s), got {len(args)}"
            )
        return cls(*args)
    raise UnsupportedActionError(code)
