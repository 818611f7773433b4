"""
Conditions - Transition Gate Evaluation

Decides whether a node may be entered given the current session state.
A transition condition is a small boolean expression language:

    booking_class == 'Business' and passengers >= 2
    not confirmed || 'refund' in content
    profile.country in ['DE', 'FR']

Expressions are tokenised and parsed into an AST once (cached), then
evaluated against a lookup context. Evaluation never raises: any parse or
type error makes the condition false.
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple, Union

from ..domain.models import NodeBase
from ..exceptions import ExpressionEvaluationError
from ..state.models import SessionState

logger = logging.getLogger(__name__)

# Identifier that resolves to the latest message content when no variable shadows it.
CONTENT_IDENTIFIER = "content"


class _Unbound:
    """Value of an identifier that is not bound. Falsy; never compares equal."""

    def __bool__(self):
        return False

    def __repr__(self):
        return "UNBOUND"


UNBOUND = _Unbound()


# ==============================================================================
# AST
# ==============================================================================

@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Identifier:
    path: Tuple[str, ...]


@dataclass(frozen=True)
class ListExpr:
    items: Tuple["Expr", ...]


@dataclass(frozen=True)
class Not:
    operand: "Expr"


@dataclass(frozen=True)
class BoolOp:
    op: str  # "and" | "or"
    operands: Tuple["Expr", ...]


@dataclass(frozen=True)
class Compare:
    op: str
    left: "Expr"
    right: "Expr"


Expr = Union[Literal, Identifier, ListExpr, Not, BoolOp, Compare]


# ==============================================================================
# Tokenizer
# ==============================================================================

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>\d+(?:\.\d+)?)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<op>==|!=|<=|>=|&&|\|\||<|>|!|\(|\)|\[|\]|,|-)
  | (?P<name>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*)
    """,
    re.VERBOSE,
)

_KEYWORDS = {"and", "or", "not", "in", "true", "false", "null", "none"}


@dataclass(frozen=True)
class Token:
    kind: str  # "number" | "string" | "op" | "name" | "keyword" | "end"
    text: str
    position: int


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    position = 0
    while position < len(text):
        match = _TOKEN_RE.match(text, position)
        if not match:
            raise ExpressionEvaluationError(
                f"Unexpected character {text[position]!r} at {position}"
            )
        kind = match.lastgroup
        value = match.group()
        if kind == "name" and value.lower() in _KEYWORDS:
            tokens.append(Token("keyword", value.lower(), position))
        elif kind != "ws":
            tokens.append(Token(kind, value, position))
        position = match.end()
    tokens.append(Token("end", "", position))
    return tokens


# ==============================================================================
# Parser (recursive descent)
# ==============================================================================

_COMPARISON_OPS = {"==", "!=", "<", "<=", ">", ">="}


class _Parser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _accept(self, *texts: str) -> Optional[Token]:
        if self.current.kind in ("op", "keyword") and self.current.text in texts:
            return self._advance()
        return None

    def _expect(self, text: str) -> Token:
        token = self._accept(text)
        if token is None:
            raise ExpressionEvaluationError(
                f"Expected {text!r} at {self.current.position}, found {self.current.text!r}"
            )
        return token

    def parse(self) -> Expr:
        expr = self._or()
        if self.current.kind != "end":
            raise ExpressionEvaluationError(
                f"Unexpected token {self.current.text!r} at {self.current.position}"
            )
        return expr

    def _or(self) -> Expr:
        operands = [self._and()]
        while self._accept("or", "||"):
            operands.append(self._and())
        return operands[0] if len(operands) == 1 else BoolOp("or", tuple(operands))

    def _and(self) -> Expr:
        operands = [self._not()]
        while self._accept("and", "&&"):
            operands.append(self._not())
        return operands[0] if len(operands) == 1 else BoolOp("and", tuple(operands))

    def _not(self) -> Expr:
        if self._accept("not", "!"):
            return Not(self._not())
        return self._comparison()

    def _comparison(self) -> Expr:
        left = self._primary()
        token = self.current
        if token.kind == "op" and token.text in _COMPARISON_OPS:
            self._advance()
            return Compare(token.text, left, self._primary())
        if self._accept("in"):
            return Compare("in", left, self._primary())
        if token.kind == "keyword" and token.text == "not":
            next_token = self.tokens[self.index + 1]
            if next_token.kind == "keyword" and next_token.text == "in":
                self.index += 2
                return Compare("not in", left, self._primary())
        return left

    def _primary(self) -> Expr:
        token = self.current
        if self._accept("("):
            expr = self._or()
            self._expect(")")
            return expr
        if self._accept("["):
            items = []
            if not self._accept("]"):
                items.append(self._or())
                while self._accept(","):
                    items.append(self._or())
                self._expect("]")
            return ListExpr(tuple(items))
        if self._accept("-"):
            number = self._advance()
            if number.kind != "number":
                raise ExpressionEvaluationError(f"Expected number after '-' at {number.position}")
            return Literal(-_number(number.text))
        if token.kind == "number":
            self._advance()
            return Literal(_number(token.text))
        if token.kind == "string":
            self._advance()
            return Literal(_unquote(token.text))
        if token.kind == "keyword" and token.text in ("true", "false", "null", "none"):
            self._advance()
            return Literal({"true": True, "false": False}.get(token.text))
        if token.kind == "name":
            self._advance()
            return Identifier(tuple(token.text.split(".")))
        raise ExpressionEvaluationError(
            f"Unexpected token {token.text or 'end of expression'!r} at {token.position}"
        )


def _number(text: str) -> Union[int, float]:
    return float(text) if "." in text else int(text)


def _unquote(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text[1:-1])


@lru_cache(maxsize=512)
def parse_expression(text: str) -> Expr:
    """Parses a condition into an AST. Raises ExpressionEvaluationError."""
    return _Parser(tokenize(text)).parse()


# ==============================================================================
# Evaluation
# ==============================================================================

def evaluate(expr: Expr, context: Dict[str, Any]) -> Any:
    if isinstance(expr, Literal):
        return expr.value
    if isinstance(expr, Identifier):
        return _lookup(expr.path, context)
    if isinstance(expr, ListExpr):
        return [evaluate(item, context) for item in expr.items]
    if isinstance(expr, Not):
        return not evaluate(expr.operand, context)
    if isinstance(expr, BoolOp):
        if expr.op == "and":
            return all(evaluate(operand, context) for operand in expr.operands)
        return any(evaluate(operand, context) for operand in expr.operands)
    if isinstance(expr, Compare):
        return _compare(expr.op, evaluate(expr.left, context), evaluate(expr.right, context))
    raise ExpressionEvaluationError(f"Unknown expression node {expr!r}")


def _lookup(path: Tuple[str, ...], context: Dict[str, Any]) -> Any:
    value: Any = context
    for part in path:
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return UNBOUND
    return value


def _compare(op: str, left: Any, right: Any) -> bool:
    if left is UNBOUND or right is UNBOUND:
        return False
    try:
        if op == "==":
            return left == right
        if op == "!=":
            return left != right
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        if op == ">=":
            return left >= right
        if op == "in":
            return left in right
        if op == "not in":
            return left not in right
    except TypeError as e:
        raise ExpressionEvaluationError(f"Cannot apply {op!r} to {left!r} and {right!r}: {e}")
    raise ExpressionEvaluationError(f"Unknown operator {op!r}")


class ConditionEvaluator:
    """
    Pure predicate over (node, session): re-evaluating on unchanged state
    always yields the same answer.
    """

    def can_enter(self, node: NodeBase, session: SessionState) -> bool:
        gate = node.transition_condition
        if gate is None:
            return True

        missing = [v for v in gate.required_variables if v not in session.variables]
        if missing:
            logger.debug(f"Node {node.id} blocked; unbound variables {missing}")
            return False

        if not gate.condition or not gate.condition.strip():
            return True
        return self.evaluate(gate.condition, session)

    def evaluate(self, condition: str, session: SessionState) -> bool:
        """Evaluates `condition`; any error is treated as false."""
        try:
            expr = parse_expression(condition)
            return bool(evaluate(expr, self._context(session)))
        except ExpressionEvaluationError as e:
            logger.warning(f"Condition {condition!r} failed to evaluate: {e}")
            return False
        except RecursionError:
            logger.warning(f"Condition {condition!r} is nested too deeply")
            return False

    def _context(self, session: SessionState) -> Dict[str, Any]:
        context: Dict[str, Any] = {}
        latest = session.latest_content
        if latest is not None:
            context[CONTENT_IDENTIFIER] = latest
        context.update(session.variables)
        return context
