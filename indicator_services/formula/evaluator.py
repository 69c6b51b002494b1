from __future__ import annotations
import logging
import math
from typing import Dict, List, Mapping, Optional, Sequence, Union

from indicator_services.formula.parser import CompositeFormula, code_of, is_number, referenced_codes, tokenize
from indicator_services.grid.cells import Cell

logger = logging.getLogger(__name__)

FormulaLike = Union[str, Sequence[str], CompositeFormula]


class _Malformed(Exception):
    pass


class _Evaluator:
    """Recursive descent over the token list.

    expr  := term (("+" | "-") term)*
    term  := power (("*" | "/") power)*
    power := atom ("^" atom)*

    Every level folds left to right, "^" included: 2 ^ 3 ^ 2 is (2 ^ 3) ^ 2.
    atom  := NUMBER | @CODE | "(" expr ")"
    """

    def __init__(self, tokens: List[str], values: Mapping[str, float]):
        self.tokens = tokens
        self.values = values
        self.pos = 0

    def run(self) -> float:
        result = self._expr()
        if self.pos != len(self.tokens):
            raise _Malformed(f"unexpected token {self.tokens[self.pos]!r}")
        return result

    def _peek(self) -> Optional[str]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take(self) -> str:
        tok = self._peek()
        if tok is None:
            raise _Malformed("unexpected end of formula")
        self.pos += 1
        return tok

    def _expr(self) -> float:
        value = self._term()
        while self._peek() in ("+", "-"):
            op = self._take()
            rhs = self._term()
            value = value + rhs if op == "+" else value - rhs
        return value

    def _term(self) -> float:
        value = self._power()
        while self._peek() in ("*", "/"):
            op = self._take()
            rhs = self._power()
            value = value * rhs if op == "*" else value / rhs
        return value

    def _power(self) -> float:
        value = self._atom()
        while self._peek() == "^":
            self._take()
            value = math.pow(value, self._atom())
        return value

    def _atom(self) -> float:
        tok = self._take()
        if tok == "(":
            value = self._expr()
            if self._take() != ")":
                raise _Malformed("expected ')'")
            return value
        if is_number(tok):
            return float(tok)
        code = code_of(tok)
        if code is not None and code in self.values:
            return self.values[code]
        raise _Malformed(f"unexpected token {tok!r}")


def _tokens_of(formula: FormulaLike) -> List[str]:
    if isinstance(formula, CompositeFormula):
        return list(formula.tokens)
    if isinstance(formula, str):
        return tokenize(formula)
    return list(formula)


def _operand(raw: object) -> Optional[float]:
    if isinstance(raw, Cell):
        raw = raw.value
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    try:
        value = float(raw)
    except OverflowError:
        return None
    return value if math.isfinite(value) else None


def evaluate(formula: FormulaLike, row: Mapping[str, object]) -> Optional[float]:
    """Value of `formula` for one row of basis values, or None for "no value".

    Any referenced code that is absent or empty short-circuits to None before
    any arithmetic. Division by zero, overflow, NaN, infinite or complex results
    and malformed input also give None; evaluation never raises.
    """
    tokens = _tokens_of(formula)
    values: Dict[str, float] = {}
    for code in referenced_codes(tokens):
        value = _operand(row.get(code))
        if value is None:
            return None
        values[code] = value
    try:
        result = _Evaluator(tokens, values).run()
    except (_Malformed, ZeroDivisionError, OverflowError, ValueError) as e:
        logger.debug("Formula %r gave no value: %s", " ".join(tokens), e)
        return None
    return result if math.isfinite(result) else None
