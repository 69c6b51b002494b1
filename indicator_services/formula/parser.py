from __future__ import annotations
import re
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple

from indicator_services.errors import FormulaErrorReason, FormulaValidationError
from indicator_services.periods.frequency import Frequency

OPERATORS = ("+", "-", "*", "/", "^")
PARENS = ("(", ")")

_NUMBER = re.compile(r"-?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)")
_CODE = re.compile(r"@(\w+)")


def tokenize(text: Optional[str]) -> List[str]:
    return (text or "").split()


def is_number(token: str) -> bool:
    return bool(_NUMBER.fullmatch(token))


def code_of(token: str) -> Optional[str]:
    m = _CODE.fullmatch(token)
    return m.group(1) if m else None


def is_operand(token: str) -> bool:
    return is_number(token) or code_of(token) is not None


def referenced_codes(tokens: Sequence[str]) -> List[str]:
    """Codes referenced by `@CODE` tokens, in first-appearance order."""
    seen: List[str] = []
    for tok in tokens:
        code = code_of(tok)
        if code is not None and code not in seen:
            seen.append(code)
    return seen


@dataclass(frozen=True)
class CompositeFormula:
    """A validated formula and the composite indicator code it fills."""

    target: str
    text: str
    tokens: Tuple[str, ...]

    @property
    def codes(self) -> List[str]:
        return referenced_codes(self.tokens)


def _check_operators(tokens: List[str]) -> None:
    last = len(tokens) - 1
    for i, tok in enumerate(tokens):
        if tok not in OPERATORS:
            continue
        prev = tokens[i - 1] if i > 0 else None
        nxt = tokens[i + 1] if i < last else None
        if prev is None or nxt is None or prev in OPERATORS or nxt in OPERATORS or prev == "(" or nxt == ")":
            raise FormulaValidationError(FormulaErrorReason.OPERATOR_PLACEMENT, tok)


def _check_parentheses(tokens: List[str]) -> None:
    depth = 0
    for tok in tokens:
        if tok == "(":
            depth += 1
        elif tok == ")":
            depth -= 1
            if depth < 0:
                raise FormulaValidationError(FormulaErrorReason.MISMATCHED_PARENTHESES)
    if depth:
        raise FormulaValidationError(FormulaErrorReason.MISMATCHED_PARENTHESES)


def _check_tokens(tokens: List[str], basis: Mapping[str, object]) -> None:
    for tok in tokens:
        if tok in OPERATORS or tok in PARENS or is_number(tok):
            continue
        code = code_of(tok)
        if code is None or code not in basis:
            raise FormulaValidationError(FormulaErrorReason.UNKNOWN_TOKEN, tok)


def _check_operands(tokens: List[str]) -> None:
    # Operands and "(" open a value: only an operator or "(" may precede them.
    # Operands and ")" close a value: only an operator or ")" may follow them.
    last = len(tokens) - 1
    for i, tok in enumerate(tokens):
        opens = tok == "(" or is_operand(tok)
        closes = tok == ")" or is_operand(tok)
        if opens and i > 0 and tokens[i - 1] not in OPERATORS and tokens[i - 1] != "(":
            raise FormulaValidationError(FormulaErrorReason.OPERAND_PLACEMENT, tok)
        if closes and i < last and tokens[i + 1] not in OPERATORS and tokens[i + 1] != ")":
            raise FormulaValidationError(FormulaErrorReason.OPERAND_PLACEMENT, tok)
        if tok == "(" and i < last and tokens[i + 1] == ")":
            raise FormulaValidationError(FormulaErrorReason.OPERAND_PLACEMENT, tok)


def validate_formula(text: Optional[str], basis: Mapping[str, object]) -> List[str]:
    """Validate a formula once, when it is authored. Returns its tokens.

    `basis` maps every selectable basis indicator code to its frequency.
    Raises FormulaValidationError carrying the first failing rule's reason.
    """
    tokens = tokenize(text)
    if not tokens:
        raise FormulaValidationError(FormulaErrorReason.EMPTY)
    _check_operators(tokens)
    _check_parentheses(tokens)
    _check_tokens(tokens, basis)
    _check_operands(tokens)
    codes = referenced_codes(tokens)
    if not codes:
        raise FormulaValidationError(FormulaErrorReason.NO_CODE)
    frequencies = {Frequency.parse(basis[c]) for c in codes}
    if len(frequencies) != 1:
        raise FormulaValidationError(FormulaErrorReason.MISMATCHED_FREQUENCIES)
    return tokens


def compile_formula(text: str, basis: Mapping[str, object], target: str) -> CompositeFormula:
    tokens = validate_formula(text, basis)
    return CompositeFormula(target=target, text=" ".join(tokens), tokens=tuple(tokens))
