from __future__ import annotations
from enum import Enum


class IndicatorServicesError(ValueError):
    """Base class for every error raised by indicator_services."""

    code = "invalid_request"


class InvalidPeriod(IndicatorServicesError):
    code = "invalid_period"

    def __init__(self, period: str, frequency: str, detail: str):
        super().__init__(f"{detail} (period={period!r}, frequency={frequency})")
        self.period = period
        self.frequency = frequency
        self.detail = detail


class InvalidPeriodFormat(InvalidPeriod):
    code = "invalid_period_format"


class InvalidPeriodValue(InvalidPeriod):
    code = "invalid_period_value"


class UnsupportedFrequency(IndicatorServicesError):
    code = "unsupported_frequency"


class InvalidRowInsertion(IndicatorServicesError):
    code = "invalid_row_insertion"


class InconsistentSequence(IndicatorServicesError):
    code = "inconsistent_sequence"


class EmptyPayload(IndicatorServicesError):
    code = "empty_payload"


class FormulaErrorReason(str, Enum):
    EMPTY = "empty"
    OPERATOR_PLACEMENT = "operator_placement"
    MISMATCHED_PARENTHESES = "mismatched_parentheses"
    UNKNOWN_TOKEN = "unknown_token"
    OPERAND_PLACEMENT = "operand_placement"
    NO_CODE = "no_code"
    MISMATCHED_FREQUENCIES = "mismatched_frequencies"


_REASON_MESSAGES = {
    FormulaErrorReason.EMPTY: "Formula is required.",
    FormulaErrorReason.OPERATOR_PLACEMENT: "Invalid operator placement.",
    FormulaErrorReason.MISMATCHED_PARENTHESES: "Mismatched parentheses.",
    FormulaErrorReason.UNKNOWN_TOKEN: "Unknown code.",
    FormulaErrorReason.OPERAND_PLACEMENT: (
        "Codes and numbers must be separated by an operator or a parenthesis."
    ),
    FormulaErrorReason.NO_CODE: "No code present.",
    FormulaErrorReason.MISMATCHED_FREQUENCIES: "Mismatched frequencies.",
}


class FormulaValidationError(IndicatorServicesError):
    code = "invalid_formula"

    def __init__(self, reason: FormulaErrorReason, token: str | None = None):
        message = _REASON_MESSAGES[reason]
        if token is not None:
            message = f"{message} ({token!r})"
        super().__init__(message)
        self.reason = reason
        self.token = token
