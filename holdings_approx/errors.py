"""Error taxonomy for approximation runs.

Fatal problems are raised as subclasses of `ApproximationError` and carry the
pipeline step (and symbol, when one is to blame) so an operator can tell where
a run stopped. Data-quality signals are not raised: they are collected as
`ValidationWarning` records and returned alongside the result.
"""
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any


class ApproximationError(Exception):
    """Base class for fatal approximation errors."""

    def __init__(self, message: str, step: str = "", symbol: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.step = step
        self.symbol = symbol

    def to_dict(self) -> Dict[str, Any]:
        out = {"error": type(self).__name__, "details": self.message, "step": self.step}
        if self.symbol is not None:
            out["symbol"] = self.symbol
        return out


class ConfigurationError(ApproximationError):
    """Bad call arguments: no baselines, wrong initial guess, unknown weight field."""


class DataError(ApproximationError):
    """The holdings data cannot support a run (e.g. empty symbol universe)."""


class OptimizationFailure(ApproximationError):
    """The solver stopped without meeting its convergence tolerances."""


@dataclass(frozen=True)
class ValidationWarning:
    code: str
    message: str
    symbol: Optional[str] = None
    value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


WEIGHT_SUM_DEVIATION = "weight_sum_deviation"
RESERVED_SYMBOLS_FILTERED = "reserved_symbols_filtered"
EMPTY_FUND = "empty_fund"
NEGATIVE_WEIGHTS = "negative_weights"


__all__ = [
    "ApproximationError",
    "ConfigurationError",
    "DataError",
    "OptimizationFailure",
    "ValidationWarning",
    "WEIGHT_SUM_DEVIATION",
    "RESERVED_SYMBOLS_FILTERED",
    "EMPTY_FUND",
    "NEGATIVE_WEIGHTS",
]
