from .data import resolve_symbol_universe, normalize_weights, build_matrices
from .errors import ApproximationError, ConfigurationError, DataError, OptimizationFailure, ValidationWarning
from .providers import InMemoryWeightMapProvider, CsvWeightMapProvider, SqlWeightMapProvider

# The server and CLI are not imported here so that importing the engine does
# not pull in FastAPI. Import `holdings_approx.api` for `run_approximation`.
__all__ = [
    "resolve_symbol_universe",
    "normalize_weights",
    "build_matrices",
    "ApproximationError",
    "ConfigurationError",
    "DataError",
    "OptimizationFailure",
    "ValidationWarning",
    "InMemoryWeightMapProvider",
    "CsvWeightMapProvider",
    "SqlWeightMapProvider",
]
