"""High-level API to approximate a target ETF with a blend of baseline ETFs.

`run_approximation` accepts any weight map provider plus the fund symbols and
returns an `ApproximationResult`. It validates inputs, resolves the symbol
universe, normalizes every fund, builds the matrices and calls the blend
optimizer in `holdings_approx.optimizer`.

`approximate_from_config` does the same against the holdings source named
in an `AppConfig`, opening the provider for the duration of the run only.

Notes:
- All provider I/O happens before the numeric phase; the solve itself does
  no I/O.
- Data-quality problems are returned in `result.warnings` (and logged);
  fatal problems raise `ApproximationError` subclasses.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import numpy as np

from .config import AppConfig, ApproximationSettings
from .data import build_matrices, normalize_weights, resolve_symbol_universe, validate_symbols
from .errors import ValidationWarning
from .metrics import compute_analysis
from .optimizer import BlendOptimizer, SolverResult, check_initial_guess
from .providers import open_provider
from .schemas import (
    Analysis,
    ApproximationResult,
    ConstraintsCheck,
    OptimizationMetrics,
    SolverInfo,
    WarningRecord,
)

logger = logging.getLogger(__name__)


def assemble_result(target: str, baselines: Sequence[str], weight_field: str, weights: np.ndarray,
                    metrics: dict, diagnostics: dict,
                    warnings: Sequence[ValidationWarning] = ()) -> ApproximationResult:
    """Package optimal weights, metrics and a fresh constraint check into the result record."""
    w = np.asarray(weights, dtype=float)
    optimal = {s.lower(): float(w[i]) for i, s in enumerate(baselines)}
    pct = {s.lower(): float(w[i] * 100.0) for i, s in enumerate(baselines)}
    return ApproximationResult(
        timestamp=datetime.now(timezone.utc).isoformat(),
        target_etf=target,
        baseline_etfs=list(baselines),
        weight_field=weight_field,
        optimal_weights=optimal,
        weights_percentages=pct,
        optimization_metrics=OptimizationMetrics(**metrics),
        # re-checked here rather than trusting the solver
        constraints=ConstraintsCheck(
            weights_sum=float(np.sum(w)),
            all_weights_non_negative=bool(np.all(w >= 0)),
            all_weights_less_than_one=bool(np.all(w <= 1)),
        ),
        analysis=Analysis(**compute_analysis(metrics)),
        solver=SolverInfo(
            method=diagnostics["method"],
            iterations=diagnostics["iterations"],
            message=diagnostics.get("message", ""),
            stationarity=diagnostics.get("stationarity", 0.0),
            fell_back_to_initial_guess=diagnostics.get("fellBackToInitialGuess", False),
        ),
        warnings=[WarningRecord(**wr.to_dict()) for wr in warnings],
    )


def run_approximation(provider, target_etf: str, baseline_etfs: Sequence[str],
                      settings: Optional[ApproximationSettings] = None,
                      weight_field: Optional[str] = None,
                      initial_guess: Optional[Sequence[float]] = None,
                      max_iterations: Optional[int] = None,
                      method: Optional[str] = None) -> ApproximationResult:
    """Approximate `target_etf` as a convex blend of `baseline_etfs`.

    Keyword arguments override the matching fields of `settings`.
    """
    settings = (settings or ApproximationSettings()).with_overrides(
        weight_field=weight_field, initial_guess=initial_guess,
        max_iterations=max_iterations, method=method)
    target, baselines = validate_symbols(target_etf, baseline_etfs)
    w0 = check_initial_guess(settings.initial_guess, len(baselines))

    logger.info("Approximating %s with %s (%s)", target, ", ".join(baselines), settings.weight_field)
    universe = resolve_symbol_universe(target, baselines, provider,
                                       weight_field=settings.weight_field,
                                       reserved_symbols=settings.reserved_symbols)
    warnings: List[ValidationWarning] = list(universe.warnings)

    def _normalize(symbol, weights):
        norm, warn = normalize_weights(symbol, weights, universe.symbols,
                                       tolerance=settings.normalization_tolerance,
                                       floor=settings.sum_floor)
        if warn is not None:
            warnings.append(warn)
        return norm

    target_norm = _normalize(target, universe.target_map)
    baseline_norm = {s: _normalize(s, universe.baseline_maps[s]) for s in baselines}
    h, H = build_matrices(universe.symbols, target_norm, baseline_norm, baseline_order=baselines)

    out = BlendOptimizer(h, H).optimize(method=settings.method, initial_guess=w0,
                                        max_iterations=settings.max_iterations,
                                        tol=settings.tolerance,
                                        error_threshold=settings.error_threshold)
    res: SolverResult = out["result"]
    logger.info("Optimal weights for %s: %s (objective %.6g, %d symbols)", target,
                {s: round(float(x), 6) for s, x in zip(baselines, res.weights)},
                res.objective, len(universe))
    return assemble_result(target, baselines, settings.weight_field, out["weights"],
                           out["metrics"], out["diagnostics"], warnings)


def approximate_from_config(config: AppConfig, target_etf: str, baseline_etfs: Sequence[str],
                            **overrides) -> ApproximationResult:
    with open_provider(db_url=config.db_url, csv_path=config.holdings_csv) as provider:
        return run_approximation(provider, target_etf, baseline_etfs, settings=config.engine, **overrides)


__all__ = ["run_approximation", "approximate_from_config", "assemble_result"]
