"""Fit-quality metrics for a blended portfolio.

All functions take the blend weights (K,), the target vector (N,) and the
baseline matrix (N, K). They are descriptive only and never feed back into
the optimizer.
"""
from typing import Optional
import numpy as np

# 0.1 percentage point, expressed as a weight fraction
ERROR_THRESHOLD = 0.001


def synthetic_holdings(weights: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    return np.asarray(matrix).dot(np.asarray(weights))


def absolute_errors(weights: np.ndarray, target: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    return np.abs(synthetic_holdings(weights, matrix) - np.asarray(target))


def objective_value(weights: np.ndarray, target: np.ndarray, matrix: np.ndarray) -> float:
    d = synthetic_holdings(weights, matrix) - np.asarray(target)
    return float(d.dot(d))


def average_error(weights: np.ndarray, target: np.ndarray, matrix: np.ndarray) -> float:
    err = absolute_errors(weights, target, matrix)
    if err.size == 0:
        return 0.0
    return float(np.sum(err) / err.size)


def max_error(weights: np.ndarray, target: np.ndarray, matrix: np.ndarray) -> float:
    err = absolute_errors(weights, target, matrix)
    return float(np.max(err)) if err.size else 0.0


def error_count(weights: np.ndarray, target: np.ndarray, matrix: np.ndarray,
                threshold: float = ERROR_THRESHOLD) -> int:
    return int(np.count_nonzero(absolute_errors(weights, target, matrix) > threshold))


def improvement_percent(initial_objective: float, final_objective: float) -> float:
    if initial_objective <= 0:
        return 0.0
    return float(100.0 * (initial_objective - final_objective) / initial_objective)


def tracking_error(final_objective: float) -> float:
    """Root of the sum of squared holding differences."""
    return float(np.sqrt(max(final_objective, 0.0)))


def confidence_label(improvement: float) -> str:
    if improvement > 5:
        return "High"
    if improvement > 2:
        return "Medium"
    return "Low"


def compute_all_metrics(weights: np.ndarray,
                        target: np.ndarray,
                        matrix: np.ndarray,
                        initial_objective: float,
                        final_objective: Optional[float] = None,
                        error_threshold: float = ERROR_THRESHOLD) -> dict:
    """Compute the standard fit metrics and return them as a dict."""
    w = np.asarray(weights)
    if final_objective is None:
        final_objective = objective_value(w, target, matrix)
    return {
        'final_objective_value': float(final_objective),
        'initial_objective_value': float(initial_objective),
        'improvement_percent': improvement_percent(initial_objective, final_objective),
        'average_error': average_error(w, target, matrix),
        'max_error': max_error(w, target, matrix),
        'error_count': error_count(w, target, matrix, threshold=error_threshold),
        'total_stocks': int(np.asarray(target).shape[0]),
    }


def compute_analysis(metrics: dict) -> dict:
    """Summary figures derived from `compute_all_metrics` output."""
    total = metrics['total_stocks']
    return {
        'tracking_error': tracking_error(metrics['final_objective_value']),
        'error_rate': float(100.0 * metrics['error_count'] / total) if total else 0.0,
        'confidence': confidence_label(metrics['improvement_percent']),
    }
