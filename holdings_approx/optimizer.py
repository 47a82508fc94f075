"""Blend optimizers: find baseline-fund weights that best reproduce a target fund.

The problem is a convex quadratic program over the probability simplex::

    minimize    f(w) = || H @ w - h ||^2
    subject to  sum(w) = 1,  0 <= w_j <= 1

where `h` is the target's normalized weight vector (length N) and `H` is the
N x K matrix of baseline weights. Two deterministic solvers are provided:

- `slsqp_weights` - scipy's SLSQP with analytic gradients (default).
- `projected_gradient_weights` - accelerated projected gradient with an
  exact Euclidean projection onto the simplex.

Both are judged by the same stationarity test (the projected-gradient step
length, in weight units) so "converged" means the same thing for either.
`solve` post-processes the raw solver output: clamps to the box, renormalizes
the sum, and never returns a point worse than the initial guess.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Sequence

import numpy as np
from scipy.optimize import minimize

from . import metrics as metrics_mod
from .errors import ConfigurationError, OptimizationFailure

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 5000
DEFAULT_TOL = 1e-7
FIRST_BASELINE_WEIGHT = 0.75


@dataclass(frozen=True)
class ApproximationProblem:
    """Target vector `h` (N,) and baseline matrix `H` (N, K); read-only arrays."""
    target: np.ndarray
    matrix: np.ndarray

    @property
    def n_symbols(self) -> int:
        return self.matrix.shape[0]

    @property
    def n_baselines(self) -> int:
        return self.matrix.shape[1]

    def residual(self, w: np.ndarray) -> np.ndarray:
        return self.matrix.dot(w) - self.target

    def objective(self, w) -> float:
        r = self.residual(np.asarray(w, dtype=float))
        return float(r.dot(r))

    def gradient(self, w) -> np.ndarray:
        return 2.0 * self.matrix.T.dot(self.residual(np.asarray(w, dtype=float)))


@dataclass(frozen=True)
class SolverResult:
    weights: np.ndarray
    objective: float
    initial_objective: float
    iterations: int
    method: str
    message: str = ""
    stationarity: float = 0.0
    fell_back: bool = False
    diagnostics: Dict[str, Any] = field(default_factory=dict)


def _readonly(a: np.ndarray) -> np.ndarray:
    a = np.array(a, dtype=float, copy=True)
    a.flags.writeable = False
    return a


def formulate_problem(target, matrix) -> ApproximationProblem:
    h = np.asarray(target, dtype=float)
    H = np.asarray(matrix, dtype=float)
    if H.ndim == 1:
        H = H.reshape(-1, 1)
    if h.ndim != 1 or H.ndim != 2:
        raise ValueError("target must be 1D and matrix 2D")
    if H.shape[0] != h.shape[0]:
        raise ValueError("matrix rows must equal target length")
    if H.shape[0] == 0 or H.shape[1] == 0:
        raise ValueError("problem needs at least one symbol and one baseline")
    if not (np.all(np.isfinite(h)) and np.all(np.isfinite(H))):
        raise ValueError("target and matrix must be finite")
    return ApproximationProblem(_readonly(h), _readonly(H))


def default_initial_guess(k: int) -> np.ndarray:
    """0.75 on the first baseline, the remaining 0.25 split evenly over the rest."""
    if k <= 0:
        return np.zeros(0)
    if k == 1:
        return np.ones(1)
    rest = (1.0 - FIRST_BASELINE_WEIGHT) / (k - 1)
    return np.array([FIRST_BASELINE_WEIGHT] + [rest] * (k - 1))


def check_initial_guess(guess: Optional[Sequence[float]], k: int) -> np.ndarray:
    if guess is None:
        return default_initial_guess(k)
    w0 = np.asarray(guess, dtype=float).ravel()
    if w0.shape[0] != k:
        raise ConfigurationError(
            f"initialGuess length ({w0.shape[0]}) must match baselineEtfs length ({k})", step="initial_guess")
    if not np.all(np.isfinite(w0)) or np.any(w0 < 0) or np.any(w0 > 1):
        raise ConfigurationError("initialGuess entries must be finite and within [0, 1]", step="initial_guess")
    if abs(float(w0.sum()) - 1.0) > 1e-6:
        raise ConfigurationError(f"initialGuess must sum to 1 (got {w0.sum():.6f})", step="initial_guess")
    return w0


def project_to_simplex(v) -> np.ndarray:
    """Euclidean projection of `v` onto {w : w >= 0, sum(w) = 1}."""
    v = np.asarray(v, dtype=float)
    u = np.sort(v)[::-1]
    css = np.cumsum(u) - 1.0
    ind = np.arange(1, v.shape[0] + 1)
    rho = np.nonzero(u - css / ind > 0)[0][-1]
    theta = css[rho] / (rho + 1.0)
    return np.maximum(v - theta, 0.0)


def _lipschitz(problem: ApproximationProblem) -> float:
    Q = problem.matrix.T.dot(problem.matrix)
    L = 2.0 * float(np.linalg.eigvalsh(Q)[-1])
    return L if L > 0 else 1.0


def stationarity(problem: ApproximationProblem, w: np.ndarray, L: Optional[float] = None) -> float:
    """Length (inf-norm) of the projected-gradient step at `w`; 0 at the optimum."""
    L = _lipschitz(problem) if L is None else L
    step = project_to_simplex(w - problem.gradient(w) / L) - w
    return float(np.max(np.abs(step)))


def slsqp_weights(problem: ApproximationProblem, w0: np.ndarray,
                  max_iterations: int = DEFAULT_MAX_ITERATIONS,
                  tol: float = DEFAULT_TOL) -> SolverResult:
    k = problem.n_baselines
    bounds = tuple((0.0, 1.0) for _ in range(k))
    cons = ({"type": "eq", "fun": lambda w: np.sum(w) - 1.0, "jac": lambda w: np.ones_like(w)},)
    res = minimize(problem.objective, w0, jac=problem.gradient, method="SLSQP", bounds=bounds,
                   constraints=cons, options={"maxiter": int(max_iterations), "ftol": 1e-12})
    w = np.asarray(res.x, dtype=float)
    resid = stationarity(problem, project_to_simplex(w))
    # SLSQP may stop on a line-search status at an optimal point; accept it if stationary
    if not res.success and resid > tol:
        raise OptimizationFailure(f"Optimization failed: {res.message} (status {res.status})", step="solve")
    return SolverResult(weights=w, objective=problem.objective(w), initial_objective=problem.objective(w0),
                        iterations=int(res.nit), method="slsqp", message=str(res.message),
                        stationarity=resid)


def projected_gradient_weights(problem: ApproximationProblem, w0: np.ndarray,
                               max_iterations: int = DEFAULT_MAX_ITERATIONS,
                               tol: float = DEFAULT_TOL) -> SolverResult:
    # work in Gram form: grad = 2 (Q w - c)
    Q = problem.matrix.T.dot(problem.matrix)
    c = problem.matrix.T.dot(problem.target)
    L = _lipschitz(problem)

    def grad(w):
        return 2.0 * (Q.dot(w) - c)

    def fq(w):
        return float(w.dot(Q).dot(w) - 2.0 * c.dot(w))

    w = project_to_simplex(w0)
    y = w.copy()
    t = 1.0
    f_prev = fq(w)
    for it in range(1, int(max_iterations) + 1):
        w_new = project_to_simplex(y - grad(y) / L)
        f_new = fq(w_new)
        if f_new > f_prev:
            # adaptive restart keeps the iterates monotone
            y, t = w.copy(), 1.0
            w_new = project_to_simplex(w - grad(w) / L)
            f_new = fq(w_new)
        step = float(np.max(np.abs(w_new - w)))
        t_new = 0.5 * (1.0 + np.sqrt(1.0 + 4.0 * t * t))
        y = w_new + ((t - 1.0) / t_new) * (w_new - w)
        w, t, f_prev = w_new, t_new, f_new
        if step <= tol:
            resid = stationarity(problem, w, L)
            if resid <= tol:
                return SolverResult(weights=w, objective=problem.objective(w),
                                    initial_objective=problem.objective(w0), iterations=it,
                                    method="projected_gradient", message="converged", stationarity=resid)
    raise OptimizationFailure(
        f"Projected gradient did not converge in {max_iterations} iterations "
        f"(stationarity {stationarity(problem, w, L):.3e} > {tol:.1e})", step="solve")


SOLVERS = {
    "slsqp": slsqp_weights,
    "projected_gradient": projected_gradient_weights,
}


def solve(problem: ApproximationProblem, initial_guess: Optional[Sequence[float]] = None,
          method: str = "slsqp", max_iterations: int = DEFAULT_MAX_ITERATIONS,
          tol: float = DEFAULT_TOL) -> SolverResult:
    """Solve `problem` and return feasible weights no worse than the initial guess."""
    if method not in SOLVERS:
        raise ConfigurationError(f"Unknown solver method: {method!r}", step="solve")
    w0 = check_initial_guess(initial_guess, problem.n_baselines)
    logger.info("Solving %dx%d blend problem with %s", problem.n_symbols, problem.n_baselines, method)
    raw = SOLVERS[method](problem, w0, max_iterations=max_iterations, tol=tol)

    w = np.clip(raw.weights, 0.0, 1.0)
    total = float(w.sum())
    if total > 0:
        w = w / total
    f0 = problem.objective(w0)
    f = problem.objective(w)
    fell_back = f > f0
    if fell_back:
        logger.warning("Solver point (f=%.6g) worse than initial guess (f=%.6g); keeping initial guess", f, f0)
        w, f = w0.copy(), f0
    logger.debug("Solved in %d iterations: f=%.6g (initial %.6g)", raw.iterations, f, f0)
    return SolverResult(weights=_readonly(w), objective=f, initial_objective=f0, iterations=raw.iterations,
                        method=raw.method, message=raw.message, stationarity=raw.stationarity,
                        fell_back=fell_back)


class OptimizerBase:
    def __init__(self, target: np.ndarray, matrix: np.ndarray):
        self.problem = formulate_problem(target, matrix)

    def optimize(self, **kwargs) -> Dict[str, Any]:
        raise NotImplementedError()


class BlendOptimizer(OptimizerBase):
    def optimize(self, method: str = "slsqp", initial_guess=None,
                 max_iterations: int = DEFAULT_MAX_ITERATIONS, tol: float = DEFAULT_TOL,
                 error_threshold: float = metrics_mod.ERROR_THRESHOLD, **kwargs):
        res = solve(self.problem, initial_guess=initial_guess, method=method,
                    max_iterations=max_iterations, tol=tol)
        metrics = metrics_mod.compute_all_metrics(res.weights, self.problem.target, self.problem.matrix,
                                                  initial_objective=res.initial_objective,
                                                  final_objective=res.objective,
                                                  error_threshold=error_threshold)
        diagnostics = {
            "method": res.method,
            "iterations": res.iterations,
            "message": res.message,
            "stationarity": res.stationarity,
            "fellBackToInitialGuess": res.fell_back,
        }
        return {"weights": res.weights, "metrics": metrics, "diagnostics": diagnostics, "result": res}


__all__ = [
    "ApproximationProblem",
    "SolverResult",
    "BlendOptimizer",
    "formulate_problem",
    "default_initial_guess",
    "check_initial_guess",
    "project_to_simplex",
    "stationarity",
    "slsqp_weights",
    "projected_gradient_weights",
    "solve",
]
