"""Demo script approximating a synthetic target fund with three baseline funds."""
import numpy as np

from holdings_approx.api import run_approximation
from holdings_approx.providers import InMemoryWeightMapProvider


def make_synthetic(n_stocks=500, seed=42, mix=(0.55, 0.15, 0.30)):
    rng = np.random.default_rng(seed)
    tickers = [f"S{i:04d}" for i in range(n_stocks)]
    funds = {}
    for name in ("VTI", "VTV", "IWN"):
        raw = rng.pareto(2.0, size=n_stocks) * (rng.random(n_stocks) < 0.6)
        funds[name] = dict(zip(tickers, raw / raw.sum()))
    blend = sum(m * np.array([funds[f][t] for t in tickers]) for m, f in zip(mix, ("VTI", "VTV", "IWN")))
    noise = np.abs(rng.normal(scale=1e-4, size=n_stocks))
    funds["EBI"] = dict(zip(tickers, blend + noise))
    return funds


def pretty_print(result):
    print("Weights:")
    for sym in result.baseline_etfs:
        print(f"  {sym}: {result.weights_percentages[sym.lower()]:.2f}%")
    m = result.optimization_metrics
    print(f"Objective: {m.final_objective_value:.3e} (initial {m.initial_objective_value:.3e})")
    print(f"Average / max error: {m.average_error:.2e} / {m.max_error:.2e}")
    print(f"Symbols off by more than 0.1pt: {m.error_count} of {m.total_stocks}")
    for w in result.warnings:
        print(f"Warning: {w.message}")


if __name__ == "__main__":
    provider = InMemoryWeightMapProvider(make_synthetic())
    for method in ("slsqp", "projected_gradient"):
        print(f"=== {method} ===")
        pretty_print(run_approximation(provider, "EBI", ["VTI", "VTV", "IWN"], method=method))
        print()
