"""Data-quality reports over stored holdings.

These are read-only diagnostics for operators: they explain *why* a run
produced weight-sum warnings or a surprisingly large symbol universe, and are
not used by the optimizer.
"""
from typing import Dict, List, Sequence

import pandas as pd

from .data import validate_symbols


def weight_sum_report(provider, etf_symbols: Sequence[str], weight_field: str = "actual_weight",
                      top_n: int = 5) -> pd.DataFrame:
    """One row per fund: total weight, counts, extremes and top holdings."""
    rows = []
    for etf in etf_symbols:
        s = pd.Series(provider.get_weight_map(etf.upper(), weight_field), dtype=float)
        positive = s[s > 0]
        top = positive.sort_values(ascending=False).head(top_n)
        rows.append({
            "etf": etf.upper(),
            "weight_field": weight_field,
            "total_weight": float(s.sum()),
            "total_percent": float(s.sum() * 100.0),
            "holdings": int(s.size),
            "non_zero": int(positive.size),
            "negative": int((s < 0).sum()),
            "max_weight": float(s.max()) if s.size else 0.0,
            "min_non_zero_weight": float(positive.min()) if positive.size else 0.0,
            "top_holdings": {str(k): float(v) for k, v in top.items()},
        })
    return pd.DataFrame(rows).set_index("etf") if rows else pd.DataFrame()


def weight_field_comparison(provider, etf_symbols: Sequence[str]) -> pd.DataFrame:
    """Compare the summed `weight` and `actual_weight` fields per fund."""
    rows = []
    for etf in etf_symbols:
        rows.append({
            "etf": etf.upper(),
            "weight_sum": float(sum(provider.get_weight_map(etf.upper(), "weight").values())),
            "actual_weight_sum": float(sum(provider.get_weight_map(etf.upper(), "actual_weight").values())),
        })
    return pd.DataFrame(rows).set_index("etf") if rows else pd.DataFrame()


def coverage_report(provider, target_etf: str, baseline_etfs: Sequence[str],
                    weight_field: str = "actual_weight", examples: int = 10) -> Dict[str, object]:
    """Compare the run's relevant symbols with everything in the store."""
    target, baselines = validate_symbols(target_etf, baseline_etfs)
    target_map = provider.get_weight_map(target, weight_field)
    baseline_maps = [provider.get_weight_map(s, weight_field) for s in baselines]

    relevant = set(target_map)
    for m in baseline_maps:
        relevant.update(m)
    stored = set(provider.all_symbols())
    irrelevant = sorted(stored - relevant)

    missing_in_target: List[str] = sorted(
        s for s in relevant
        if target_map.get(s, 0.0) == 0 and any(m.get(s, 0.0) > 0 for m in baseline_maps)
    )
    zero_rows = sum(
        1 for s in relevant
        if target_map.get(s, 0.0) == 0 and all(m.get(s, 0.0) == 0 for m in baseline_maps)
    )
    return {
        "target": target,
        "baselines": baselines,
        "target_holdings": len(target_map),
        "baseline_holdings": {s: len(m) for s, m in zip(baselines, baseline_maps)},
        "relevant_symbols": len(relevant),
        "stored_symbols": len(stored),
        "irrelevant_symbols": len(irrelevant),
        "irrelevant_examples": irrelevant[:examples],
        "missing_in_target": len(missing_in_target),
        "missing_in_target_examples": missing_in_target[:examples],
        "zero_rows": zero_rows,
    }
