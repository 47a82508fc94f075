"""Holdings data preparation: symbol universe, normalization and matrix layout.

The optimizer works on a target vector (length N) and a baseline matrix
(N x K). This module turns per-fund weight maps into those arrays:

1. `resolve_symbol_universe` fetches every fund's weight map once and takes
   the sorted union of their tickers, minus any reserved fixture symbols.
2. `normalize_weights` rescales one fund's weights to sum to 1, flagging sums
   that drift outside the tolerance band.
3. `build_matrices` aligns the normalized maps onto the universe axis.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import (
    ConfigurationError,
    DataError,
    ValidationWarning,
    WEIGHT_SUM_DEVIATION,
    RESERVED_SYMBOLS_FILTERED,
    EMPTY_FUND,
    NEGATIVE_WEIGHTS,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SymbolUniverse:
    symbols: Tuple[str, ...]
    target_map: Dict[str, float]
    baseline_maps: Dict[str, Dict[str, float]]
    warnings: Tuple[ValidationWarning, ...] = field(default_factory=tuple)

    def __len__(self):
        return len(self.symbols)


def validate_symbols(target: str, baselines: Sequence[str]) -> Tuple[str, List[str]]:
    """Upper-case and check the requested funds; return (target, baselines)."""
    t = (target or "").strip().upper()
    if not t:
        raise ConfigurationError("target symbol must be a non-empty string", step="validate")
    bs = [str(s).strip().upper() for s in (baselines or []) if str(s).strip()]
    if not bs:
        raise ConfigurationError("baselineEtfs must have at least 1 symbol", step="validate", symbol=t)
    dupes = sorted({s for s in bs if bs.count(s) > 1})
    if dupes:
        raise ConfigurationError(f"Duplicate baseline symbols: {', '.join(dupes)}", step="validate")
    return t, bs


def resolve_symbol_universe(target: str, baselines: Sequence[str], provider,
                            weight_field: str = "actual_weight",
                            reserved_symbols: Iterable[str] = ()) -> SymbolUniverse:
    """Fetch the funds' weight maps and build the sorted symbol universe.

    Raises DataError if nothing remains once reserved symbols are removed.
    """
    target, baselines = validate_symbols(target, baselines)
    reserved = {str(s).strip().upper() for s in reserved_symbols}

    target_map = dict(provider.get_weight_map(target, weight_field))
    baseline_maps = {s: dict(provider.get_weight_map(s, weight_field)) for s in baselines}
    logger.debug("Fetched %s (%d holdings) and baselines %s", target, len(target_map),
                 {s: len(m) for s, m in baseline_maps.items()})

    union = set(target_map)
    for m in baseline_maps.values():
        union.update(m)

    warnings = []
    filtered = union & reserved
    if filtered:
        w = ValidationWarning(
            code=RESERVED_SYMBOLS_FILTERED,
            message=f"Filtered {len(filtered)} reserved symbol(s) from the universe: {', '.join(sorted(filtered))}",
            value=float(len(filtered)),
        )
        logger.warning(w.message)
        warnings.append(w)
    symbols = tuple(sorted(union - reserved))

    for sym, weights in [(target, target_map)] + list(baseline_maps.items()):
        negative = sorted(t for t, x in weights.items() if x < 0 and t not in reserved)
        if negative:
            w = ValidationWarning(
                code=NEGATIVE_WEIGHTS,
                message=f"{sym} has {len(negative)} negative weight(s): {', '.join(negative[:5])}",
                symbol=sym, value=float(sum(weights[t] for t in negative)))
            logger.warning(w.message)
            warnings.append(w)

    if not symbols:
        raise DataError(
            f"Symbol universe is empty for {target} against {', '.join(baselines)}",
            step="resolve_universe", symbol=target)
    return SymbolUniverse(symbols, target_map, baseline_maps, tuple(warnings))


def normalize_weights(symbol: str, weights: Mapping[str, float],
                      universe: Optional[Iterable[str]] = None,
                      tolerance: float = 0.05,
                      floor: float = 1e-10) -> Tuple[Dict[str, float], Optional[ValidationWarning]]:
    """Rescale a fund's weights to sum to 1.

    Only tickers in `universe` are kept (all of them when `universe` is None).
    Returns the normalized map and a warning when the raw sum is outside
    ``1 +/- tolerance``; a sum below `floor` yields all zeros.
    """
    if universe is not None:
        keep = set(universe)
        weights = {t: w for t, w in weights.items() if t in keep}
    raw_sum = float(sum(weights.values()))

    warning = None
    if raw_sum < floor:
        warning = ValidationWarning(
            code=EMPTY_FUND,
            message=f"{symbol} weights sum to {raw_sum:.3g}; treating fund as empty",
            symbol=symbol, value=raw_sum)
    elif abs(raw_sum - 1.0) > tolerance:
        warning = ValidationWarning(
            code=WEIGHT_SUM_DEVIATION,
            message=(f"{symbol} weights sum to {raw_sum * 100:.2f}% "
                     f"({(raw_sum - 1.0) * 100:+.2f} points from 100%)"),
            symbol=symbol, value=raw_sum)
    if warning is not None:
        logger.warning(warning.message)

    if raw_sum < floor:
        return {t: 0.0 for t in weights}, warning
    return {t: float(w) / raw_sum for t, w in weights.items()}, warning


def build_matrices(symbols: Sequence[str], target_weights: Mapping[str, float],
                   baseline_weights: Mapping[str, Mapping[str, float]],
                   baseline_order: Optional[Sequence[str]] = None) -> Tuple[np.ndarray, np.ndarray]:
    """Return (target vector of length N, N x K baseline matrix).

    Rows follow `symbols`; columns follow `baseline_order` (defaults to the
    mapping's order). Tickers missing from a fund are 0.
    """
    order = list(baseline_order) if baseline_order is not None else list(baseline_weights)
    idx = pd.Index(list(symbols), name="ticker")
    target = pd.Series(dict(target_weights), dtype=float).reindex(idx).fillna(0.0)
    matrix = pd.DataFrame({s: pd.Series(dict(baseline_weights[s]), dtype=float) for s in order},
                          columns=order).reindex(idx).fillna(0.0)
    return target.to_numpy(dtype=float), matrix.to_numpy(dtype=float)


__all__ = [
    "SymbolUniverse",
    "validate_symbols",
    "resolve_symbol_universe",
    "normalize_weights",
    "build_matrices",
]
