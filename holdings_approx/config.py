"""Engine settings and their YAML / environment loaders.

A config file looks like::

    engine:
      weight_field: actual_weight
      max_iterations: 5000
      tolerance: 1.0e-7
      method: slsqp
      normalization_tolerance: 0.05
      error_threshold: 0.001
      reserved_symbols: [AAA, BBB]
    data:
      db_url: sqlite:///data/holdings.db
    logging:
      level: INFO
      path: logs/approx.log
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Optional, Sequence, Tuple

import yaml

from .errors import ConfigurationError

WEIGHT_FIELDS = ("weight", "actual_weight")
METHODS = ("slsqp", "projected_gradient")
ENV_PREFIX = "HOLDINGS_APPROX_"


@dataclass(frozen=True)
class ApproximationSettings:
    weight_field: str = "actual_weight"
    initial_guess: Optional[Tuple[float, ...]] = None
    max_iterations: int = 5000
    tolerance: float = 1e-7
    method: str = "slsqp"
    # Both thresholds are tunable; the defaults match the historical behaviour.
    normalization_tolerance: float = 0.05
    error_threshold: float = 0.001
    sum_floor: float = 1e-10
    reserved_symbols: frozenset = field(default_factory=frozenset)

    def validate(self) -> "ApproximationSettings":
        if self.weight_field not in WEIGHT_FIELDS:
            raise ConfigurationError(f"Unsupported weight_field: {self.weight_field!r}", step="config")
        if self.method not in METHODS:
            raise ConfigurationError(f"Unknown solver method: {self.method!r}", step="config")
        if int(self.max_iterations) != self.max_iterations or self.max_iterations <= 0:
            raise ConfigurationError("max_iterations must be a positive integer", step="config")
        if self.tolerance <= 0:
            raise ConfigurationError("tolerance must be positive", step="config")
        return self

    def with_overrides(self, **kwargs) -> "ApproximationSettings":
        kwargs = {k: v for k, v in kwargs.items() if v is not None}
        if "initial_guess" in kwargs:
            kwargs["initial_guess"] = tuple(float(x) for x in kwargs["initial_guess"])
        if "reserved_symbols" in kwargs:
            kwargs["reserved_symbols"] = _symbol_set(kwargs["reserved_symbols"])
        return replace(self, **kwargs).validate()


@dataclass(frozen=True)
class AppConfig:
    engine: ApproximationSettings
    db_url: Optional[str] = None
    holdings_csv: Optional[str] = None
    log_level: str = "INFO"
    log_path: Optional[str] = None


def _symbol_set(symbols: Optional[Sequence[str]]) -> frozenset:
    if not symbols:
        return frozenset()
    return frozenset(str(s).strip().upper() for s in symbols if str(s).strip())


def load_settings(path: Optional[str] = None) -> AppConfig:
    """Read an `AppConfig` from YAML, then apply environment overrides.

    With no path, `HOLDINGS_APPROX_CONFIG` is consulted; with neither, the
    defaults are used.
    """
    path = path or os.environ.get(ENV_PREFIX + "CONFIG")
    raw = {}
    if path:
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}

    eng = raw.get("engine") or {}
    dat = raw.get("data") or {}
    logcfg = raw.get("logging") or {}

    guess = eng.get("initial_guess")
    engine = ApproximationSettings(
        weight_field=str(eng.get("weight_field", "actual_weight")),
        initial_guess=None if guess in (None, "None") else tuple(float(x) for x in guess),
        max_iterations=int(eng.get("max_iterations", 5000)),
        tolerance=float(eng.get("tolerance", 1e-7)),
        method=str(eng.get("method", "slsqp")),
        normalization_tolerance=float(eng.get("normalization_tolerance", 0.05)),
        error_threshold=float(eng.get("error_threshold", 0.001)),
        sum_floor=float(eng.get("sum_floor", 1e-10)),
        reserved_symbols=_symbol_set(eng.get("reserved_symbols")),
    ).validate()

    return AppConfig(
        engine=engine,
        db_url=os.environ.get(ENV_PREFIX + "DB_URL", dat.get("db_url")),
        holdings_csv=dat.get("holdings_csv"),
        log_level=os.environ.get(ENV_PREFIX + "LOG_LEVEL", logcfg.get("level", "INFO")),
        log_path=logcfg.get("path"),
    )


__all__ = ["ApproximationSettings", "AppConfig", "load_settings", "WEIGHT_FIELDS", "METHODS"]
