"""Shared fixtures: a small holdings universe and providers over it."""
import numpy as np
import pytest

from holdings_approx.providers import InMemoryWeightMapProvider

# EBI is exactly 0.75 * VTI + 0.25 * IWN (and also equal to VTV)
TOY_FUNDS = {
    "VTI": {"AAA": 0.6, "BBB": 0.4},
    "IWN": {"AAA": 0.2, "BBB": 0.8},
    "VTV": {"AAA": 0.5, "BBB": 0.5},
    "EBI": {"AAA": 0.5, "BBB": 0.5},
}

# Three linearly independent baselines over three symbols.
FULL_RANK_MATRIX = np.array([
    [0.6, 0.1, 0.2],
    [0.3, 0.3, 0.6],
    [0.1, 0.6, 0.2],
])


class ExplodingProvider:
    """Fails the test if the engine touches storage."""

    def get_weight_map(self, etf_symbol, weight_field="actual_weight"):
        raise AssertionError(f"provider should not be called (asked for {etf_symbol})")

    def all_symbols(self):
        raise AssertionError("provider should not be called")

    def close(self):
        pass


@pytest.fixture
def toy_provider():
    return InMemoryWeightMapProvider(TOY_FUNDS)


@pytest.fixture
def full_rank_provider():
    tickers = ["CCC", "DDD", "EEE"]
    funds = {}
    for j, etf in enumerate(["AAX", "BBX", "CCX"]):
        funds[etf] = {t: float(FULL_RANK_MATRIX[i, j]) for i, t in enumerate(tickers)}
    blend = FULL_RANK_MATRIX.dot([0.5, 0.2, 0.3])
    funds["TGT"] = {t: float(blend[i]) for i, t in enumerate(tickers)}
    return InMemoryWeightMapProvider(funds)


@pytest.fixture
def exploding_provider():
    return ExplodingProvider()
