import numpy as np
import pytest

from holdings_approx.data import build_matrices, normalize_weights, resolve_symbol_universe, validate_symbols
from holdings_approx.errors import ConfigurationError, DataError
from holdings_approx.providers import InMemoryWeightMapProvider


def test_universe_is_sorted_union(toy_provider):
    u = resolve_symbol_universe("ebi", ["VTI", "IWN"], toy_provider)
    assert u.symbols == ("AAA", "BBB")
    assert set(u.baseline_maps) == {"VTI", "IWN"}
    assert u.warnings == ()


def test_universe_includes_symbols_held_by_only_one_fund():
    provider = InMemoryWeightMapProvider({
        "T": {"ZED": 0.5, "ABC": 0.5},
        "B1": {"ABC": 0.7, "MMM": 0.3},
    })
    u = resolve_symbol_universe("T", ["B1"], provider)
    assert u.symbols == ("ABC", "MMM", "ZED")


def test_reserved_symbols_are_filtered_with_warning():
    provider = InMemoryWeightMapProvider({
        "T": {"AAA": 0.1, "XOM": 0.9},
        "B1": {"BBB": 0.2, "XOM": 0.8},
    })
    u = resolve_symbol_universe("T", ["B1"], provider, reserved_symbols={"aaa", "BBB"})
    assert u.symbols == ("XOM",)
    assert len(u.warnings) == 1
    assert u.warnings[0].code == "reserved_symbols_filtered"
    assert u.warnings[0].value == 2.0


def test_negative_weights_are_flagged():
    provider = InMemoryWeightMapProvider({
        "T": {"X": 0.5, "Y": 0.5},
        "B1": {"X": 1.5, "Y": -0.5},
    })
    u = resolve_symbol_universe("T", ["B1"], provider)
    assert [w.code for w in u.warnings] == ["negative_weights"]
    assert u.warnings[0].symbol == "B1"
    assert u.warnings[0].value == -0.5


def test_empty_universe_raises_data_error():
    provider = InMemoryWeightMapProvider({"T": {"AAA": 1.0}, "B1": {}})
    with pytest.raises(DataError):
        resolve_symbol_universe("T", ["B1"], provider, reserved_symbols={"AAA"})
    with pytest.raises(DataError):
        resolve_symbol_universe("NOPE", ["ALSO_NOPE"], provider)


def test_validate_symbols():
    assert validate_symbols(" ebi ", ["vti", " iwn"]) == ("EBI", ["VTI", "IWN"])
    with pytest.raises(ConfigurationError):
        validate_symbols("EBI", [])
    with pytest.raises(ConfigurationError):
        validate_symbols("EBI", ["VTI", "vti"])


def test_normalize_sums_to_one_for_any_positive_sum():
    for scale in (0.01, 0.97, 1.0, 3.7, 100.0):
        norm, _ = normalize_weights("X", {"A": 0.2 * scale, "B": 0.3 * scale, "C": 0.5 * scale})
        assert abs(sum(norm.values()) - 1.0) < 1e-12


def test_normalize_flags_248_percent_fund():
    norm, warning = normalize_weights("VTV", {"AAA": 1.24, "BBB": 1.24})
    assert np.isclose(sum(norm.values()), 1.0)
    assert np.isclose(norm["AAA"], 0.5)
    assert warning.code == "weight_sum_deviation"
    assert warning.symbol == "VTV"
    assert np.isclose(warning.value, 2.48)
    assert "+148.00 points" in warning.message


def test_normalize_within_tolerance_is_silent():
    _, warning = normalize_weights("X", {"A": 0.52, "B": 0.5})
    assert warning is None


def test_normalize_degenerate_fund_is_all_zeros():
    norm, warning = normalize_weights("X", {"A": 0.0, "B": 1e-12})
    assert norm == {"A": 0.0, "B": 0.0}
    assert warning.code == "empty_fund"


def test_normalize_restricts_to_universe():
    norm, _ = normalize_weights("X", {"A": 0.5, "B": 0.5, "R": 0.2}, universe=["A", "B"])
    assert set(norm) == {"A", "B"}
    assert np.isclose(norm["A"], 0.5)


def test_build_matrices_alignment():
    symbols = ["AAA", "BBB", "CCC"]
    target = {"AAA": 0.5, "CCC": 0.5}
    baselines = {"VTI": {"AAA": 0.6, "BBB": 0.4}, "IWN": {"CCC": 1.0}}
    h, H = build_matrices(symbols, target, baselines, baseline_order=["IWN", "VTI"])
    assert np.allclose(h, [0.5, 0.0, 0.5])
    assert H.shape == (3, 2)
    assert np.allclose(H[:, 0], [0.0, 0.0, 1.0])
    assert np.allclose(H[:, 1], [0.6, 0.4, 0.0])


def test_build_matrices_with_empty_baseline():
    h, H = build_matrices(["AAA"], {"AAA": 1.0}, {"B1": {}})
    assert H.shape == (1, 1)
    assert H[0, 0] == 0.0
