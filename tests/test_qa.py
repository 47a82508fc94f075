from holdings_approx.providers import InMemoryWeightMapProvider
from holdings_approx.qa import coverage_report, weight_field_comparison, weight_sum_report


FUNDS = {
    "EBI": {"AAA": 0.5, "BBB": 0.5},
    "VTI": {"AAA": {"weight": 1.2, "actual_weight": 1.24}, "BBB": {"weight": 1.2, "actual_weight": 1.24},
            "CCC": 0.0},
    "IWN": {"AAA": 0.2, "DDD": 0.8},
    "OTHER": {"ZZZ": 1.0},
}


def test_weight_sum_report():
    df = weight_sum_report(InMemoryWeightMapProvider(FUNDS), ["ebi", "VTI"])
    assert list(df.index) == ["EBI", "VTI"]
    assert abs(df.loc["VTI", "total_percent"] - 248.0) < 1e-9
    assert df.loc["VTI", "holdings"] == 3
    assert df.loc["VTI", "non_zero"] == 2
    assert df.loc["EBI", "negative"] == 0
    assert df.loc["EBI", "top_holdings"] == {"AAA": 0.5, "BBB": 0.5}


def test_weight_field_comparison():
    df = weight_field_comparison(InMemoryWeightMapProvider(FUNDS), ["VTI"])
    assert abs(df.loc["VTI", "weight_sum"] - 2.4) < 1e-9
    assert abs(df.loc["VTI", "actual_weight_sum"] - 2.48) < 1e-9


def test_coverage_report():
    rep = coverage_report(InMemoryWeightMapProvider(FUNDS), "EBI", ["VTI", "IWN"])
    assert rep["relevant_symbols"] == 4
    assert rep["stored_symbols"] == 5
    assert rep["irrelevant_examples"] == ["ZZZ"]
    assert rep["missing_in_target_examples"] == ["DDD"]
    assert rep["zero_rows"] == 1
