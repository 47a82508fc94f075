import math

import pytest

from holdings_approx.errors import ConfigurationError
from holdings_approx.providers import (
    CsvWeightMapProvider,
    InMemoryWeightMapProvider,
    SqlWeightMapProvider,
    create_store,
    import_holdings_csv,
    open_provider,
    store_holdings,
)


def _row(weight, actual=None, name="x"):
    return {"name": name, "weight": weight, "actual_weight": weight if actual is None else actual,
            "market_value": 100.0 * weight, "price": 10.0, "shares": 10.0 * weight}


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'holdings.db'}"


def test_sql_store_round_trip(db_url):
    engine = create_store(db_url)
    store_holdings(engine, "vti", {"AAA": _row(0.6, 0.58), "bbb ": _row(0.4, 0.42)})
    provider = SqlWeightMapProvider(engine=engine)
    assert provider.get_weight_map("VTI", "weight") == {"AAA": 0.6, "BBB": 0.4}
    assert provider.get_weight_map("vti", "actual_weight") == {"AAA": 0.58, "BBB": 0.42}
    assert provider.get_weight_map("IWN") == {}
    engine.dispose()


def test_sql_store_upserts_existing_rows(db_url):
    engine = create_store(db_url)
    first = store_holdings(engine, "VTI", {"AAA": _row(0.6), "BBB": _row(0.4)}, last_updated="2024-01-01")
    second = store_holdings(engine, "VTI", {"AAA": _row(0.7), "CCC": _row(0.3)}, last_updated="2024-02-01")
    assert first == second
    provider = SqlWeightMapProvider(engine=engine)
    assert provider.get_weight_map("VTI", "weight") == {"AAA": 0.7, "BBB": 0.4, "CCC": 0.3}
    assert provider.all_symbols() == {"AAA", "BBB", "CCC"}
    engine.dispose()


def test_sql_store_maps_non_finite_weights_to_zero(db_url):
    engine = create_store(db_url)
    store_holdings(engine, "VTI", {"AAA": _row(float("nan")), "": _row(0.5)})
    assert SqlWeightMapProvider(engine=engine).get_weight_map("VTI", "weight") == {"AAA": 0.0}
    engine.dispose()


def test_unsupported_weight_field(db_url):
    provider = SqlWeightMapProvider(db_url=db_url)
    with pytest.raises(ConfigurationError):
        provider.get_weight_map("VTI", "market_value")
    provider.close()


def test_csv_provider(tmp_path):
    path = tmp_path / "h.csv"
    path.write_text(
        "etf_symbol,ticker,name,weight,actual_weight\n"
        "vti,aaa,A Corp,0.6,0.55\n"
        "VTI,BBB,B Corp,0.4,\n"
        "VTI,AAA,A Corp,0.65,0.6\n"
        "IWN,,blank,0.1,0.1\n"
    )
    provider = CsvWeightMapProvider(str(path))
    # the later AAA row wins and the blank actual_weight becomes 0
    assert provider.get_weight_map("VTI", "actual_weight") == {"AAA": 0.6, "BBB": 0.0}
    assert provider.get_weight_map("VTI", "weight") == {"AAA": 0.65, "BBB": 0.4}
    assert provider.get_weight_map("IWN") == {}
    assert provider.all_symbols() == {"AAA", "BBB"}


def test_csv_missing_columns(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("fund,ticker,weight\nVTI,AAA,1.0\n")
    with pytest.raises(ConfigurationError):
        CsvWeightMapProvider(str(path))


def test_import_csv_into_store(tmp_path, db_url):
    path = tmp_path / "h.csv"
    path.write_text(
        "etf_symbol,ticker,name,weight,market_value,actual_weight,price,shares\n"
        "EBI,AAA,A Corp,0.5,50,0.5,10,5\n"
        "EBI,BBB,B Corp,0.5,50,0.5,,5\n"
        "VTI,AAA,A Corp,0.6,60,0.6,10,6\n"
    )
    engine = create_store(db_url)
    written = import_holdings_csv(engine, str(path))
    assert written == {"EBI": 2, "VTI": 1}
    provider = SqlWeightMapProvider(engine=engine)
    assert provider.get_weight_map("EBI") == {"AAA": 0.5, "BBB": 0.5}
    engine.dispose()


def test_in_memory_provider_per_field_values():
    provider = InMemoryWeightMapProvider({
        "vti": {"aaa": {"weight": 0.6, "actual_weight": 0.58}, "BBB": 0.4, "": 1.0, "CCC": math.inf},
    })
    assert provider.get_weight_map("VTI", "weight") == {"AAA": 0.6, "BBB": 0.4, "CCC": 0.0}
    assert provider.get_weight_map("VTI", "actual_weight") == {"AAA": 0.58, "BBB": 0.4, "CCC": 0.0}


def test_open_provider_releases_on_error(tmp_path, monkeypatch):
    path = tmp_path / "h.csv"
    path.write_text("etf_symbol,ticker,weight\nVTI,AAA,1.0\n")
    closed = []
    monkeypatch.setattr(CsvWeightMapProvider, "close", lambda self: closed.append(True))
    with pytest.raises(RuntimeError):
        with open_provider(csv_path=str(path)) as provider:
            assert provider.get_weight_map("VTI") == {"AAA": 1.0}
            raise RuntimeError("boom")
    assert closed == [True]


def test_open_provider_requires_a_source():
    with pytest.raises(ConfigurationError):
        with open_provider():
            pass
