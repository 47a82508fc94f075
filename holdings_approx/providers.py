"""Weight map providers: where per-fund holdings weights come from.

The engine only needs `get_weight_map(etf_symbol, weight_field)`, returning
ticker -> weight for one fund. Three backends are provided:

- `InMemoryWeightMapProvider` - dict fixtures, used by tests and demos.
- `CsvWeightMapProvider` - a flat CSV of holdings rows, read with pandas.
- `SqlWeightMapProvider` - the SQLite holdings store (`etfs` + `holdings`
  tables) accessed through SQLAlchemy Core.

Providers hold resources (a DataFrame, an engine) and expose `close()`; use
`open_provider` to scope them to a single run.
"""
import logging
import math
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, Mapping, Optional, Protocol, Set, Union

import pandas as pd
from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine

from .config import WEIGHT_FIELDS
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

HOLDINGS_COLUMNS = ["etf_symbol", "ticker", "name", "weight", "market_value", "actual_weight", "price", "shares"]


class WeightMapProvider(Protocol):
    def get_weight_map(self, etf_symbol: str, weight_field: str = "actual_weight") -> Dict[str, float]:
        ...

    def all_symbols(self) -> Set[str]:
        ...

    def close(self) -> None:
        ...


def _check_field(weight_field: str):
    if weight_field not in WEIGHT_FIELDS:
        raise ConfigurationError(f"Unsupported weightField: {weight_field!r}", step="provider")


def _clean_ticker(ticker) -> str:
    if ticker is None:
        return ""
    if isinstance(ticker, float) and math.isnan(ticker):
        return ""
    return str(ticker).strip().upper()


def _clean_weight(value) -> float:
    try:
        w = float(value)
    except (TypeError, ValueError):
        return 0.0
    return w if math.isfinite(w) else 0.0


class InMemoryWeightMapProvider:
    """Provider over nested dicts: ``{etf: {ticker: weight}}``.

    A ticker's value may be a number (used for either weight field) or a dict
    keyed by field name, e.g. ``{"weight": 0.6, "actual_weight": 0.58}``.
    """

    def __init__(self, funds: Mapping[str, Mapping[str, Union[float, Mapping[str, float]]]]):
        self._funds = {str(k).upper(): dict(v) for k, v in funds.items()}

    def get_weight_map(self, etf_symbol: str, weight_field: str = "actual_weight") -> Dict[str, float]:
        _check_field(weight_field)
        out: Dict[str, float] = {}
        for ticker, value in self._funds.get(etf_symbol.upper(), {}).items():
            t = _clean_ticker(ticker)
            if not t:
                continue
            if isinstance(value, Mapping):
                value = value.get(weight_field, 0.0)
            out[t] = _clean_weight(value)
        return out

    def all_symbols(self) -> Set[str]:
        return {_clean_ticker(t) for fund in self._funds.values() for t in fund if _clean_ticker(t)}

    def close(self) -> None:
        pass


def load_holdings_csv(path: str) -> pd.DataFrame:
    """Load a holdings CSV into a DataFrame with upper-cased symbols and numeric weights.

    Required columns: etf_symbol, ticker, and at least one of weight /
    actual_weight. A missing weight column is filled from the other one.
    Rows repeated for the same (etf_symbol, ticker) keep the last value.
    """
    df = pd.read_csv(path)
    missing = {"etf_symbol", "ticker"} - set(df.columns)
    if missing:
        raise ConfigurationError(f"Holdings CSV missing columns: {sorted(missing)}", step="provider")
    if "weight" not in df.columns and "actual_weight" not in df.columns:
        raise ConfigurationError("Holdings CSV needs a weight or actual_weight column", step="provider")
    if "weight" not in df.columns:
        df["weight"] = df["actual_weight"]
    if "actual_weight" not in df.columns:
        df["actual_weight"] = df["weight"]

    df["etf_symbol"] = df["etf_symbol"].map(_clean_ticker)
    df["ticker"] = df["ticker"].map(_clean_ticker)
    df = df[(df["ticker"] != "") & (df["etf_symbol"] != "")]
    for col in WEIGHT_FIELDS:
        df[col] = pd.to_numeric(df[col], errors="coerce").map(_clean_weight)
    return df.drop_duplicates(subset=["etf_symbol", "ticker"], keep="last").reset_index(drop=True)


class CsvWeightMapProvider:
    def __init__(self, path: str):
        self.path = path
        self._df = load_holdings_csv(path)
        logger.debug("Loaded %d holdings rows from %s", len(self._df), path)

    def get_weight_map(self, etf_symbol: str, weight_field: str = "actual_weight") -> Dict[str, float]:
        _check_field(weight_field)
        rows = self._df[self._df["etf_symbol"] == etf_symbol.upper()]
        return {str(t): float(w) for t, w in zip(rows["ticker"], rows[weight_field])}

    def all_symbols(self) -> Set[str]:
        return set(self._df["ticker"].unique())

    def close(self) -> None:
        self._df = self._df.iloc[0:0]


# SQLite holdings store
metadata = MetaData()

etfs_table = Table(
    "etfs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("symbol", String, nullable=False, unique=True),
    Column("last_updated", String, nullable=False),
)

holdings_table = Table(
    "holdings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("etf_id", Integer, ForeignKey("etfs.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("ticker", String, nullable=False, index=True),
    Column("name", String, nullable=False),
    Column("weight", Float, nullable=False),
    Column("market_value", Float, nullable=False),
    Column("actual_weight", Float, nullable=False),
    Column("price", Float),
    Column("shares", Float, nullable=False),
    UniqueConstraint("etf_id", "ticker"),
)


def create_store(db_url: str) -> Engine:
    """Create (if needed) the holdings tables at `db_url` and return the engine."""
    engine = create_engine(db_url)
    metadata.create_all(engine)
    return engine


def store_holdings(engine: Engine, etf_symbol: str, holdings: Mapping[str, Mapping[str, object]],
                   last_updated: Optional[str] = None) -> int:
    """Upsert one fund and its holdings in a single transaction; return the etf id.

    `holdings` maps ticker -> {name, weight, market_value, actual_weight,
    price, shares}. Existing (fund, ticker) rows are updated in place.
    """
    symbol = etf_symbol.strip().upper()
    last_updated = last_updated or datetime.now(timezone.utc).isoformat()
    with engine.begin() as conn:
        stmt = sqlite_insert(etfs_table).values(symbol=symbol, last_updated=last_updated)
        conn.execute(stmt.on_conflict_do_update(
            index_elements=["symbol"], set_={"last_updated": stmt.excluded.last_updated}))
        etf_id = conn.execute(select(etfs_table.c.id).where(etfs_table.c.symbol == symbol)).scalar_one()

        rows = []
        for ticker, h in holdings.items():
            t = _clean_ticker(ticker)
            if not t:
                continue
            weight = _clean_weight(h.get("weight", h.get("actual_weight", 0.0)))
            name = h.get("name")
            rows.append({
                "etf_id": etf_id,
                "ticker": t,
                "name": name if isinstance(name, str) and name.strip() else t,
                "weight": weight,
                "market_value": _clean_weight(h.get("market_value", 0.0)),
                "actual_weight": _clean_weight(h.get("actual_weight", weight)),
                "price": None if h.get("price") is None else _clean_weight(h.get("price")),
                "shares": _clean_weight(h.get("shares", 0.0)),
            })
        if rows:
            ins = sqlite_insert(holdings_table)
            upd = {c: ins.excluded[c] for c in ("name", "weight", "market_value", "actual_weight", "price", "shares")}
            conn.execute(ins.on_conflict_do_update(index_elements=["etf_id", "ticker"], set_=upd), rows)
    logger.info("Stored %d holdings for %s", len(rows), symbol)
    return etf_id


def import_holdings_csv(engine: Engine, path: str, last_updated: Optional[str] = None) -> Dict[str, int]:
    """Load every fund in a holdings CSV into the store; return rows written per fund."""
    df = load_holdings_csv(path)
    written: Dict[str, int] = {}
    for etf_symbol, group in df.groupby("etf_symbol", sort=True):
        records = group.set_index("ticker").to_dict(orient="index")
        for rec in records.values():
            if "price" in rec and pd.isna(rec["price"]):
                rec["price"] = None
        store_holdings(engine, etf_symbol, records, last_updated=last_updated)
        written[etf_symbol] = len(records)
    return written


class SqlWeightMapProvider:
    def __init__(self, db_url: Optional[str] = None, engine: Optional[Engine] = None):
        if engine is None and db_url is None:
            raise ConfigurationError("SqlWeightMapProvider needs db_url or engine", step="provider")
        self._owns_engine = engine is None
        self.engine = engine if engine is not None else create_store(db_url)

    def get_weight_map(self, etf_symbol: str, weight_field: str = "actual_weight") -> Dict[str, float]:
        _check_field(weight_field)
        h, e = holdings_table, etfs_table
        stmt = (
            select(h.c.ticker, h.c[weight_field])
            .join(e, e.c.id == h.c.etf_id)
            .where(e.c.symbol == etf_symbol.strip().upper())
        )
        out: Dict[str, float] = {}
        with self.engine.connect() as conn:
            for ticker, weight in conn.execute(stmt):
                t = _clean_ticker(ticker)
                if t:
                    out[t] = _clean_weight(weight)
        return out

    def all_symbols(self) -> Set[str]:
        stmt = select(holdings_table.c.ticker).distinct()
        with self.engine.connect() as conn:
            return {_clean_ticker(t) for (t,) in conn.execute(stmt) if _clean_ticker(t)}

    def close(self) -> None:
        if self._owns_engine:
            self.engine.dispose()


@contextmanager
def open_provider(db_url: Optional[str] = None, csv_path: Optional[str] = None) -> Iterator[WeightMapProvider]:
    """Open a provider for one run and release it on exit, success or failure."""
    if db_url:
        provider = SqlWeightMapProvider(db_url=db_url)
    elif csv_path:
        provider = CsvWeightMapProvider(csv_path)
    else:
        raise ConfigurationError("No holdings source configured (db_url or holdings_csv)", step="provider")
    try:
        yield provider
    finally:
        provider.close()


__all__ = [
    "WeightMapProvider",
    "InMemoryWeightMapProvider",
    "CsvWeightMapProvider",
    "SqlWeightMapProvider",
    "load_holdings_csv",
    "create_store",
    "store_holdings",
    "import_holdings_csv",
    "open_provider",
]
