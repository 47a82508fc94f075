"""Command line entry point.

Examples:
  holdings-approx approximate --db sqlite:///data/holdings.db --target EBI --baseline VTI,VTV,IWN
  holdings-approx qa --csv data/holdings.csv --target EBI --baseline VTI,VTV,IWN
  holdings-approx load --db sqlite:///data/holdings.db data/holdings.csv
"""
import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from .api import approximate_from_config
from .config import METHODS, WEIGHT_FIELDS, load_settings
from .errors import ApproximationError
from .logging_setup import setup_logging
from .providers import create_store, import_holdings_csv, open_provider
from .qa import coverage_report, weight_field_comparison, weight_sum_report

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    p = argparse.ArgumentParser(prog="holdings-approx",
                                description="Approximate an ETF's holdings with a blend of baseline ETFs")
    p.add_argument("--config", default=None, help="YAML config file")
    p.add_argument("--db", default=None, help="SQLAlchemy URL of the holdings store")
    p.add_argument("--csv", default=None, help="Holdings CSV (used when --db is not given)")
    p.add_argument("--log-level", default=None)
    sub = p.add_subparsers(dest="command", required=True)

    a = sub.add_parser("approximate", help="Run the approximation and write the result JSON")
    a.add_argument("--target", default="EBI", help="Target ETF to approximate")
    a.add_argument("--baseline", default="VTI,VTV,IWN", help="Comma-separated baseline ETF symbols")
    a.add_argument("--weight-field", choices=WEIGHT_FIELDS, default=None)
    a.add_argument("--method", choices=METHODS, default=None)
    a.add_argument("--max-iterations", type=int, default=None)
    a.add_argument("--initial-guess", type=float, nargs="+", default=None)
    a.add_argument("--out", default="data/portfolio_approximation_results.json", help="Output JSON path")

    q = sub.add_parser("qa", help="Print weight-sum and coverage reports")
    q.add_argument("--target", default="EBI")
    q.add_argument("--baseline", default="VTI,VTV,IWN")
    q.add_argument("--weight-field", choices=WEIGHT_FIELDS, default="actual_weight")

    ld = sub.add_parser("load", help="Import a holdings CSV into the store")
    ld.add_argument("path", help="CSV with etf_symbol,ticker,name,weight,market_value,actual_weight,price,shares")
    ld.add_argument("--last-updated", default=None)
    return p.parse_args(argv)


def _symbols(s):
    return [x.strip().upper() for x in s.split(",") if x.strip()]


def cmd_approximate(args, config):
    result = approximate_from_config(config, args.target, _symbols(args.baseline),
                                     weight_field=args.weight_field, method=args.method,
                                     max_iterations=args.max_iterations,
                                     initial_guess=args.initial_guess)
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(result.to_json_dict(), indent=2))

    m = result.optimization_metrics
    print("\n=== PORTFOLIO APPROXIMATION RESULTS ===")
    print(f"Target: {result.target_etf}")
    print(f"Baselines: {', '.join(result.baseline_etfs)}")
    print("Optimal weights:")
    for sym in result.baseline_etfs:
        print(f"  {sym}: {result.weights_percentages[sym.lower()]:.2f}%")
    print(f"Total: {result.constraints.weights_sum * 100:.2f}%")
    print(f"\nOptimization error (sum of squared differences): {m.final_objective_value:.6f}")
    print(f"Improvement from initial guess: {m.improvement_percent:.2f}%")
    for w in result.warnings:
        print(f"Warning [{w.code}]: {w.message}")
    print(f"\nResults saved to: {out}")


def cmd_qa(args, config):
    baselines = _symbols(args.baseline)
    with open_provider(db_url=config.db_url, csv_path=config.holdings_csv) as provider:
        funds = [args.target.upper()] + baselines
        print("=== Weight Sums ===")
        print(weight_sum_report(provider, funds, weight_field=args.weight_field)
              .drop(columns=["top_holdings"]).to_string())
        print("\n=== weight vs actual_weight ===")
        print(weight_field_comparison(provider, funds).to_string())
        print("\n=== Coverage ===")
        for k, v in coverage_report(provider, args.target, baselines, weight_field=args.weight_field).items():
            print(f"{k}: {v}")


def cmd_load(args, config):
    if not config.db_url:
        raise ApproximationError("load needs --db or a configured db_url", step="load")
    engine = create_store(config.db_url)
    try:
        written = import_holdings_csv(engine, args.path, last_updated=args.last_updated)
    finally:
        engine.dispose()
    for etf, n in written.items():
        print(f"{etf}: {n} holdings")


COMMANDS = {"approximate": cmd_approximate, "qa": cmd_qa, "load": cmd_load}


def main(argv=None):
    args = parse_args(argv)
    config = load_settings(args.config)
    config = replace(config, db_url=args.db or config.db_url, holdings_csv=args.csv or config.holdings_csv)
    setup_logging(args.log_level or config.log_level, config.log_path)
    try:
        COMMANDS[args.command](args, config)
    except ApproximationError as e:
        logger.error("%s failed at %s: %s", args.command, e.step or "?", e.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
