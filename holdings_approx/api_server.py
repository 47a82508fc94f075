"""FastAPI server exposing the approximation engine.

Endpoints:
- GET  /health
- GET  /portfolio-approximation?target=EBI&baselines=VTI,VTV,IWN -> runs an approximation
- POST /portfolio-approximation {targetEtf, baselineEtfs, weightField, initialGuess, maxIterations, method}
- GET  /holdings/{symbol}?weight_field=actual_weight -> the fund's weight map
- GET  /qa/weight-sums?symbols=EBI,VTI -> weight-sum report
- GET  /qa/coverage?target=EBI&baselines=VTI,VTV,IWN -> universe coverage report

The holdings source comes from `load_settings()` (YAML file and/or
HOLDINGS_APPROX_* environment variables). A provider is opened per request
and closed when the request finishes.
"""
import logging
from functools import lru_cache
from typing import Iterator, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from .api import run_approximation
from .config import AppConfig, load_settings
from .errors import ApproximationError, ConfigurationError, DataError, OptimizationFailure
from .providers import WeightMapProvider, open_provider
from .qa import coverage_report, weight_sum_report
from .schemas import ApproximationRequest

logger = logging.getLogger(__name__)

DEFAULT_TARGET = "EBI"
DEFAULT_BASELINES = "VTI,VTV,IWN"

STATUS_CODES = {
    ConfigurationError: 400,
    DataError: 404,
    OptimizationFailure: 500,
}

app = FastAPI(title="holdings-approx")


@lru_cache()
def get_config() -> AppConfig:
    return load_settings()


def get_provider(config: AppConfig = Depends(get_config)) -> Iterator[WeightMapProvider]:
    with open_provider(db_url=config.db_url, csv_path=config.holdings_csv) as provider:
        yield provider


@app.exception_handler(ApproximationError)
async def handle_approximation_error(request: Request, exc: ApproximationError):
    status = STATUS_CODES.get(type(exc), 500)
    logger.error("Approximation request failed at %s: %s", exc.step or "?", exc.message)
    return JSONResponse(status_code=status, content=exc.to_dict())


def _split(symbols: str):
    return [s.strip().upper() for s in symbols.split(",") if s.strip()]


@app.get('/health')
def health():
    return {'status': 'ok'}


@app.get('/portfolio-approximation')
def get_approximation(target: str = DEFAULT_TARGET, baselines: str = DEFAULT_BASELINES,
                      weight_field: Optional[str] = None,
                      provider=Depends(get_provider), config: AppConfig = Depends(get_config)):
    res = run_approximation(provider, target, _split(baselines), settings=config.engine,
                            weight_field=weight_field)
    return res.to_json_dict()


@app.post('/portfolio-approximation')
def post_approximation(req: ApproximationRequest, provider=Depends(get_provider),
                       config: AppConfig = Depends(get_config)):
    res = run_approximation(provider, req.target_etf, req.baseline_etfs, settings=config.engine,
                            weight_field=req.weight_field, initial_guess=req.initial_guess,
                            max_iterations=req.max_iterations, method=req.method)
    return res.to_json_dict()


@app.get('/holdings/{symbol}')
def get_holdings(symbol: str, weight_field: str = "actual_weight", provider=Depends(get_provider)):
    weights = provider.get_weight_map(symbol.upper(), weight_field)
    if not weights:
        raise DataError(f"No holdings stored for {symbol.upper()}", step="holdings", symbol=symbol.upper())
    return {'symbol': symbol.upper(), 'weightField': weight_field, 'count': len(weights),
            'totalWeight': sum(weights.values()), 'weights': weights}


@app.get('/qa/weight-sums')
def get_weight_sums(symbols: str = "EBI,VTI,VTV,IWN", weight_field: str = "actual_weight",
                    provider=Depends(get_provider)):
    df = weight_sum_report(provider, _split(symbols), weight_field=weight_field)
    return {'weightField': weight_field, 'funds': df.reset_index().to_dict(orient='records')}


@app.get('/qa/coverage')
def get_coverage(target: str = DEFAULT_TARGET, baselines: str = DEFAULT_BASELINES,
                 weight_field: str = "actual_weight", provider=Depends(get_provider)):
    return coverage_report(provider, target, _split(baselines), weight_field=weight_field)
