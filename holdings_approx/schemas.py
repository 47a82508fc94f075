"""pydantic models for approximation requests and results.

Field names are snake_case in Python and camelCase on the wire
(`model_dump(by_alias=True)`), matching what the dashboard consumes.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OptimizationMetrics(CamelModel):
    final_objective_value: float
    initial_objective_value: float
    improvement_percent: float
    average_error: float
    max_error: float
    error_count: int
    total_stocks: int


class ConstraintsCheck(CamelModel):
    weights_sum: float
    all_weights_non_negative: bool
    all_weights_less_than_one: bool


class Analysis(CamelModel):
    tracking_error: float
    error_rate: float
    confidence: str


class SolverInfo(CamelModel):
    method: str
    iterations: int
    message: str = ""
    stationarity: float = 0.0
    fell_back_to_initial_guess: bool = False


class WarningRecord(CamelModel):
    code: str
    message: str
    symbol: Optional[str] = None
    value: Optional[float] = None


class ApproximationResult(CamelModel):
    timestamp: str
    target_etf: str
    baseline_etfs: List[str]
    weight_field: str
    optimal_weights: Dict[str, float]
    weights_percentages: Dict[str, float]
    optimization_metrics: OptimizationMetrics
    constraints: ConstraintsCheck
    analysis: Analysis
    solver: SolverInfo
    warnings: List[WarningRecord] = Field(default_factory=list)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True)


class ApproximationRequest(CamelModel):
    target_etf: str = "EBI"
    baseline_etfs: List[str] = Field(default_factory=lambda: ["VTI", "VTV", "IWN"])
    weight_field: Optional[str] = None
    initial_guess: Optional[List[float]] = None
    max_iterations: Optional[int] = None
    method: Optional[str] = None
