"""
Core data model: observations, model registry, optimization methods and
business context.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from config import PARAMETER_BOUNDS


@dataclass(frozen=True)
class Observation:
    """One sales observation for a product"""
    product_id: str
    date: str
    value: float
    is_outlier: bool = False
    note: Optional[str] = None


@dataclass
class ModelConfig:
    """Forecast model definition with default parameter values"""
    id: str
    parameters: Dict[str, float] = field(default_factory=dict)
    enabled: bool = True
    name: str = ""
    is_seasonal: bool = False

    @property
    def optimizable_parameters(self) -> List[str]:
        """Parameter names the optimizers are allowed to tune"""
        return [name for name in self.parameters if name in PARAMETER_BOUNDS]


def has_optimizable_parameters(model: ModelConfig) -> bool:
    return len(model.optimizable_parameters) > 0


def get_default_models() -> List[ModelConfig]:
    """Model registry in registration order"""
    return [
        ModelConfig('moving_average', {'window': 3},
                    name='Simple Moving Average'),
        ModelConfig('simple_exponential_smoothing', {'alpha': 0.3},
                    name='Simple Exponential Smoothing'),
        ModelConfig('double_exponential_smoothing', {'alpha': 0.3, 'beta': 0.1},
                    name='Double Exponential Smoothing (Holt)'),
        ModelConfig('holt_winters', {'alpha': 0.3, 'beta': 0.1, 'gamma': 0.1},
                    name='Holt-Winters (Triple Exponential)', is_seasonal=True),
        ModelConfig('seasonal_moving_average', {'window': 3},
                    name='Seasonal Moving Average', is_seasonal=True),
        ModelConfig('linear_trend', {}, name='Linear Trend'),
        ModelConfig('seasonal_naive', {}, name='Seasonal Naive', is_seasonal=True),
    ]


def find_model(models: List[ModelConfig], model_id: str) -> Optional[ModelConfig]:
    for model in models:
        if model.id == model_id:
            return model
    return None


class OptimizationMethod(str, Enum):
    """Source of a cached parameter set"""
    AI = 'ai'
    GRID = 'grid'
    MANUAL = 'manual'


def method_rank(method: OptimizationMethod) -> int:
    """
    Priority rank of a method (0 = highest)

    Raises:
        ValueError: for a member missing from the priority table
    """
    if method is OptimizationMethod.AI:
        return 0
    if method is OptimizationMethod.GRID:
        return 1
    if method is OptimizationMethod.MANUAL:
        return 2
    raise ValueError(f"Unhandled optimization method: {method!r}")


@dataclass
class BusinessContext:
    """Planning context forwarded to the AI advisor"""
    cost_of_error: str = 'medium'          # low | medium | high
    forecast_horizon: str = 'medium'       # short | medium | long
    update_frequency: str = 'weekly'       # daily | weekly | monthly
    interpretability_needs: str = 'medium'  # low | medium | high

    def to_request(self) -> Dict[str, Any]:
        data = asdict(self)
        return {
            'costOfError': data['cost_of_error'],
            'forecastHorizon': data['forecast_horizon'],
            'updateFrequency': data['update_frequency'],
            'interpretabilityNeeds': data['interpretability_needs'],
        }
