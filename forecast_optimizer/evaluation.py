"""
Evaluation Module

Error metrics used to rank candidate parameter sets:
- MAPE (Mean Absolute Percentage Error)
- MAE (Mean Absolute Error)
- RMSE (Root Mean Square Error)
- Composite score (weighted, scale-free combination of the above)
"""

from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from config import VALIDATION_CONFIG


@dataclass
class ScoreResult:
    """Metrics for one forecast evaluated against actuals"""
    mape: float
    mae: float
    rmse: float
    composite: float
    n_samples: int

    @property
    def accuracy(self) -> float:
        """Accuracy percentage (100 - composite, floored at 0)"""
        return max(0.0, 100.0 - self.composite)


def calculate_mape(actual: np.ndarray, predicted: np.ndarray) -> float:
    """
    Calculate Mean Absolute Percentage Error

    Zero actuals count as a 100% miss when the prediction is non-zero and are
    skipped when both are zero.

    Args:
        actual: Actual values
        predicted: Predicted values

    Returns:
        MAPE percentage (100 when no point is usable)
    """
    nonzero = actual != 0
    zero_missed = (~nonzero) & (predicted != 0)

    valid_count = nonzero.sum() + zero_missed.sum()
    if valid_count == 0:
        return 100.0

    percent_errors = np.abs(actual[nonzero] - predicted[nonzero]) / np.abs(actual[nonzero])
    mape = (percent_errors.sum() + zero_missed.sum()) / valid_count * 100

    return float(mape)


def calculate_mae(actual: np.ndarray, predicted: np.ndarray) -> float:
    """
    Calculate Mean Absolute Error

    Args:
        actual: Actual values
        predicted: Predicted values

    Returns:
        MAE
    """
    mae = np.mean(np.abs(actual - predicted))
    return float(mae)


def calculate_rmse(actual: np.ndarray, predicted: np.ndarray) -> float:
    """
    Calculate Root Mean Square Error

    Args:
        actual: Actual values
        predicted: Predicted values

    Returns:
        RMSE
    """
    rmse = np.sqrt(np.mean((actual - predicted)**2))
    return float(rmse)


def composite_score(mape: float,
                    mae: float,
                    rmse: float,
                    scale: float,
                    weights: Optional[Dict[str, float]] = None) -> float:
    """
    Weighted composite of error metrics (lower is better)

    MAE and RMSE are expressed as a percentage of the mean absolute actual so
    all three terms share MAPE's scale.

    Args:
        mape: MAPE percentage
        mae: Mean absolute error
        rmse: Root mean square error
        scale: Mean absolute actual value
        weights: Metric weights (defaults to config)

    Returns:
        Composite error score
    """
    if weights is None:
        weights = VALIDATION_CONFIG['metric_weights']

    if scale > 0:
        mae_pct = mae / scale * 100
        rmse_pct = rmse / scale * 100
    else:
        # All-zero actuals: any error is a full miss
        mae_pct = 100.0 if mae > 0 else 0.0
        rmse_pct = 100.0 if rmse > 0 else 0.0

    total_weight = sum(weights.values()) or 1.0
    score = (
        weights.get('mape', 0.0) * mape
        + weights.get('rmse', 0.0) * rmse_pct
        + weights.get('mae', 0.0) * mae_pct
    ) / total_weight

    return float(score)


def evaluate_forecast(actual: np.ndarray,
                      predicted: np.ndarray,
                      weights: Optional[Dict[str, float]] = None) -> Optional[ScoreResult]:
    """
    Score a forecast against actuals

    Args:
        actual: Actual values
        predicted: Predicted values (truncated to len(actual))
        weights: Composite metric weights

    Returns:
        ScoreResult, or None when nothing can be scored (empty or non-finite)
    """
    actual = np.asarray(actual, dtype=float)
    predicted = np.asarray(predicted, dtype=float)

    length = min(len(actual), len(predicted))
    if length == 0:
        return None

    actual = actual[:length]
    predicted = predicted[:length]
    if not (np.all(np.isfinite(actual)) and np.all(np.isfinite(predicted))):
        return None

    mape = calculate_mape(actual, predicted)
    mae = calculate_mae(actual, predicted)
    rmse = calculate_rmse(actual, predicted)
    scale = float(np.mean(np.abs(actual)))

    return ScoreResult(
        mape=mape,
        mae=mae,
        rmse=rmse,
        composite=composite_score(mape, mae, rmse, scale, weights),
        n_samples=length
    )
