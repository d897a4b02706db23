"""
Walk-Forward Validation Module

Evaluates a parameter set with forward-rolling, expanding-window splits:
each split trains on everything before its validation window and forecasts
that window. Errors from all splits are pooled into one score.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from config import VALIDATION_CONFIG
from forecast_optimizer.evaluation import ScoreResult, evaluate_forecast
from forecast_optimizer.forecast import generate_forecast

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Pooled walk-forward score for one parameter set"""
    parameters: Dict[str, float]
    score: ScoreResult
    n_splits: int

    @property
    def composite(self) -> float:
        return self.score.composite

    @property
    def accuracy(self) -> float:
        return self.score.accuracy


class WalkForwardValidator:
    """Time series validation with expanding training windows"""

    def __init__(self,
                 validation_ratio: float = None,
                 n_splits: int = None,
                 min_train_size: int = None,
                 metric_weights: Optional[Dict[str, float]] = None):
        """
        Initialize walk-forward validator

        Args:
            validation_ratio: Share of the series covered by validation windows
            n_splits: Maximum number of forward-rolling splits
            min_train_size: Minimum training size for a split to be used
            metric_weights: Composite score weights
        """
        self.validation_ratio = (validation_ratio if validation_ratio is not None
                                 else VALIDATION_CONFIG['validation_ratio'])
        self.n_splits = n_splits if n_splits is not None else VALIDATION_CONFIG['n_splits']
        self.min_train_size = (min_train_size if min_train_size is not None
                               else VALIDATION_CONFIG['min_train_size'])
        self.metric_weights = metric_weights or VALIDATION_CONFIG['metric_weights']

    @classmethod
    def from_config(cls, config: Dict) -> 'WalkForwardValidator':
        """Build a validator from a VALIDATION_CONFIG-shaped dict (missing keys use defaults)"""
        return cls(
            validation_ratio=config.get('validation_ratio'),
            n_splits=config.get('n_splits'),
            min_train_size=config.get('min_train_size'),
            metric_weights=config.get('metric_weights')
        )

    def split(self, n_obs: int) -> List[Tuple[int, int, int]]:
        """
        Generate train/validation boundaries

        Args:
            n_obs: Series length

        Returns:
            List of (train_end, val_start, val_end) index triples; empty when
            the series is too short for any split
        """
        if n_obs < 2:
            return []

        window = int(np.ceil(n_obs * self.validation_ratio))
        window = max(1, min(window, n_obs - 1))
        test_size = max(1, int(np.ceil(window / self.n_splits)))

        min_train = min(self.min_train_size, n_obs - 1)
        splits = []
        val_start = n_obs - window

        # Expanding window: each split trains on everything before it
        while val_start < n_obs and len(splits) < self.n_splits:
            val_end = min(val_start + test_size, n_obs)
            if val_start >= min_train:
                splits.append((val_start, val_start, val_end))
            val_start = val_end

        return splits

    def validate(self,
                 model_id: str,
                 series: np.ndarray,
                 parameters: Dict[str, float],
                 seasonal_periods: int = 12) -> Optional[ValidationResult]:
        """
        Score a parameter set over all walk-forward splits

        Args:
            model_id: Model identifier
            series: Date-ordered values
            parameters: Parameter set to evaluate
            seasonal_periods: Observations per seasonal cycle

        Returns:
            ValidationResult, or None if no split produced a usable forecast
        """
        series = np.asarray(series, dtype=float)
        actual_all = []
        predicted_all = []
        used_splits = 0

        for train_end, val_start, val_end in self.split(len(series)):
            train = series[:train_end]
            actual = series[val_start:val_end]
            try:
                predicted = generate_forecast(model_id, train, len(actual), parameters,
                                              seasonal_periods)
            except (ValueError, ArithmeticError, np.linalg.LinAlgError) as e:
                logger.debug("Forecast failed for %s %s: %s", model_id, parameters, e)
                continue

            if len(predicted) < len(actual) or not np.all(np.isfinite(predicted[:len(actual)])):
                continue

            actual_all.append(actual)
            predicted_all.append(predicted[:len(actual)])
            used_splits += 1

        if used_splits == 0:
            return None

        score = evaluate_forecast(
            np.concatenate(actual_all),
            np.concatenate(predicted_all),
            self.metric_weights
        )
        if score is None:
            return None

        return ValidationResult(parameters=dict(parameters), score=score, n_splits=used_splits)
