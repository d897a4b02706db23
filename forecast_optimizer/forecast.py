"""
Forecast Generation Module

Generates point forecasts for a training window with a given model and
parameter set. Exponential smoothing models delegate to ets_model; the
remaining models are computed directly with numpy.
"""

from typing import Dict

import numpy as np

from forecast_optimizer import ets_model


class UnknownModelError(ValueError):
    """Raised for a model id with no forecaster"""


def moving_average(y: np.ndarray, steps: int, window: int) -> np.ndarray:
    """Flat forecast at the mean of the last `window` observations"""
    window = max(1, min(int(round(window)), len(y)))
    return np.full(steps, float(np.mean(y[-window:])))


def seasonal_moving_average(y: np.ndarray,
                            steps: int,
                            window: int,
                            seasonal_periods: int) -> np.ndarray:
    """
    Average of the same seasonal position over the last `window` cycles

    Falls back to a plain moving average when there is less than one full
    cycle of history.
    """
    period = int(seasonal_periods or 1)
    if period < 2 or len(y) < period:
        return moving_average(y, steps, window)

    window = max(1, int(round(window)))
    forecast = np.empty(steps)
    n = len(y)
    for h in range(steps):
        # Indices of the same seasonal position in past cycles
        idx = np.arange(n + h - period, -1, -period)
        idx = idx[idx < n][:window]
        forecast[h] = float(np.mean(y[idx])) if len(idx) else float(y[-1])
    return forecast


def linear_trend(y: np.ndarray, steps: int) -> np.ndarray:
    """Least-squares line extrapolated over the horizon"""
    if len(y) < 2:
        return np.full(steps, float(y[-1]))
    x = np.arange(len(y))
    slope, intercept = np.polyfit(x, y, 1)
    future_x = np.arange(len(y), len(y) + steps)
    return intercept + slope * future_x


def seasonal_naive(y: np.ndarray, steps: int, seasonal_periods: int) -> np.ndarray:
    """Repeat the last observed season"""
    period = int(seasonal_periods or 1)
    if period < 2 or len(y) < period:
        return np.full(steps, float(y[-1]))
    last_season = y[-period:]
    return np.array([last_season[h % period] for h in range(steps)], dtype=float)


def generate_forecast(model_id: str,
                      train: np.ndarray,
                      steps: int,
                      parameters: Dict[str, float],
                      seasonal_periods: int = 12) -> np.ndarray:
    """
    Generate a forecast for one model and parameter set

    Args:
        model_id: Registered model identifier
        train: Training values (date ordered)
        steps: Forecast horizon
        parameters: Model parameters (missing names use model defaults)
        seasonal_periods: Observations per seasonal cycle

    Returns:
        Forecast array of length `steps`

    Raises:
        UnknownModelError: for an unregistered model id
        ValueError: if the training window is empty
    """
    y = np.asarray(train, dtype=float)
    if len(y) == 0:
        raise ValueError("Cannot forecast from an empty training window")

    if model_id == 'moving_average':
        return moving_average(y, steps, parameters.get('window', 3))
    if model_id in ('simple_exponential_smoothing', 'exponential_smoothing'):
        return ets_model.simple_exponential_smoothing(y, steps, parameters.get('alpha', 0.3))
    if model_id == 'double_exponential_smoothing':
        return ets_model.double_exponential_smoothing(
            y, steps,
            parameters.get('alpha', 0.3),
            parameters.get('beta', 0.1)
        )
    if model_id == 'holt_winters':
        return ets_model.holt_winters(
            y, steps,
            parameters.get('alpha', 0.3),
            parameters.get('beta', 0.1),
            parameters.get('gamma', 0.1),
            seasonal_periods
        )
    if model_id == 'seasonal_moving_average':
        return seasonal_moving_average(y, steps, parameters.get('window', 3), seasonal_periods)
    if model_id == 'linear_trend':
        return linear_trend(y, steps)
    if model_id == 'seasonal_naive':
        return seasonal_naive(y, steps, seasonal_periods)

    raise UnknownModelError(f"No forecaster registered for model: {model_id}")
