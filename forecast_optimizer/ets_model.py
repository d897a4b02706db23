"""
ETS (Exponential Smoothing) Model Module

Fixed-parameter exponential smoothing forecasts used during parameter search:
simple (level), double (level + trend, Holt) and triple (Holt-Winters additive).
Initial states are derived from the training data so fits are deterministic
and no likelihood optimisation runs.
"""

import warnings
from typing import Optional

import numpy as np
from statsmodels.tsa.holtwinters import ExponentialSmoothing, Holt, SimpleExpSmoothing


def _flat_forecast(y: np.ndarray, steps: int) -> np.ndarray:
    return np.full(steps, float(y[-1]))


def simple_exponential_smoothing(y: np.ndarray,
                                 steps: int,
                                 alpha: float) -> np.ndarray:
    """
    Forecast with simple exponential smoothing

    Args:
        y: Training values
        steps: Forecast horizon
        alpha: Level smoothing constant (0-1)

    Returns:
        Forecast array
    """
    if len(y) < 2:
        return _flat_forecast(y, steps)

    with warnings.catch_warnings():
        warnings.simplefilter('ignore')
        model = SimpleExpSmoothing(
            y,
            initialization_method='known',
            initial_level=float(y[0])
        )
        fitted_model = model.fit(smoothing_level=alpha, optimized=False)
        forecast = fitted_model.forecast(steps)

    return np.asarray(forecast, dtype=float)


def double_exponential_smoothing(y: np.ndarray,
                                 steps: int,
                                 alpha: float,
                                 beta: float) -> np.ndarray:
    """
    Forecast with Holt's linear trend method

    Args:
        y: Training values
        steps: Forecast horizon
        alpha: Level smoothing constant (0-1)
        beta: Trend smoothing constant (0-1)

    Returns:
        Forecast array
    """
    if len(y) < 3:
        return simple_exponential_smoothing(y, steps, alpha)

    with warnings.catch_warnings():
        warnings.simplefilter('ignore')
        model = Holt(
            y,
            initialization_method='known',
            initial_level=float(y[0]),
            initial_trend=float(y[1] - y[0])
        )
        fitted_model = model.fit(
            smoothing_level=alpha,
            smoothing_trend=beta,
            optimized=False
        )
        forecast = fitted_model.forecast(steps)

    return np.asarray(forecast, dtype=float)


def holt_winters(y: np.ndarray,
                 steps: int,
                 alpha: float,
                 beta: float,
                 gamma: float,
                 seasonal_periods: int) -> np.ndarray:
    """
    Forecast with additive Holt-Winters

    The seasonal period shrinks to half the training length when the series
    holds fewer than two full cycles; below a period of 2 the seasonal term is
    dropped and Holt's method is used instead.

    Args:
        y: Training values
        steps: Forecast horizon
        alpha: Level smoothing constant (0-1)
        beta: Trend smoothing constant (0-1)
        gamma: Seasonal smoothing constant (0-1)
        seasonal_periods: Observations per seasonal cycle

    Returns:
        Forecast array
    """
    period = effective_seasonal_period(len(y), seasonal_periods)
    if period is None:
        return double_exponential_smoothing(y, steps, alpha, beta)

    first_cycle = y[:period]
    second_cycle = y[period:2 * period]
    initial_level = float(first_cycle.mean())
    initial_trend = float((second_cycle.mean() - first_cycle.mean()) / period)
    initial_seasonal = first_cycle - initial_level

    with warnings.catch_warnings():
        warnings.simplefilter('ignore')
        model = ExponentialSmoothing(
            y,
            trend='add',
            seasonal='add',
            seasonal_periods=period,
            initialization_method='known',
            initial_level=initial_level,
            initial_trend=initial_trend,
            initial_seasonal=initial_seasonal
        )
        fitted_model = model.fit(
            smoothing_level=alpha,
            smoothing_trend=beta,
            smoothing_seasonal=gamma,
            optimized=False
        )
        forecast = fitted_model.forecast(steps)

    return np.asarray(forecast, dtype=float)


def effective_seasonal_period(n_obs: int, seasonal_periods: int) -> Optional[int]:
    """
    Seasonal period usable with n_obs observations (two full cycles required)

    Returns:
        Period >= 2, or None when the data cannot support any seasonality
    """
    period = min(int(seasonal_periods or 1), n_obs // 2)
    if period < 2:
        return None
    return period
