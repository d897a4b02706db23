"""
Series Feature Module

Summary statistics describing a sales series, sent to the AI advisor so it
can reason about trend, volatility and cycles without the full history:
- Level and dispersion (mean, std, coefficient of variation)
- Trend direction from a least-squares slope
- Candidate cycle lengths from lagged absolute differences
"""

from typing import Dict, List

import numpy as np


def detect_trend(values: np.ndarray, threshold: float = 0.02) -> str:
    """
    Classify the trend as increasing, decreasing or stable

    Args:
        values: Date-ordered values
        threshold: Minimum |slope| / mean to count as a trend

    Returns:
        Trend label
    """
    if len(values) < 2:
        return 'stable'

    slope = np.polyfit(np.arange(len(values)), values, 1)[0]
    mean = np.mean(values)
    if mean == 0:
        return 'stable'

    if abs(slope) / abs(mean) <= threshold:
        return 'stable'
    return 'increasing' if slope > 0 else 'decreasing'


def detect_cycles(values: np.ndarray, max_lag: int = 12, top_n: int = 3) -> List[int]:
    """
    Lags whose mean absolute difference is small relative to the spread

    Args:
        values: Date-ordered values
        max_lag: Largest lag tested
        top_n: Number of cycles returned

    Returns:
        Candidate cycle lengths, strongest first
    """
    std = np.std(values)
    if std == 0:
        return []

    scored = []
    for lag in range(2, min(max_lag, len(values) // 3) + 1):
        avg_diff = np.mean(np.abs(values[lag:] - values[:-lag]))
        if avg_diff < std * 0.5:
            scored.append((avg_diff, lag))

    return [lag for _, lag in sorted(scored)[:top_n]]


def describe_series(values: np.ndarray) -> Dict:
    """
    Build the statistics block for an advisor request

    Args:
        values: Date-ordered values

    Returns:
        Dictionary with count, mean, std, volatility, trend, seasonality, cycles
    """
    values = np.asarray(values, dtype=float)
    if len(values) == 0:
        return {'count': 0}

    mean = float(np.mean(values))
    std = float(np.std(values))
    volatility = std / abs(mean) if mean != 0 else 0.0
    cycles = detect_cycles(values)

    return {
        'count': int(len(values)),
        'mean': round(mean, 2),
        'std': round(std, 2),
        'volatility': round(volatility, 2),
        'trend': detect_trend(values),
        'seasonality': bool(cycles) or (volatility > 0.15 and len(values) >= 12),
        'cycles': cycles,
    }
