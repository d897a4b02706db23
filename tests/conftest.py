"""pytest configuration: project root on sys.path plus shared fixtures."""

import os
import sys

import numpy as np
import pandas as pd
import pytest

# Add project root to sys.path so config.py and the package import from a checkout
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from forecast_optimizer.ai_refinement import AdvisorResponse  # noqa: E402
from forecast_optimizer.cache import OptimizationCache  # noqa: E402
from forecast_optimizer.errors import ProviderError  # noqa: E402
from forecast_optimizer.fingerprint import fingerprint  # noqa: E402
from forecast_optimizer.models import Observation  # noqa: E402
from forecast_optimizer.series import (  # noqa: E402
    get_product_frame,
    observations_to_frame,
    validate_observations,
)


class FakeClock:
    """Manually advanced clock (epoch seconds)"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, hours: float):
        self.now += hours * 3600


class FakeAdvisorTransport:
    """Advisor stand-in returning a fixed proposal (or failing)"""

    def __init__(self, parameters=None, confidence=90.0, reasoning='test proposal', error=None):
        self.parameters = parameters or {}
        self.confidence = confidence
        self.reasoning = reasoning
        self.error = error
        self.requests = []

    async def optimize(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return AdvisorResponse(
            optimizedParameters=dict(self.parameters),
            expectedAccuracy=90.0,
            confidence=self.confidence,
            reasoning=self.reasoning
        )


def monthly_values(n: int = 24) -> np.ndarray:
    """Upward trend with an annual cycle"""
    t = np.arange(n)
    return 100.0 + 5.0 * t + 10.0 * np.sin(2 * np.pi * t / 12)


def make_observations(product_id: str, values, start: str = '2023-01-01'):
    dates = pd.date_range(start=start, periods=len(values), freq='MS')
    return [
        Observation(product_id=product_id, date=d.strftime('%Y-%m-%d'), value=float(v))
        for d, v in zip(dates, values)
    ]


def product_fingerprint(observations, product_id: str) -> str:
    df = validate_observations(observations_to_frame(observations))
    return fingerprint(get_product_frame(df, product_id))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return OptimizationCache(clock=clock)


@pytest.fixture
def a123_series():
    return monthly_values(24)


@pytest.fixture
def a123_observations(a123_series):
    return make_observations('A123', a123_series)


@pytest.fixture
def fake_transport():
    return FakeAdvisorTransport


@pytest.fixture
def failing_transport():
    return FakeAdvisorTransport(error=ProviderError("advisor down", status_code=503))
