"""Tests for observation preparation, series statistics and synthetic data."""

import numpy as np
import pandas as pd
import pytest

from forecast_optimizer.data_generator import SyntheticDataGenerator, generate_and_save_data
from forecast_optimizer.errors import DataError
from forecast_optimizer.models import Observation
from forecast_optimizer.series import (
    FrameSeriesStore,
    detect_seasonal_period,
    get_product_series,
    observations_to_frame,
    product_ids_in_order,
    validate_observations,
)
from forecast_optimizer.series_features import describe_series, detect_trend


def test_validate_coerces_and_drops_bad_values():
    df = pd.DataFrame({
        'product_id': [1, 1, 1],
        'date': ['2024-03-01', '2024-01-01', '2024-02-01'],
        'value': ['3', 'n/a', 1.5],
    })

    validated = validate_observations(df)

    assert len(validated) == 2
    assert validated['product_id'].tolist() == ['1', '1']
    assert pd.api.types.is_datetime64_any_dtype(validated['date'])
    assert not validated['is_outlier'].any()


def test_validate_missing_columns():
    with pytest.raises(DataError):
        validate_observations(pd.DataFrame({'product_id': ['A'], 'date': ['2024-01-01']}))


def test_product_series_sorted_by_date():
    df = validate_observations(observations_to_frame([
        Observation('B', '2024-02-01', 2.0),
        Observation('A', '2024-02-01', 20.0),
        Observation('A', '2024-01-01', 10.0),
    ]))

    assert product_ids_in_order(df) == ['B', 'A']
    np.testing.assert_allclose(get_product_series(df, 'A'), [10.0, 20.0])
    assert len(get_product_series(df, 'missing')) == 0


@pytest.mark.parametrize('freq,expected', [
    ('D', 7),
    ('W', 52),
    ('MS', 12),
    ('QS', 4),
    ('YS', 1),
])
def test_detect_seasonal_period(freq, expected):
    dates = pd.date_range('2020-01-01', periods=8, freq=freq)
    assert detect_seasonal_period(dates) == expected


def test_series_store():
    store = FrameSeriesStore({'upload': [Observation('A', '2024-01-01', 1.0)]})

    assert len(store.load_series('upload', 'A')) == 1
    assert store.load_series('upload', 'B').empty
    with pytest.raises(DataError):
        store.load_series('other', 'A')


def test_describe_series():
    stats = describe_series(np.arange(1.0, 25.0))
    assert stats['count'] == 24
    assert stats['trend'] == 'increasing'
    assert describe_series(np.array([]))['count'] == 0
    assert detect_trend(np.full(10, 5.0)) == 'stable'


def test_synthetic_data(tmp_path):
    generator = SyntheticDataGenerator(n_periods=24, product_ids=['A123', 'B456'], seed=1)
    df = generator.generate()

    assert list(df.columns) == ['product_id', 'date', 'value', 'is_outlier', 'note']
    assert len(df) == 48
    assert (df['value'] >= 0).all()
    assert (df['note'].notna() == df['is_outlier']).all()

    path = tmp_path / 'observations.csv'
    saved = generate_and_save_data(str(path), n_periods=12, product_ids=['A123'], seed=1)
    assert path.exists()
    assert len(saved) == 12
