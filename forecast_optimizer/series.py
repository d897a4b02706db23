"""
Series Preparation Module

Turns raw observation records into the per-product series the optimizers work on:
- Normalises observation records into a DataFrame
- Validates required columns and value types
- Extracts a date-ordered value series for one product
- Detects the data frequency and its seasonal period
"""

import logging
from typing import Iterable, List, Optional, Union

import numpy as np
import pandas as pd

from forecast_optimizer.errors import DataError
from forecast_optimizer.models import Observation

logger = logging.getLogger(__name__)

OBSERVATION_COLUMNS = ['product_id', 'date', 'value', 'is_outlier', 'note']

ObservationInput = Union[pd.DataFrame, Iterable[Observation]]


def observations_to_frame(observations: ObservationInput) -> pd.DataFrame:
    """
    Normalise observations into the canonical DataFrame layout

    Args:
        observations: DataFrame or iterable of Observation records

    Returns:
        DataFrame with columns product_id, date, value, is_outlier, note
    """
    if isinstance(observations, pd.DataFrame):
        df = observations.copy()
    else:
        df = pd.DataFrame(
            [(o.product_id, o.date, o.value, o.is_outlier, o.note) for o in observations],
            columns=OBSERVATION_COLUMNS
        )

    if 'is_outlier' not in df.columns:
        df['is_outlier'] = False
    if 'note' not in df.columns:
        df['note'] = None

    return df


def validate_observations(df: pd.DataFrame) -> pd.DataFrame:
    """
    Validate an observation frame and coerce its column types

    Args:
        df: Observation DataFrame

    Returns:
        Validated copy with string product ids, datetime dates and float values

    Raises:
        DataError: if required columns are missing or dates cannot be parsed
    """
    missing = [col for col in ['product_id', 'date', 'value'] if col not in df.columns]
    if missing:
        raise DataError(f"Observation data missing columns: {missing}")

    validated = observations_to_frame(df)
    validated['product_id'] = validated['product_id'].astype(str)

    try:
        validated['date'] = pd.to_datetime(validated['date'])
    except (ValueError, TypeError) as e:
        raise DataError(f"Unparseable observation dates: {e}") from e

    validated['value'] = pd.to_numeric(validated['value'], errors='coerce')
    invalid_values = validated['value'].isna().sum()
    if invalid_values:
        logger.warning("Dropping %d observations with non-numeric values", invalid_values)
        validated = validated.dropna(subset=['value'])

    validated['is_outlier'] = validated['is_outlier'].fillna(False).astype(bool)

    duplicates = validated.duplicated(subset=['product_id', 'date']).sum()
    if duplicates:
        logger.warning("Found %d duplicate (product, date) observations", duplicates)

    return validated.reset_index(drop=True)


def product_ids_in_order(df: pd.DataFrame) -> List[str]:
    """Distinct product ids in first-appearance order"""
    return list(dict.fromkeys(df['product_id'].astype(str)))


def get_product_frame(df: pd.DataFrame, product_id: str) -> pd.DataFrame:
    """Observations of one product, sorted by date"""
    product_df = df[df['product_id'].astype(str) == str(product_id)]
    return product_df.sort_values('date', kind='mergesort').reset_index(drop=True)


def get_product_series(df: pd.DataFrame, product_id: str) -> np.ndarray:
    """
    Date-ordered value array for one product

    Args:
        df: Observation DataFrame
        product_id: Product identifier

    Returns:
        Float array (empty if the product has no usable observations)
    """
    product_df = get_product_frame(df, product_id)
    values = pd.to_numeric(product_df['value'], errors='coerce').to_numpy(dtype=float)
    return values[np.isfinite(values)]


def detect_seasonal_period(dates: Union[pd.Series, List]) -> int:
    """
    Infer the seasonal period from the median spacing between dates

    Returns 7 for daily, 52 for weekly, 12 for monthly, 4 for quarterly and
    1 for yearly or undeterminable data.
    """
    parsed = pd.to_datetime(pd.Series(dates)).dropna().sort_values()
    if len(parsed) < 2:
        return 1

    median_days = parsed.diff().dropna().dt.days.median()

    if median_days <= 1.5:
        return 7
    if median_days <= 10:
        return 52
    if median_days <= 45:
        return 12
    if median_days <= 120:
        return 4
    return 1


class SeriesStore:
    """Backend interface for per-product observation series"""

    def load_series(self, dataset_id: str, product_id: str) -> pd.DataFrame:
        raise NotImplementedError


class FrameSeriesStore(SeriesStore):
    """Time-series store backed by in-memory DataFrames keyed by dataset id"""

    def __init__(self, datasets: Optional[dict] = None):
        self._datasets = {
            dataset_id: validate_observations(observations_to_frame(data))
            for dataset_id, data in (datasets or {}).items()
        }

    def add_dataset(self, dataset_id: str, observations: ObservationInput):
        self._datasets[dataset_id] = validate_observations(observations_to_frame(observations))

    def load_series(self, dataset_id: str, product_id: str) -> pd.DataFrame:
        """
        Observations of one product in a dataset

        Raises:
            DataError: if the dataset is unknown
        """
        if dataset_id not in self._datasets:
            raise DataError(f"Unknown dataset: {dataset_id}")
        return get_product_frame(self._datasets[dataset_id], product_id)

    def dataset(self, dataset_id: str) -> pd.DataFrame:
        if dataset_id not in self._datasets:
            raise DataError(f"Unknown dataset: {dataset_id}")
        return self._datasets[dataset_id]
