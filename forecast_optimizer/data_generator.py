"""
Synthetic Data Generator

Generates product-level sales observations in the engine's input format:
- Columns: product_id, date, value, is_outlier, note
- Monthly series with product-specific level, trend and annual seasonality
- Occasional promotion spikes flagged as outliers with a note
"""

import os
from typing import List

import numpy as np
import pandas as pd

from config import DATA_CONFIG


class SyntheticDataGenerator:
    """Generate synthetic product sales observations"""

    def __init__(self,
                 start_date: str = None,
                 n_periods: int = None,
                 product_ids: List[str] = None,
                 freq: str = None,
                 outlier_rate: float = None,
                 seed: int = None):
        """
        Initialize data generator

        Args:
            start_date: First observation date
            n_periods: Observations per product
            product_ids: Product identifiers
            freq: pandas date frequency ('MS' for month start)
            outlier_rate: Probability that an observation is a promotion spike
            seed: Random seed for reproducibility
        """
        self.start_date = pd.to_datetime(start_date or DATA_CONFIG['start_date'])
        self.n_periods = n_periods if n_periods is not None else DATA_CONFIG['n_periods']
        self.product_ids = product_ids or DATA_CONFIG['product_ids']
        self.freq = freq or DATA_CONFIG['freq']
        self.outlier_rate = (outlier_rate if outlier_rate is not None
                             else DATA_CONFIG['outlier_rate'])
        self.seed = seed if seed is not None else DATA_CONFIG['seed']

        np.random.seed(self.seed)

        self.dates = pd.date_range(start=self.start_date, periods=self.n_periods, freq=self.freq)

    def _product_profile(self) -> dict:
        return {
            'level': np.random.uniform(200, 1200),
            'trend': np.random.uniform(-0.01, 0.03),      # Share of level per period
            'seasonality': np.random.uniform(0.05, 0.35),  # Annual amplitude
            'phase': np.random.uniform(0, 12),
            'noise': np.random.uniform(0.03, 0.10),
        }

    def generate_product(self, product_id: str) -> pd.DataFrame:
        """
        Generate observations for one product

        Args:
            product_id: Product identifier

        Returns:
            DataFrame with columns product_id, date, value, is_outlier, note
        """
        profile = self._product_profile()
        t = np.arange(self.n_periods)

        trend = 1.0 + profile['trend'] * t
        season = 1.0 + profile['seasonality'] * np.sin(2 * np.pi * (t + profile['phase']) / 12)
        noise = np.random.normal(1.0, profile['noise'], self.n_periods)
        values = np.maximum(0, profile['level'] * trend * season * noise)

        is_outlier = np.random.random(self.n_periods) < self.outlier_rate
        values = np.where(is_outlier, values * np.random.uniform(1.8, 2.5), values)

        return pd.DataFrame({
            'product_id': product_id,
            'date': self.dates,
            'value': np.round(values, 2),
            'is_outlier': is_outlier,
            'note': [('Promotion spike' if flag else None) for flag in is_outlier],
        })

    def generate(self) -> pd.DataFrame:
        """
        Generate observations for all products

        Returns:
            Observation DataFrame, products in configured order
        """
        print("\nGenerating synthetic product observations...")
        print(f"  Products: {len(self.product_ids)}")
        print(f"  Date range: {self.dates[0].date()} to {self.dates[-1].date()}")
        print(f"  Periods per product: {self.n_periods}")

        df = pd.concat([self.generate_product(pid) for pid in self.product_ids],
                       ignore_index=True)

        print(f"\n  Generated {len(df):,} observations")
        print(f"  Avg value per product: {df.groupby('product_id')['value'].mean().mean():.2f}")
        print(f"  Outlier rate: {df['is_outlier'].mean():.1%}")

        return df


def generate_and_save_data(output_path: str = None, **kwargs) -> pd.DataFrame:
    """
    Generate synthetic observations and save them to CSV

    Args:
        output_path: CSV path (defaults to DATA_CONFIG['data_path'])
        **kwargs: Arguments for SyntheticDataGenerator

    Returns:
        Observation DataFrame
    """
    output_path = output_path or DATA_CONFIG['data_path']

    print("="*60)
    print("GENERATING SYNTHETIC DATA")
    print("="*60)

    df = SyntheticDataGenerator(**kwargs).generate()

    directory = os.path.dirname(output_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    df.to_csv(output_path, index=False)

    print(f"\n  Observations saved to: {output_path}")

    print("\n" + "="*60)
    print("DATA GENERATION COMPLETE")
    print("="*60)

    return df
