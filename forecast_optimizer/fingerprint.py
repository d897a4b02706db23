"""
Data fingerprinting for cache invalidation.

A fingerprint is a deterministic digest of one product's observation set:
any permutation of the same observations yields the same string, while a
change to a value, an outlier flag or a note yields a different one.
"""

import hashlib
import math
from typing import List, Tuple

import pandas as pd

from config import FINGERPRINT_CONFIG
from forecast_optimizer.series import ObservationInput, observations_to_frame


def _format_value(value, precision: int) -> str:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 'nan'
    if not math.isfinite(number):
        return 'nan'
    rounded = round(number, precision)
    if rounded == 0:
        rounded = 0.0  # -0.0 and 0.0 must match
    return f"{rounded:.{precision}f}"


def _format_note(note) -> str:
    if note is None:
        return ''
    if isinstance(note, float) and math.isnan(note):
        return ''
    return str(note)


def _format_key(value) -> str:
    if value is None:
        return ''
    try:
        if pd.isna(value):
            return ''
    except (TypeError, ValueError):
        pass
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    return str(value)


def _format_date(value) -> str:
    # '2024-01-01' and Timestamp('2024-01-01') describe the same observation
    try:
        return pd.Timestamp(value).isoformat()
    except (TypeError, ValueError, OverflowError):
        return _format_key(value)


def fingerprint(observations: ObservationInput,
                precision: int = None) -> str:
    """
    Build the fingerprint of an observation set

    Format: <count>-<values>-<outlier bits>-<note bits>-<note digest>

    Args:
        observations: DataFrame or iterable of Observation records
        precision: Decimal places kept for values (defaults to config)

    Returns:
        Fingerprint string, or the empty sentinel for no observations
    """
    if precision is None:
        precision = FINGERPRINT_CONFIG['value_precision']
    sentinel = FINGERPRINT_CONFIG['empty_sentinel']

    try:
        df = observations_to_frame(observations)
    except (TypeError, ValueError, AttributeError):
        return sentinel

    if df.empty:
        return sentinel

    rows: List[Tuple[str, str, str, str, str]] = []
    for record in df.itertuples(index=False):
        rows.append((
            _format_key(getattr(record, 'product_id', None)),
            _format_date(getattr(record, 'date', None)),
            _format_value(getattr(record, 'value', None), precision),
            '1' if bool(getattr(record, 'is_outlier', False)) else '0',
            _format_note(getattr(record, 'note', None)),
        ))

    # Full-tuple sort keeps duplicate (product, date) rows in a stable order
    rows.sort()

    values = '_'.join(row[2] for row in rows)
    outlier_bits = ''.join(row[3] for row in rows)
    note_bits = ''.join('1' if row[4].strip() else '0' for row in rows)
    note_digest = hashlib.blake2b(
        '\x1f'.join(row[4] for row in rows).encode('utf-8'),
        digest_size=4
    ).hexdigest()

    return f"{len(rows)}-{values}-{outlier_bits}-{note_bits}-{note_digest}"
