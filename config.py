"""
Configuration File for the Parameter Optimization Engine

Central place to configure all parameters for grid search, AI refinement,
caching and batch processing. Modify values here to tune the engine.
"""

import os

# ==============================================================================
# DATA (demo pipeline)
# ==============================================================================
DATA_CONFIG = {
    'generate_new_data': True,  # Set False to load an existing observations CSV
    'data_path': 'data/observations.csv',
    'start_date': '2023-01-01',
    'n_periods': 36,            # Monthly observations per product
    'freq': 'MS',
    'product_ids': ['A123', 'B456', 'C789'],
    'outlier_rate': 0.03,
    'seed': 42
}

# ==============================================================================
# WALK-FORWARD VALIDATION & SCORING
# ==============================================================================
VALIDATION_CONFIG = {
    'validation_ratio': 0.2,   # Share of the series held out across all splits
    'n_splits': 3,             # Forward-rolling splits
    'min_train_size': 2,       # Smallest usable training window
    'metric_weights': {        # Composite score = weighted sum (lower is better)
        'mape': 0.5,
        'rmse': 0.3,
        'mae': 0.2
    },
    'tie_tolerance': 0.5,      # Composite points treated as a tie
    'confidence_floor': 60.0,
    'confidence_cap': 95.0,
    'sufficient_length': 24,   # Observations at which data sufficiency saturates
}

# ==============================================================================
# GRID SEARCH
# ==============================================================================
GRID_CONFIG = {
    'smoothing_grid': [0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
    'seasonal_smoothing_grid': [0.1, 0.3, 0.5, 0.7, 0.9],  # Holt-Winters (3 params)
    'window_range': (1, 30),
    'no_parameter_confidence': 70.0,  # Models without optimizable parameters
    'fallback_accuracy': 65.0,        # Series too short for any split
}

# Allowed optimizable parameters and their bounds, per parameter name
PARAMETER_BOUNDS = {
    'alpha': (0.1, 1.0),
    'beta': (0.1, 1.0),
    'gamma': (0.1, 1.0),
    'window': (1, 30),
}

# ==============================================================================
# AI REFINEMENT
# ==============================================================================
AI_CONFIG = {
    'enabled': True,
    'base_url': os.environ.get('FORECAST_ADVISOR_URL', 'http://localhost:3001/api'),
    'endpoint': '/ai/optimize-parameters',
    'api_key': os.environ.get('FORECAST_ADVISOR_API_KEY', ''),
    'timeout_seconds': 30.0,
    'history_points': 100,            # Most recent observations sent to the advisor
    'target_metric': 'accuracy',
    'tolerance': 2.0,                 # Composite improvement required for acceptance
    'high_confidence_threshold': 75.0,
    'failure_threshold': 3,           # Consecutive advisor failures before disabling
}

# ==============================================================================
# CACHE
# ==============================================================================
CACHE_CONFIG = {
    'expiry_hours': 24,
    'cache_path': 'outputs/optimization_cache.json',
}

# ==============================================================================
# FINGERPRINT
# ==============================================================================
FINGERPRINT_CONFIG = {
    'value_precision': 3,  # Decimal places kept before hashing values
    'empty_sentinel': 'empty',
}

# ==============================================================================
# BATCH PROCESSING
# ==============================================================================
BATCH_CONFIG = {
    'min_observations': 3,  # Products below this are never reported as needing work
    'dataset_id': 'default',
}

# ==============================================================================
# OUTPUT
# ==============================================================================
OUTPUT_CONFIG = {
    'output_dir': 'outputs',
    'data_dir': 'data',
    'report_path': 'outputs/optimization_report.json',
}

# ==============================================================================
# LOGGING
# ==============================================================================
LOGGING_CONFIG = {
    'level': os.environ.get('FORECAST_OPTIMIZER_LOG_LEVEL', 'INFO'),
    'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
}
