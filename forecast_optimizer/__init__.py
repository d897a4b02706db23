"""
Forecast Parameter Optimization Engine

Tunes forecasting-model parameters per product with a deterministic grid
search, refines them with an external AI advisor, and caches method-tagged
results keyed by a fingerprint of the underlying observations.
"""

from forecast_optimizer.models import (
    BusinessContext,
    ModelConfig,
    Observation,
    OptimizationMethod,
    get_default_models,
)
from forecast_optimizer.fingerprint import fingerprint
from forecast_optimizer.grid_search import GridSearchOptimizer, GridSearchResult
from forecast_optimizer.ai_refinement import AIRefinementClient, HttpAdvisorTransport
from forecast_optimizer.cache import (
    CacheEntry,
    InMemoryCacheStore,
    JsonFileCacheStore,
    OptimizationCache,
    OptimizedParameters,
)
from forecast_optimizer.queue_store import InMemoryQueueStore, QueueItem, QueueReason
from forecast_optimizer.batch import (
    BatchProcessor,
    BatchProgress,
    BatchState,
    get_products_needing_optimization,
)

__version__ = "1.0.0"
__author__ = "Forecasting Team"
