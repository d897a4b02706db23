"""
Batch Optimization Module

Sequential driver over queued (product, model) pairs:
1. Products are processed in queue-insertion order, models in registry order
2. Pairs whose model cannot be tuned, or whose cache already holds valid AI
   and Grid entries, are removed and counted as skipped
3. Other pairs get a grid baseline, then at most one AI refinement attempt,
   with each result written to the cache
4. A failing pair (cache or queue store errors included) is logged and
   counted; the batch carries on. Callback errors are logged only
5. After each product, its queue entries are removed and the caller notified

Removing queue items while a batch runs cancels them: a pair that is no
longer queued when reached is ignored.
"""

import inspect
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

import pandas as pd

from config import BATCH_CONFIG
from forecast_optimizer.ai_refinement import AIRefinementClient, RefinementResult
from forecast_optimizer.cache import CacheEntry, OptimizationCache, OptimizedParameters
from forecast_optimizer.errors import DataError
from forecast_optimizer.fingerprint import fingerprint
from forecast_optimizer.grid_search import GridSearchOptimizer, GridSearchResult
from forecast_optimizer.models import (
    BusinessContext,
    ModelConfig,
    OptimizationMethod,
    get_default_models,
    has_optimizable_parameters,
)
from forecast_optimizer.queue_store import InMemoryQueueStore, QueueStore
from forecast_optimizer.series import (
    ObservationInput,
    detect_seasonal_period,
    get_product_frame,
    get_product_series,
    observations_to_frame,
    product_ids_in_order,
    validate_observations,
)

logger = logging.getLogger(__name__)

NeedsOptimizationFn = Callable[[str, str, str], bool]


class BatchState(str, Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    COMPLETED = 'completed'


@dataclass
class BatchProgress:
    """Live counters for one batch run"""
    total_products: int = 0
    completed_products: int = 0
    current_product: Optional[str] = None
    optimized: int = 0
    skipped: int = 0
    ai_optimized: int = 0
    grid_optimized: int = 0
    ai_rejected: int = 0
    failed: int = 0
    state: BatchState = BatchState.IDLE

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['state'] = self.state.value
        return data


@dataclass
class PairOutcome:
    grid: GridSearchResult
    ai: Optional[RefinementResult]
    ai_attempted: bool
    entry: CacheEntry


def _prepare(data: ObservationInput) -> pd.DataFrame:
    return validate_observations(observations_to_frame(data))


def _tunable(model: Optional[ModelConfig]) -> bool:
    return model is not None and model.enabled and has_optimizable_parameters(model)


async def _notify(callback: Optional[Callable], *args):
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def get_products_needing_optimization(data: ObservationInput,
                                      models: Optional[List[ModelConfig]],
                                      cache: OptimizationCache,
                                      min_observations: int = None) -> List[Dict]:
    """
    Products with at least one tunable model lacking valid AI and Grid entries

    Args:
        data: Observations for all products
        models: Model registry (defaults to the built-in registry)
        cache: Optimization cache
        min_observations: Products with fewer observations are left out

    Returns:
        List of {'product_id': str, 'models': [model_id, ...]} in data order
    """
    if min_observations is None:
        min_observations = BATCH_CONFIG['min_observations']
    if models is None:
        models = get_default_models()
    df = _prepare(data)

    needing = []
    for product_id in product_ids_in_order(df):
        product_df = get_product_frame(df, product_id)
        if len(product_df) < min_observations:
            continue
        current = fingerprint(product_df)
        model_ids = [
            m.id for m in models
            if _tunable(m) and cache.needs_optimization(product_id, m.id, current)
        ]
        if model_ids:
            needing.append({'product_id': product_id, 'models': model_ids})
    return needing


class BatchProcessor:
    """Runs grid search and AI refinement over the optimization queue"""

    def __init__(self,
                 cache: OptimizationCache,
                 queue: Optional[QueueStore] = None,
                 optimizer: Optional[GridSearchOptimizer] = None,
                 refiner: Optional[AIRefinementClient] = None,
                 models: Optional[List[ModelConfig]] = None,
                 business_context: Optional[BusinessContext] = None,
                 min_observations: int = None):
        """
        Initialize batch processor

        Args:
            cache: Optimization cache shared with readers
            queue: Queue store (in-memory when omitted)
            optimizer: Grid search optimizer
            refiner: AI refinement client; None runs grid search only
            models: Model registry
            business_context: Context forwarded to the AI advisor
            min_observations: Minimum series length for an AI attempt
        """
        self.cache = cache
        self.queue = queue if queue is not None else InMemoryQueueStore()
        self.models = models if models is not None else get_default_models()
        self.optimizer = optimizer or GridSearchOptimizer(models=self.models)
        self.refiner = refiner
        self.business_context = business_context or BusinessContext()
        self.min_observations = (min_observations if min_observations is not None
                                 else BATCH_CONFIG['min_observations'])
        self.progress = BatchProgress()

    async def optimize_queued_products(self,
                                       data: ObservationInput,
                                       models: Optional[List[ModelConfig]] = None,
                                       product_ids: Optional[List[str]] = None,
                                       on_result: Optional[Callable] = None,
                                       on_product_complete: Optional[Callable] = None,
                                       needs_optimization: Optional[NeedsOptimizationFn] = None
                                       ) -> BatchProgress:
        """
        Process queued pairs for the given products

        Args:
            data: Observations for all products
            models: Model registry (defaults to the processor's)
            product_ids: Restrict the run to these products (queue order kept)
            on_result: Called with (product_id, model_id, CacheEntry) after a
                pair is optimized; may be a coroutine function
            on_product_complete: Called with product_id after a product's
                pairs finish; may be a coroutine function
            needs_optimization: Overrides the cache check, called with
                (product_id, model_id, fingerprint)

        Returns:
            BatchProgress summary (always, even when pairs fail)
        """
        registry = {m.id: m for m in (models if models is not None else self.models)}
        order = list(registry)
        needs = needs_optimization or self.cache.needs_optimization

        try:
            combinations = self.queue.dequeue_combinations()
        except Exception:
            logger.exception("Batch aborted: queue store could not be read")
            self.progress = BatchProgress(state=BatchState.COMPLETED)
            return self.progress

        if product_ids is not None:
            wanted = set(product_ids)
            combinations = [(pid, mids) for pid, mids in combinations if pid in wanted]

        progress = BatchProgress(total_products=len(combinations), state=BatchState.RUNNING)
        self.progress = progress
        logger.info("Batch started: %d products, %d pairs",
                    len(combinations), sum(len(mids) for _, mids in combinations))

        try:
            df = _prepare(data)
        except DataError:
            logger.exception("Batch aborted: observation data is unusable")
            progress.failed += sum(len(mids) for _, mids in combinations)
            progress.state = BatchState.COMPLETED
            return progress

        for product_id, queued_models in combinations:
            progress.current_product = product_id
            product_df = get_product_frame(df, product_id)
            current = fingerprint(product_df)

            # Registry order first, then unknown ids so they still get removed
            ordered = ([mid for mid in order if mid in queued_models]
                       + [mid for mid in queued_models if mid not in registry])

            for model_id in ordered:
                try:
                    if not self.queue.contains(product_id, model_id):
                        logger.debug("Pair %s:%s cancelled", product_id, model_id)
                        continue

                    if not _tunable(registry.get(model_id)):
                        self.queue.remove_pairs([(product_id, model_id)])
                        progress.skipped += 1
                        continue

                    if not needs(product_id, model_id, current):
                        self.queue.remove_pairs([(product_id, model_id)])
                        progress.skipped += 1
                        logger.debug("Pair %s:%s already optimized", product_id, model_id)
                        continue

                    outcome = await self._optimize_pair(product_id, model_id, product_df, current)
                    self.queue.remove_pairs([(product_id, model_id)])
                except Exception:
                    progress.failed += 1
                    logger.exception("Optimization failed for %s:%s", product_id, model_id)
                    continue

                self._count(progress, outcome)
                try:
                    await _notify(on_result, product_id, model_id, outcome.entry)
                except Exception:
                    logger.exception("Result callback failed for %s:%s", product_id, model_id)

            try:
                self.queue.remove_products([product_id])
            except Exception:
                progress.failed += 1
                logger.exception("Failed to clear queued pairs for %s", product_id)

            progress.completed_products += 1
            try:
                await _notify(on_product_complete, product_id)
            except Exception:
                logger.exception("Product completion callback failed for %s", product_id)

        progress.current_product = None
        progress.state = BatchState.COMPLETED
        logger.info("Batch completed: %d optimized (%d AI, %d grid), %d skipped, "
                    "%d AI rejected, %d failed",
                    progress.optimized, progress.ai_optimized, progress.grid_optimized,
                    progress.skipped, progress.ai_rejected, progress.failed)
        return progress

    async def run(self,
                  data: ObservationInput,
                  models: Optional[List[ModelConfig]] = None) -> BatchProgress:
        """Process everything currently queued"""
        return await self.optimize_queued_products(data, models)

    async def ensure_optimized(self,
                               data: ObservationInput,
                               product_id: str,
                               model_id: str) -> Optional[OptimizedParameters]:
        """
        Make sure a (product, model) has current parameters

        Does nothing beyond a cache read when valid AI and Grid entries exist.

        Returns:
            Selected parameters, or None if the model cannot be tuned
        """
        model = next((m for m in self.models if m.id == model_id), None)
        if not _tunable(model):
            return None

        product_df = get_product_frame(_prepare(data), product_id)
        current = fingerprint(product_df)

        if self.cache.needs_optimization(product_id, model_id, current):
            await self._optimize_pair(product_id, model_id, product_df, current)
        self.queue.remove_pairs([(product_id, model_id)])

        return self.cache.get_selected(product_id, model_id, current)

    async def _optimize_pair(self,
                             product_id: str,
                             model_id: str,
                             product_df: pd.DataFrame,
                             current: str) -> PairOutcome:
        series = get_product_series(product_df, product_id)
        seasonal_period = detect_seasonal_period(product_df['date'])

        grid = self.optimizer.search(model_id, series, seasonal_period)
        entry = self.cache.put(product_id, model_id, OptimizationMethod.GRID, OptimizedParameters(
            parameters=grid.parameters,
            timestamp=self.cache.clock(),
            data_hash=current,
            confidence=grid.confidence,
            reasoning=grid.reasoning,
            expected_accuracy=grid.accuracy,
            method=OptimizationMethod.GRID
        ))

        ai_result = None
        ai_attempted = False
        if self.refiner is not None and len(series) >= self.min_observations:
            ai_attempted = True
            ai_result = await self.refiner.refine(model_id, series, grid,
                                                  self.business_context, seasonal_period)

        if ai_result is not None:
            expected = (ai_result.expected_accuracy if ai_result.expected_accuracy is not None
                        else ai_result.accuracy)
            entry = self.cache.put(product_id, model_id, OptimizationMethod.AI, OptimizedParameters(
                parameters=ai_result.parameters,
                timestamp=self.cache.clock(),
                data_hash=current,
                confidence=ai_result.confidence,
                reasoning=ai_result.reasoning,
                expected_accuracy=expected,
                method=OptimizationMethod.AI
            ))

        return PairOutcome(grid=grid, ai=ai_result, ai_attempted=ai_attempted, entry=entry)

    @staticmethod
    def _count(progress: BatchProgress, outcome: PairOutcome):
        progress.optimized += 1
        progress.grid_optimized += 1
        if outcome.ai is not None:
            progress.ai_optimized += 1
        elif outcome.ai_attempted:
            progress.ai_rejected += 1
