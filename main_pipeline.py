"""
Main Optimization Pipeline

End-to-end run of the parameter optimization engine:
1. Generate/Load observations
2. Validate and register the dataset
3. Queue products that need optimization
4. Run the batch optimizer (grid search + AI refinement)
5. Summarize the selected parameters
6. Save the report (the cache file is written as results arrive)
"""

import asyncio
import json
import logging
import os
from datetime import datetime
from typing import Dict, List

import pandas as pd

from config import AI_CONFIG, BATCH_CONFIG, CACHE_CONFIG, DATA_CONFIG, LOGGING_CONFIG, OUTPUT_CONFIG

from forecast_optimizer.ai_refinement import AIRefinementClient, HttpAdvisorTransport
from forecast_optimizer.batch import BatchProcessor, BatchProgress, get_products_needing_optimization
from forecast_optimizer.cache import JsonFileCacheStore, OptimizationCache
from forecast_optimizer.data_generator import generate_and_save_data
from forecast_optimizer.fingerprint import fingerprint
from forecast_optimizer.grid_search import GridSearchOptimizer
from forecast_optimizer.models import get_default_models
from forecast_optimizer.queue_store import InMemoryQueueStore, QueueItem, QueueReason
from forecast_optimizer.series import FrameSeriesStore, product_ids_in_order
from forecast_optimizer.validation import WalkForwardValidator


class OptimizationPipeline:
    """Complete optimization pipeline (configured via config.py)"""

    def __init__(self):
        """Initialize pipeline with config from config.py"""
        self.data_path = DATA_CONFIG['data_path']
        self.generate_new_data = DATA_CONFIG['generate_new_data']
        self.output_dir = OUTPUT_CONFIG['output_dir']
        self.dataset_id = BATCH_CONFIG['dataset_id']

        os.makedirs(OUTPUT_CONFIG['output_dir'], exist_ok=True)
        os.makedirs(OUTPUT_CONFIG['data_dir'], exist_ok=True)

        self.models = get_default_models()
        self.cache = OptimizationCache(JsonFileCacheStore(CACHE_CONFIG['cache_path']))
        self.queue = InMemoryQueueStore()
        self.series_store = FrameSeriesStore()

        # Pipeline state (will be populated)
        self.observations_df = None
        self.progress = None
        self.summary: List[Dict] = []

    def run_complete_pipeline(self) -> Dict:
        """
        Run complete optimization pipeline (configured via config.py)

        Returns:
            Dictionary with pipeline results
        """
        print("\n" + "="*80)
        print("FORECAST PARAMETER OPTIMIZATION PIPELINE")
        print("="*80)
        print(f"Start time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print("="*80 + "\n")

        self.step_1_load_data()
        self.step_2_register_data()
        self.step_3_queue_products()
        self.step_4_optimize()
        self.step_5_summarize()
        self.step_6_save_results()

        print("\n" + "="*80)
        print("PIPELINE COMPLETE!")
        print("="*80)
        print(f"End time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"\nOutputs saved to: {self.output_dir}/")
        print("="*80 + "\n")

        return {
            'progress': self.progress,
            'summary': self.summary,
        }

    def step_1_load_data(self):
        """Step 1: Load or generate observations"""
        print("\n" + "="*80)
        print("STEP 1: DATA LOADING/GENERATION")
        print("="*80)

        if self.generate_new_data:
            self.observations_df = generate_and_save_data(output_path=self.data_path)
        else:
            print(f"\nLoading existing observations from: {self.data_path}")
            self.observations_df = pd.read_csv(self.data_path)
            print(f"Loaded {len(self.observations_df):,} observations")

        print("\n✓ Step 1 complete")

    def step_2_register_data(self):
        """Step 2: Validate and register the dataset"""
        print("\n" + "="*80)
        print("STEP 2: DATA VALIDATION")
        print("="*80)

        self.series_store.add_dataset(self.dataset_id, self.observations_df)
        self.observations_df = self.series_store.dataset(self.dataset_id)

        products = product_ids_in_order(self.observations_df)
        print(f"\n  Products: {len(products)}")
        print(f"  Observations: {len(self.observations_df):,}")
        print(f"  Flagged outliers: {int(self.observations_df['is_outlier'].sum())}")

        print("\n✓ Step 2 complete")

    def step_3_queue_products(self):
        """Step 3: Queue (product, model) pairs without current results"""
        print("\n" + "="*80)
        print("STEP 3: QUEUE PRODUCTS")
        print("="*80)

        needing = get_products_needing_optimization(self.observations_df, self.models, self.cache)
        items = [
            QueueItem(product_id=entry['product_id'], model_id=model_id,
                      reason=QueueReason.CSV_UPLOAD)
            for entry in needing
            for model_id in entry['models']
        ]
        added = self.queue.enqueue(items)

        print(f"\n  Products needing optimization: {len(needing)}")
        print(f"  Pairs queued: {added}")

        print("\n✓ Step 3 complete")

    def step_4_optimize(self):
        """Step 4: Run grid search and AI refinement over the queue"""
        print("\n" + "="*80)
        print("STEP 4: BATCH OPTIMIZATION")
        print("="*80)

        self.progress = asyncio.run(self._run_batch())

        print("\nBatch summary:")
        print(f"  Products completed: {self.progress.completed_products}/{self.progress.total_products}")
        print(f"  Optimized: {self.progress.optimized} "
              f"(AI: {self.progress.ai_optimized}, Grid: {self.progress.grid_optimized})")
        print(f"  AI rejected: {self.progress.ai_rejected}")
        print(f"  Skipped: {self.progress.skipped}")
        print(f"  Failed: {self.progress.failed}")

        print("\n✓ Step 4 complete")

    async def _run_batch(self) -> BatchProgress:
        validator = WalkForwardValidator()
        transport = None
        refiner = None
        if AI_CONFIG['enabled']:
            transport = HttpAdvisorTransport()
            refiner = AIRefinementClient(transport, validator, self.models)

        processor = BatchProcessor(
            cache=self.cache,
            queue=self.queue,
            optimizer=GridSearchOptimizer(validator, self.models),
            refiner=refiner,
            models=self.models
        )

        def on_product_complete(product_id):
            print(f"  ✓ {product_id} complete")

        try:
            return await processor.optimize_queued_products(
                self.observations_df,
                self.models,
                on_product_complete=on_product_complete
            )
        finally:
            if transport is not None:
                await transport.close()

    def step_5_summarize(self):
        """Step 5: Collect the selected parameters per pair"""
        print("\n" + "="*80)
        print("STEP 5: SELECTED PARAMETERS")
        print("="*80)

        self.summary = []
        for product_id in product_ids_in_order(self.observations_df):
            product_df = self.series_store.load_series(self.dataset_id, product_id)
            current = fingerprint(product_df)

            for model in self.models:
                entry = self.cache.get(product_id, model.id)
                selected = self.cache.get_selected(product_id, model.id, current)
                if entry is None or selected is None:
                    continue
                self.summary.append({
                    'product_id': product_id,
                    'model_id': model.id,
                    'selected': selected.method.value,
                    'parameters': selected.parameters,
                    'confidence': selected.confidence,
                    'expected_accuracy': selected.expected_accuracy,
                    'methods': [m.value for m in entry.present_methods()],
                })

        if self.summary:
            print("\n" + pd.DataFrame(self.summary)[
                ['product_id', 'model_id', 'selected', 'confidence', 'expected_accuracy']
            ].to_string(index=False))
        else:
            print("\n  No optimized pairs")

        print("\n✓ Step 5 complete")

    def step_6_save_results(self):
        """Step 6: Save the optimization report"""
        print("\n" + "="*80)
        print("STEP 6: SAVING RESULTS")
        print("="*80)

        report = {
            'generated': datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
            'progress': self.progress.to_dict() if self.progress else None,
            'results': self.summary,
        }
        report_path = OUTPUT_CONFIG['report_path']
        with open(report_path, 'w') as f:
            json.dump(report, f, indent=2, default=str)

        print(f"  ✓ Report saved to: {report_path}")
        print(f"  ✓ Cache saved to: {CACHE_CONFIG['cache_path']}")

        print("\n✓ Step 6 complete")


def main():
    """Main entry point - all configuration is in config.py"""
    logging.basicConfig(level=LOGGING_CONFIG['level'], format=LOGGING_CONFIG['format'])

    pipeline = OptimizationPipeline()
    results = pipeline.run_complete_pipeline()

    print("\n" + "="*80)
    print("SUCCESS! Parameter optimization pipeline executed.")
    print("="*80)
    print("\nKey Outputs:")
    print(f"  - Observations: {DATA_CONFIG['data_path']}")
    print(f"  - Cache: {CACHE_CONFIG['cache_path']}")
    print(f"  - Report: {OUTPUT_CONFIG['report_path']}")
    print("="*80 + "\n")

    return results


if __name__ == "__main__":
    main()
