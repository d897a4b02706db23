"""Tests for the optimization cache and its auto-selection policy."""

import json

import pytest

from forecast_optimizer.cache import (
    CacheEntry,
    JsonFileCacheStore,
    OptimizationCache,
    OptimizedParameters,
)
from forecast_optimizer.errors import PersistenceError
from forecast_optimizer.models import OptimizationMethod, method_rank

P, M = 'A123', 'simple_exponential_smoothing'
FP = '3-1.000_2.000_3.000-000-000-abcd'


def _params(clock, method, alpha=0.5, data_hash=FP):
    return OptimizedParameters(
        parameters={'alpha': alpha},
        timestamp=clock(),
        data_hash=data_hash,
        confidence=80.0,
        reasoning=f'{method.value} result',
        expected_accuracy=90.0,
        method=method
    )


def _assert_selected_present(entry: CacheEntry):
    assert entry.selected is not None
    assert entry.get(entry.selected) is not None


class TestSelection:

    def test_first_write_selects_its_method(self, cache, clock):
        entry = cache.put(P, M, OptimizationMethod.GRID, _params(clock, OptimizationMethod.GRID))
        assert entry.selected is OptimizationMethod.GRID
        _assert_selected_present(entry)

    def test_ai_outranks_grid(self, cache, clock):
        cache.put(P, M, OptimizationMethod.GRID, _params(clock, OptimizationMethod.GRID))
        entry = cache.put(P, M, OptimizationMethod.AI, _params(clock, OptimizationMethod.AI, 0.7))

        assert entry.selected is OptimizationMethod.AI
        assert cache.get_selected(P, M, FP).parameters == {'alpha': 0.7}

    def test_grid_write_keeps_valid_ai_selected(self, cache, clock):
        cache.put(P, M, OptimizationMethod.AI, _params(clock, OptimizationMethod.AI, 0.7))
        entry = cache.put(P, M, OptimizationMethod.GRID, _params(clock, OptimizationMethod.GRID))
        assert entry.selected is OptimizationMethod.AI

    def test_manual_write_always_selects_manual(self, cache, clock):
        cache.put(P, M, OptimizationMethod.AI, _params(clock, OptimizationMethod.AI))
        entry = cache.put(P, M, OptimizationMethod.MANUAL, _params(clock, OptimizationMethod.MANUAL, 0.2))
        assert entry.selected is OptimizationMethod.MANUAL

    def test_valid_manual_survives_later_writes(self, cache, clock):
        cache.put(P, M, OptimizationMethod.MANUAL, _params(clock, OptimizationMethod.MANUAL, 0.2))
        cache.put(P, M, OptimizationMethod.GRID, _params(clock, OptimizationMethod.GRID))
        entry = cache.put(P, M, OptimizationMethod.AI, _params(clock, OptimizationMethod.AI))

        assert entry.selected is OptimizationMethod.MANUAL
        assert cache.get_selected(P, M, FP).parameters == {'alpha': 0.2}

    def test_stale_manual_is_replaced_after_data_change(self, cache, clock):
        cache.put(P, M, OptimizationMethod.MANUAL, _params(clock, OptimizationMethod.MANUAL, 0.2))
        entry = cache.put(P, M, OptimizationMethod.GRID,
                          _params(clock, OptimizationMethod.GRID, data_hash='new-data'))

        assert entry.selected is OptimizationMethod.GRID
        assert entry.manual is not None  # stale entries are kept

    def test_expired_ai_loses_to_fresh_grid(self, cache, clock):
        cache.put(P, M, OptimizationMethod.AI, _params(clock, OptimizationMethod.AI))
        clock.advance(25)
        entry = cache.put(P, M, OptimizationMethod.GRID, _params(clock, OptimizationMethod.GRID))

        assert entry.selected is OptimizationMethod.GRID
        assert cache.get_valid(P, M, OptimizationMethod.AI, FP) is None

    def test_write_stamps_method(self, cache, clock):
        params = _params(clock, OptimizationMethod.GRID)
        entry = cache.put(P, M, OptimizationMethod.AI, params)
        assert entry.ai.method is OptimizationMethod.AI
        assert params.method is OptimizationMethod.GRID

    def test_method_priority(self):
        ranked = sorted(OptimizationMethod, key=method_rank)
        assert ranked == [OptimizationMethod.AI, OptimizationMethod.GRID, OptimizationMethod.MANUAL]
        with pytest.raises(ValueError):
            method_rank('bogus')


class TestReads:

    def test_missing_entry(self, cache):
        assert cache.get(P, M) is None
        assert cache.get_selected(P, M, FP) is None
        assert cache.needs_optimization(P, M, FP)

    def test_get_returns_snapshot(self, cache, clock):
        cache.put(P, M, OptimizationMethod.GRID, _params(clock, OptimizationMethod.GRID))

        snapshot = cache.get(P, M)
        snapshot.grid.parameters['alpha'] = 0.99
        snapshot.selected = OptimizationMethod.MANUAL

        fresh = cache.get(P, M)
        assert fresh.grid.parameters == {'alpha': 0.5}
        assert fresh.selected is OptimizationMethod.GRID

    def test_get_selected_falls_back_when_selection_stale(self, cache, clock):
        cache.put(P, M, OptimizationMethod.GRID, _params(clock, OptimizationMethod.GRID))
        clock.advance(1)
        cache.put(P, M, OptimizationMethod.MANUAL,
                  _params(clock, OptimizationMethod.MANUAL, 0.2, data_hash='other'))

        selected = cache.get_selected(P, M, FP)
        assert selected.method is OptimizationMethod.GRID

    def test_needs_optimization(self, cache, clock):
        cache.put(P, M, OptimizationMethod.GRID, _params(clock, OptimizationMethod.GRID))
        assert cache.needs_optimization(P, M, FP)

        cache.put(P, M, OptimizationMethod.AI, _params(clock, OptimizationMethod.AI))
        assert not cache.needs_optimization(P, M, FP)
        assert cache.needs_optimization(P, M, 'changed-data')

        clock.advance(24)
        assert cache.needs_optimization(P, M, FP)


class TestSelectMethod:

    def test_select_valid_method(self, cache, clock):
        cache.put(P, M, OptimizationMethod.GRID, _params(clock, OptimizationMethod.GRID))
        cache.put(P, M, OptimizationMethod.AI, _params(clock, OptimizationMethod.AI))

        entry = cache.select_method(P, M, OptimizationMethod.GRID, FP)
        assert entry.selected is OptimizationMethod.GRID
        assert cache.get(P, M).selected is OptimizationMethod.GRID

    def test_select_missing_method(self, cache, clock):
        cache.put(P, M, OptimizationMethod.GRID, _params(clock, OptimizationMethod.GRID))
        assert cache.select_method(P, M, OptimizationMethod.AI, FP) is None
        assert cache.select_method('unknown', M, OptimizationMethod.GRID, FP) is None

    def test_select_manual_seeds_from_current(self, cache, clock):
        cache.put(P, M, OptimizationMethod.AI, _params(clock, OptimizationMethod.AI, 0.7))

        entry = cache.select_method(P, M, OptimizationMethod.MANUAL, FP)

        assert entry.selected is OptimizationMethod.MANUAL
        assert entry.manual.parameters == {'alpha': 0.7}
        assert entry.manual.data_hash == FP


class TestJsonFileStore:

    def test_persists_across_instances(self, tmp_path, clock):
        path = tmp_path / 'cache' / 'optimization_cache.json'
        cache = OptimizationCache(JsonFileCacheStore(str(path)), clock=clock)
        cache.put(P, M, OptimizationMethod.GRID, _params(clock, OptimizationMethod.GRID))
        cache.put(P, M, OptimizationMethod.AI, _params(clock, OptimizationMethod.AI, 0.8))

        raw = json.loads(path.read_text())
        assert raw[P][M]['selected'] == 'ai'

        reloaded = OptimizationCache(JsonFileCacheStore(str(path)), clock=clock)
        entry = reloaded.get(P, M)
        assert entry.selected is OptimizationMethod.AI
        assert entry.ai.parameters == {'alpha': 0.8}
        assert entry.ai.method is OptimizationMethod.AI
        assert not reloaded.needs_optimization(P, M, FP)

    def test_unreadable_file_starts_empty(self, tmp_path):
        path = tmp_path / 'cache.json'
        path.write_text('{broken')
        store = JsonFileCacheStore(str(path))
        assert list(store.items()) == []

    def test_write_failure_raises_persistence_error(self, tmp_path, clock):
        cache = OptimizationCache(JsonFileCacheStore(str(tmp_path)), clock=clock)
        with pytest.raises(PersistenceError):
            cache.put(P, M, OptimizationMethod.GRID, _params(clock, OptimizationMethod.GRID))
        assert cache.get(P, M) is None
        assert list(cache.store.items()) == []

    @pytest.mark.parametrize('content', [
        '[1, 2, 3]',
        '{"A123": {"simple_exponential_smoothing": {"grid": {"data_hash": "x"}}}}',
        '{"A123": "not a mapping"}',
    ])
    def test_malformed_file_starts_empty(self, tmp_path, content):
        path = tmp_path / 'cache.json'
        path.write_text(content)
        store = JsonFileCacheStore(str(path))
        assert list(store.items()) == []
