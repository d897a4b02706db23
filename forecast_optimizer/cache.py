"""
Optimization Cache Module

Stores method-tagged parameter sets per (product, model) and keeps a
`selected` method pointing at the one to use:
- Manual writes select manual immediately
- Other writes select the best valid method (AI > Grid > Manual) unless a
  still-valid manual selection is in place
- Entries are stale when their data hash no longer matches the current
  fingerprint or they are older than the expiry; stale entries are ignored
  but not deleted

Backends are pluggable: in-memory, or a JSON file for durability.
"""

import copy
import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Iterator, Optional, Tuple

from config import CACHE_CONFIG
from forecast_optimizer.errors import PersistenceError
from forecast_optimizer.models import OptimizationMethod, method_rank

logger = logging.getLogger(__name__)


@dataclass
class OptimizedParameters:
    """One cached parameter set"""
    parameters: Dict[str, float]
    timestamp: float
    data_hash: str
    confidence: Optional[float] = None
    reasoning: str = ''
    expected_accuracy: Optional[float] = None
    method: OptimizationMethod = OptimizationMethod.GRID

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['method'] = self.method.value
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'OptimizedParameters':
        return cls(
            parameters=dict(data.get('parameters') or {}),
            timestamp=float(data['timestamp']),
            data_hash=str(data['data_hash']),
            confidence=data.get('confidence'),
            reasoning=data.get('reasoning') or '',
            expected_accuracy=data.get('expected_accuracy'),
            method=OptimizationMethod(data.get('method', 'grid')),
        )


@dataclass
class CacheEntry:
    """All cached methods for one (product, model)"""
    ai: Optional[OptimizedParameters] = None
    grid: Optional[OptimizedParameters] = None
    manual: Optional[OptimizedParameters] = None
    selected: Optional[OptimizationMethod] = None

    def get(self, method: OptimizationMethod) -> Optional[OptimizedParameters]:
        if method is OptimizationMethod.AI:
            return self.ai
        if method is OptimizationMethod.GRID:
            return self.grid
        if method is OptimizationMethod.MANUAL:
            return self.manual
        raise ValueError(f"Unhandled optimization method: {method!r}")

    def set(self, method: OptimizationMethod, params: OptimizedParameters):
        if method is OptimizationMethod.AI:
            self.ai = params
        elif method is OptimizationMethod.GRID:
            self.grid = params
        elif method is OptimizationMethod.MANUAL:
            self.manual = params
        else:
            raise ValueError(f"Unhandled optimization method: {method!r}")

    def present_methods(self):
        return [m for m in OptimizationMethod if self.get(m) is not None]

    def to_dict(self) -> Dict:
        data = {m.value: self.get(m).to_dict() for m in self.present_methods()}
        data['selected'] = self.selected.value if self.selected else None
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'CacheEntry':
        entry = cls()
        for method in OptimizationMethod:
            if data.get(method.value):
                entry.set(method, OptimizedParameters.from_dict(data[method.value]))
        if data.get('selected'):
            entry.selected = OptimizationMethod(data['selected'])
        return entry


class CacheStore:
    """Backend interface for cache entries"""

    def load(self, product_id: str, model_id: str) -> Optional[CacheEntry]:
        raise NotImplementedError

    def save(self, product_id: str, model_id: str, entry: CacheEntry):
        raise NotImplementedError

    def items(self) -> Iterator[Tuple[Tuple[str, str], CacheEntry]]:
        raise NotImplementedError


class InMemoryCacheStore(CacheStore):
    """Process-local dictionary backend"""

    def __init__(self):
        self._entries: Dict[Tuple[str, str], CacheEntry] = {}

    def load(self, product_id, model_id):
        return self._entries.get((product_id, model_id))

    def save(self, product_id, model_id, entry):
        self._entries[(product_id, model_id)] = entry

    def items(self):
        return iter(list(self._entries.items()))


class JsonFileCacheStore(InMemoryCacheStore):
    """In-memory backend mirrored to a JSON file on every save"""

    def __init__(self, filepath: str = None):
        super().__init__()
        self.filepath = filepath or CACHE_CONFIG['cache_path']
        self._load_file()

    def _load_file(self):
        if not os.path.exists(self.filepath):
            return
        try:
            with open(self.filepath, 'r') as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable cache file %s: %s", self.filepath, e)
            return

        try:
            entries = {
                (product_id, model_id): CacheEntry.from_dict(entry)
                for product_id, models in raw.items()
                for model_id, entry in models.items()
            }
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed cache file %s: %s", self.filepath, e)
            return

        self._entries.update(entries)
        logger.info("Loaded %d cache entries from %s", len(self._entries), self.filepath)

    def save(self, product_id, model_id, entry):
        entries = dict(self._entries)
        entries[(product_id, model_id)] = entry

        nested: Dict[str, Dict[str, Dict]] = {}
        for (pid, mid), cached in entries.items():
            nested.setdefault(pid, {})[mid] = cached.to_dict()

        try:
            directory = os.path.dirname(self.filepath)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.filepath, 'w') as f:
                json.dump(nested, f, indent=2)
        except OSError as e:
            raise PersistenceError(f"Failed to write cache file {self.filepath}: {e}") from e

        self._entries = entries


class OptimizationCache:
    """Method-tagged parameter cache with auto-selection"""

    def __init__(self,
                 store: Optional[CacheStore] = None,
                 expiry_hours: float = None,
                 clock: Callable[[], float] = time.time):
        """
        Initialize optimization cache

        Args:
            store: Backend (in-memory when omitted)
            expiry_hours: Age after which entries are stale
            clock: Time source returning epoch seconds
        """
        self.store = store if store is not None else InMemoryCacheStore()
        self.expiry_hours = expiry_hours if expiry_hours is not None else CACHE_CONFIG['expiry_hours']
        self.clock = clock

    def is_valid(self, params: Optional[OptimizedParameters], fingerprint: str) -> bool:
        """Entry matches the current data and has not expired"""
        if params is None:
            return False
        age = self.clock() - params.timestamp
        return params.data_hash == fingerprint and age < self.expiry_hours * 3600

    def get(self, product_id: str, model_id: str) -> Optional[CacheEntry]:
        """Snapshot of the cache entry (mutating it does not affect the cache)"""
        entry = self.store.load(product_id, model_id)
        return copy.deepcopy(entry) if entry is not None else None

    def get_valid(self,
                  product_id: str,
                  model_id: str,
                  method: OptimizationMethod,
                  fingerprint: str) -> Optional[OptimizedParameters]:
        """The method's parameters if present and valid, else None"""
        entry = self.get(product_id, model_id)
        if entry is None:
            return None
        params = entry.get(method)
        return params if self.is_valid(params, fingerprint) else None

    def best_valid_method(self, entry: CacheEntry, fingerprint: str) -> Optional[OptimizationMethod]:
        valid = [m for m in entry.present_methods() if self.is_valid(entry.get(m), fingerprint)]
        if not valid:
            return None
        return min(valid, key=method_rank)

    def get_selected(self,
                     product_id: str,
                     model_id: str,
                     fingerprint: str) -> Optional[OptimizedParameters]:
        """
        Parameters to use for a (product, model)

        Returns the selected method's entry when valid, otherwise the best
        valid entry by priority, otherwise None.
        """
        entry = self.get(product_id, model_id)
        if entry is None:
            return None
        if entry.selected is not None and self.is_valid(entry.get(entry.selected), fingerprint):
            return entry.get(entry.selected)
        best = self.best_valid_method(entry, fingerprint)
        return entry.get(best) if best is not None else None

    def needs_optimization(self, product_id: str, model_id: str, fingerprint: str) -> bool:
        """True unless valid AI and Grid entries both exist"""
        return not (
            self.get_valid(product_id, model_id, OptimizationMethod.AI, fingerprint)
            and self.get_valid(product_id, model_id, OptimizationMethod.GRID, fingerprint)
        )

    def put(self,
            product_id: str,
            model_id: str,
            method: OptimizationMethod,
            params: OptimizedParameters) -> CacheEntry:
        """
        Write one method's parameters and reselect

        The written entry's data hash is taken as the current fingerprint when
        judging the validity of the other methods.

        Returns:
            Snapshot of the updated entry

        Raises:
            PersistenceError: if the backend write fails
        """
        method = OptimizationMethod(method)
        entry = self.get(product_id, model_id) or CacheEntry()
        params = copy.deepcopy(params)
        params.method = method
        entry.set(method, params)
        entry.selected = self._reselect(entry, method, params.data_hash)

        self.store.save(product_id, model_id, entry)
        logger.debug("Cache %s:%s %s written, selected=%s",
                     product_id, model_id, method.value, entry.selected.value)
        return copy.deepcopy(entry)

    def _reselect(self,
                  entry: CacheEntry,
                  written: OptimizationMethod,
                  fingerprint: str) -> OptimizationMethod:
        if written is OptimizationMethod.MANUAL:
            return OptimizationMethod.MANUAL

        current = entry.selected
        if current is OptimizationMethod.MANUAL and self.is_valid(entry.manual, fingerprint):
            return current

        best = self.best_valid_method(entry, fingerprint)
        return best if best is not None else written

    def select_method(self,
                      product_id: str,
                      model_id: str,
                      method: OptimizationMethod,
                      fingerprint: str) -> Optional[CacheEntry]:
        """
        Explicitly choose which method a (product, model) uses

        Choosing manual without a valid manual entry seeds one from the
        currently selected parameters. Choosing AI or Grid requires a valid
        entry for that method.

        Returns:
            Updated entry snapshot, or None if the choice cannot be honoured
        """
        method = OptimizationMethod(method)
        entry = self.get(product_id, model_id)
        if entry is None:
            return None

        if method is OptimizationMethod.MANUAL:
            if not self.is_valid(entry.manual, fingerprint):
                source = self.get_selected(product_id, model_id, fingerprint)
                if source is None:
                    return None
                seeded = OptimizedParameters(
                    parameters=dict(source.parameters),
                    timestamp=self.clock(),
                    data_hash=fingerprint,
                    confidence=source.confidence,
                    reasoning='Manual mode selected',
                    expected_accuracy=source.expected_accuracy,
                    method=OptimizationMethod.MANUAL
                )
                return self.put(product_id, model_id, OptimizationMethod.MANUAL, seeded)
        elif not self.is_valid(entry.get(method), fingerprint):
            logger.warning("Cannot select %s for %s:%s: no valid entry",
                           method.value, product_id, model_id)
            return None

        entry.selected = method
        self.store.save(product_id, model_id, entry)
        return copy.deepcopy(entry)
