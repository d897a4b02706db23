"""
Optimization Queue Module

Pending (product, model) pairs waiting for the batch processor. Items are
kept in insertion order and de-duplicated per pair; they leave the queue
when their pair completes, is judged unnecessary, or is cancelled.
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Tuple

logger = logging.getLogger(__name__)


class QueueReason(str, Enum):
    """Why a pair was queued"""
    CSV_UPLOAD = 'csv_upload'
    MANUAL = 'manual'
    SETTINGS_CHANGE = 'settings_change'
    DATA_CLEANING = 'data_cleaning'


@dataclass
class QueueItem:
    product_id: str
    model_id: str
    reason: QueueReason = QueueReason.MANUAL
    timestamp: float = field(default_factory=time.time)

    @property
    def pair(self) -> Tuple[str, str]:
        return (self.product_id, self.model_id)


class QueueStore:
    """Backend interface for the optimization queue"""

    def enqueue(self, items: Iterable[QueueItem]) -> int:
        raise NotImplementedError

    def dequeue_combinations(self) -> List[Tuple[str, List[str]]]:
        raise NotImplementedError

    def remove_pairs(self, pairs: Iterable[Tuple[str, str]]) -> int:
        raise NotImplementedError

    def remove_products(self, product_ids: Iterable[str]) -> int:
        raise NotImplementedError

    def contains(self, product_id: str, model_id: str) -> bool:
        raise NotImplementedError

    def __len__(self) -> int:
        raise NotImplementedError


class InMemoryQueueStore(QueueStore):
    """Insertion-ordered in-process queue"""

    def __init__(self):
        self._items: 'OrderedDict[Tuple[str, str], QueueItem]' = OrderedDict()

    def enqueue(self, items: Iterable[QueueItem]) -> int:
        """
        Add items, ignoring pairs that are already queued

        Returns:
            Number of newly queued pairs
        """
        added = 0
        for item in items:
            if item.pair in self._items:
                continue
            self._items[item.pair] = item
            added += 1
        logger.debug("Queued %d new pairs (%d pending)", added, len(self._items))
        return added

    def dequeue_combinations(self) -> List[Tuple[str, List[str]]]:
        """
        Pending work grouped by product

        Items stay queued until removed explicitly.

        Returns:
            List of (product_id, [model_id, ...]) in insertion order
        """
        grouped: 'OrderedDict[str, List[str]]' = OrderedDict()
        for product_id, model_id in self._items:
            grouped.setdefault(product_id, []).append(model_id)
        return list(grouped.items())

    def remove_pairs(self, pairs: Iterable[Tuple[str, str]]) -> int:
        removed = 0
        for pair in pairs:
            if self._items.pop(tuple(pair), None) is not None:
                removed += 1
        return removed

    def remove_products(self, product_ids: Iterable[str]) -> int:
        targets = set(product_ids)
        doomed = [pair for pair in self._items if pair[0] in targets]
        for pair in doomed:
            del self._items[pair]
        return len(doomed)

    def contains(self, product_id: str, model_id: str) -> bool:
        return (product_id, model_id) in self._items

    def queued_products(self) -> List[str]:
        return [product_id for product_id, _ in self.dequeue_combinations()]

    def items(self) -> List[QueueItem]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)
