# Result cache and metrics collector for order-core
# Both are passed in explicitly; nothing here is a module-level singleton

import copy
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional

from .config import DEFAULT_CACHE_MAX_ENTRIES, DEFAULT_CACHE_TTL_SECONDS


class TTLCache:
    """Bounded-size cache whose entries expire after ttl_seconds"""

    def __init__(self, ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
                 max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
                 clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0 or max_entries <= 0:
            raise ValueError("ttl_seconds and max_entries must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._store: 'OrderedDict[Any, tuple]' = OrderedDict()
        self.lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key) -> Optional[Any]:
        with self.lock:
            entry = self._store.get(key)
            if entry is None:
                self.misses += 1
                return None
            expires_at, value = entry
            if self._clock() > expires_at:
                del self._store[key]
                self.misses += 1
                return None
            self.hits += 1
            return copy.deepcopy(value)

    def set(self, key, value) -> None:
        with self.lock:
            if key in self._store:
                del self._store[key]
            self._store[key] = (self._clock() + self.ttl_seconds, copy.deepcopy(value))
            while len(self._store) > self.max_entries:
                # oldest insertion goes first
                self._store.popitem(last=False)

    def prune(self) -> int:
        """Drop expired entries; returns how many were removed"""
        now = self._clock()
        with self.lock:
            expired = [k for k, (expires_at, _) in self._store.items() if now > expires_at]
            for k in expired:
                del self._store[k]
        return len(expired)

    def clear(self) -> None:
        with self.lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    def get_stats(self) -> Dict[str, Any]:
        return {
            'entries': len(self._store),
            'max_entries': self.max_entries,
            'ttl_seconds': self.ttl_seconds,
            'hits': self.hits,
            'misses': self.misses,
        }


class MetricsCollector:
    """Counters/timings keyed by name; count, sum, min and max per name"""

    def __init__(self):
        self.metrics: Dict[str, Dict[str, float]] = {}
        self.lock = threading.Lock()

    def record(self, name: str, value: float = 1) -> None:
        with self.lock:
            metric = self.metrics.get(name)
            if metric is None:
                metric = {'count': 0, 'sum': 0.0, 'min': value, 'max': value}
                self.metrics[name] = metric
            metric['count'] += 1
            metric['sum'] += value
            metric['min'] = min(metric['min'], value)
            metric['max'] = max(metric['max'], value)

    def count(self, name: str) -> int:
        metric = self.metrics.get(name)
        return int(metric['count']) if metric else 0

    def total(self, name: str) -> float:
        metric = self.metrics.get(name)
        return metric['sum'] if metric else 0.0

    def get_stats(self, prefix: str = '') -> List[Dict[str, Any]]:
        with self.lock:
            return [
                {
                    'name': name,
                    'count': int(m['count']),
                    'average': round(m['sum'] / m['count'], 2) if m['count'] else 0.0,
                    'min': m['min'],
                    'max': m['max'],
                    'total': m['sum'],
                }
                for name, m in sorted(self.metrics.items())
                if name.startswith(prefix)
            ]

    def reset(self) -> None:
        with self.lock:
            self.metrics = {}
