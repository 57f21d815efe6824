from __future__ import annotations

import json
import time
from collections import OrderedDict
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Protocol

from .geometry import Coordinate

Clock = Callable[[], float]


def leg_cache_key(a: Coordinate, b: Coordinate) -> str:
    """Order-preserving key at 5 decimals (~1.1 m); A|B and B|A are distinct."""
    return f"{a.lat:.5f},{a.lng:.5f}|{b.lat:.5f},{b.lng:.5f}"


@dataclass(frozen=True)
class CacheEntry:
    data: tuple[Coordinate, ...]
    expires_at: float

    def to_json(self) -> dict[str, Any]:
        return {"data": [[c.lat, c.lng] for c in self.data], "expires_at": self.expires_at}

    @classmethod
    def from_json(cls, raw: object) -> CacheEntry | None:
        if not isinstance(raw, dict):
            return None
        expires_at = raw.get("expires_at")
        data = raw.get("data")
        if not isinstance(expires_at, (int, float)) or not isinstance(data, list) or not data:
            return None
        points: list[Coordinate] = []
        for pt in data:
            if not isinstance(pt, list) or len(pt) != 2:
                return None
            if not all(isinstance(v, (int, float)) for v in pt):
                return None
            points.append(Coordinate(lat=float(pt[0]), lng=float(pt[1])))
        return cls(data=tuple(points), expires_at=float(expires_at))


class LegStore(Protocol):
    def get(self, key: str) -> CacheEntry | None: ...

    def set(self, key: str, entry: CacheEntry) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> int: ...

    def __len__(self) -> int: ...


class MemoryLegStore:
    """Durable-store stand-in kept in process memory; FIFO-capped."""

    def __init__(self, *, max_entries: int = 300) -> None:
        self._max_entries = max(1, int(max_entries))
        self._lock = Lock()
        self._items: dict[str, CacheEntry] = {}

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._items.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            # Re-setting a key keeps its first insertion slot (FIFO, not LRU).
            self._items[key] = entry
            while len(self._items) > self._max_entries:
                del self._items[next(iter(self._items))]

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._items)
            self._items.clear()
            return cleared

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class JsonFileLegStore:
    """Leg store persisted as one JSON document; FIFO-capped like the memory store."""

    def __init__(self, path: Path, *, max_entries: int = 300) -> None:
        self._path = Path(path)
        self._max_entries = max(1, int(max_entries))
        self._lock = Lock()

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        if not isinstance(raw, dict):
            return {}
        return raw

    def _write(self, payload: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(payload), encoding="utf-8")

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            return CacheEntry.from_json(self._read().get(key))

    def set(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            payload = self._read()
            payload[key] = entry.to_json()
            overflow = len(payload) - self._max_entries
            if overflow > 0:
                for stale in list(payload)[:overflow]:
                    del payload[stale]
            self._write(payload)

    def delete(self, key: str) -> None:
        with self._lock:
            payload = self._read()
            if payload.pop(key, None) is not None:
                self._write(payload)

    def clear(self) -> int:
        with self._lock:
            if not self._path.exists():
                return 0
            count = len(self._read())
            self._write({})
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._read())


class LegCache:
    """Two-tier TTL cache for hop geometry: process memory in front of a durable store."""

    def __init__(
        self,
        *,
        store: LegStore,
        ttl_s: float = 7 * 24 * 3600,
        memory_max_entries: int = 2048,
        clock: Clock = time.time,
    ) -> None:
        self._store = store
        self._ttl_s = max(1.0, float(ttl_s))
        self._memory_max_entries = max(1, int(memory_max_entries))
        self._clock = clock
        self._lock = Lock()
        self._memory: OrderedDict[str, CacheEntry] = OrderedDict()

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def _remember(self, key: str, entry: CacheEntry) -> None:
        if key in self._memory:
            self._memory.move_to_end(key)
        self._memory[key] = entry
        while len(self._memory) > self._memory_max_entries:
            self._memory.popitem(last=False)
            self._evictions += 1

    def get(self, key: str) -> tuple[Coordinate, ...] | None:
        now = self._clock()
        with self._lock:
            entry = self._memory.get(key)
            if entry is not None:
                if now <= entry.expires_at:
                    self._memory.move_to_end(key)
                    self._hits += 1
                    return entry.data
                self._memory.pop(key, None)

        entry = self._store.get(key)
        with self._lock:
            if entry is None:
                self._misses += 1
                return None
            if now > entry.expires_at:
                self._misses += 1
                expired = True
            else:
                self._remember(key, entry)
                self._hits += 1
                expired = False
        if expired:
            self._store.delete(key)
            return None
        return entry.data

    def set(self, key: str, leg: Sequence[Coordinate]) -> None:
        entry = CacheEntry(data=tuple(leg), expires_at=self._clock() + self._ttl_s)
        with self._lock:
            self._remember(key, entry)
        self._store.set(key, entry)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        now = self._clock()
        with self._lock:
            entry = self._memory.get(key)
        if entry is None:
            entry = self._store.get(key)
        return entry is not None and now <= entry.expires_at

    def clear(self) -> int:
        with self._lock:
            in_memory = len(self._memory)
            self._memory.clear()
        stored = self._store.clear()
        return max(in_memory, stored)

    def snapshot(self) -> dict[str, int | float]:
        with self._lock:
            memory_size = len(self._memory)
            hits, misses, evictions = self._hits, self._misses, self._evictions
        return {
            "memory_size": memory_size,
            "store_size": len(self._store),
            "hits": hits,
            "misses": misses,
            "evictions": evictions,
            "ttl_s": self._ttl_s,
            "memory_max_entries": self._memory_max_entries,
        }
