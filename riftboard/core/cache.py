"""Primitivas de caché en memoria: TTL con capacidad y caché con tags"""
import time
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

LATEST_ACTIVITY_TAG_PREFIX = "lb-latest-activity"
MOVERS_TAG_PREFIX = "lb-movers"


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


class TTLCache(Generic[T]):
    """
    Caché con Time-To-Live por entrada y capacidad máxima.

    - get(): devuelve el valor solo si no ha expirado; si expiró lo elimina.
    - set(): guarda con expires_at = ahora + ttl, purga expirados y, si sigue
      por encima de la capacidad, elimina las entradas más viejas.

    La expulsión por capacidad es FIFO por orden de inserción (el orden del
    dict), no LRU: leer una entrada no la "rejuvenece", y reescribir una clave
    existente conserva su posición original.
    """

    def __init__(
        self,
        max_entries: int = 50,
        default_ttl: float = 300,
        clock: Callable[[], float] = time.time,
        name: str = "cache",
    ):
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self.name = name
        self._clock = clock
        self._store: Dict[str, CacheEntry[T]] = {}

    def get(self, key: str) -> Optional[T]:
        entry = self._store.get(key)
        if entry is None:
            return None

        if entry.expires_at <= self._clock():
            del self._store[key]
            logger.debug(f"[CACHE EXPIRED] {self.name}: {key}")
            return None

        return entry.value

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._store[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
        self._prune()

    def _prune(self) -> None:
        now = self._clock()
        expired = [k for k, entry in self._store.items() if entry.expires_at <= now]
        for key in expired:
            del self._store[key]

        overflow = len(self._store) - self.max_entries
        if overflow <= 0:
            return

        oldest = list(self._store.keys())[:overflow]
        for key in oldest:
            del self._store[key]
        logger.debug(
            f"[CACHE EVICTION] {self.name}: límite {self.max_entries} alcanzado, "
            f"eliminadas {len(oldest)} entradas"
        )

    def delete(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    def clear(self) -> None:
        self._store.clear()

    def __contains__(self, key: str) -> bool:
        entry = self._store.get(key)
        return entry is not None and entry.expires_at > self._clock()

    def __len__(self) -> int:
        return len(self._store)

    def get_stats(self) -> Dict[str, Any]:
        size = len(self._store)
        return {
            "name": self.name,
            "size": size,
            "max_size": self.max_entries,
            "usage_percent": (size / self.max_entries * 100) if self.max_entries > 0 else 0,
        }


class TaggedCache:
    """Caché TTL donde cada entrada lleva tags; revalidate_tag() invalida por tag"""

    def __init__(
        self,
        max_entries: int = 500,
        default_ttl: float = 30,
        clock: Callable[[], float] = time.time,
        name: str = "tagged",
    ):
        self._cache: TTLCache[Any] = TTLCache(
            max_entries=max_entries, default_ttl=default_ttl, clock=clock, name=name
        )
        self._tags: Dict[str, Set[str]] = {}

    def get(self, key: str) -> Optional[Any]:
        return self._cache.get(key)

    def set(self, key: str, value: Any, ttl: Optional[float] = None, tags: Iterable[str] = ()) -> None:
        self._cache.set(key, value, ttl)
        for tag in tags:
            self._tags.setdefault(tag, set()).add(key)
        self._prune_tags()

    def _prune_tags(self) -> None:
        """Quita del índice las claves que expiraron o fueron desalojadas"""
        for tag in list(self._tags):
            live = {key for key in self._tags[tag] if key in self._cache}
            if live:
                self._tags[tag] = live
            else:
                del self._tags[tag]

    def revalidate_tag(self, tag: str) -> int:
        """Elimina todas las entradas marcadas con el tag; devuelve cuántas había"""
        keys = self._tags.pop(tag, set())
        removed = sum(1 for key in keys if self._cache.delete(key))
        self._prune_tags()
        logger.info(f"[CACHE REVALIDATE] tag={tag} entradas eliminadas={removed}")
        return removed

    def get_stats(self) -> Dict[str, Any]:
        stats = self._cache.get_stats()
        stats["tags"] = len(self._tags)
        return stats


def latest_activity_tag(lb_id: str) -> str:
    return f"{LATEST_ACTIVITY_TAG_PREFIX}:{lb_id}"


def movers_tag(lb_id: str) -> str:
    return f"{MOVERS_TAG_PREFIX}:{lb_id}"


def leaderboard_cache_tags(lb_id: str) -> List[str]:
    return [latest_activity_tag(lb_id), movers_tag(lb_id)]
