"""
Response Cache
==============

Cache delle risposte composte, indicizzata per query normalizzata.

ResponseCache è il contratto; TTLCache è l'implementazione in memoria
(TTL di default 30 minuti, numero massimo di voci, contatori hit/miss).
Un backend condiviso (es. Redis) può implementare lo stesso protocollo.

Esempio:
    >>> cache = TTLCache(ttl_seconds=1800)
    >>> key = make_cache_key("  Distanze minime?  ")
    >>> cache.set(key, response)
    >>> cache.get(key) is response
    True
"""

import hashlib
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

import structlog

log = structlog.get_logger()


def make_cache_key(query: str, top_k: Optional[int] = None, threshold: Optional[float] = None) -> str:
    """
    md5 della query minuscola e senza spazi ai bordi.

    top_k e threshold fanno parte della chiave: la stessa query con
    parametri di ricerca diversi non condivide la risposta.
    """
    raw = query.lower().strip()
    if top_k is not None or threshold is not None:
        raw = f"{raw}|top_k={top_k}|threshold={threshold}"
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


@runtime_checkable
class ResponseCache(Protocol):
    """Contratto minimo di una cache delle risposte."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def evict(self, key: str) -> bool:
        ...


class TTLCache:
    """
    Cache in memoria con scadenza e limite di voci.

    Le voci scadute vengono rimosse alla lettura e da purge_expired().
    Oltre max_entries viene rimossa la voce inserita per prima.

    Args:
        ttl_seconds: Durata di una voce
        max_entries: Numero massimo di voci
        clock: Sorgente del tempo in secondi (iniettabile nei test)
    """

    def __init__(
        self,
        ttl_seconds: float = 1800.0,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        stored_at, value = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            self.misses += 1
            return None

        self.hits += 1
        return value

    def set(self, key: str, value: Any) -> None:
        if key in self._entries:
            del self._entries[key]
        self._entries[key] = (self._clock(), value)
        while len(self._entries) > self.max_entries:
            oldest, _ = self._entries.popitem(last=False)
            log.debug("Cache entry evicted", key=oldest)

    def evict(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        """Rimuove le voci scadute. Ritorna il numero di voci rimosse."""
        now = self._clock()
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at > self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / total if total else 0.0,
            "ttl_seconds": self.ttl_seconds,
        }


__all__ = ["make_cache_key", "ResponseCache", "TTLCache"]
