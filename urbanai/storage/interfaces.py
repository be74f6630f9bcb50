"""
Storage Interfaces
==================

Contratti verso i servizi esterni: modello di embedding e vector store.

Il core non fornisce implementazioni concrete. Qualunque client che
espone questi metodi (sync o async) può essere iniettato: le chiamate
sincrone vengono eseguite in un thread con asyncio.to_thread per non
bloccare l'event loop.

Esempio:
    class MyStore:
        def query(self, vector, top_k, namespace, filter=None, include_metadata=True):
            return client.query(...)

    matches = await call_service(store.query, vector, 10, "laws-national")
"""

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable


@runtime_checkable
class EmbeddingService(Protocol):
    """Servizio di embedding: testo -> vettore."""

    def embed(self, text: str) -> List[float]:
        ...

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        ...


@runtime_checkable
class VectorStore(Protocol):
    """
    Vector store partizionato in namespace.

    query() restituisce una lista di match oppure un mapping con chiave
    "matches"; ogni match espone id, score e metadata (come chiavi o attributi).
    """

    def upsert(self, vectors: List[Dict[str, Any]], namespace: str) -> Any:
        ...

    def query(
        self,
        vector: Sequence[float],
        top_k: int,
        namespace: str,
        filter: Optional[Mapping[str, Any]] = None,
        include_metadata: bool = True,
    ) -> Any:
        ...

    def fetch(self, ids: Sequence[str], namespace: str) -> Any:
        ...

    def delete_namespace(self, namespace: str) -> Any:
        ...


async def call_service(method: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """
    Invoca un metodo di un servizio esterno, sync o async.

    Coroutine function: awaited direttamente. Funzioni sincrone: eseguite
    con asyncio.to_thread; se restituiscono un awaitable viene atteso.
    """
    if inspect.iscoroutinefunction(method):
        return await method(*args, **kwargs)
    result = await asyncio.to_thread(method, *args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


__all__ = ["EmbeddingService", "VectorStore", "call_service"]
