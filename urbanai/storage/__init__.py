"""
urban-ai Storage
================

Contratti verso embedding e vector store, ricerca multi-corpus e cache.

Componenti:
- EmbeddingService / VectorStore: Protocol dei servizi esterni
- MultiCorpusSearchCoordinator: Fan-out, merge e ranking
- TTLCache: Cache in memoria delle risposte

Esempio:
    from urbanai.storage import MultiCorpusSearchCoordinator

    coordinator = MultiCorpusSearchCoordinator(store)
    result = await coordinator.search(vector, classification)
"""

from urbanai.storage.interfaces import EmbeddingService, VectorStore, call_service
from urbanai.storage.models import NamespaceResult, SearchMatch, SearchResult
from urbanai.storage.search import MultiCorpusSearchCoordinator, relevance_category, search
from urbanai.storage.cache import ResponseCache, TTLCache, make_cache_key

__all__ = [
    # Interfaces
    "EmbeddingService",
    "VectorStore",
    "call_service",
    # Models
    "SearchMatch",
    "NamespaceResult",
    "SearchResult",
    # Search
    "MultiCorpusSearchCoordinator",
    "relevance_category",
    "search",
    # Cache
    "ResponseCache",
    "TTLCache",
    "make_cache_key",
]
