"""
urban-ai: Assistente urbanistico-legale per la normativa italiana
=================================================================

RAG su quattro corpora (legislazione nazionale, regionale, giurisprudenza,
urbanistica di base): chunking gerarchico dei testi normativi, routing
delle query per strategia, ricerca multi-corpus pesata e risposte con
citazioni e disclaimer.

Quick Start:
    from urbanai import UrbanLegalAssistant, load_config

    assistant = UrbanLegalAssistant(embedder, store, load_config())

    # Ingestion
    result = await assistant.ingest(html, {"type": "legge", "number": "1150/1942"}, is_html=True)

    # Query
    response = await assistant.ask("Distanze minime tra edifici in zona B?")
    print(response.answer)

Componenti:
- pipeline: TextSegmenter, LegalChunker, MetadataEnricher, DocumentIndexer
- routing: QueryClassifier
- storage: MultiCorpusSearchCoordinator, TTLCache
- response: ResponseComposer
- core: UrbanLegalAssistant
"""

__version__ = "0.1.0"
__author__ = "urban-ai Team"

# Core API
from urbanai.config import UrbanaiConfig, load_config
from urbanai.core import UrbanLegalAssistant

# Convenience exports
from urbanai.pipeline import chunk_document, extract_metadata, parse_document
from urbanai.routing import classify_query
from urbanai.storage import MultiCorpusSearchCoordinator, search
from urbanai.response import compose_response
from urbanai.exceptions import (
    ClassificationInvariantError,
    ConfigurationError,
    IndexingError,
    MalformedRecordError,
    UrbanaiError,
)

__all__ = [
    # Core
    "UrbanLegalAssistant",
    "UrbanaiConfig",
    "load_config",
    # Pipeline
    "parse_document",
    "chunk_document",
    "extract_metadata",
    # Query path
    "classify_query",
    "MultiCorpusSearchCoordinator",
    "search",
    "compose_response",
    # Errors
    "UrbanaiError",
    "MalformedRecordError",
    "ClassificationInvariantError",
    "ConfigurationError",
    "IndexingError",
]
