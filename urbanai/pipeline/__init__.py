"""
urban-ai Pipeline
=================

Pipeline di processing dei documenti normativi.

Componenti:
- TextSegmenter: Segmentazione in articoli e commi
- LegalChunker: Chunking gerarchico entro il budget di token
- MetadataEnricher: Classificazione e metadati per il ranking
- DocumentIndexer: Embedding e upsert nel vector store

Esempio:
    from urbanai.config import ChunkerConfig
    from urbanai.pipeline import parse_document, chunk_document, extract_metadata

    document = parse_document(html, {"type": "legge", "number": "1150/1942"}, is_html=True)
    result = chunk_document(document, ChunkerConfig.preset("standard"))
    metadata = extract_metadata(document)
"""

from urbanai.pipeline.parsing import (
    Article,
    Comma,
    Document,
    TextSegmenter,
    estimate_tokens,
    is_legal_document,
    parse_document,
)
from urbanai.pipeline.chunking import (
    Chunk,
    ChunkHierarchy,
    ChunkingResult,
    ChunkType,
    LegalChunker,
    chunk_document,
)
from urbanai.pipeline.metadata import (
    ChunkAnnotations,
    EnrichedMetadata,
    MetadataEnricher,
    extract_metadata,
    flatten_metadata,
)
from urbanai.pipeline.indexing import (
    DocumentIndexer,
    IndexingResult,
    ProcessedDocument,
    route_namespace,
)

__all__ = [
    # Parsing
    "Article",
    "Comma",
    "Document",
    "TextSegmenter",
    "estimate_tokens",
    "is_legal_document",
    "parse_document",
    # Chunking
    "Chunk",
    "ChunkHierarchy",
    "ChunkingResult",
    "ChunkType",
    "LegalChunker",
    "chunk_document",
    # Metadata
    "ChunkAnnotations",
    "EnrichedMetadata",
    "MetadataEnricher",
    "extract_metadata",
    "flatten_metadata",
    # Indexing
    "DocumentIndexer",
    "IndexingResult",
    "ProcessedDocument",
    "route_namespace",
]
