"""
Urban Legal Assistant
=====================

Facade che collega tutti i componenti urban-ai:
- TextSegmenter + LegalChunker + MetadataEnricher (processing documenti)
- DocumentIndexer (embedding e upsert)
- QueryClassifier + MultiCorpusSearchCoordinator + ResponseComposer (query)
- TTLCache (risposte già composte)

Embedding e vector store sono servizi esterni iniettati.

Usage:
    from urbanai import UrbanLegalAssistant, load_config

    assistant = UrbanLegalAssistant(embedder, store, load_config("urbanai.yaml"))

    # Ingestion di un documento già scaricato
    result = await assistant.ingest(html, {
        "title": "Legge 17 agosto 1942, n. 1150 - Legge Urbanistica",
        "number": "1150/1942",
        "type": "legge",
        "source": "normattiva",
        "date": "1942-08-17",
    }, is_html=True)

    # Query
    response = await assistant.ask("Quali sono le distanze minime tra edifici?")
    print(response.answer)
"""

import asyncio
import dataclasses
import time
from typing import Any, Dict, Mapping, Optional

import structlog

from urbanai.config.environments import EnvironmentConfig
from urbanai.config.settings import UrbanaiConfig
from urbanai.pipeline.chunking import LegalChunker
from urbanai.pipeline.indexing import DocumentIndexer, IndexingResult, ProcessedDocument
from urbanai.pipeline.metadata import MetadataEnricher
from urbanai.pipeline.parsing import TextSegmenter, parse_document
from urbanai.response.composer import ComposedResponse, ResponseComposer
from urbanai.routing.classifier import QueryClassifier
from urbanai.storage.cache import ResponseCache, TTLCache, make_cache_key
from urbanai.storage.interfaces import EmbeddingService, VectorStore, call_service
from urbanai.storage.search import MultiCorpusSearchCoordinator

log = structlog.get_logger()


class UrbanLegalAssistant:
    """
    Assistente urbanistico-legale: ingestion e risposta alle query.

    Args:
        embedding_service: Servizio di embedding (sync o async)
        vector_store: Vector store (sync o async)
        config: Configurazione completa (default: UrbanaiConfig())
        cache: Cache delle risposte (default: TTLCache se abilitata in config)
        environment: Mappatura dei namespace logici su quelli fisici
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        config: Optional[UrbanaiConfig] = None,
        cache: Optional[ResponseCache] = None,
        environment: Optional[EnvironmentConfig] = None,
    ):
        self.config = config or UrbanaiConfig()
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.environment = environment

        self.segmenter = TextSegmenter()
        self.chunker = LegalChunker(self.config.chunker)
        self.enricher = MetadataEnricher()
        self.indexer = DocumentIndexer(
            embedding_service,
            vector_store,
            config=self.config.indexing,
            enricher=self.enricher,
            environment=environment,
        )
        self.classifier = QueryClassifier(self.config.classifier)
        self.coordinator = MultiCorpusSearchCoordinator(
            vector_store,
            config=self.config.search,
            environment=environment,
        )
        self.composer = ResponseComposer(self.config.composer)

        if cache is None and self.config.cache.enabled:
            cache = TTLCache(
                ttl_seconds=self.config.cache.ttl_seconds,
                max_entries=self.config.cache.max_entries,
            )
        self.cache = cache

        log.info(
            "UrbanLegalAssistant initialized",
            environment=environment.name if environment else None,
            cache=self.cache is not None,
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def process_document(
        self,
        raw_text: str,
        document_config: Optional[Mapping[str, Any]] = None,
        is_html: bool = False,
    ) -> ProcessedDocument:
        """
        Parse -> chunk -> enrich di un documento già scaricato.

        Args:
            raw_text: Testo o HTML del documento
            document_config: Record {title, number, type, source, date, authority}
            is_html: Estrai prima il testo dall'HTML

        Returns:
            ProcessedDocument
        """
        document = parse_document(raw_text, document_config, is_html=is_html, segmenter=self.segmenter)
        chunking = self.chunker.chunk_document(document)
        metadata = self.enricher.extract_metadata(document, document_config)
        return ProcessedDocument(document=document, chunking=chunking, metadata=metadata)

    async def ingest(
        self,
        raw_text: str,
        document_config: Optional[Mapping[str, Any]] = None,
        is_html: bool = False,
        namespace: Optional[str] = None,
        dry_run: bool = False,
    ) -> IndexingResult:
        """
        Processa e indicizza un documento.

        Raises:
            IndexingError: Embedding o upsert falliti dopo tutti i retry
        """
        processed = self.process_document(raw_text, document_config, is_html=is_html)
        return await self.indexer.index_document(processed, namespace=namespace, dry_run=dry_run)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def ask(
        self,
        query: str,
        top_k: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> ComposedResponse:
        """
        Risponde a una query.

        cache -> classify -> embed (con deadline) -> search -> compose.
        Errori di embedding o ricerca producono la risposta di scuse
        standard; le risposte valide vengono messe in cache.

        Raises:
            ValueError: Query vuota
        """
        if not query or not query.strip():
            raise ValueError("query must not be empty")

        start = time.perf_counter()
        search_cfg = self.config.search
        cache_key = make_cache_key(
            query,
            top_k=max(1, min(top_k or search_cfg.default_top_k, search_cfg.max_top_k)),
            threshold=search_cfg.relevance_threshold if threshold is None else float(threshold),
        )
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                log.info("Cache hit", key=cache_key)
                return dataclasses.replace(cached, metadata={**cached.metadata, "cached": True})

        classification = self.classifier.classify(query)
        embedding_text = self.classifier.expand_query(query)
        assistant_cfg = self.config.assistant

        try:
            vector = await asyncio.wait_for(
                call_service(self.embedding_service.embed, embedding_text),
                timeout=assistant_cfg.embedding_timeout_seconds,
            )
        except asyncio.TimeoutError:
            log.error("Query embedding timed out", timeout=assistant_cfg.embedding_timeout_seconds)
            return self.composer.error_response(classification, error_type="embedding_timeout")
        except Exception as e:
            log.error("Query embedding failed", error=str(e), exc_info=True)
            return self.composer.error_response(classification, error_type="embedding_failed")

        try:
            result = await asyncio.wait_for(
                self.coordinator.search(vector, classification, top_k=top_k, threshold=threshold),
                timeout=assistant_cfg.query_timeout_seconds,
            )
        except asyncio.TimeoutError:
            log.error("Search exceeded query deadline", timeout=assistant_cfg.query_timeout_seconds)
            return self.composer.error_response(classification, error_type="search_timeout")

        timing: Dict[str, Any] = {
            "cached": False,
            "failed_namespaces": result.failed_namespaces,
            "search_ms": round(result.duration_seconds * 1000, 1),
        }
        if result.is_total_failure:
            return self.composer.error_response(classification, error_type="search_failed", metadata=timing)

        response = self.composer.compose(query, result.matches, classification, metadata=timing)
        response.metadata["total_ms"] = round((time.perf_counter() - start) * 1000, 1)

        if self.cache is not None and not response.is_error and not result.failed_namespaces:
            self.cache.set(cache_key, response)
        return response


__all__ = ["UrbanLegalAssistant"]
