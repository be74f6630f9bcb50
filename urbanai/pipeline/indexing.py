"""
Document Indexing
=================

Carica i chunk di un documento processato nel vector store.

Flusso:
1. Filtro qualità (campi presenti, lunghezza minima, token massimi, quality score)
2. Embedding a batch tramite l'EmbeddingService iniettato
3. Upsert {id, values, metadata} a batch di 100 nel namespace di destinazione

Le chiamate ai servizi esterni ripetono con backoff esponenziale (tenacity);
a retry esauriti viene sollevato IndexingError.

Usage:
    from urbanai.pipeline.indexing import DocumentIndexer

    indexer = DocumentIndexer(embedder, store)
    result = await indexer.index_document(processed)
    print(result.summary())
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import structlog
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

from urbanai.config.environments import EnvironmentConfig
from urbanai.config.settings import IndexingConfig
from urbanai.exceptions import IndexingError
from urbanai.models.namespaces import (
    JURISPRUDENCE,
    JURISPRUDENCE_DOCUMENT_TYPES,
    LAWS_NATIONAL,
    LAWS_REGIONAL,
    NATIONAL_DOCUMENT_TYPES,
    REGIONAL_DOCUMENT_TYPES,
    URBANISTICA_BASE,
)
from urbanai.pipeline.chunking import Chunk, ChunkingResult
from urbanai.pipeline.metadata import EnrichedMetadata, MetadataEnricher
from urbanai.pipeline.parsing import Document
from urbanai.storage.interfaces import EmbeddingService, VectorStore, call_service

log = structlog.get_logger()


@dataclass
class ProcessedDocument:
    """Output di parse -> chunk -> enrich, pronto per l'indicizzazione."""
    document: Document
    chunking: ChunkingResult
    metadata: EnrichedMetadata

    @property
    def document_id(self) -> str:
        return self.document.document_id

    @property
    def chunks(self) -> List[Chunk]:
        return self.chunking.chunks


@dataclass
class IndexingResult:
    """
    Esito dell'indicizzazione di un documento.

    Attributes:
        document_id: Documento indicizzato
        namespace: Namespace fisico di destinazione
        total_chunks: Chunk prodotti dal chunker
        eligible_chunks: Chunk che superano il filtro qualità
        indexed_chunks: Vettori effettivamente scritti (0 in dry run)
        batches: Numero di upsert eseguiti
        skipped: Chunk scartati per motivo
        dry_run: Nessuna scrittura eseguita
        duration_seconds: Tempo totale
    """
    document_id: str
    namespace: str
    total_chunks: int
    eligible_chunks: int = 0
    indexed_chunks: int = 0
    batches: int = 0
    skipped: Dict[str, int] = field(default_factory=dict)
    dry_run: bool = False
    duration_seconds: float = 0.0

    def summary(self) -> str:
        mode = "DRY RUN " if self.dry_run else ""
        return (
            f"{mode}Indexing {self.document_id} -> {self.namespace}: "
            f"{self.indexed_chunks}/{self.eligible_chunks} indexed "
            f"({self.total_chunks} chunks, {self.batches} batches) "
            f"in {self.duration_seconds:.2f}s"
        )


@dataclass
class BatchIndexingResult:
    """Esito di index_batch."""
    total_documents: int
    successful: int = 0
    failed: int = 0
    indexed_chunks: int = 0
    results: List[IndexingResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success_rate(self) -> float:
        return self.successful / self.total_documents if self.total_documents > 0 else 0.0

    def summary(self) -> str:
        return (
            f"BatchIndexing: {self.successful}/{self.total_documents} "
            f"({self.success_rate:.1%}) in {self.duration_seconds:.1f}s | "
            f"Chunks: {self.indexed_chunks} | Errors: {len(self.errors)}"
        )


def route_namespace(metadata: EnrichedMetadata) -> str:
    """
    Namespace logico di default per un documento.

    Atti regionali (tipo regionale o autorità "Regione ...") -> laws-regional,
    sentenze -> jurisprudence, atti statali -> laws-national, altro -> urbanistica-base.
    """
    doc_type = metadata.document_type
    if doc_type in REGIONAL_DOCUMENT_TYPES or metadata.authority.lower().startswith("regione"):
        return LAWS_REGIONAL
    if doc_type in JURISPRUDENCE_DOCUMENT_TYPES:
        return JURISPRUDENCE
    if doc_type in NATIONAL_DOCUMENT_TYPES:
        return LAWS_NATIONAL
    return URBANISTICA_BASE


class DocumentIndexer:
    """
    Indicizza documenti processati nel vector store.

    Args:
        embedding_service: Servizio di embedding (sync o async)
        vector_store: Vector store (sync o async)
        config: IndexingConfig (default: valori standard)
        enricher: MetadataEnricher per i metadati dei chunk
        environment: Se presente, i namespace logici vengono mappati su quelli fisici
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        config: Optional[IndexingConfig] = None,
        enricher: Optional[MetadataEnricher] = None,
        environment: Optional[EnvironmentConfig] = None,
    ):
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.config = config or IndexingConfig()
        self.enricher = enricher or MetadataEnricher()
        self.environment = environment

    def resolve_namespace(self, processed: ProcessedDocument, namespace: Optional[str] = None) -> str:
        """Namespace esplicito > default di config > routing per tipo; poi mappatura d'ambiente."""
        logical = namespace or self.config.default_namespace or route_namespace(processed.metadata)
        if self.environment is not None:
            return self.environment.physical_namespace(logical)
        return logical

    def filter_chunks(
        self,
        chunks: Sequence[Chunk],
        skip_quality_filter: bool = False,
    ) -> Tuple[List[Chunk], Dict[str, int]]:
        """
        Applica il filtro qualità.

        Returns:
            (chunk idonei, conteggio scartati per motivo)
        """
        eligible: List[Chunk] = []
        skipped: Dict[str, int] = {}

        def reject(reason: str) -> None:
            skipped[reason] = skipped.get(reason, 0) + 1

        min_chars = self.config.min_tokens * 4
        for chunk in chunks:
            if not chunk.chunk_id or not chunk.text:
                reject("missing_fields")
            elif len(chunk.text) < min_chars:
                reject("too_short")
            elif chunk.tokens > self.config.max_tokens:
                reject("too_long")
            elif not skip_quality_filter and chunk.quality_score < self.config.min_quality_score:
                reject("low_quality")
            else:
                eligible.append(chunk)
        return eligible, skipped

    async def index_document(
        self,
        processed: ProcessedDocument,
        namespace: Optional[str] = None,
        dry_run: bool = False,
        skip_quality_filter: bool = False,
    ) -> IndexingResult:
        """
        Indicizza un documento.

        Args:
            processed: Documento processato
            namespace: Namespace logico (default: routing per tipo di atto)
            dry_run: Calcola il filtro senza chiamare i servizi
            skip_quality_filter: Ignora la soglia di quality score

        Returns:
            IndexingResult

        Raises:
            IndexingError: Embedding o upsert falliti dopo tutti i retry
        """
        start = time.perf_counter()
        target = self.resolve_namespace(processed, namespace)
        eligible, skipped = self.filter_chunks(processed.chunks, skip_quality_filter)

        result = IndexingResult(
            document_id=processed.document_id,
            namespace=target,
            total_chunks=len(processed.chunks),
            eligible_chunks=len(eligible),
            skipped=skipped,
            dry_run=dry_run,
        )

        if skipped:
            log.info("Chunks filtered out", document_id=processed.document_id, skipped=skipped)

        if not eligible:
            log.warning("No chunks eligible for indexing", document_id=processed.document_id)
            result.duration_seconds = time.perf_counter() - start
            return result

        if dry_run:
            log.info(
                "Dry run, skipping upsert",
                document_id=processed.document_id,
                namespace=target,
                would_index=len(eligible),
            )
            result.duration_seconds = time.perf_counter() - start
            return result

        vectors = await self._embed_chunks(processed.document_id, eligible)
        records = [
            {
                "id": chunk.chunk_id,
                "values": vector,
                "metadata": self.enricher.build_vector_metadata(
                    chunk, processed.metadata, total_chunks=len(processed.chunks)
                ),
            }
            for chunk, vector in zip(eligible, vectors)
        ]

        batch_size = self.config.batch_size
        for i in range(0, len(records), batch_size):
            batch = records[i:i + batch_size]
            await self._call_with_retry(
                self.vector_store.upsert,
                batch,
                target,
                stage="upsert",
                document_id=processed.document_id,
            )
            result.batches += 1
            result.indexed_chunks += len(batch)
            log.debug(
                "Batch upserted",
                document_id=processed.document_id,
                batch=result.batches,
                vectors=len(batch),
            )

        result.duration_seconds = time.perf_counter() - start
        log.info(result.summary())
        return result

    async def index_batch(
        self,
        documents: Sequence[ProcessedDocument],
        namespace: Optional[str] = None,
        dry_run: bool = False,
    ) -> BatchIndexingResult:
        """
        Indicizza più documenti in sequenza, con una pausa tra uno e l'altro.

        Gli errori di un documento non interrompono il batch: vengono
        registrati in BatchIndexingResult.errors.
        """
        start = time.perf_counter()
        batch_result = BatchIndexingResult(total_documents=len(documents))

        for i, processed in enumerate(documents):
            if i > 0 and self.config.processing_delay_seconds > 0:
                await asyncio.sleep(self.config.processing_delay_seconds)

            try:
                result = await self.index_document(processed, namespace=namespace, dry_run=dry_run)
            except Exception as e:
                log.error("Document indexing failed", document_id=processed.document_id, error=str(e))
                batch_result.failed += 1
                batch_result.errors.append(f"{processed.document_id}: {e}")
                continue

            batch_result.successful += 1
            batch_result.indexed_chunks += result.indexed_chunks
            batch_result.results.append(result)

        batch_result.duration_seconds = time.perf_counter() - start
        log.info(batch_result.summary())
        return batch_result

    async def _embed_chunks(self, document_id: str, chunks: Sequence[Chunk]) -> List[List[float]]:
        vectors: List[List[float]] = []
        batch_size = self.config.batch_size
        for i in range(0, len(chunks), batch_size):
            texts = [chunk.text for chunk in chunks[i:i + batch_size]]
            embedded = await self._call_with_retry(
                self.embedding_service.embed_batch,
                texts,
                stage="embedding",
                document_id=document_id,
            )
            if len(embedded) != len(texts):
                raise IndexingError(
                    f"Embedding service returned {len(embedded)} vectors for {len(texts)} texts",
                    document_id=document_id,
                    stage="embedding",
                )
            vectors.extend(list(v) for v in embedded)
        return vectors

    def _before_sleep(self, stage: str, document_id: str) -> Callable[[RetryCallState], None]:
        def _log(retry_state: RetryCallState) -> None:
            log.warning(
                "Service call failed, retrying",
                stage=stage,
                document_id=document_id,
                attempt=retry_state.attempt_number,
                error=str(retry_state.outcome.exception()) if retry_state.outcome else "unknown",
            )
        return _log

    async def _call_with_retry(
        self,
        method: Callable[..., Any],
        *args: Any,
        stage: str,
        document_id: str,
    ) -> Any:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.retry_attempts),
            wait=wait_exponential(
                multiplier=2,
                min=self.config.retry_min_wait_seconds,
                max=self.config.retry_max_wait_seconds,
            ),
            before_sleep=self._before_sleep(stage, document_id),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await call_service(method, *args)
        except Exception as e:
            raise IndexingError(
                f"{stage} failed after {self.config.retry_attempts} attempts: {e}",
                document_id=document_id,
                stage=stage,
            ) from e


__all__ = [
    "ProcessedDocument",
    "IndexingResult",
    "BatchIndexingResult",
    "route_namespace",
    "DocumentIndexer",
]
