"""
Test DocumentIndexer
====================

Filtro qualità, routing dei namespace, embedding a batch, upsert e retry
su servizi fake in memoria.
"""

import pytest

from urbanai.config import ChunkerConfig, IndexingConfig
from urbanai.exceptions import IndexingError
from urbanai.pipeline.chunking import Chunk, ChunkHierarchy, ChunkType, chunk_document
from urbanai.pipeline.indexing import DocumentIndexer, ProcessedDocument, route_namespace
from urbanai.pipeline.metadata import extract_metadata
from urbanai.pipeline.parsing import estimate_tokens, parse_document


def make_processed(document, config=None) -> ProcessedDocument:
    return ProcessedDocument(
        document=document,
        chunking=chunk_document(document, ChunkerConfig.preset("standard")),
        metadata=extract_metadata(document, config),
    )


def make_chunk(index: int, text: str, quality: int = 80) -> Chunk:
    return Chunk(
        chunk_id=f"doc_chunk{index}",
        text=text,
        tokens=estimate_tokens(text),
        position=index,
        hierarchy=ChunkHierarchy("doc"),
        chunk_type=ChunkType.TEXT_SEGMENT,
        quality_score=quality,
    )


@pytest.fixture
def processed(legge_1150_document, legge_1150_config):
    return make_processed(legge_1150_document, legge_1150_config)


class TestRouting:
    """Namespace di default per tipo di atto."""

    def test_national_law(self, processed):
        assert route_namespace(processed.metadata) == "laws-national"

    def test_regional_authority(self, legge_1150_document, legge_1150_config):
        config = {**legge_1150_config, "authority": "Regione Lombardia"}
        metadata = extract_metadata(legge_1150_document, config)
        assert route_namespace(metadata) == "laws-regional"

    def test_jurisprudence(self, legge_1150_document):
        metadata = extract_metadata(legge_1150_document, {"type": "sentenza"})
        assert route_namespace(metadata) == "jurisprudence"

    def test_unknown_document_goes_to_urban_corpus(self):
        doc = parse_document("Linee guida per il verde pubblico nei quartieri residenziali.", {"source": "comune"})
        assert route_namespace(extract_metadata(doc)) == "urbanistica-base"


class TestQualityFilter:
    """Filtro sui chunk prima dell'embedding."""

    def test_reasons(self, fake_embedder, fake_store):
        config = IndexingConfig(min_tokens=20, max_tokens=40, min_quality_score=50)
        indexer = DocumentIndexer(fake_embedder, fake_store, config=config)
        chunks = [
            make_chunk(0, "x" * 100),
            make_chunk(1, "troppo corto"),
            make_chunk(2, "y" * 200),
            make_chunk(3, "z" * 100, quality=30),
        ]

        eligible, skipped = indexer.filter_chunks(chunks)

        assert [c.chunk_id for c in eligible] == ["doc_chunk0"]
        assert skipped == {"too_short": 1, "too_long": 1, "low_quality": 1}

    def test_skip_quality_filter(self, fake_embedder, fake_store):
        indexer = DocumentIndexer(fake_embedder, fake_store)
        eligible, skipped = indexer.filter_chunks([make_chunk(0, "z" * 100, quality=30)], skip_quality_filter=True)

        assert len(eligible) == 1
        assert skipped == {}


class TestIndexDocument:
    """Embedding e upsert di un documento processato."""

    @pytest.mark.asyncio
    async def test_upserts_all_articles(self, processed, fake_embedder, fake_store, fast_indexing_config):
        indexer = DocumentIndexer(fake_embedder, fake_store, config=fast_indexing_config)

        result = await indexer.index_document(processed)

        assert result.namespace == "laws-national"
        assert result.total_chunks == 12
        assert result.eligible_chunks == 12
        assert result.indexed_chunks == 12
        assert result.batches == 1
        assert fake_embedder.batch_calls == 1

        namespace, vectors = fake_store.upserts[0]
        assert namespace == "laws-national"
        assert vectors[0]["id"] == "normattiva_legge_1150_1942_art1_chunk0"
        assert len(vectors[0]["values"]) == 8
        assert vectors[0]["metadata"]["document_type"] == "legge"
        assert vectors[0]["metadata"]["text"] == processed.chunks[0].text

    @pytest.mark.asyncio
    async def test_batches(self, processed, fake_embedder, fake_store):
        config = IndexingConfig(batch_size=5, retry_min_wait_seconds=0.0, retry_max_wait_seconds=0.0)
        indexer = DocumentIndexer(fake_embedder, fake_store, config=config)

        result = await indexer.index_document(processed)

        assert result.batches == 3
        assert [len(vectors) for _, vectors in fake_store.upserts] == [5, 5, 2]
        assert fake_embedder.batch_calls == 3

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, processed, fake_embedder, fake_store):
        indexer = DocumentIndexer(fake_embedder, fake_store)

        result = await indexer.index_document(processed, dry_run=True)

        assert result.dry_run
        assert result.eligible_chunks == 12
        assert result.indexed_chunks == 0
        assert fake_embedder.batch_calls == 0
        assert fake_store.upserts == []
        assert result.summary().startswith("DRY RUN")

    @pytest.mark.asyncio
    async def test_explicit_namespace_and_environment(
        self, processed, fake_embedder, fake_store, fast_indexing_config, test_config
    ):
        indexer = DocumentIndexer(fake_embedder, fake_store, config=fast_indexing_config, environment=test_config)

        result = await indexer.index_document(processed, namespace="urbanistica-base")

        assert result.namespace == "test-urbanistica-base"
        assert "test-urbanistica-base" in fake_store.records

    @pytest.mark.asyncio
    async def test_no_eligible_chunks(self, fake_embedder, fake_store):
        doc = parse_document(
            "Breve nota sul verde pubblico nei quartieri residenziali.", {"document_id": "nota"}
        )
        indexer = DocumentIndexer(fake_embedder, fake_store)

        result = await indexer.index_document(make_processed(doc))

        assert result.indexed_chunks == 0
        assert result.skipped == {"too_short": 1}
        assert fake_store.upserts == []


class TestRetry:
    """Retry con backoff sui servizi esterni."""

    @pytest.mark.asyncio
    async def test_transient_embedding_failure_is_retried(
        self, processed, embedder_factory, fake_store, fast_indexing_config
    ):
        embedder = embedder_factory(failures=1)
        indexer = DocumentIndexer(embedder, fake_store, config=fast_indexing_config)

        result = await indexer.index_document(processed)

        assert result.indexed_chunks == 12
        assert embedder.batch_calls == 2

    @pytest.mark.asyncio
    async def test_embedding_exhausted(self, processed, embedder_factory, fake_store, fast_indexing_config):
        embedder = embedder_factory(failures=3)
        indexer = DocumentIndexer(embedder, fake_store, config=fast_indexing_config)

        with pytest.raises(IndexingError) as exc_info:
            await indexer.index_document(processed)

        assert exc_info.value.stage == "embedding"
        assert exc_info.value.document_id == "normattiva_legge_1150_1942"
        assert embedder.batch_calls == 3
        assert fake_store.upserts == []

    @pytest.mark.asyncio
    async def test_upsert_exhausted(self, processed, fake_embedder, store_factory, fast_indexing_config):
        store = store_factory(upsert_failures=5)
        indexer = DocumentIndexer(fake_embedder, store, config=fast_indexing_config)

        with pytest.raises(IndexingError) as exc_info:
            await indexer.index_document(processed)

        assert exc_info.value.stage == "upsert"

    @pytest.mark.asyncio
    async def test_vector_count_mismatch(self, processed, fake_store, fast_indexing_config):
        class ShortEmbedder:
            async def embed_batch(self, texts):
                return [[0.1] * 8]

        indexer = DocumentIndexer(ShortEmbedder(), fake_store, config=fast_indexing_config)

        with pytest.raises(IndexingError, match="1 vectors for 12 texts"):
            await indexer.index_document(processed)


class TestIndexBatch:
    """Indicizzazione di più documenti."""

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_batch(
        self, processed, embedder_factory, fake_store, fast_indexing_config
    ):
        embedder = embedder_factory(failures=3)
        indexer = DocumentIndexer(embedder, fake_store, config=fast_indexing_config)

        batch = await indexer.index_batch([processed, processed])

        assert batch.total_documents == 2
        assert batch.failed == 1
        assert batch.successful == 1
        assert batch.indexed_chunks == 12
        assert batch.errors[0].startswith("normattiva_legge_1150_1942:")
        assert batch.success_rate == 0.5
