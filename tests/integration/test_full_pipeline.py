"""
Integration Test: pipeline completa
===================================

Ingestion della legge urbanistica (HTML -> articoli -> chunk -> metadati ->
embedding -> vector store) e risposta a una query sui dati indicizzati.

Embedding e vector store sono fake in memoria: il test verifica che i
metadati scritti in indicizzazione bastino a costruire citazioni e URL.
"""

import pytest

from urbanai import UrbanLegalAssistant
from urbanai.config import UrbanaiConfig

QUERY = "Quale legge disciplina il piano regolatore e l'altezza degli edifici?"


@pytest.fixture
def assistant(fake_embedder, fake_store, fast_indexing_config):
    return UrbanLegalAssistant(fake_embedder, fake_store, UrbanaiConfig(indexing=fast_indexing_config))


class TestFullPipeline:

    @pytest.mark.asyncio
    async def test_ingest_then_ask(self, assistant, fake_store, legge_1150_html, legge_1150_config):
        indexed = await assistant.ingest(legge_1150_html, legge_1150_config, is_html=True)
        assert indexed.indexed_chunks == 12

        response = await assistant.ask(QUERY)

        assert response.metadata["strategy"] == "legal-urban"
        assert response.answer.startswith("Dal punto di vista normativo e urbanistico:")
        assert "**Quadro normativo:**" in response.answer

        top = response.sources[0]
        assert top.title == "Legge 17 agosto 1942, n. 1150 - Legge Urbanistica"
        assert top.citation == "Legge 1150/1942 (1942), Art. 1"
        assert top.url == "https://www.normattiva.it/uri-res/N2Ls?urn:nir:stato:legge:1942:1150"
        assert top.type == "legal"
        assert len(response.sources) == 8

        assert response.legal_disclaimer.startswith("**Disclaimer Legale**")
        assert 0.1 <= response.confidence <= 0.95

    @pytest.mark.asyncio
    async def test_sources_carry_chunk_metadata(self, assistant, legge_1150_html, legge_1150_config):
        await assistant.ingest(legge_1150_html, legge_1150_config, is_html=True)

        response = await assistant.ask(QUERY)
        articles = [s.article for s in response.sources]

        assert articles == [str(n) for n in range(1, 9)]
        assert all(s.document_number == "1150/1942" for s in response.sources)

    @pytest.mark.asyncio
    async def test_test_environment_isolated(
        self, fake_embedder, fake_store, fast_indexing_config, test_config, legge_1150_html, legge_1150_config
    ):
        assistant = UrbanLegalAssistant(
            fake_embedder,
            fake_store,
            UrbanaiConfig(indexing=fast_indexing_config),
            environment=test_config,
        )

        await assistant.ingest(legge_1150_html, legge_1150_config, is_html=True)
        response = await assistant.ask(QUERY)

        assert set(fake_store.records) == {"test-laws-national"}
        assert response.sources[0].citation == "Legge 1150/1942 (1942), Art. 1"
