"""
Test LegalChunker
=================

Test per il chunking gerarchico: articoli completi, commi, split generico,
force split e overlap.
"""

import logging

import pytest

from urbanai.config import ChunkerConfig
from urbanai.exceptions import ConfigurationError, MalformedRecordError
from urbanai.pipeline.chunking import (
    Chunk,
    ChunkHierarchy,
    ChunkType,
    LegalChunker,
    chunk_document,
)
from urbanai.pipeline.parsing import parse_document


ARTICLE_WITH_COMMAS = (
    "Art. 2\n"
    "1. la divisione in zone del territorio comunale e le zone di espansione;\n"
    "2. le aree destinate a spazi di uso pubblico o a speciali servitù;\n"
    "3. le aree riservate ad edifici pubblici e opere di interesse collettivo."
)

SENTENCE = "Il verde pubblico migliora la qualità della vita nei quartieri."

LETTERE_ARTICLE = (
    "Art. 3 - Zone territoriali omogenee\n"
    "Il piano regolatore suddivide il territorio comunale nelle seguenti zone\n"
    "lett. a) centro storico\n"
    "lett. b) completamento\n"
    "lett. c) espansione\n"
    "lett. d) produttive\n"
    "lett. e) agricole\n"
    "lett. f) servizi\n"
    "lett. g) verde\n"
    "lett. h) rispetto\n"
    "Le zone sono delimitate nelle tavole di piano"
)

SINGLE_COMMA_ARTICLE = (
    "Art. 4 - Vigilanza\n"
    "1. Il sindaco esercita la vigilanza sulle costruzioni. Il dirigente dispone la sospensione "
    "dei lavori. Il responsabile trasmette gli atti alla regione. Gli uffici comunali curano "
    "la pubblicazione."
)

ARTICLE_WITH_SHORT_COMMA = (
    "Art. 2\n"
    "1. la divisione in zone del territorio comunale e le zone di espansione;\n"
    "2. Abrogato dalla legge.\n"
    "3. le aree riservate ad edifici pubblici e opere di interesse collettivo."
)


def squeeze(text: str) -> str:
    """Testo senza spazi: confronta la copertura a meno degli spazi di giunzione."""
    return "".join(text.split())


@pytest.fixture
def standard_config():
    return ChunkerConfig.preset("standard")


@pytest.fixture
def small_config():
    """Budget ridotto: 5-30 token, nessun overlap."""
    return ChunkerConfig(min_chunk_tokens=5, max_chunk_tokens=30, overlap_tokens=0)


class TestChunkerConfig:
    """Test dei preset e della validazione del budget."""

    def test_standard_preset(self):
        config = ChunkerConfig.preset("standard")
        assert (config.min_chunk_tokens, config.max_chunk_tokens, config.overlap_tokens) == (800, 1200, 200)

    def test_extended_preset(self):
        config = ChunkerConfig.preset("extended")
        assert (config.min_chunk_tokens, config.max_chunk_tokens, config.overlap_tokens) == (1200, 2500, 100)

    def test_preset_overrides(self):
        config = ChunkerConfig.preset("standard", overlap_tokens=50)
        assert config.overlap_tokens == 50

    def test_unknown_preset(self):
        with pytest.raises(ConfigurationError):
            ChunkerConfig.preset("huge")

    def test_min_greater_than_max_rejected(self):
        with pytest.raises(ValueError):
            ChunkerConfig(min_chunk_tokens=100, max_chunk_tokens=50, overlap_tokens=0)

    def test_overlap_must_be_smaller_than_max(self):
        with pytest.raises(ValueError):
            ChunkerConfig(min_chunk_tokens=10, max_chunk_tokens=50, overlap_tokens=50)


class TestChunkRecords:
    """Validazione dei record Chunk e ChunkHierarchy."""

    def test_comma_without_article_rejected(self):
        with pytest.raises(MalformedRecordError):
            ChunkHierarchy(document_id="doc", comma="1")

    def test_hierarchy_levels(self):
        assert ChunkHierarchy("doc").levels == ["documento"]
        assert ChunkHierarchy("doc", article="5", comma="2").levels == ["documento", "articolo", "comma"]
        assert ChunkHierarchy("doc", article="5", comma="2").id_fragment == "_art5_comma2"

    def test_quality_out_of_range_rejected(self):
        with pytest.raises(MalformedRecordError):
            Chunk(
                chunk_id="doc_chunk0",
                text="testo",
                tokens=2,
                position=0,
                hierarchy=ChunkHierarchy("doc"),
                chunk_type=ChunkType.TEXT_SEGMENT,
                quality_score=120,
            )

    def test_unknown_chunk_type_rejected(self):
        with pytest.raises(MalformedRecordError):
            Chunk(
                chunk_id="doc_chunk0",
                text="testo",
                tokens=2,
                position=0,
                hierarchy=ChunkHierarchy("doc"),
                chunk_type="paragrafo",
                quality_score=50,
            )

    def test_chunk_type_from_string(self):
        chunk = Chunk(
            chunk_id="doc_chunk0",
            text="testo",
            tokens=2,
            position=0,
            hierarchy=ChunkHierarchy("doc"),
            chunk_type="final_segment",
            quality_score=50,
        )
        assert chunk.chunk_type is ChunkType.FINAL_SEGMENT


class TestArticleChunking:
    """Strategia article-based sulla legge urbanistica."""

    def test_one_chunk_per_article(self, legge_1150_document, standard_config):
        result = chunk_document(legge_1150_document, standard_config)

        assert result.chunking_strategy == "article-based"
        assert len(result.chunks) == 12
        assert all(c.chunk_type is ChunkType.COMPLETE_ARTICLE for c in result.chunks)
        assert [c.hierarchy.article for c in result.chunks] == [str(n) for n in range(1, 13)]

    def test_deterministic_ids(self, legge_1150_document, standard_config):
        result = chunk_document(legge_1150_document, standard_config)

        assert result.chunks[0].chunk_id == "normattiva_legge_1150_1942_art1_chunk0"
        assert result.chunks[1].chunk_id == "normattiva_legge_1150_1942_art2_chunk1"
        assert [c.chunk_id for c in chunk_document(legge_1150_document, standard_config).chunks] == [
            c.chunk_id for c in result.chunks
        ]

    def test_quality_of_complete_articles(self, legge_1150_document, standard_config):
        result = chunk_document(legge_1150_document, standard_config)

        # base 50 + articolo 20 + articolo completo 10 (fuori dal range 800-1200)
        assert {c.quality_score for c in result.chunks} == {80}
        assert result.stats.avg_quality == 80.0

    def test_overlap_prefix(self, legge_1150_document, standard_config):
        chunks = chunk_document(legge_1150_document, standard_config).chunks

        assert chunks[0].overlap_with_previous == 0
        assert chunks[0].overlap_text == ""
        for previous, chunk in zip(chunks, chunks[1:]):
            assert chunk.overlap_text
            assert chunk.text.startswith(chunk.overlap_text)
            assert previous.content.endswith(chunk.overlap_text)
            # L'overlap non supera metà del chunk precedente
            assert len(chunk.overlap_text) <= len(previous.content) // 2
            assert chunk.content.startswith(f"Art. {chunk.hierarchy.article}")

    def test_preamble_not_chunked(self, legge_1150_document, standard_config):
        chunks = chunk_document(legge_1150_document, standard_config).chunks
        assert not any(c.content.startswith("Legge 17 agosto") for c in chunks)

    def test_oversized_article_split_by_comma(self, small_config):
        doc = parse_document(ARTICLE_WITH_COMMAS, {"document_id": "test_doc"})
        result = LegalChunker(small_config).chunk_document(doc)

        assert [c.chunk_id for c in result.chunks] == [
            "test_doc_art2_comma1_chunk0",
            "test_doc_art2_comma2_chunk1",
            "test_doc_art2_comma3_chunk2",
        ]
        assert all(c.chunk_type is ChunkType.ARTICLE_COMMA for c in result.chunks)
        assert all(c.tokens <= 30 for c in result.chunks)
        # base 50 + articolo 20 + comma 10 + range 15
        assert [c.quality_score for c in result.chunks] == [95, 95, 95]
        assert result.chunks[0].hierarchy.levels == ["documento", "articolo", "comma"]

    def test_overlap_with_comma_chunks(self):
        config = ChunkerConfig(min_chunk_tokens=5, max_chunk_tokens=30, overlap_tokens=5)
        doc = parse_document(ARTICLE_WITH_COMMAS, {"document_id": "test_doc"})
        chunks = LegalChunker(config).chunk_document(doc).chunks

        assert len(chunks) == 3
        assert chunks[1].content.startswith("2. le aree")
        assert chunks[0].text.endswith(chunks[1].overlap_text)
        assert 0 < chunks[1].overlap_with_previous <= 5

    def test_unnumbered_article_keeps_every_line(self):
        config = ChunkerConfig(min_chunk_tokens=10, max_chunk_tokens=40, overlap_tokens=0)
        doc = parse_document(LETTERE_ARTICLE, {"document_id": "zone"})
        result = LegalChunker(config).chunk_document(doc)
        joined = squeeze(" ".join(c.content for c in result.chunks))

        assert len(result.chunks) > 1
        assert all(c.hierarchy.article == "3" and c.hierarchy.comma is None for c in result.chunks)
        assert result.chunks[-1].chunk_type is ChunkType.FINAL_SEGMENT
        for line in LETTERE_ARTICLE.splitlines():
            assert squeeze(line) in joined
        assert joined == squeeze(LETTERE_ARTICLE)

    def test_single_comma_article_split_as_text(self, small_config):
        doc = parse_document(SINGLE_COMMA_ARTICLE, {"document_id": "vig"})
        result = LegalChunker(small_config).chunk_document(doc)

        assert len(result.chunks) > 1
        assert all(c.hierarchy.comma is None for c in result.chunks)
        assert all(c.chunk_type in (ChunkType.TEXT_SEGMENT, ChunkType.FINAL_SEGMENT) for c in result.chunks)
        assert squeeze(" ".join(c.content for c in result.chunks)) == squeeze(SINGLE_COMMA_ARTICLE)

    def test_short_comma_joins_previous(self, small_config):
        doc = parse_document(ARTICLE_WITH_SHORT_COMMA, {"document_id": "t"})
        result = LegalChunker(small_config).chunk_document(doc)

        assert [c.chunk_id for c in result.chunks] == ["t_art2_comma1_chunk0", "t_art2_comma3_chunk1"]
        assert result.chunks[0].content.endswith("espansione;\n2. Abrogato dalla legge.")
        assert all(c.tokens <= 30 for c in result.chunks)


class TestGenericSplit:
    """Split per separatori e force split per testo senza struttura."""

    def test_sentence_split(self, small_config):
        text = " ".join([SENTENCE] * 6)
        doc = parse_document(text, {"document_id": "verde"})
        result = LegalChunker(small_config).chunk_document(doc)

        assert result.chunking_strategy == "structure-based"
        assert result.stats.force_split_count == 0
        assert len(result.chunks) == 6
        assert all(c.tokens <= 30 for c in result.chunks)
        assert all(c.chunk_type is ChunkType.TEXT_SEGMENT for c in result.chunks[:-1])
        assert result.chunks[-1].chunk_type is ChunkType.FINAL_SEGMENT
        assert result.chunks[0].chunk_id == "verde_chunk0"
        assert result.chunks[0].hierarchy.levels == ["documento"]

    def test_split_by_separators_pieces(self, small_config):
        chunker = LegalChunker(small_config)
        pieces = chunker.split_by_separators(" ".join([SENTENCE] * 3))

        assert [piece for piece, _ in pieces] == [SENTENCE] * 3
        assert not any(forced for _, forced in pieces)

    def test_force_split_without_separators(self, small_config, caplog):
        doc = parse_document("a" * 300, {"document_id": "blob"})

        with caplog.at_level(logging.WARNING, logger="urbanai.pipeline.chunking"):
            result = LegalChunker(small_config).chunk_document(doc)

        assert [c.chunk_type for c in result.chunks] == [
            ChunkType.FORCE_SPLIT,
            ChunkType.FORCE_SPLIT,
            ChunkType.FINAL_SEGMENT,
        ]
        assert [len(c.text) for c in result.chunks] == [120, 120, 60]
        assert result.stats.force_split_count == 2
        assert "Force split" in caplog.text
        # base 50 + range 15 - force split 20
        assert result.chunks[0].quality_score == 45

    def test_force_split_backs_off_to_whitespace(self, small_config):
        text = ("b" * 100 + " ") * 3
        pieces = LegalChunker(small_config).split_by_separators(text)

        assert pieces[0] == ("b" * 100, True)

    def test_empty_document(self):
        doc = parse_document("", {"document_id": "empty"})
        result = chunk_document(doc, ChunkerConfig.preset("standard"))

        assert result.chunks == []
        assert result.stats.total_chunks == 0


COVERAGE_TEXTS = [
    ARTICLE_WITH_COMMAS,
    ARTICLE_WITH_SHORT_COMMA,
    LETTERE_ARTICLE,
    SINGLE_COMMA_ARTICLE,
    " ".join([SENTENCE] * 6),
    "a" * 300,
]


class TestCoverageAndBudget:
    """Nessun testo perso e budget di token rispettato su commi, split generico e force split."""

    @pytest.mark.parametrize("overlap", [0, 5])
    @pytest.mark.parametrize("text", COVERAGE_TEXTS)
    def test_every_character_kept_in_order(self, text, overlap):
        config = ChunkerConfig(min_chunk_tokens=10, max_chunk_tokens=40, overlap_tokens=overlap)
        doc = parse_document(text, {"document_id": "doc"})
        chunks = LegalChunker(config).chunk_document(doc).chunks

        source = " ".join(a.text for a in doc.articles) if doc.articles else doc.full_text
        assert squeeze(" ".join(c.content for c in chunks)) == squeeze(source)

    @pytest.mark.parametrize("overlap", [0, 5])
    @pytest.mark.parametrize("text", COVERAGE_TEXTS)
    def test_tokens_within_budget_plus_overlap(self, text, overlap):
        config = ChunkerConfig(min_chunk_tokens=10, max_chunk_tokens=40, overlap_tokens=overlap)
        doc = parse_document(text, {"document_id": "doc"})
        chunks = LegalChunker(config).chunk_document(doc).chunks

        assert chunks
        for chunk in chunks:
            assert chunk.tokens <= config.max_chunk_tokens + chunk.overlap_with_previous
            assert chunk.overlap_with_previous <= overlap + 1

    def test_legge_1150_coverage_with_overlap(self, legge_1150_document):
        config = ChunkerConfig(min_chunk_tokens=20, max_chunk_tokens=60, overlap_tokens=10)
        chunks = LegalChunker(config).chunk_document(legge_1150_document).chunks

        assert any(c.chunk_type is ChunkType.ARTICLE_COMMA for c in chunks)
        for article in legge_1150_document.articles:
            own = [c for c in chunks if c.hierarchy.article == article.number]
            assert squeeze(" ".join(c.content for c in own)) == squeeze(article.text)
            assert all(c.tokens <= 60 + c.overlap_with_previous for c in own)


class TestReferences:
    """Estrazione dei riferimenti incrociati."""

    def test_article_comma_and_law_references(self):
        chunker = LegalChunker(ChunkerConfig.preset("standard"))
        refs = chunker.extract_references(
            "Ai sensi dell'art. 7, comma 3, e vedi articolo 12 della legge 1150/1942."
        )
        found = {(r.type, r.target) for r in refs}

        assert ("article_reference", "7") in found
        assert ("article_reference", "12") in found
        assert ("comma_reference", "3") in found
        assert ("law_reference", "1150/1942") in found

    def test_references_deduplicated(self):
        refs = LegalChunker(ChunkerConfig.preset("standard")).extract_references("comma 2 e ancora comma 2")
        assert len(refs) == 1


class TestSerialization:
    """to_dict dei risultati."""

    def test_result_to_dict(self, legge_1150_document, standard_config):
        data = chunk_document(legge_1150_document, standard_config).to_dict()

        assert data["document_id"] == "normattiva_legge_1150_1942"
        assert data["chunks"][0]["chunk_type"] == "complete_article"
        assert data["chunks"][0]["hierarchy"]["levels"] == ["documento", "articolo"]
        assert data["stats"]["total_chunks"] == 12
