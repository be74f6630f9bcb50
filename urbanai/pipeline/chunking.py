"""
Legal Chunker
=============

Creates token-bounded chunks from a segmented Document for embedding.

Design principles:
- Structure first: one chunk per article when it fits the budget,
  one chunk per comma otherwise
- Generic separator search (article > comma > lettera > paragraph >
  sentence > semicolon > comma punctuation) when structure is missing
- Force split at the character budget only when no separator fits
- Deterministic ids (no uuid, no timestamps) for idempotent re-indexing
- Zero-LLM approach for reproducibility

Chunk id format:
    normattiva_legge_1150_1942_art2_comma3_chunk5
    normattiva_legge_1150_1942_art1_chunk0
    comune_regolamento_12_2020_chunk0          (no article structure)

Usage:
    chunker = LegalChunker(ChunkerConfig.preset("standard"))
    result = chunker.chunk_document(document)
    for chunk in result.chunks:
        print(chunk.chunk_id, chunk.tokens, chunk.chunk_type.value)
"""

import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Tuple

from urbanai.config.settings import ChunkerConfig, SeparatorRule
from urbanai.exceptions import MalformedRecordError
from urbanai.pipeline.parsing import Article, Document, estimate_tokens

logger = logging.getLogger(__name__)


class ChunkType(str, Enum):
    """Come e' stato prodotto il chunk."""
    COMPLETE_ARTICLE = "complete_article"
    ARTICLE_COMMA = "article_comma"
    TEXT_SEGMENT = "text_segment"
    FINAL_SEGMENT = "final_segment"
    FORCE_SPLIT = "force_split"


@dataclass(frozen=True)
class ChunkHierarchy:
    """
    Position of a chunk in the document tree: documento > articolo > comma.

    Attributes:
        document_id: Owning document
        article: Article number, None for unstructured text
        article_title: Rubrica of the article
        comma: Comma number, only together with an article
    """
    document_id: str
    article: Optional[str] = None
    article_title: str = ""
    comma: Optional[str] = None

    def __post_init__(self):
        if self.comma is not None and self.article is None:
            raise MalformedRecordError("ChunkHierarchy", "comma without article")

    @property
    def levels(self) -> List[str]:
        levels = ["documento"]
        if self.article is not None:
            levels.append("articolo")
        if self.comma is not None:
            levels.append("comma")
        return levels

    @property
    def id_fragment(self) -> str:
        fragment = ""
        if self.article is not None:
            fragment += f"_art{self.article}"
        if self.comma is not None:
            fragment += f"_comma{self.comma}"
        return fragment


@dataclass(frozen=True)
class ChunkReference:
    """Cross-reference found in a chunk (e.g. article_reference -> "5")."""
    type: str
    target: str
    text: str


@dataclass(frozen=True)
class Chunk:
    """
    The unit sent for embedding.

    Attributes:
        chunk_id: Deterministic id (document + hierarchy + position)
        text: Chunk text, overlap prefix included
        tokens: Token estimate of text
        position: Sequence position in the document
        hierarchy: documento > articolo > comma path
        chunk_type: How the chunk was produced
        quality_score: 0-100 structural quality
        references: Cross-references found in the chunk body
        overlap_with_previous: Tokens of the prefix taken from the previous chunk
        overlap_text: The prefix itself
    """
    chunk_id: str
    text: str
    tokens: int
    position: int
    hierarchy: ChunkHierarchy
    chunk_type: ChunkType
    quality_score: int
    references: Tuple[ChunkReference, ...] = ()
    overlap_with_previous: int = 0
    overlap_text: str = ""

    def __post_init__(self):
        if not self.chunk_id:
            raise MalformedRecordError("Chunk", "missing chunk_id")
        if not self.text or not self.text.strip():
            raise MalformedRecordError("Chunk", f"{self.chunk_id} has empty text")
        if not isinstance(self.chunk_type, ChunkType):
            try:
                object.__setattr__(self, "chunk_type", ChunkType(self.chunk_type))
            except ValueError as e:
                raise MalformedRecordError("Chunk", f"unknown chunk_type {self.chunk_type!r}") from e
        if not 0 <= self.quality_score <= 100:
            raise MalformedRecordError("Chunk", f"quality_score {self.quality_score} out of [0, 100]")

    @property
    def content(self) -> str:
        """Chunk text without the overlap prefix."""
        if self.overlap_text and self.text.startswith(self.overlap_text):
            return self.text[len(self.overlap_text):].lstrip()
        return self.text

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "chunk_id": self.chunk_id,
            "text": self.text,
            "tokens": self.tokens,
            "position": self.position,
            "chunk_type": self.chunk_type.value,
            "quality_score": self.quality_score,
            "overlap_with_previous": self.overlap_with_previous,
            "hierarchy": {
                "document_id": self.hierarchy.document_id,
                "article": self.hierarchy.article,
                "article_title": self.hierarchy.article_title,
                "comma": self.hierarchy.comma,
                "levels": self.hierarchy.levels,
            },
            "references": [
                {"type": r.type, "target": r.target, "text": r.text} for r in self.references
            ],
        }


@dataclass
class ChunkingStats:
    """Aggregate numbers for one chunking run."""
    total_chunks: int = 0
    total_tokens: int = 0
    avg_tokens: float = 0.0
    min_tokens: int = 0
    max_tokens: int = 0
    chunks_in_target_range: int = 0
    avg_quality: float = 0.0
    min_quality: int = 0
    max_quality: int = 0
    force_split_count: int = 0

    @classmethod
    def from_chunks(
        cls,
        chunks: List[Chunk],
        min_tokens: int,
        max_tokens: int,
        force_split_count: int = 0,
    ) -> "ChunkingStats":
        if not chunks:
            return cls(force_split_count=force_split_count)
        tokens = [c.tokens for c in chunks]
        quality = [c.quality_score for c in chunks]
        return cls(
            total_chunks=len(chunks),
            total_tokens=sum(tokens),
            avg_tokens=round(sum(tokens) / len(tokens), 1),
            min_tokens=min(tokens),
            max_tokens=max(tokens),
            chunks_in_target_range=sum(1 for t in tokens if min_tokens <= t <= max_tokens),
            avg_quality=round(sum(quality) / len(quality), 1),
            min_quality=min(quality),
            max_quality=max(quality),
            force_split_count=force_split_count,
        )


@dataclass
class ChunkingResult:
    """Output of LegalChunker.chunk_document()."""
    document_id: str
    chunks: List[Chunk] = field(default_factory=list)
    chunking_strategy: str = "article-based"
    stats: ChunkingStats = field(default_factory=ChunkingStats)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "chunking_strategy": self.chunking_strategy,
            "chunks": [c.to_dict() for c in self.chunks],
            "stats": dict(self.stats.__dict__),
        }


@dataclass
class _Draft:
    text: str
    hierarchy: ChunkHierarchy
    chunk_type: ChunkType


class LegalChunker:
    """
    Structure-aware chunker for Italian legal documents.

    Features:
    - complete_article chunks when an article fits max_chunk_tokens
    - article_comma chunks for oversized articles with comma structure
    - priority separator search for everything else
    - overlap prefix from the previous chunk

    The chunker never raises on malformed input: an empty document yields
    zero chunks, an unsplittable unit is force-split and logged.

    Usage:
        chunker = LegalChunker(ChunkerConfig.preset("standard"))
        result = chunker.chunk_document(document)
        print(result.stats.force_split_count)
    """

    REFERENCE_PATTERNS: List[Tuple[str, Pattern]] = [
        ("article_reference", re.compile(
            r"(?:vedasi|vedi|si\s+rinvia(?:\s+all['\u2019])?|cfr\.)\s*(?:art\.|articolo)\s*(\d+(?:-\w+)?)",
            re.IGNORECASE,
        )),
        ("article_reference", re.compile(
            r"(?:di\s+cui\s+all['\u2019]|dell['\u2019])\s*art\.\s*(\d+(?:-\w+)?)",
            re.IGNORECASE,
        )),
        ("comma_reference", re.compile(r"\bcomma\s+(\d+)", re.IGNORECASE)),
        ("law_reference", re.compile(r"\b(?:legge|l\.)\s*(?:n\.\s*)?(\d+/\d{2,4})", re.IGNORECASE)),
    ]

    def __init__(self, config: ChunkerConfig):
        """
        Initialize chunker.

        Args:
            config: Token budget and separator table, e.g. ChunkerConfig.preset("standard")
        """
        self.config = config
        self._separators = self._compile_separators(self.config.separators)

        logger.info(
            "LegalChunker initialized: min=%d max=%d overlap=%d separators=%d",
            self.config.min_chunk_tokens,
            self.config.max_chunk_tokens,
            self.config.overlap_tokens,
            len(self._separators),
        )

    @staticmethod
    def _compile_separators(rules: List[SeparatorRule]) -> List[Tuple[Pattern, SeparatorRule]]:
        compiled = []
        for rule in sorted(rules, key=lambda r: r.priority, reverse=True):
            flags = 0
            if rule.multiline:
                flags |= re.MULTILINE
            if rule.ignore_case:
                flags |= re.IGNORECASE
            compiled.append((re.compile(rule.pattern, flags), rule))
        return compiled

    def _tokens(self, text: str) -> int:
        return estimate_tokens(text, self.config.token_ratio)

    @property
    def _min_kept_chars(self) -> int:
        """Shortest text that survives the degenerate-chunk drop."""
        by_tokens = int(self.config.min_chunk_token_count * self.config.token_ratio)
        return max(self.config.min_chunk_chars, by_tokens) + 1

    def _is_degenerate(self, text: str) -> bool:
        return (len(text) <= self.config.min_chunk_chars
                or self._tokens(text) <= self.config.min_chunk_token_count)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk_document(self, document: Document) -> ChunkingResult:
        """
        Chunk a parsed document.

        Args:
            document: Output of parse_document()

        Returns:
            ChunkingResult with chunks in document order
        """
        drafts: List[_Draft] = []

        if document.articles:
            strategy = "article-based"
            for article in document.articles:
                self._chunk_article(article, document.document_id, drafts)
        else:
            strategy = "structure-based"
            if document.full_text.strip():
                self._split_into(
                    document.full_text,
                    ChunkHierarchy(document_id=document.document_id),
                    drafts,
                )
            else:
                logger.warning("Empty document %s, no chunks produced", document.document_id)

        chunks = [self._build_chunk(draft, position) for position, draft in enumerate(drafts)]
        chunks = self._post_process(chunks)

        force_splits = sum(1 for d in drafts if d.chunk_type == ChunkType.FORCE_SPLIT)
        stats = ChunkingStats.from_chunks(
            chunks,
            self.config.min_chunk_tokens,
            self.config.max_chunk_tokens,
            force_split_count=force_splits,
        )

        logger.info(
            "Chunked %s: strategy=%s chunks=%d tokens=%d force_splits=%d",
            document.document_id,
            strategy,
            stats.total_chunks,
            stats.total_tokens,
            force_splits,
        )
        return ChunkingResult(
            document_id=document.document_id,
            chunks=chunks,
            chunking_strategy=strategy,
            stats=stats,
        )

    def split_by_separators(self, text: str) -> List[Tuple[str, bool]]:
        """
        Cut text into pieces within the token budget.

        Each cut uses the highest-priority separator that leaves a preceding
        piece inside [min, max] tokens; without one the text is force-cut at
        the character budget.

        Args:
            text: Text to split

        Returns:
            List of (piece, forced) in order
        """
        pieces: List[Tuple[str, bool]] = []
        remaining = text.strip()

        while remaining:
            if self._tokens(remaining) <= self.config.max_chunk_tokens:
                pieces.append((remaining, False))
                break

            cut = self._find_separator_cut(remaining)
            forced = cut is None
            if forced:
                cut = self._force_cut(remaining)
                logger.warning(
                    "Force split at %d chars: no separator fits [%d, %d] tokens",
                    cut,
                    self.config.min_chunk_tokens,
                    self.config.max_chunk_tokens,
                )

            piece = remaining[:cut].strip()
            if piece:
                pieces.append((piece, forced))
            remaining = remaining[cut:].strip()

        return pieces

    def quality_score(self, tokens: int, hierarchy: ChunkHierarchy, chunk_type: ChunkType) -> int:
        """Structural quality 0-100 (base 50, +/- hierarchy, range and type adjustments)."""
        score = 50
        if hierarchy.article is not None:
            score += 20
            if hierarchy.comma is not None:
                score += 10
        if self.config.min_chunk_tokens <= tokens <= self.config.max_chunk_tokens:
            score += 15
        if chunk_type == ChunkType.COMPLETE_ARTICLE:
            score += 10
        elif chunk_type == ChunkType.FORCE_SPLIT:
            score -= 20
        return max(0, min(100, score))

    def extract_references(self, text: str) -> Tuple[ChunkReference, ...]:
        """Cross-references to other articles, commas and laws."""
        seen = set()
        references = []
        for ref_type, pattern in self.REFERENCE_PATTERNS:
            for match in pattern.finditer(text):
                key = (ref_type, match.group(1))
                if key in seen:
                    continue
                seen.add(key)
                references.append(ChunkReference(type=ref_type, target=match.group(1), text=match.group(0)))
        return tuple(references)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _chunk_article(self, article: Article, document_id: str, drafts: List[_Draft]) -> None:
        hierarchy = ChunkHierarchy(
            document_id=document_id,
            article=article.number,
            article_title=article.title,
        )

        if self._tokens(article.text) <= self.config.max_chunk_tokens:
            drafts.append(_Draft(article.text, hierarchy, ChunkType.COMPLETE_ARTICLE))
            return

        # a single comma is no structure: split the article text itself
        if len(article.commas) <= 1:
            self._split_into(article.text, hierarchy, drafts)
            return

        first = len(drafts)
        pending = ""
        for index, comma in enumerate(article.commas):
            text = f"{pending}\n{comma.text}" if pending else comma.text
            pending = ""
            comma_hierarchy = replace(hierarchy, comma=comma.number)

            if self._tokens(text) > self.config.max_chunk_tokens:
                self._split_into(text, comma_hierarchy, drafts)
                continue

            if self._is_degenerate(text):
                # too short to stand alone: join the previous comma, or carry it to the next one
                previous = drafts[-1] if len(drafts) > first else None
                if (previous is not None and previous.chunk_type == ChunkType.ARTICLE_COMMA
                        and self._tokens(f"{previous.text}\n{text}") <= self.config.max_chunk_tokens):
                    previous.text = f"{previous.text}\n{text}"
                    continue
                if index < len(article.commas) - 1:
                    pending = text
                    continue

            drafts.append(_Draft(text, comma_hierarchy, ChunkType.ARTICLE_COMMA))

    def _split_into(self, text: str, hierarchy: ChunkHierarchy, drafts: List[_Draft]) -> None:
        """Generic split; small pieces are merged up to max_chunk_tokens."""
        produced: List[_Draft] = []
        current = ""

        for piece, forced in self.split_by_separators(text):
            if forced:
                if current:
                    produced.append(_Draft(current, hierarchy, ChunkType.TEXT_SEGMENT))
                    current = ""
                produced.append(_Draft(piece, hierarchy, ChunkType.FORCE_SPLIT))
                continue

            candidate = f"{current} {piece}" if current else piece
            if current and self._tokens(candidate) > self.config.max_chunk_tokens:
                produced.append(_Draft(current, hierarchy, ChunkType.TEXT_SEGMENT))
                current = piece
            else:
                current = candidate

        if current:
            produced.append(_Draft(current, hierarchy, ChunkType.TEXT_SEGMENT))

        if produced and produced[-1].chunk_type == ChunkType.TEXT_SEGMENT:
            produced[-1].chunk_type = ChunkType.FINAL_SEGMENT

        drafts.extend(produced)

    def _find_separator_cut(self, text: str) -> Optional[int]:
        lo = self.config.min_chunk_tokens
        hi = self.config.max_chunk_tokens
        start = max(0, int((lo - 1) * self.config.token_ratio))

        for pattern, _rule in self._separators:
            for match in pattern.finditer(text, start):
                cut = match.end()
                if cut <= 0:
                    continue
                if len(text[cut:].strip()) < self._min_kept_chars:
                    break
                head = text[:cut].strip()
                tokens = self._tokens(head)
                if tokens > hi:
                    break
                if tokens >= lo and not self._is_degenerate(head):
                    return cut
        return None

    def _force_cut(self, text: str) -> int:
        max_chars = self.config.max_chunk_chars
        if len(text) <= max_chars:
            return len(text)
        limit = max_chars
        # leave a remainder long enough to be kept as a chunk
        if len(text) - limit < self._min_kept_chars and len(text) - self._min_kept_chars > max_chars // 2:
            limit = len(text) - self._min_kept_chars
        window = text[:limit]
        space = max(window.rfind(" "), window.rfind("\n"))
        # back off to whitespace unless it would halve the fragment
        if space > max_chars // 2:
            return space
        return limit

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _build_chunk(self, draft: _Draft, position: int) -> Chunk:
        tokens = self._tokens(draft.text)
        return Chunk(
            chunk_id=f"{draft.hierarchy.document_id}{draft.hierarchy.id_fragment}_chunk{position}",
            text=draft.text,
            tokens=tokens,
            position=position,
            hierarchy=draft.hierarchy,
            chunk_type=draft.chunk_type,
            quality_score=self.quality_score(tokens, draft.hierarchy, draft.chunk_type),
            references=self.extract_references(draft.text),
            overlap_with_previous=self.config.overlap_tokens if position > 0 else 0,
        )

    def _post_process(self, chunks: List[Chunk]) -> List[Chunk]:
        """Prepend overlap, recompute tokens, drop degenerate chunks."""
        processed: List[Chunk] = []
        previous_body: Optional[str] = None

        for chunk in chunks:
            body = chunk.text
            if previous_body is not None and chunk.overlap_with_previous > 0:
                overlap = self._extract_overlap(previous_body, chunk.overlap_with_previous)
                if overlap:
                    text = f"{overlap} {body}"
                    chunk = replace(
                        chunk,
                        text=text,
                        tokens=self._tokens(text),
                        overlap_text=overlap,
                        overlap_with_previous=self._tokens(f"{overlap} "),
                    )
                else:
                    chunk = replace(chunk, overlap_with_previous=0)
            previous_body = body

            if self._is_degenerate(chunk.text):
                logger.debug("Dropping degenerate chunk %s (%d chars)", chunk.chunk_id, len(chunk.text))
                continue
            processed.append(chunk)

        return processed

    def _extract_overlap(self, previous: str, overlap_tokens: int) -> str:
        """Trailing slice of the previous chunk, from a sentence start when possible."""
        # one character is reserved for the joining space
        limit = min(int(overlap_tokens * self.config.token_ratio) - 1, len(previous) // 2)
        if limit <= 0:
            return ""
        tail = previous[-limit:]
        boundary = tail.find(". ")
        if 0 <= boundary < len(tail) * 0.3:
            tail = tail[boundary + 2:]
        return tail.strip()


def chunk_document(document: Document, config: ChunkerConfig) -> ChunkingResult:
    """
    Convenience function to chunk a single document.

    Args:
        document: Parsed document
        config: Chunker config, e.g. ChunkerConfig.preset("standard")

    Returns:
        ChunkingResult

    Example:
        >>> doc = parse_document(text, {"type": "legge", "number": "1150/1942"})
        >>> result = chunk_document(doc, ChunkerConfig.preset("standard"))
        >>> result.chunks[0].chunk_id
        'doc_legge_1150_1942_art1_chunk0'
    """
    return LegalChunker(config).chunk_document(document)


__all__ = [
    "ChunkType",
    "ChunkHierarchy",
    "ChunkReference",
    "Chunk",
    "ChunkingStats",
    "ChunkingResult",
    "LegalChunker",
    "chunk_document",
]
