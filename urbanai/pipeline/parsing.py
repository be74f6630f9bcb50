"""
Legal Text Segmenter
====================

Splits raw Italian legal text into structural units:
- Document: identity fields from the document-config record + raw text
- Article: number (e.g. "5", "5-bis"), title, text
- Comma: numbered sub-paragraph of an article

Zero-LLM approach: pure regex-based extraction for reproducibility.

Input format (after HTML extraction, one block per line):
```
Legge 17 agosto 1942, n. 1150
Art. 1 - Formazione dei piani regolatori generali
Ogni Comune deve adottare un piano regolatore generale...
Art. 2 - Contenuto del piano regolatore generale
Il piano regolatore generale deve indicare:
1. la divisione in zone del territorio comunale...
2. le aree destinate alla formazione di spazi di uso pubblico;
```

Output structure:
```python
Document(
    document_id="normattiva_legge_1150_1942",
    preamble="Legge 17 agosto 1942, n. 1150",
    articles=(
        Article(number="1", title="Formazione dei piani regolatori generali", ...),
        Article(number="2", commas=(Comma(number="1", ...), Comma(number="2", ...))),
    ),
)
```
"""

import html
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

import structlog
from bs4 import BeautifulSoup

from urbanai.exceptions import MalformedRecordError

log = structlog.get_logger()

TOKEN_RATIO = 4.0
MIN_SEGMENT_LENGTH = 20

LEGAL_MARKERS = re.compile(r"art\.|articolo|comma|decreto|legge|dgr|circolare", re.IGNORECASE)


def estimate_tokens(text: str, ratio: float = TOKEN_RATIO) -> int:
    """
    Deterministic token estimate: ceil(len(text) / ratio).

    About 4 characters per token for Italian legal prose.

    Args:
        text: Text to measure
        ratio: Characters per token

    Returns:
        Estimated token count (0 for empty text)
    """
    if not text:
        return 0
    return math.ceil(len(text) / ratio)


def is_legal_document(text: str) -> bool:
    """True if the text carries at least one legal marker (art., legge, comma, ...)."""
    return bool(text) and LEGAL_MARKERS.search(text) is not None


def clean_text(text: str) -> str:
    """
    Normalise whitespace and typography, keeping line structure.

    - HTML entities decoded, non-breaking spaces replaced
    - Smart quotes folded to ASCII quotes
    - Spaces collapsed inside lines, lines stripped
    - At most one blank line between paragraphs
    """
    if not text:
        return ""
    text = html.unescape(text)
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\u00a0", " ")
    text = text.replace("\u2018", "'").replace("\u2019", "'")
    text = text.replace("\u201c", '"').replace("\u201d", '"')
    lines = [re.sub(r"[ \t\f\v]+", " ", line).strip() for line in text.split("\n")]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def html_to_text(markup: str) -> str:
    """
    Extract body text from an already-fetched HTML page.

    Block elements end up on their own line; blank lines are dropped so
    every paragraph is exactly one line.

    Args:
        markup: Raw HTML

    Returns:
        Cleaned plain text
    """
    if not markup:
        return ""
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(["script", "style", "nav", "header", "footer", "noscript"]):
        tag.decompose()
    root = soup.body or soup
    text = clean_text(root.get_text("\n"))
    return "\n".join(line for line in text.split("\n") if line)


def make_document_id(source: str, doc_type: str, number: str) -> str:
    """
    Deterministic document id: {source}_{type}_{number}.

    Example:
        >>> make_document_id("normattiva", "Legge", "1150/1942")
        'normattiva_legge_1150_1942'
    """
    raw = "_".join([
        source or "doc",
        (doc_type or "unknown").lower(),
        re.sub(r"[/\s]+", "_", number.strip()) if number else "nd",
    ])
    return re.sub(r"[^\w\-]+", "_", raw.lower()).strip("_")


@dataclass(frozen=True)
class Comma:
    """
    A numbered sub-paragraph within an article.

    Attributes:
        number: Comma number as string ("1", "2", ...)
        text: Full text of the comma
    """
    number: str
    text: str

    def __post_init__(self):
        if not self.text or not self.text.strip():
            raise MalformedRecordError("Comma", "empty text")

    @property
    def tokens(self) -> int:
        return estimate_tokens(self.text)


@dataclass(frozen=True)
class Article:
    """
    A single article of a legal document.

    Attributes:
        number: Article number, suffix allowed (e.g. "5-bis")
        text: Full article text, marker included
        title: Rubrica, empty string if not recognised
        commas: Ordered comma units (empty if no comma structure)
    """
    number: str
    text: str
    title: str = ""
    commas: Tuple[Comma, ...] = ()

    def __post_init__(self):
        if not self.number:
            raise MalformedRecordError("Article", "missing number")
        if not self.text or not self.text.strip():
            raise MalformedRecordError("Article", f"art. {self.number} has empty text")

    @property
    def tokens(self) -> int:
        return estimate_tokens(self.text)


@dataclass(frozen=True)
class Document:
    """
    A parsed document, immutable once chunked.

    Attributes:
        document_id: Deterministic identifier (see make_document_id)
        full_text: Cleaned full text
        title: Document title
        doc_type: Declared type (legge, decreto, regolamento, sentenza, ...)
        number: Document number (e.g. "1150/1942")
        date: Publication date (ISO string when known)
        authority: Issuing authority
        source: Where the text was fetched from (e.g. "normattiva")
        articles: Ordered article units (empty for non-legal text)
        preamble: Text preceding the first article marker
    """
    document_id: str
    full_text: str
    title: str = ""
    doc_type: str = ""
    number: str = ""
    date: str = ""
    authority: str = ""
    source: str = ""
    articles: Tuple[Article, ...] = ()
    preamble: str = ""

    def __post_init__(self):
        if not self.document_id:
            raise MalformedRecordError("Document", "missing document_id")

    @property
    def text_length(self) -> int:
        return len(self.full_text)

    @property
    def article_count(self) -> int:
        return len(self.articles)

    def hints(self) -> Dict[str, str]:
        """Document-config record fields carried by this document."""
        return {
            "title": self.title,
            "number": self.number,
            "type": self.doc_type,
            "source": self.source,
            "date": self.date,
            "authority": self.authority,
        }


class TextSegmenter:
    """
    Regex segmenter for Italian legal text.

    Articles are split on lookahead boundaries so the marker stays with its
    content; commas are split the same way inside each article. Articles
    with no numbered commas have no comma units: the chunker splits their
    whole text.

    Usage:
        segmenter = TextSegmenter()
        articles = segmenter.segment(text)
        for art in articles:
            print(art.number, art.title, len(art.commas))
    """

    # Art. 5 / Articolo 5 / ARTICOLO 5 / Articolo unico, at line start or after whitespace
    ARTICLE_BOUNDARY = re.compile(
        r"(?:^|(?<=\s))(?=(?:Art\.|Articolo|ARTICOLO)\s*(?:\d|unico\b|UNICO\b))",
        re.MULTILINE,
    )
    ARTICLE_HEADER = re.compile(
        r"^(?:Art\.|Articolo|ARTICOLO)\s*"
        r"(?:(\d+)(?:\s*[-.]?\s*(bis|ter|quater|quinquies|sexies|septies|octies|novies|decies)\b)?"
        r"|unico\b|UNICO\b)"
    )

    # 1. / (1) / Comma 1, never after "n. ", "art. " or "comma " (references)
    COMMA_BOUNDARY = re.compile(
        r"(?:^|(?<=\s))(?<!n\.\s)(?<!art\.\s)(?<!Art\.\s)(?<!comma\s)(?<!Articolo\s)(?<!ARTICOLO\s)"
        r"(?=\d+\.\s|\(\d+\)|Comma\s+\d+)",
        re.MULTILINE,
    )
    COMMA_NUMBER = re.compile(r"^(?:(\d+)\.|\((\d+)\)|Comma\s+(\d+))")

    TITLE_SEPARATOR = re.compile(r"^[-\u2013\u2014:]\s*")
    TITLE_MAX_LENGTH = 100

    def __init__(self, min_segment_length: int = MIN_SEGMENT_LENGTH):
        self.min_segment_length = min_segment_length

    def segment(self, text: str) -> List[Article]:
        """
        Split text into articles.

        Args:
            text: Cleaned document text

        Returns:
            Ordered list of Article (empty if no article marker is found)
        """
        _, articles = self.split(text)
        return articles

    def split(self, text: str) -> Tuple[str, List[Article]]:
        """
        Split text into preamble and articles.

        Returns:
            (preamble, articles)
        """
        if not text or not text.strip():
            return "", []

        preamble = ""
        articles: List[Article] = []
        discarded = 0

        for piece in self.ARTICLE_BOUNDARY.split(text):
            section = piece.strip()
            if not section:
                continue

            header = self.ARTICLE_HEADER.match(section)
            if header is None:
                # Only the text before the first marker lacks a header
                preamble = f"{preamble}\n{section}".strip() if preamble else section
                continue

            if len(section) < self.min_segment_length:
                discarded += 1
                continue

            number = self._article_number(header, fallback=len(articles) + 1)
            articles.append(Article(
                number=number,
                text=section,
                title=self._extract_title(section, header.end()),
                commas=self.split_commas(section),
            ))

        if discarded:
            log.debug("Discarded short article segments", count=discarded)

        return preamble, articles

    def split_commas(self, article_text: str) -> Tuple[Comma, ...]:
        """
        Split an article into comma units.

        The first piece holds the article marker (and title): it is merged
        into the first comma so no text is lost. Pieces shorter than the
        noise threshold travel with the next comma (or the previous one, at
        the end of the article).

        Args:
            article_text: Article text starting with its marker

        Returns:
            Tuple of Comma (empty if the article has no numbered commas)
        """
        pieces = self.COMMA_BOUNDARY.split(article_text)
        if not any(self.COMMA_NUMBER.match(p.strip()) for p in pieces[1:]):
            return ()

        commas: List[Comma] = []
        carry = ""
        for index, piece in enumerate(pieces):
            segment = piece.strip()
            if not segment:
                continue
            marker = self.COMMA_NUMBER.match(segment)
            if carry:
                segment = f"{carry}\n{segment}"
                carry = ""
            if (index == 0 and marker is None) or len(segment) < self.min_segment_length:
                carry = segment
                continue

            number = next((g for g in marker.groups() if g), None) if marker else None
            commas.append(Comma(number=number or str(len(commas) + 1), text=segment))

        if carry and commas:
            last = commas[-1]
            commas[-1] = Comma(number=last.number, text=f"{last.text}\n{carry}")

        return tuple(commas)

    def _article_number(self, header: "re.Match", fallback: int) -> str:
        digits, suffix = header.group(1), header.group(2)
        if not digits:
            return str(fallback)
        return f"{digits}-{suffix.lower()}" if suffix else digits

    def _extract_title(self, section: str, header_end: int) -> str:
        """
        Rubrica of the article.

        Rest of the marker line after a dash, or the rest of the line / the
        following line when short and without a period. Empty otherwise.
        """
        lines = section[header_end:].split("\n")
        rest = lines[0].strip()

        if rest:
            separator = self.TITLE_SEPARATOR.match(rest)
            candidate = rest[separator.end():].strip() if separator else rest.lstrip(". ").strip()
            if separator and candidate:
                return candidate
            return candidate if self._looks_like_title(candidate) else ""

        following = next((line.strip() for line in lines[1:] if line.strip()), "")
        return following if self._looks_like_title(following) else ""

    def _looks_like_title(self, line: str) -> bool:
        if not line or len(line) >= self.TITLE_MAX_LENGTH:
            return False
        if line.startswith("(") and line.endswith(")"):
            return True
        return "." not in line and not line.endswith((";", ":"))


def parse_document(
    raw_text: str,
    config: Optional[Mapping[str, Any]] = None,
    is_html: bool = False,
    segmenter: Optional[TextSegmenter] = None,
) -> Document:
    """
    Build a Document from already-fetched raw text and its config record.

    Args:
        raw_text: Raw text or HTML
        config: Document-config record {title, number, type, source, date, authority}
        is_html: Extract text from HTML first
        segmenter: Custom segmenter (default TextSegmenter())

    Returns:
        Document (no articles when the text carries no legal marker)

    Example:
        >>> doc = parse_document(html, {"title": "L. 1150/1942", "number": "1150/1942",
        ...                             "type": "legge", "source": "normattiva"}, is_html=True)
        >>> doc.article_count
        12
    """
    config = dict(config or {})
    text = html_to_text(raw_text) if is_html else clean_text(raw_text)
    segmenter = segmenter or TextSegmenter()

    preamble, articles = "", []
    if is_legal_document(text):
        preamble, articles = segmenter.split(text)
    elif text:
        log.debug("No legal markers, using generic structure", chars=len(text))

    doc_type = str(config.get("type", "") or "")
    number = str(config.get("number", "") or "")
    source = str(config.get("source", "") or "")
    document_id = config.get("document_id") or make_document_id(source, doc_type, number)

    document = Document(
        document_id=document_id,
        full_text=text,
        title=str(config.get("title", "") or ""),
        doc_type=doc_type,
        number=number,
        date=str(config.get("date", "") or ""),
        authority=str(config.get("authority", "") or ""),
        source=source,
        articles=tuple(articles),
        preamble=preamble,
    )

    log.info(
        "Document parsed",
        document_id=document.document_id,
        articles=document.article_count,
        chars=document.text_length,
    )
    return document


__all__ = [
    "TOKEN_RATIO",
    "MIN_SEGMENT_LENGTH",
    "estimate_tokens",
    "is_legal_document",
    "clean_text",
    "html_to_text",
    "make_document_id",
    "Comma",
    "Article",
    "Document",
    "TextSegmenter",
    "parse_document",
]
