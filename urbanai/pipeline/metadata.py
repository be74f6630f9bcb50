"""
Legal Metadata Enricher
=======================

Classifica un Document e calcola le annotazioni usate nel ranking.

Analisi a livello documento:
- Tipo di atto (legge, decreto legge, d.lgs., d.p.r., regolamento, circolare)
- Topic urbanistici pesati (pianificazione, edilizia, vincoli, ...)
- Stato (vigente/abrogato/modificato/sospeso/decaduto) e storia modifiche
- Complessità strutturale, riferimenti, autorità, date e scadenze
- Metriche di qualità e confidenza complessiva (0-100)

Analisi a livello chunk:
- Topic del chunk, riferimenti, complessità e leggibilità
- Contesto legale (articolo/comma) e indicatori di rilevanza
- Serializzazione piatta (solo primitive e liste di stringhe) per il vector store

Il componente è puro: stesso input, stessi metadati. Nessun timestamp.

Esempio:
    >>> enricher = MetadataEnricher()
    >>> metadata = enricher.extract_metadata(document, {"type": "legge"})
    >>> metadata.classification.formal_citation
    'L 1150'
    >>> metadata.topics.primary_topics[0].topic
    'pianificazione'
"""

import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Pattern, Tuple

import structlog

from urbanai.models.regions import find_region
from urbanai.pipeline.chunking import Chunk
from urbanai.pipeline.parsing import Document

log = structlog.get_logger()

EXTRACTOR_VERSION = "1.0.0"


# ============================================================================
# Declarative tables
# ============================================================================

@dataclass(frozen=True)
class DocumentTypeRule:
    """
    Tipo di atto riconoscibile nel testo.

    Attributes:
        name: Nome del tipo (es. "decreto_legislativo")
        patterns: Regex in ordine di specificità; il gruppo 1 è il numero
        authority: Autorità emanante di default
        prefix: Prefisso per la citazione formale
        description: Descrizione leggibile
    """
    name: str
    patterns: Tuple[str, ...]
    authority: str
    prefix: str
    description: str


@dataclass(frozen=True)
class TopicRule:
    """Topic urbanistico: keyword e peso per occorrenza."""
    name: str
    keywords: Tuple[str, ...]
    weight: int
    description: str


_NUM = r"(?:n\.\s*)?(\d+(?:/\d+)?)"

DOCUMENT_TYPES: Tuple[DocumentTypeRule, ...] = (
    DocumentTypeRule(
        name="legge",
        patterns=(
            r"\blegge\s+\d{1,2}\s+[a-z]+\s+\d{4},?\s*n\.\s*(\d+)",
            r"\b(?:legge|l\.)\s*" + _NUM,
        ),
        authority="Parlamento",
        prefix="L",
        description="Legge ordinaria dello Stato",
    ),
    DocumentTypeRule(
        name="decreto_legge",
        patterns=(r"\b(?:d\.l\.|decreto[\s-]+legge)\s*" + _NUM,),
        authority="Governo",
        prefix="DL",
        description="Decreto Legge",
    ),
    DocumentTypeRule(
        name="decreto_legislativo",
        patterns=(r"\b(?:d\.\s?lgs\.?|decreto\s+legislativo)\s*" + _NUM,),
        authority="Governo",
        prefix="DLgs",
        description="Decreto Legislativo",
    ),
    DocumentTypeRule(
        name="decreto_presidente",
        patterns=(r"\b(?:dpr|d\.p\.r\.|decreto\s+del\s+presidente(?:\s+della\s+repubblica)?)\s*" + _NUM,),
        authority="Presidente della Repubblica",
        prefix="DPR",
        description="Decreto del Presidente della Repubblica",
    ),
    DocumentTypeRule(
        name="regolamento",
        patterns=(r"\bregolamento\s*" + _NUM,),
        authority="Varie",
        prefix="Reg",
        description="Regolamento",
    ),
    DocumentTypeRule(
        name="circolare",
        patterns=(r"\bcircolare\s*" + _NUM,),
        authority="Ministero",
        prefix="Circ",
        description="Circolare ministeriale",
    ),
)

# Alias dei tipi dichiarati nel document-config
TYPE_HINT_ALIASES: Dict[str, str] = {
    "l": "legge",
    "dl": "decreto_legge",
    "dlgs": "decreto_legislativo",
    "d.lgs.": "decreto_legislativo",
    "dpr": "decreto_presidente",
    "d.p.r.": "decreto_presidente",
}

# Tipo di classificazione -> document_type usato da ricerca e citazioni
SEARCH_DOCUMENT_TYPES: Dict[str, str] = {
    "legge": "legge",
    "decreto_legge": "decreto",
    "decreto_legislativo": "dlgs",
    "decreto_presidente": "dpr",
    "regolamento": "regolamento",
    "circolare": "circolare",
}

URBAN_TOPICS: Tuple[TopicRule, ...] = (
    TopicRule(
        "pianificazione",
        ("piano regolatore", "prg", "pgt", "put", "pianificazione", "zonizzazione", "destinazione urbanistica"),
        10,
        "Pianificazione territoriale e urbanistica",
    ),
    TopicRule(
        "edilizia",
        ("permesso di costruire", "scia", "cila", "dia", "edilizia libera", "costruzione", "edificio"),
        10,
        "Procedure e titoli edilizi",
    ),
    TopicRule(
        "vincoli",
        ("vincolo paesaggistico", "beni culturali", "tutela", "soprintendenza", "autorizzazione paesaggistica"),
        8,
        "Vincoli e tutele",
    ),
    TopicRule(
        "esproprio",
        ("esproprio", "espropriazione", "pubblica utilità", "indennità"),
        7,
        "Procedure espropriative",
    ),
    TopicRule(
        "ambiente",
        ("ambiente", "impatto ambientale", "via", "vas", "sostenibilità"),
        6,
        "Ambiente e sostenibilità",
    ),
    TopicRule(
        "standard",
        ("standard urbanistici", "servizi pubblici", "verde pubblico", "parcheggi"),
        6,
        "Standard urbanistici",
    ),
    TopicRule(
        "abuso",
        ("abuso edilizio", "demolizione", "sanatoria", "condono"),
        8,
        "Abusi edilizi e sanatorie",
    ),
    TopicRule(
        "procedimento",
        ("procedimento amministrativo", "autorizzazione", "conferenza servizi", "silenzio assenso"),
        5,
        "Procedimenti amministrativi",
    ),
)

STATUS_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "vigente": ("vigente", "in vigore", "efficace"),
    "abrogato": ("abrogato", "abrogata", "cessato", "non più vigente"),
    "modificato": ("modificato", "modificata", "come modificato", "novellato"),
    "sospeso": ("sospeso", "sospesa", "temporaneamente sospeso"),
    "decaduto": ("decaduto", "decaduta", "scaduto"),
}
DEFAULT_STATUS = "vigente"

MODIFICATION_PATTERNS: Tuple[Pattern, ...] = (
    re.compile(r"(?:modificato|sostituito|integrato)\s+(?:dall['\u2019]|dalla\s+|dal\s+|da\s+)\s*([^.]+)", re.IGNORECASE),
    re.compile(r"come\s+modificato\s+da\s*([^.]+)", re.IGNORECASE),
)

REFERENCE_PATTERNS: Dict[str, Pattern] = {
    "internal_article": re.compile(r"\b(?:art\.|articolo)\s*(\d+)", re.IGNORECASE),
    "internal_comma": re.compile(r"\bcomma\s*(\d+)", re.IGNORECASE),
    "internal_letter": re.compile(r"\blett\.\s*([a-z])\)", re.IGNORECASE),
    "external_law": re.compile(r"\b(?:legge|l\.)\s*(\d+/\d+)", re.IGNORECASE),
    "external_dpr": re.compile(r"\b(?:dpr|d\.p\.r\.)\s*(\d+/\d+)", re.IGNORECASE),
    "external_dlgs": re.compile(r"\b(?:d\.lgs\.|decreto\s+legislativo)\s*(\d+/\d+)", re.IGNORECASE),
    "testo_unico": re.compile(r"\b(?:testo\s+unico|t\.u\.)", re.IGNORECASE),
    "costituzione": re.compile(r"\bcostituzione\b", re.IGNORECASE),
    "codice_civile": re.compile(r"\bcodice\s+civile\b", re.IGNORECASE),
}

COMPETENT_AUTHORITIES: Tuple[Tuple[str, str, Tuple[str, ...]], ...] = (
    ("Comune", "municipal", ("comune", "comunale", "sindaco", "giunta comunale")),
    ("Regione", "regional", ("regione", "regionale", "giunta regionale")),
    ("Provincia", "provincial", ("provincia", "provinciale")),
    ("Ministero", "national", ("ministero", "ministeriale", "ministro")),
    ("Soprintendenza", "special", ("soprintendenza", "soprintendente")),
)

DEADLINE_KEYWORDS: Tuple[str, ...] = (
    "entro", "scadenza", "termine", "decorso", "giorni", "mesi", "anni",
    "dall'entrata in vigore", "dalla pubblicazione",
)

CHUNK_LEGAL_TERMS: Tuple[str, ...] = (
    "articolo", "comma", "lettera", "decreto", "legge", "regolamento",
    "autorizzazione", "permesso", "procedimento", "vincolo", "tutela",
)

CHUNK_RELEVANCE_INDICATORS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("definitions", ("definizioni",)),
    ("sanctions", ("sanzioni",)),
    ("procedure", ("procedura", "procedimento")),
    ("requirements", ("requisiti",)),
    ("obligations", ("obblighi",)),
)

_MONTHS = (
    "gennaio|febbraio|marzo|aprile|maggio|giugno|luglio|agosto|"
    "settembre|ottobre|novembre|dicembre"
)
DATE_PATTERN = re.compile(
    r"\b(?:\d{1,2}[-/]\d{1,2}[-/]\d{4}|\d{4}[-/]\d{1,2}[-/]\d{1,2}|\d{1,2}\s+(?:" + _MONTHS + r")\s+\d{4})\b",
    re.IGNORECASE,
)
MAX_DATES = 20


def _keyword_pattern(keyword: str) -> Pattern:
    parts = [re.escape(part) for part in keyword.split()]
    return re.compile(r"(?<!\w)" + r"\s+".join(parts) + r"(?!\w)", re.IGNORECASE)


# ============================================================================
# Result types
# ============================================================================

@dataclass
class DocumentClassification:
    """Tipo di atto riconosciuto."""
    primary_type: str = "unknown"
    confidence: int = 0
    authority: Optional[str] = None
    formal_citation: Optional[str] = None
    number: Optional[str] = None
    detected_patterns: List[str] = field(default_factory=list)


@dataclass
class TopicScore:
    topic: str
    score: int
    description: str
    found_keywords: Dict[str, int] = field(default_factory=dict)


@dataclass
class TopicAnalysis:
    primary_topics: List[TopicScore] = field(default_factory=list)
    secondary_topics: List[TopicScore] = field(default_factory=list)
    topic_scores: Dict[str, TopicScore] = field(default_factory=dict)
    urbanistic_relevance: int = 0


@dataclass
class StatusAnalysis:
    current_status: str = DEFAULT_STATUS
    confidence: int = 50
    indicators: List[Dict[str, str]] = field(default_factory=list)
    modification_history: List[str] = field(default_factory=list)


@dataclass
class StructureAnalysis:
    total_articles: int = 0
    articles_with_commas: int = 0
    avg_commas_per_article: float = 0.0
    structural_complexity: str = "simple"
    has_annexes: bool = False
    hierarchical_depth: int = 1


@dataclass
class ReferenceAnalysis:
    internal_references: Dict[str, int] = field(default_factory=dict)
    external_references: Dict[str, int] = field(default_factory=dict)
    targets: Dict[str, List[str]] = field(default_factory=dict)
    total_references: int = 0
    reference_density: float = 0.0


@dataclass
class AuthorityAnalysis:
    issuing_authority: str = "unknown"
    competent_authorities: List[Dict[str, Any]] = field(default_factory=list)
    territorial_scope: str = "national"
    administrative_level: str = "state"
    region: Optional[str] = None


@dataclass
class TemporalAnalysis:
    publication_date: Optional[str] = None
    important_dates: List[Dict[str, str]] = field(default_factory=list)
    temporal_references: List[str] = field(default_factory=list)
    has_deadlines: bool = False


@dataclass
class QualityMetrics:
    completeness_score: int = 0
    structure_score: int = 0
    metadata_richness: float = 0.0
    overall_quality: int = 0


@dataclass
class EnrichedMetadata:
    """
    Metadati arricchiti di un documento, calcolati una volta dopo il chunking.

    Attributes:
        document_id: Documento di riferimento
        title/doc_type/number/date/source/authority: Campi del document-config
            (i config hints prevalgono sui campi del parser)
        classification: Tipo di atto, confidenza, citazione formale
        topics: Punteggi per topic urbanistico
        status: Stato di vigenza e storia delle modifiche
        structure: Complessità strutturale
        references: Riferimenti interni ed esterni
        authority_analysis: Autorità e ambito territoriale
        temporal: Date e scadenze
        quality: Metriche di qualità
        confidence_score: Confidenza complessiva 0-100
    """
    document_id: str
    title: str
    doc_type: str
    number: str
    date: str
    source: str
    authority: str
    classification: DocumentClassification
    topics: TopicAnalysis
    status: StatusAnalysis
    structure: StructureAnalysis
    references: ReferenceAnalysis
    authority_analysis: AuthorityAnalysis
    temporal: TemporalAnalysis
    quality: QualityMetrics
    confidence_score: int
    extractor_version: str = EXTRACTOR_VERSION

    @property
    def document_type(self) -> str:
        """Tipo usato da ricerca e citazioni: hint dichiarato o tipo classificato."""
        if self.doc_type:
            return self.doc_type.lower()
        return SEARCH_DOCUMENT_TYPES.get(self.classification.primary_type, self.classification.primary_type)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["document_type"] = self.document_type
        return data

    def to_vector_fields(self) -> Dict[str, Any]:
        """Campi documento propagati a ogni chunk nel vector store."""
        return {
            "document_id": self.document_id,
            "document_title": self.title,
            "document_type": self.document_type,
            "document_number": self.number,
            "document_date": self.date,
            "document_source": self.source,
            "authority": self.authority or self.authority_analysis.issuing_authority,
            "formal_citation": self.classification.formal_citation,
            "legal_status": self.status.current_status,
            "primary_topics": [t.topic for t in self.topics.primary_topics],
            "urbanistic_relevance": self.topics.urbanistic_relevance,
            "territorial_scope": self.authority_analysis.territorial_scope,
            "region": self.authority_analysis.region,
            "structural_complexity": self.structure.structural_complexity,
            "overall_quality": self.quality.overall_quality,
            "confidence_score": self.confidence_score,
        }


@dataclass
class ChunkAnnotations:
    """Annotazioni di un singolo chunk."""
    chunk_topics: List[TopicScore] = field(default_factory=list)
    reference_counts: Dict[str, int] = field(default_factory=dict)
    sentence_count: int = 0
    legal_terms: int = 0
    readability: float = 50.0
    legal_context: str = "document_general"
    relevance_indicators: List[str] = field(default_factory=list)
    position_percentage: int = 0
    document_topics: List[str] = field(default_factory=list)


# ============================================================================
# Flattening
# ============================================================================

def flatten_metadata(data: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    """
    Appiattisce un dizionario per il vector store.

    Valori ammessi: str, int, float, bool, liste di stringhe. I dizionari
    annidati diventano chiavi "padre_figlio", i None vengono scartati.

    Example:
        >>> flatten_metadata({"a": {"b": 1}, "tags": ["x", 2], "n": None})
        {'a_b': 1, 'tags': ['x', '2']}
    """
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        name = f"{prefix}{key}"
        if value is None:
            continue
        if isinstance(value, Enum):
            value = value.value
        if isinstance(value, (bool, int, float, str)):
            flat[name] = value
        elif isinstance(value, Mapping):
            flat.update(flatten_metadata(value, prefix=f"{name}_"))
        elif isinstance(value, (list, tuple, set)):
            flat[name] = [
                str(item.value if isinstance(item, Enum) else item)
                for item in value
                if item is not None
            ]
        else:
            flat[name] = str(value)
    return flat


# ============================================================================
# Enricher
# ============================================================================

class MetadataEnricher:
    """
    Estrattore di metadati per documenti normativi italiani.

    Le tabelle (tipi di atto, topic, keyword di stato) sono iniettabili
    per i test.

    Esempio:
        >>> enricher = MetadataEnricher()
        >>> meta = enricher.extract_metadata(document)
        >>> meta.status.current_status
        'vigente'
    """

    def __init__(
        self,
        document_types: Optional[Tuple[DocumentTypeRule, ...]] = None,
        topics: Optional[Tuple[TopicRule, ...]] = None,
        status_keywords: Optional[Dict[str, Tuple[str, ...]]] = None,
    ):
        self.document_types = document_types or DOCUMENT_TYPES
        self.topics = topics or URBAN_TOPICS
        self.status_keywords = status_keywords or STATUS_KEYWORDS

        self._type_patterns = [
            (rule, [re.compile(p, re.IGNORECASE) for p in rule.patterns])
            for rule in self.document_types
        ]
        self._topic_patterns = [
            (rule, [(kw, _keyword_pattern(kw)) for kw in rule.keywords])
            for rule in self.topics
        ]
        self._status_patterns = [
            (status, [(kw, _keyword_pattern(kw)) for kw in keywords])
            for status, keywords in self.status_keywords.items()
        ]
        self._authority_patterns = [
            (name, level, [_keyword_pattern(kw) for kw in keywords])
            for name, level, keywords in COMPETENT_AUTHORITIES
        ]
        self._deadline_patterns = [(kw, _keyword_pattern(kw)) for kw in DEADLINE_KEYWORDS]
        self._legal_term_patterns = [_keyword_pattern(t) for t in CHUNK_LEGAL_TERMS]
        self._indicator_patterns = [
            (name, [_keyword_pattern(kw) for kw in keywords])
            for name, keywords in CHUNK_RELEVANCE_INDICATORS
        ]

    def extract_metadata(
        self,
        document: Document,
        config_hints: Optional[Mapping[str, Any]] = None,
    ) -> EnrichedMetadata:
        """
        Calcola i metadati arricchiti di un documento.

        Args:
            document: Documento parsato
            config_hints: Record {title, number, type, source, date, authority};
                i valori non vuoti prevalgono sui campi del documento

        Returns:
            EnrichedMetadata
        """
        fields = document.hints()
        for key, value in (config_hints or {}).items():
            if value:
                fields[key] = str(value)

        text = document.full_text
        classification = self.classify_document(text, fields.get("type", ""))
        topics = self.analyze_topics(text)
        status = self.analyze_status(text)
        structure = self.analyze_structure(document)
        references = self.analyze_references(text)
        authority = self.analyze_authority(text, classification, fields.get("authority", ""))
        temporal = self.analyze_temporal(text, fields.get("date") or None)
        quality = self.quality_metrics(document, fields)
        confidence = self.confidence_score(document, fields, classification)

        metadata = EnrichedMetadata(
            document_id=document.document_id,
            title=fields.get("title", ""),
            doc_type=fields.get("type", ""),
            number=fields.get("number", ""),
            date=fields.get("date", ""),
            source=fields.get("source", ""),
            authority=fields.get("authority", ""),
            classification=classification,
            topics=topics,
            status=status,
            structure=structure,
            references=references,
            authority_analysis=authority,
            temporal=temporal,
            quality=quality,
            confidence_score=confidence,
        )

        log.info(
            "Metadata extracted",
            document_id=document.document_id,
            primary_type=classification.primary_type,
            status=status.current_status,
            relevance=topics.urbanistic_relevance,
            confidence=confidence,
        )
        return metadata

    # ------------------------------------------------------------------
    # Document-level analyses
    # ------------------------------------------------------------------

    def classify_document(self, text: str, type_hint: str = "") -> DocumentClassification:
        """
        Tipo di atto con il punteggio più alto (match * 10, +20 se coincide con l'hint).

        Nessun match: tipo "unknown", confidenza 0.
        """
        hint = (type_hint or "").strip().lower()
        hint = TYPE_HINT_ALIASES.get(hint, hint)

        best: Optional[DocumentClassification] = None
        best_score = 0
        for rule, patterns in self._type_patterns:
            matches = []
            number = None
            for pattern in patterns:
                found = list(pattern.finditer(text))
                if found and number is None:
                    number = found[0].group(1)
                matches.extend(m.group(0) for m in found)
            if not matches:
                continue

            score = len(matches) * 10 + (20 if rule.name == hint else 0)
            if score > best_score:
                best_score = score
                best = DocumentClassification(
                    primary_type=rule.name,
                    confidence=min(95, score),
                    authority=rule.authority,
                    formal_citation=f"{rule.prefix} {number}",
                    number=number,
                    detected_patterns=matches[:10],
                )

        return best or DocumentClassification()

    def analyze_topics(self, text: str) -> TopicAnalysis:
        """Punteggio per topic = somma(occorrenze keyword * peso topic)."""
        scores: Dict[str, TopicScore] = {}
        for rule, keywords in self._topic_patterns:
            found: Dict[str, int] = {}
            for keyword, pattern in keywords:
                count = len(pattern.findall(text))
                if count:
                    found[keyword] = count
            score = sum(found.values()) * rule.weight
            if score > 0:
                scores[rule.name] = TopicScore(
                    topic=rule.name,
                    score=score,
                    description=rule.description,
                    found_keywords=found,
                )

        ranked = sorted(scores.values(), key=lambda t: t.score, reverse=True)
        total = sum(t.score for t in ranked)
        return TopicAnalysis(
            primary_topics=ranked[:3],
            secondary_topics=ranked[3:6],
            topic_scores=scores,
            urbanistic_relevance=min(100, round(total / 10)),
        )

    def analyze_status(self, text: str) -> StatusAnalysis:
        """Stato di vigenza: default vigente (50), qualunque altro stato trovato vale 80."""
        analysis = StatusAnalysis()
        for status, keywords in self._status_patterns:
            for keyword, pattern in keywords:
                if pattern.search(text):
                    analysis.indicators.append({"status": status, "keyword": keyword})
                    if status != DEFAULT_STATUS:
                        analysis.current_status = status
                        analysis.confidence = 80

        seen = set()
        for pattern in MODIFICATION_PATTERNS:
            for match in pattern.finditer(text):
                description = match.group(1).strip()[:200]
                if description and description.lower() not in seen:
                    seen.add(description.lower())
                    analysis.modification_history.append(description)
        return analysis

    def analyze_structure(self, document: Document) -> StructureAnalysis:
        total = document.article_count
        analysis = StructureAnalysis(total_articles=total)

        if total:
            comma_counts = [len(a.commas) for a in document.articles]
            analysis.articles_with_commas = sum(1 for c in comma_counts if c > 0)
            analysis.avg_commas_per_article = round(sum(comma_counts) / total, 2)
            if any(c > 5 for c in comma_counts):
                analysis.hierarchical_depth = 2

        if total > 100:
            analysis.structural_complexity = "very_complex"
        elif total > 50:
            analysis.structural_complexity = "complex"
        elif total > 20:
            analysis.structural_complexity = "moderate"

        lowered = document.full_text.lower()
        analysis.has_annexes = any(word in lowered for word in ("allegato", "tabella", "schema"))
        return analysis

    def analyze_references(self, text: str) -> ReferenceAnalysis:
        analysis = ReferenceAnalysis()
        for ref_type, pattern in REFERENCE_PATTERNS.items():
            matches = list(pattern.finditer(text))
            if not matches:
                continue
            bucket = (
                analysis.internal_references
                if ref_type.startswith("internal_")
                else analysis.external_references
            )
            bucket[ref_type] = len(matches)
            targets = [m.group(1) for m in matches if m.groups() and m.group(1)]
            if targets:
                analysis.targets[ref_type] = targets[:20]
            analysis.total_references += len(matches)

        if text:
            analysis.reference_density = round(analysis.total_references * 1000 / len(text), 2)
        return analysis

    def analyze_authority(
        self,
        text: str,
        classification: DocumentClassification,
        declared_authority: str = "",
    ) -> AuthorityAnalysis:
        """Autorità emanante, autorità citate, ambito territoriale (regionale > comunale > nazionale)."""
        analysis = AuthorityAnalysis()
        if declared_authority:
            analysis.issuing_authority = declared_authority
        elif classification.authority:
            analysis.issuing_authority = classification.authority

        for name, level, patterns in self._authority_patterns:
            mentions = sum(1 for p in patterns if p.search(text))
            if mentions:
                analysis.competent_authorities.append({"name": name, "level": level, "mentions": mentions})

        lowered = text.lower()
        if "regione" in lowered or "regionale" in lowered:
            analysis.territorial_scope = "regional"
            analysis.administrative_level = "regional"
            analysis.region = find_region(text)
        elif "comune" in lowered or "comunale" in lowered:
            analysis.territorial_scope = "municipal"
            analysis.administrative_level = "municipal"
        return analysis

    def analyze_temporal(self, text: str, publication_date: Optional[str] = None) -> TemporalAnalysis:
        analysis = TemporalAnalysis(publication_date=publication_date)
        for match in DATE_PATTERN.finditer(text):
            if len(analysis.important_dates) >= MAX_DATES:
                break
            start = max(0, match.start() - 50)
            analysis.important_dates.append({
                "date": match.group(0),
                "context": text[start:match.end() + 50].strip(),
            })

        for keyword, pattern in self._deadline_patterns:
            if pattern.search(text):
                analysis.temporal_references.append(keyword)
        analysis.has_deadlines = bool(analysis.temporal_references)
        return analysis

    def quality_metrics(self, document: Document, fields: Mapping[str, str]) -> QualityMetrics:
        """
        completeness (lunghezza), structure (numero articoli), richness
        (title/number/date/type presenti); overall = 0.4/0.4/0.2.
        """
        length = document.text_length
        if length > 10000:
            completeness = 95
        elif length > 5000:
            completeness = 80
        elif length > 1000:
            completeness = 60
        else:
            completeness = 30

        articles = document.article_count
        if articles > 20:
            structure = 95
        elif articles > 10:
            structure = 80
        elif articles > 5:
            structure = 60
        elif articles > 0:
            structure = 40
        else:
            structure = 20

        present = sum(1 for key in ("title", "number", "date", "type") if fields.get(key))
        richness = present / 4 * 100

        return QualityMetrics(
            completeness_score=completeness,
            structure_score=structure,
            metadata_richness=richness,
            overall_quality=round(completeness * 0.4 + structure * 0.4 + richness * 0.2),
        )

    def confidence_score(
        self,
        document: Document,
        fields: Mapping[str, str],
        classification: DocumentClassification,
    ) -> int:
        """Media di quattro fattori: tipo, struttura, campi presenti, lunghezza."""
        present = sum(1 for key in ("title", "number", "type") if fields.get(key))
        length = document.text_length
        if length > 5000:
            length_factor = 90
        elif length > 1000:
            length_factor = 70
        else:
            length_factor = 40

        factors = [
            classification.confidence,
            80 if document.articles else 40,
            present / 3 * 100,
            length_factor,
        ]
        return round(sum(factors) / len(factors))

    # ------------------------------------------------------------------
    # Chunk-level
    # ------------------------------------------------------------------

    def annotate_chunk(
        self,
        chunk: Chunk,
        metadata: EnrichedMetadata,
        total_chunks: Optional[int] = None,
    ) -> ChunkAnnotations:
        """
        Topic, riferimenti, complessità e contesto di un chunk.

        Args:
            chunk: Chunk da annotare
            metadata: Metadati del documento di provenienza
            total_chunks: Chunk totali del documento (default 100)

        Returns:
            ChunkAnnotations; document_topics sono i topic del chunk che
            sono anche topic primari del documento
        """
        text = chunk.content

        chunk_topics = []
        for rule, keywords in self._topic_patterns:
            found = {kw: 1 for kw, pattern in keywords if pattern.search(text)}
            if found:
                chunk_topics.append(TopicScore(
                    topic=rule.name,
                    score=len(found) * rule.weight,
                    description=rule.description,
                    found_keywords=found,
                ))
        chunk_topics.sort(key=lambda t: t.score, reverse=True)

        reference_counts = {
            ref_type: len(pattern.findall(text))
            for ref_type, pattern in REFERENCE_PATTERNS.items()
            if pattern.search(text)
        }

        if chunk.hierarchy.article is None:
            legal_context = "document_general"
        elif chunk.hierarchy.comma is None:
            legal_context = "article_main"
        else:
            legal_context = "article_comma"

        primary = {t.topic for t in metadata.topics.primary_topics}
        total = total_chunks or 100

        return ChunkAnnotations(
            chunk_topics=chunk_topics,
            reference_counts=reference_counts,
            sentence_count=len([s for s in re.split(r"[.!?]+", text) if s.strip()]),
            legal_terms=sum(1 for p in self._legal_term_patterns if p.search(text)),
            readability=self.readability(text),
            legal_context=legal_context,
            relevance_indicators=[
                name for name, patterns in self._indicator_patterns
                if any(p.search(text) for p in patterns)
            ],
            position_percentage=round(chunk.position / total * 100),
            document_topics=[t.topic for t in chunk_topics if t.topic in primary],
        )

    @staticmethod
    def readability(text: str) -> float:
        """100 - (parole per frase * 0.5 + caratteri per parola * 2), in [0, 100]."""
        sentences = [s for s in re.split(r"[.!?]+", text) if s.strip()]
        words = text.split()
        if not sentences or not words:
            return 50.0
        words_per_sentence = len(words) / len(sentences)
        chars_per_word = sum(len(w) for w in words) / len(words)
        complexity = words_per_sentence * 0.5 + chars_per_word * 2
        return round(max(0.0, min(100.0, 100 - complexity)), 1)

    def build_vector_metadata(
        self,
        chunk: Chunk,
        metadata: EnrichedMetadata,
        total_chunks: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Metadati piatti di un chunk per l'upsert nel vector store.

        Returns:
            Dizionario con soli valori primitivi o liste di stringhe
        """
        annotations = self.annotate_chunk(chunk, metadata, total_chunks)
        record: Dict[str, Any] = dict(metadata.to_vector_fields())
        record.update({
            "chunk_id": chunk.chunk_id,
            "text": chunk.text,
            "tokens": chunk.tokens,
            "position_in_doc": chunk.position,
            "chunk_type": chunk.chunk_type,
            "quality_score": chunk.quality_score,
            "article_number": chunk.hierarchy.article,
            "article_title": chunk.hierarchy.article_title or None,
            "comma_number": chunk.hierarchy.comma,
            "hierarchy": chunk.hierarchy.levels,
            "references": [f"{r.type}:{r.target}" for r in chunk.references],
            "chunk_topics": [t.topic for t in annotations.chunk_topics],
            "legal_context": annotations.legal_context,
            "relevance_indicators": annotations.relevance_indicators,
            "legal_terms": annotations.legal_terms,
            "readability": annotations.readability,
            "position_percentage": annotations.position_percentage,
            "document_topics": annotations.document_topics,
        })
        return flatten_metadata(record)


def extract_metadata(
    document: Document,
    config_hints: Optional[Mapping[str, Any]] = None,
) -> EnrichedMetadata:
    """
    Convenience function per estrarre i metadati di un documento.

    Example:
        >>> meta = extract_metadata(document, {"type": "legge", "number": "1150/1942"})
        >>> meta.classification.formal_citation
        'L 1150'
    """
    return MetadataEnricher().extract_metadata(document, config_hints)


__all__ = [
    "DocumentTypeRule",
    "TopicRule",
    "DOCUMENT_TYPES",
    "URBAN_TOPICS",
    "STATUS_KEYWORDS",
    "DocumentClassification",
    "TopicScore",
    "TopicAnalysis",
    "StatusAnalysis",
    "StructureAnalysis",
    "ReferenceAnalysis",
    "AuthorityAnalysis",
    "TemporalAnalysis",
    "QualityMetrics",
    "EnrichedMetadata",
    "ChunkAnnotations",
    "flatten_metadata",
    "MetadataEnricher",
    "extract_metadata",
]
