"""
Response Composer
=================

Trasforma i match ordinati e la classificazione in una risposta strutturata.

Componenti della risposta:
- answer: testo da template per strategia, con estratti delle fonti migliori
- confidence: [0.1, 0.95], mai certezza piena
- sources: citazioni costruite solo dai metadati strutturati
- legal_disclaimer: testo fisso da template (full / minimal / regional)
- follow_up: domande suggerite
- metadata: strategia, namespace, tempi

Nessun contenuto viene generato dal nulla: senza match la risposta è un
template di "nessun risultato" con suggerimenti. Eventuali errori interni
producono un messaggio di scuse standard; il dettaglio resta nei log.

Esempio:
    >>> composer = ResponseComposer()
    >>> response = composer.compose("Distanze minime tra edifici?", matches, classification)
    >>> response.sources[0].citation
    'D.P.R. 380/2001 (2001), Art. 9'
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog

from urbanai.config.settings import ComposerConfig
from urbanai.models.namespaces import (
    DEFAULT_SOURCE_TYPE,
    LAWS_NATIONAL,
    NAMESPACE_SOURCE_TYPES,
    URBANISTICA_BASE,
)
from urbanai.models.regions import region_name
from urbanai.routing.models import QueryClassification, Strategy
from urbanai.storage.models import SearchMatch, as_float, document_year

log = structlog.get_logger()


# ============================================================================
# Templates
# ============================================================================

DISCLAIMER_TEMPLATES: Dict[str, str] = {
    "full": (
        "**Disclaimer Legale**\n\n"
        "Questa risposta ha valore puramente informativo e non costituisce consulenza legale professionale. "
        "Per applicazioni specifiche, interpretazioni vincolanti e pareri legalmente rilevanti, "
        "si consiglia di consultare un professionista abilitato (avvocato, urbanista, ingegnere).\n\n"
        "**Fonti consultate**: normattiva.it, gazzettaufficiale.it, database giurisprudenziale\n"
        "**Ultimo aggiornamento**: {last_update}\n"
        "**Versione database**: {db_version}"
    ),
    "minimal": (
        "Informazioni a scopo orientativo. Per pareri legali consultare un professionista abilitato."
    ),
    "regional": (
        "**Disclaimer Legale**\n\n"
        "Le informazioni regionali potrebbero non essere aggiornate. "
        "Verificare sempre sul Bollettino Ufficiale Regionale (BUR) per la normativa più recente."
    ),
}

ERROR_ANSWER = (
    "Mi dispiace, si è verificato un errore nella generazione della risposta. Riprova più tardi."
)

NO_RESULTS_SUGGESTIONS = (
    "• Riformulare la domanda con termini più specifici\n"
    "• Consultare direttamente le fonti normative ufficiali\n"
    "• Richiedere consulenza a un professionista abilitato"
)

STRATEGY_FOLLOW_UPS: Dict[Strategy, List[str]] = {
    Strategy.COMPREHENSIVE: [
        "Vuoi concentrarti sugli aspetti normativi, regionali o urbanistici?",
    ],
    Strategy.LEGAL_URBAN: [
        "Vuoi approfondire i requisiti procedurali specifici?",
        "Ti interessa la normativa regionale per la tua zona?",
    ],
    Strategy.REGIONAL_FOCUS: [
        "Vuoi confrontare con la normativa nazionale?",
        "Ti servono informazioni su altre regioni?",
    ],
    Strategy.LEGAL_ONLY: [
        "Vuoi vedere come si applica in pratica urbanistica?",
        "Ti interessa la giurisprudenza correlata?",
    ],
    Strategy.URBAN_LEGAL_LIGHT: [
        "Vuoi approfondire il quadro normativo di riferimento?",
    ],
    Strategy.URBAN_ONLY: [
        "Ti interessa la normativa che disciplina questo aspetto?",
    ],
}

GENERIC_FOLLOW_UPS = [
    "Hai bisogno di chiarimenti su punti specifici?",
    "Vuoi esempi pratici di applicazione?",
]

DOCUMENT_TYPE_LABELS: Dict[str, str] = {
    "legge": "Legge",
    "decreto": "Decreto",
    "dlgs": "D.Lgs.",
    "dpr": "D.P.R.",
    "regolamento": "Regolamento",
    "sentenza": "Sentenza",
    "circolare": "Circolare",
    "legge_regionale": "L.R.",
    "lr": "L.R.",
}

NORMATTIVA_URN = "https://www.normattiva.it/uri-res/N2Ls?urn:nir:stato:legge:{year}:{number}"


# ============================================================================
# Result types
# ============================================================================

@dataclass
class SourceCitation:
    """
    Fonte citata nella risposta.

    Tutti i campi derivano dai metadati del match, mai dal testo libero.
    """
    type: str
    title: str
    citation: Optional[str]
    url: Optional[str]
    relevance: float
    excerpt: str
    namespace: str
    article: Optional[str] = None
    document_number: Optional[str] = None
    date: Optional[str] = None
    quality_score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "title": self.title,
            "citation": self.citation,
            "url": self.url,
            "relevance": self.relevance,
            "excerpt": self.excerpt,
            "metadata": {
                "namespace": self.namespace,
                "article": self.article,
                "document_number": self.document_number,
                "date": self.date,
                "quality_score": self.quality_score,
            },
        }


@dataclass
class ComposedResponse:
    """
    Risposta finale.

    Attributes:
        answer: Testo della risposta
        confidence: Confidenza in [0.1, 0.95]
        sources: Fonti citate
        legal_disclaimer: Disclaimer da template, None per urban-only
        follow_up: Domande suggerite
        metadata: Strategia, namespace, tempi, marcatori d'errore
    """
    answer: str
    confidence: float
    sources: List[SourceCitation] = field(default_factory=list)
    legal_disclaimer: Optional[str] = None
    follow_up: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return bool(self.metadata.get("error"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "confidence": round(self.confidence, 4),
            "sources": [s.to_dict() for s in self.sources],
            "legal_disclaimer": self.legal_disclaimer,
            "follow_up": list(self.follow_up),
            "metadata": dict(self.metadata),
        }


@dataclass
class _Source:
    """Match normalizzato per la composizione."""
    rank: int
    score: float
    namespace: str
    source_type: str
    document_type: str
    document_title: str
    document_number: str
    document_date: str
    article_number: str
    article_title: str
    quality_score: float
    text: str
    url: str


def _field(metadata: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = metadata.get(key)
        if value not in (None, ""):
            return str(value)
    return ""


# ============================================================================
# Composer
# ============================================================================

class ResponseComposer:
    """
    Compone le risposte a partire dai match della ricerca.

    Args:
        config: ComposerConfig
    """

    def __init__(self, config: Optional[ComposerConfig] = None):
        self.config = config or ComposerConfig()

    def compose(
        self,
        query: str,
        matches: Sequence[SearchMatch],
        classification: QueryClassification,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> ComposedResponse:
        """
        Compone la risposta. Non solleva mai eccezioni.

        Args:
            query: Query dell'utente
            matches: Match ordinati dalla ricerca
            classification: Classificazione della query
            metadata: Campi aggiuntivi per response.metadata

        Returns:
            ComposedResponse
        """
        start = time.perf_counter()
        try:
            sources = self._prepare_sources(matches)
            answer = self.build_answer(sources, classification)
            confidence = self.confidence(sources, classification)
            citations = [self._citation(s) for s in sources]
            disclaimer = (
                self.disclaimer(sources)
                if classification.needs_legal_disclaimer
                else None
            )
            follow_ups = self.follow_ups(sources, classification) if self.config.enable_follow_ups else []
        except Exception as e:
            log.error(
                "Response composition failed",
                strategy=classification.strategy.value,
                error=str(e),
                exc_info=True,
            )
            return self.error_response(classification, error_type=type(e).__name__)

        response_metadata: Dict[str, Any] = {
            "strategy": classification.strategy.value,
            "namespaces_searched": list(classification.namespaces),
            "sources_found": len(sources),
            "confidence_score": confidence,
            "has_legal_content": classification.needs_legal_disclaimer,
            "region": classification.region,
            "response_time_ms": round((time.perf_counter() - start) * 1000, 2),
        }
        response_metadata.update(metadata or {})

        log.info(
            "Response composed",
            strategy=classification.strategy.value,
            sources=len(sources),
            answer_chars=len(answer),
            confidence=round(confidence, 3),
        )
        return ComposedResponse(
            answer=answer,
            confidence=confidence,
            sources=citations,
            legal_disclaimer=disclaimer,
            follow_up=follow_ups,
            metadata=response_metadata,
        )

    def error_response(
        self,
        classification: QueryClassification,
        error_type: str = "internal_error",
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> ComposedResponse:
        """Risposta di scuse standard; il dettaglio dell'errore resta nei log."""
        response_metadata: Dict[str, Any] = {
            "error": True,
            "error_type": error_type,
            "strategy": classification.strategy.value,
            "namespaces_searched": list(classification.namespaces),
        }
        response_metadata.update(metadata or {})
        return ComposedResponse(
            answer=ERROR_ANSWER,
            confidence=0.1,
            legal_disclaimer=DISCLAIMER_TEMPLATES["minimal"] if classification.needs_legal_disclaimer else None,
            metadata=response_metadata,
        )

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def _prepare_sources(self, matches: Sequence[SearchMatch]) -> List[_Source]:
        ranked = sorted(matches, key=lambda m: m.adjusted_score, reverse=True)[: self.config.max_sources]
        sources = []
        for rank, match in enumerate(ranked, start=1):
            meta = match.metadata
            sources.append(_Source(
                rank=rank,
                score=match.adjusted_score,
                namespace=match.namespace,
                source_type=match.source_type or NAMESPACE_SOURCE_TYPES.get(match.namespace, DEFAULT_SOURCE_TYPE),
                document_type=_field(meta, "document_type", "doc_type"),
                document_title=_field(meta, "document_title", "doc_title"),
                document_number=_field(meta, "document_number", "doc_number"),
                document_date=_field(meta, "document_date", "doc_date"),
                article_number=_field(meta, "article_number"),
                article_title=_field(meta, "article_title"),
                quality_score=as_float(meta.get("quality_score")),
                text=_field(meta, "text", "content", "article_content"),
                url=_field(meta, "url"),
            ))
        return sources

    def excerpt(self, text: str, max_length: Optional[int] = None) -> str:
        """Estratto: taglio all'ultimo punto se oltre il 70% della lunghezza, altrimenti '...'."""
        limit = max_length or self.config.max_excerpt_length
        content = text or "Contenuto non disponibile"
        if len(content) <= limit:
            return content
        truncated = content[:limit]
        last_period = truncated.rfind(".")
        if last_period > limit * 0.7:
            return truncated[: last_period + 1]
        return truncated + "..."

    def _key_content(self, sources: Sequence[_Source]) -> str:
        lines = []
        for source in sources:
            content = self.excerpt(source.text)
            if source.article_number:
                content = f"Art. {source.article_number}: {content}"
            lines.append(f"• {content}")
        return "\n".join(lines)

    @staticmethod
    def _type_label(document_type: str, default: str) -> str:
        if not document_type:
            return default
        return DOCUMENT_TYPE_LABELS.get(document_type.lower(), document_type)

    def citation(self, source: _Source) -> Optional[str]:
        if not source.document_number:
            return None
        citation = f"{self._type_label(source.document_type, 'Doc.')} {source.document_number}"
        year = document_year({"document_date": source.document_date})
        if year is not None:
            citation += f" ({year})"
        if source.article_number:
            citation += f", Art. {source.article_number}"
        return citation

    def source_url(self, source: _Source) -> Optional[str]:
        """URL solo da campo esplicito o per la normativa nazionale con numero."""
        if not self.config.include_urls:
            return None
        if source.url:
            return source.url
        if source.namespace == URBANISTICA_BASE:
            return None
        if source.namespace == LAWS_NATIONAL and source.document_number:
            number, _, number_year = source.document_number.partition("/")
            year = document_year({"document_date": source.document_date})
            return NORMATTIVA_URN.format(
                year=year if year is not None else number_year,
                number=number.strip(),
            )
        return None

    def source_title(self, source: _Source) -> str:
        if source.document_title:
            return source.document_title
        label = self._type_label(source.document_type, "Documento")
        if source.article_title and source.document_number:
            return f"{label} {source.document_number} - {source.article_title}"
        if source.document_number:
            return f"{label} {source.document_number}"
        return source.article_title or "Documento senza titolo"

    def _citation(self, source: _Source) -> SourceCitation:
        return SourceCitation(
            type=source.source_type,
            title=self.source_title(source),
            citation=self.citation(source),
            url=self.source_url(source),
            relevance=round(source.score, 3),
            excerpt=self.excerpt(source.text),
            namespace=source.namespace,
            article=source.article_number or None,
            document_number=source.document_number or None,
            date=source.document_date or None,
            quality_score=source.quality_score or None,
        )

    # ------------------------------------------------------------------
    # Answer
    # ------------------------------------------------------------------

    def build_answer(self, sources: Sequence[_Source], classification: QueryClassification) -> str:
        if not sources:
            return self.no_results_answer(classification)

        top = list(sources[:3])
        strategy = classification.strategy
        if strategy is Strategy.COMPREHENSIVE:
            answer = self._comprehensive_answer(top)
        elif strategy is Strategy.LEGAL_URBAN:
            answer = self._legal_urban_answer(top)
        elif strategy is Strategy.REGIONAL_FOCUS:
            answer = self._regional_answer(top, classification.region)
        elif strategy is Strategy.LEGAL_ONLY:
            answer = self._legal_answer(top)
        elif strategy is Strategy.URBAN_LEGAL_LIGHT:
            answer = self._urban_legal_light_answer(top)
        else:
            answer = "Dal punto di vista urbanistico:\n\n" + self._key_content(top)

        max_length = self.config.max_answer_length
        if len(answer) > max_length:
            answer = answer[: max_length - 3] + "..."
        return answer

    def _sections(self, header: str, sections: Sequence[tuple], fallback: Sequence[_Source]) -> str:
        parts = [f"**{title}**\n{self._key_content(group)}" for title, group in sections if group]
        if not parts:
            parts = [self._key_content(fallback)]
        return header + "\n\n" + "\n\n".join(parts)

    def _comprehensive_answer(self, sources: Sequence[_Source]) -> str:
        legal = [s for s in sources if s.source_type == "legal"]
        regional = [s for s in sources if s.source_type == "regional"]
        urban = [s for s in sources if s.source_type == "urban"]
        return self._sections(
            "Basandomi sulla normativa vigente e sui principi urbanistici:",
            [
                ("Aspetti normativi:", legal[:2]),
                ("Normativa regionale:", regional[:1]),
                ("Applicazione urbanistica:", urban[:2]),
            ],
            sources[:2],
        )

    def _legal_urban_answer(self, sources: Sequence[_Source]) -> str:
        legal = [s for s in sources if s.source_type == "legal"]
        urban = [s for s in sources if s.source_type == "urban"]
        return self._sections(
            "Dal punto di vista normativo e urbanistico:",
            [
                ("Quadro normativo:", legal[:1]),
                ("Applicazione urbanistica:", urban[:1]),
            ],
            sources[:2],
        )

    def _regional_answer(self, sources: Sequence[_Source], region: Optional[str]) -> str:
        if region:
            name = region_name(region)
            header = f"Per la normativa della regione {name}:"
        else:
            header = "Secondo la normativa regionale applicabile:"
        answer = header + "\n\n" + self._key_content(sources[:2])
        if region:
            answer += (
                f"\n\n*Verifica sempre sul Bollettino Ufficiale della Regione {name} "
                "per gli aggiornamenti più recenti.*"
            )
        return answer

    def _legal_answer(self, sources: Sequence[_Source]) -> str:
        answer = "Secondo la normativa vigente:\n\n" + self._key_content(sources[:2])
        references = self.article_references(sources)
        if references:
            answer += "\n\n**Riferimenti normativi specifici:**\n" + "\n".join(references)
        return answer

    def _urban_legal_light_answer(self, sources: Sequence[_Source]) -> str:
        urban = [s for s in sources if s.source_type == "urban"] or list(sources[:2])
        legal = [s for s in sources if s.source_type == "legal"]
        answer = "Dal punto di vista urbanistico:\n\n" + self._key_content(urban[:2])
        if legal:
            answer += "\n\n**Nota normativa:**\n" + self._key_content(legal[:1])
        return answer

    def article_references(self, sources: Sequence[_Source]) -> List[str]:
        references: List[str] = []
        for source in sources:
            if source.document_number and source.article_number:
                ref = (
                    f"{self._type_label(source.document_type, 'Legge')} "
                    f"{source.document_number}, Art. {source.article_number}"
                )
                if ref not in references:
                    references.append(ref)
        return references

    def no_results_answer(self, classification: QueryClassification) -> str:
        answer = "Mi dispiace, non ho trovato informazioni specifiche per la tua richiesta"
        strategy = classification.strategy.value
        if "legal" in strategy:
            answer += " nella normativa consultata"
        elif "regional" in strategy:
            answer += " per la specifica normativa regionale"
        return answer + ". Ti suggerisco di:\n\n" + NO_RESULTS_SUGGESTIONS

    # ------------------------------------------------------------------
    # Confidence, disclaimer, follow-ups
    # ------------------------------------------------------------------

    def confidence(self, sources: Sequence[_Source], classification: QueryClassification) -> float:
        """
        Confidenza della risposta.

        Parte dalla confidenza della classificazione, + media score * 0.3
        (max 0.95), +0.05 con almeno 3 e 5 fonti, * 0.8 se media < 0.7,
        clamp in [0.1, 0.95]. Senza fonti: 0.1.
        """
        if not sources:
            return 0.1
        mean = sum(s.score for s in sources) / len(sources)
        confidence = min(classification.confidence + mean * 0.3, 0.95)
        if len(sources) >= 3:
            confidence += 0.05
        if len(sources) >= 5:
            confidence += 0.05
        if mean < 0.7:
            confidence *= 0.8
        return max(0.1, min(0.95, confidence))

    def disclaimer(self, sources: Sequence[_Source]) -> Optional[str]:
        if not self.config.enable_legal_disclaimer:
            return None
        if any(s.source_type == "regional" for s in sources):
            return DISCLAIMER_TEMPLATES["regional"]
        return DISCLAIMER_TEMPLATES["full"].format(
            last_update=self.config.last_update,
            db_version=self.config.disclaimer_version,
        )

    def follow_ups(self, sources: Sequence[_Source], classification: QueryClassification) -> List[str]:
        follow_ups = list(STRATEGY_FOLLOW_UPS.get(classification.strategy, []))
        document_types = {s.document_type for s in sources if s.document_type}
        if len(document_types) > 1:
            follow_ups.append("Vuoi approfondire un tipo specifico di normativa?")
        follow_ups.extend(GENERIC_FOLLOW_UPS)
        return follow_ups[: self.config.max_follow_ups]


def compose_response(
    query: str,
    matches: Sequence[SearchMatch],
    classification: QueryClassification,
    config: Optional[ComposerConfig] = None,
) -> ComposedResponse:
    """
    Convenience function per comporre una risposta.

    Example:
        >>> response = compose_response(query, result.matches, classification)
        >>> print(response.answer)
    """
    return ResponseComposer(config).compose(query, matches, classification)


__all__ = [
    "DISCLAIMER_TEMPLATES",
    "ERROR_ANSWER",
    "SourceCitation",
    "ComposedResponse",
    "ResponseComposer",
    "compose_response",
]
