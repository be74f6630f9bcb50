"""
Search Models
=============

Dataclass per i risultati della ricerca multi-corpus.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from urbanai.exceptions import MalformedRecordError

_YEAR = re.compile(r"\b(\d{4})\b")


def as_float(value: Any, default: float = 0.0) -> float:
    """Converte un valore di metadati in float, con default per valori non numerici."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def document_year(metadata: Mapping[str, Any]) -> Optional[int]:
    """Anno di document_date (o doc_date), se presente."""
    raw = metadata.get("document_date") or metadata.get("doc_date")
    if not raw:
        return None
    match = _YEAR.search(str(raw))
    return int(match.group(1)) if match else None


@dataclass
class SearchMatch:
    """
    Match di un namespace, arricchito durante merge e ranking.

    Attributes:
        id: Id del vettore (chunk_id)
        score: Similarità grezza restituita dal vector store
        namespace: Namespace logico di provenienza
        metadata: Metadati del chunk
        namespace_weight: Peso effettivo applicato allo score
        legal_boost: Boost per documento normativo
        diversity_boost: Boost per tipo di documento
        adjusted_score: score * namespace_weight + boost
        relevance: high / medium / low / very_low
        source_type: legal / regional / jurisprudence / urban
        relevance_indicators: Indicatori di rilevanza per la UI
    """
    id: str
    score: float
    namespace: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    namespace_weight: float = 1.0
    legal_boost: float = 0.0
    diversity_boost: float = 0.0
    adjusted_score: float = 0.0
    relevance: str = "very_low"
    source_type: str = ""
    relevance_indicators: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.id:
            raise MalformedRecordError("SearchMatch", "missing id")
        if isinstance(self.score, bool) or not isinstance(self.score, (int, float)) or math.isnan(self.score):
            raise MalformedRecordError("SearchMatch", f"non-numeric score {self.score!r}")

    @classmethod
    def from_raw(cls, raw: Any, namespace: str) -> "SearchMatch":
        """
        Costruisce un match da un risultato grezzo del vector store.

        Accetta mapping ({"id", "score", "metadata"}) od oggetti con gli
        stessi attributi.

        Raises:
            MalformedRecordError: id mancante o score non numerico
        """
        if isinstance(raw, Mapping):
            match_id = raw.get("id")
            score = raw.get("score")
            metadata = raw.get("metadata")
        else:
            match_id = getattr(raw, "id", None)
            score = getattr(raw, "score", None)
            metadata = getattr(raw, "metadata", None)

        if isinstance(score, str):
            try:
                score = float(score)
            except ValueError as e:
                raise MalformedRecordError("SearchMatch", f"non-numeric score {score!r}") from e

        return cls(
            id=str(match_id) if match_id is not None else "",
            score=score,
            namespace=namespace,
            metadata=dict(metadata or {}),
        )

    @property
    def document_type(self) -> str:
        return str(self.metadata.get("document_type") or self.metadata.get("doc_type") or "").lower()

    @property
    def quality_score(self) -> float:
        return as_float(self.metadata.get("quality_score"))

    @property
    def text(self) -> str:
        return str(self.metadata.get("text") or "")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "score": self.score,
            "adjusted_score": round(self.adjusted_score, 4),
            "namespace": self.namespace,
            "namespace_weight": round(self.namespace_weight, 4),
            "legal_boost": self.legal_boost,
            "diversity_boost": round(self.diversity_boost, 4),
            "relevance": self.relevance,
            "source_type": self.source_type,
            "relevance_indicators": list(self.relevance_indicators),
            "metadata": dict(self.metadata),
        }


@dataclass
class NamespaceResult:
    """Esito della query su un namespace: match oppure motivo del fallimento."""
    namespace: str
    matches: List[SearchMatch] = field(default_factory=list)
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, namespace: str, reason: str, duration_seconds: float = 0.0) -> "NamespaceResult":
        return cls(namespace=namespace, error=reason, duration_seconds=duration_seconds)


@dataclass
class SearchResult:
    """
    Risultato della ricerca multi-corpus.

    Attributes:
        matches: Match finali, ordinati e troncati a top_k
        namespace_results: Esito per namespace
        error: Valorizzato quando tutti i namespace sono falliti
        top_k: top_k effettivo
        candidates_per_namespace: Candidati richiesti a ogni namespace
        total_candidates: Match raccolti prima di soglia e troncamento
        duration_seconds: Tempo totale
    """
    matches: List[SearchMatch] = field(default_factory=list)
    namespace_results: Dict[str, NamespaceResult] = field(default_factory=dict)
    error: Optional[str] = None
    top_k: int = 0
    candidates_per_namespace: int = 0
    total_candidates: int = 0
    duration_seconds: float = 0.0

    @property
    def failed_namespaces(self) -> List[str]:
        return [ns for ns, r in self.namespace_results.items() if not r.ok]

    @property
    def is_total_failure(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matches": [m.to_dict() for m in self.matches],
            "namespaces": {
                ns: {"ok": r.ok, "matches": len(r.matches), "error": r.error}
                for ns, r in self.namespace_results.items()
            },
            "error": self.error,
            "top_k": self.top_k,
            "total_candidates": self.total_candidates,
            "duration_seconds": round(self.duration_seconds, 3),
        }


__all__ = [
    "as_float",
    "document_year",
    "SearchMatch",
    "NamespaceResult",
    "SearchResult",
]
