"""
Routing Models
==============

Strategie di retrieval e output del QueryClassifier.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from urbanai.exceptions import ClassificationInvariantError
from urbanai.models.namespaces import JURISPRUDENCE, LAWS_NATIONAL, LAWS_REGIONAL, URBANISTICA_BASE

WEIGHT_TOLERANCE = 0.01


class Strategy(str, Enum):
    """Strategie di retrieval, in ordine di priorità nella decision table."""
    COMPREHENSIVE = "comprehensive"
    LEGAL_URBAN = "legal-urban"
    REGIONAL_FOCUS = "regional-focus"
    LEGAL_ONLY = "legal-only"
    URBAN_LEGAL_LIGHT = "urban-legal-light"
    URBAN_ONLY = "urban-only"


def check_weights(weights: Mapping[str, float], namespaces: Tuple[str, ...], tolerance: float = WEIGHT_TOLERANCE) -> None:
    """
    Verifica la mappa dei pesi.

    Raises:
        ClassificationInvariantError: Namespace senza peso o somma != 1.0 ± tolerance
    """
    missing = [ns for ns in namespaces if ns not in weights]
    if missing:
        raise ClassificationInvariantError(f"Namespaces without weight: {missing}")
    total = sum(weights[ns] for ns in namespaces)
    if abs(total - 1.0) > tolerance:
        raise ClassificationInvariantError(
            f"Namespace weights must sum to 1.0 (±{tolerance}), got {total:.3f}"
        )


@dataclass(frozen=True)
class StrategyPlan:
    """
    Piano di retrieval di una strategia.

    Attributes:
        strategy: Strategia
        weights: namespace -> peso (somma 1.0)
        description: Descrizione leggibile
        region_filtered: Il filtro regione si applica a laws-regional
    """
    strategy: Strategy
    weights: Dict[str, float]
    description: str
    region_filtered: bool = False

    @property
    def namespaces(self) -> Tuple[str, ...]:
        return tuple(self.weights)

    def validate(self, tolerance: float = WEIGHT_TOLERANCE) -> None:
        check_weights(self.weights, self.namespaces, tolerance)


STRATEGY_PLANS: Dict[Strategy, StrategyPlan] = {
    Strategy.COMPREHENSIVE: StrategyPlan(
        strategy=Strategy.COMPREHENSIVE,
        weights={LAWS_NATIONAL: 0.30, LAWS_REGIONAL: 0.25, JURISPRUDENCE: 0.15, URBANISTICA_BASE: 0.30},
        description="Ricerca completa su normativa nazionale, regionale, giurisprudenza e urbanistica",
        region_filtered=True,
    ),
    Strategy.LEGAL_URBAN: StrategyPlan(
        strategy=Strategy.LEGAL_URBAN,
        weights={LAWS_NATIONAL: 0.40, JURISPRUDENCE: 0.20, URBANISTICA_BASE: 0.40},
        description="Normativa nazionale e giurisprudenza con contesto urbanistico",
    ),
    Strategy.REGIONAL_FOCUS: StrategyPlan(
        strategy=Strategy.REGIONAL_FOCUS,
        weights={LAWS_REGIONAL: 0.60, LAWS_NATIONAL: 0.15, URBANISTICA_BASE: 0.25},
        description="Normativa regionale con riferimenti nazionali",
        region_filtered=True,
    ),
    Strategy.LEGAL_ONLY: StrategyPlan(
        strategy=Strategy.LEGAL_ONLY,
        weights={LAWS_NATIONAL: 0.60, JURISPRUDENCE: 0.40},
        description="Solo normativa e giurisprudenza",
    ),
    Strategy.URBAN_LEGAL_LIGHT: StrategyPlan(
        strategy=Strategy.URBAN_LEGAL_LIGHT,
        weights={URBANISTICA_BASE: 0.70, LAWS_NATIONAL: 0.30},
        description="Urbanistica con cenni normativi",
    ),
    Strategy.URBAN_ONLY: StrategyPlan(
        strategy=Strategy.URBAN_ONLY,
        weights={URBANISTICA_BASE: 1.0},
        description="Solo documentazione urbanistica",
    ),
}


@dataclass
class QueryClassification:
    """
    Esito della classificazione di una query.

    Attributes:
        query: Query originale
        normalized_query: Query normalizzata usata per il matching
        strategy: Strategia scelta
        namespaces: Namespace da interrogare
        weights: namespace -> peso, somma 1.0 ± 0.01
        filters: namespace -> filtro metadati (es. {"region": "LOM"})
        needs_legal_disclaimer: False solo per urban-only
        confidence: Confidenza [0, 1]
        region: Codice regione estratto, se presente
        match_counts: Conteggi grezzi per categoria
        scores: Punteggi pesati per categoria
        reasoning: Motivazione leggibile della scelta
    """
    query: str
    normalized_query: str
    strategy: Strategy
    namespaces: List[str]
    weights: Dict[str, float]
    filters: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    needs_legal_disclaimer: bool = True
    confidence: float = 0.5
    region: Optional[str] = None
    match_counts: Dict[str, int] = field(default_factory=dict)
    scores: Dict[str, float] = field(default_factory=dict)
    reasoning: str = ""

    def __post_init__(self):
        self.validate()

    def validate(self, tolerance: float = WEIGHT_TOLERANCE) -> None:
        """
        Raises:
            ClassificationInvariantError: Pesi non validi
        """
        check_weights(self.weights, tuple(self.namespaces), tolerance)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "normalized_query": self.normalized_query,
            "strategy": self.strategy.value,
            "namespaces": list(self.namespaces),
            "weights": dict(self.weights),
            "filters": {ns: dict(f) for ns, f in self.filters.items()},
            "needs_legal_disclaimer": self.needs_legal_disclaimer,
            "confidence": round(self.confidence, 4),
            "region": self.region,
            "match_counts": dict(self.match_counts),
            "scores": {k: round(v, 4) for k, v in self.scores.items()},
            "reasoning": self.reasoning,
        }


@dataclass
class RoutingRecommendation:
    """Suggerimento di ottimizzazione del routing."""
    type: str
    message: str
    priority: str


__all__ = [
    "WEIGHT_TOLERANCE",
    "Strategy",
    "StrategyPlan",
    "STRATEGY_PLANS",
    "QueryClassification",
    "RoutingRecommendation",
    "check_weights",
]
