"""
Query Classifier
================

Classifica una query in linguaggio naturale e sceglie la strategia di
retrieval (namespace da interrogare e relativi pesi).

Algoritmo:
1. Normalizzazione: minuscolo, abbreviazioni (d.lgs. -> dlgs, d.p.r. -> dpr,
   l.r. -> lr, art. -> articolo), nomi di regione, punteggiatura rimossa
   tranne trattino e apostrofo.
2. Conteggio match a parola intera per tre categorie (legal, regional, urban).
3. Punteggio = min(match / sqrt(dimensione categoria), 1.0) * peso categoria.
   Il denominatore in radice quadrata evita che una sola keyword ripetuta
   saturi il punteggio.
4. Decision table in ordine di priorità (la prima regola vince):
   comprehensive, legal-urban, regional-focus, legal-only,
   urban-legal-light, urban-only (fallback sempre disponibile).

La classificazione è pura e sincrona: nessun I/O.

Esempio:
    >>> classifier = QueryClassifier()
    >>> result = classifier.classify("Quali sono le distanze minime in zona residenziale?")
    >>> result.strategy
    <Strategy.URBAN_ONLY: 'urban-only'>
    >>> result.weights
    {'urbanistica-base': 1.0}
"""

import math
import re
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

import structlog

from urbanai.config.settings import ClassifierConfig
from urbanai.models.namespaces import LAWS_REGIONAL
from urbanai.models.regions import find_region
from urbanai.routing.models import (
    STRATEGY_PLANS,
    QueryClassification,
    RoutingRecommendation,
    Strategy,
    StrategyPlan,
)

log = structlog.get_logger()


# ============================================================================
# Keyword tables
# ============================================================================

LEGAL_KEYWORDS: Tuple[str, ...] = (
    # Fonti normative
    "legge", "norma", "normativa", "decreto", "regolamento", "sentenza",
    "giurisprudenza", "articolo", "comma", "lettera",
    # Sanzioni e titoli
    "abusivo", "sanzione", "multa", "permesso", "autorizzazione", "licenza",
    "concessione", "nullaosta", "parere", "visto", "nulla-osta",
    "requisiti", "adempimenti", "conformità",
    # Organi
    "cassazione", "tar", "consiglio stato", "consiglio di stato", "tribunale",
    "corte", "prefettura", "ministero", "soprintendenza", "regione",
    # Atti
    "dpr", "dlgs", "legge quadro", "testo unico", "codice civile",
    "codice penale", "costituzione",
    # Procedimento
    "ricorso", "appello", "istanza", "domanda", "richiesta", "procedimento",
    "processo", "giudizio", "accertamento",
)

REGIONAL_KEYWORDS: Tuple[str, ...] = (
    # Regioni
    "lombardia", "lazio", "veneto", "piemonte", "campania", "sicilia",
    "emilia romagna", "toscana", "puglia", "calabria", "sardegna", "liguria",
    "marche", "abruzzo", "umbria", "basilicata", "molise", "friuli",
    "trentino", "valle aosta",
    # Atti e strumenti regionali
    "regione", "regionale", "provinciale", "comunale", "bur",
    "bollettino ufficiale", "piano territoriale regionale", "ptr", "ptcp",
    "piano territoriale coordinamento", "piano paesaggistico", "piano casa",
    "legge regionale", "lr", "delibera regionale", "dgr",
    # Amministrazione
    "giunta regionale", "consiglio regionale", "assessorato",
    "direzione regionale", "settore regionale",
)

URBAN_KEYWORDS: Tuple[str, ...] = (
    # Strumenti di pianificazione
    "urbanistica", "urbanistico", "piano regolatore", "prg", "piano generale",
    "pgtu", "pgt", "piano strutturale", "piano operativo", "regolamento edilizio",
    # Zonizzazione e destinazioni
    "zoning", "zonizzazione", "destinazione uso", "destinazione d'uso",
    "cambio di destinazione", "cambio destinazione", "zona residenziale",
    "zona commerciale", "zona industriale", "zona agricola", "zona mista",
    "zona servizi", "area edificabile", "area non edificabile", "residenziale",
    # Parametri edilizi
    "volumetria", "volume", "altezza", "altezza massima", "distanze",
    "distanza minima", "distanze minime", "arretramento", "indice edificabilità",
    "indice fondiario", "indice territoriale", "rapporto copertura",
    "superficie coperta",
    # Standard e dotazioni
    "standard urbanistici", "standard minimi", "parcheggi", "verde pubblico",
    "verde privato", "spazi pubblici", "servizi pubblici",
    "attrezzature pubbliche", "opere urbanizzazione", "urbanizzazione primaria",
    "urbanizzazione secondaria",
    # Titoli edilizi
    "edificabilità", "edificabile", "permesso costruire", "permesso di costruire",
    "scia", "dia", "cila", "comunicazione inizio lavori", "collaudo",
    "agibilità", "abitabilità", "certificato destinazione",
    # Vincoli
    "vincolo paesaggistico", "vincolo idrogeologico", "vincolo archeologico",
    "vincolo monumentale", "area protetta", "parco", "riserva naturale",
)

# Applicate prima della rimozione della punteggiatura
NORMALIZATIONS: Tuple[Tuple[Pattern, str], ...] = (
    (re.compile(r"\bd\.\s?lgs\.?"), "dlgs"),
    (re.compile(r"\bd\.p\.r\.?"), "dpr"),
    (re.compile(r"\bl\.r\."), "lr"),
    (re.compile(r"\bart\.\s*"), "articolo "),
    (re.compile(r"\bemilia-romagna\b"), "emilia romagna"),
    (re.compile(r"\bvalle d'\s*aosta\b"), "valle aosta"),
)
PUNCTUATION = re.compile(r"[^\w\s\-']")
WHITESPACE = re.compile(r"\s+")

QUERY_EXPANSIONS: Dict[str, str] = {
    "prg": "piano regolatore generale",
    "pgt": "piano governo territorio",
    "rue": "regolamento urbanistico edilizio",
    "scia": "segnalazione certificata inizio attività",
    "dia": "denuncia inizio attività",
    "cila": "comunicazione inizio lavori asseverata",
    "tar": "tribunale amministrativo regionale",
    "cds": "consiglio di stato",
    "dpr": "decreto del presidente della repubblica",
    "dlgs": "decreto legislativo",
    "lr": "legge regionale",
    "ptr": "piano territoriale regionale",
}


def _compile_keywords(keywords: Sequence[str]) -> List[Pattern]:
    return [re.compile(r"\b" + re.escape(kw) + r"\b") for kw in keywords]


class QueryClassifier:
    """
    Classificatore keyword-based delle query urbanistico-legali.

    Le tabelle di keyword e i piani di strategia sono iniettabili; i piani
    vengono validati alla costruzione.

    Args:
        config: Soglie e pesi per categoria
        legal_keywords/regional_keywords/urban_keywords: Tabelle alternative
        plans: Piani di strategia alternativi

    Raises:
        ClassificationInvariantError: Un piano ha pesi che non sommano a 1.0
    """

    def __init__(
        self,
        config: Optional[ClassifierConfig] = None,
        legal_keywords: Sequence[str] = LEGAL_KEYWORDS,
        regional_keywords: Sequence[str] = REGIONAL_KEYWORDS,
        urban_keywords: Sequence[str] = URBAN_KEYWORDS,
        plans: Optional[Dict[Strategy, StrategyPlan]] = None,
    ):
        self.config = config or ClassifierConfig()
        self.plans = plans or STRATEGY_PLANS

        missing = [s.value for s in Strategy if s not in self.plans]
        if missing:
            raise ValueError(f"Missing strategy plans: {missing}")
        for plan in self.plans.values():
            plan.validate(self.config.weight_tolerance)

        self._categories: Dict[str, List[Pattern]] = {
            "legal": _compile_keywords(legal_keywords),
            "regional": _compile_keywords(regional_keywords),
            "urban": _compile_keywords(urban_keywords),
        }
        self._expansions = [
            (re.compile(r"\b" + re.escape(abbr) + r"\b", re.IGNORECASE), expansion)
            for abbr, expansion in QUERY_EXPANSIONS.items()
        ]

    @staticmethod
    def normalize(query: str) -> str:
        """
        Normalizza una query per il matching.

        Example:
            >>> QueryClassifier.normalize("D.Lgs. 42/2004, art. 146 - Emilia-Romagna")
            'dlgs 42 2004 articolo 146 - emilia romagna'
        """
        text = query.lower().strip().replace("\u2019", "'")
        for pattern, replacement in NORMALIZATIONS:
            text = pattern.sub(replacement, text)
        text = PUNCTUATION.sub(" ", text)
        return WHITESPACE.sub(" ", text).strip()

    def count_matches(self, normalized_query: str) -> Dict[str, int]:
        """Match a parola intera per categoria (ogni occorrenza conta)."""
        return {
            category: sum(len(p.findall(normalized_query)) for p in patterns)
            for category, patterns in self._categories.items()
        }

    def score(self, counts: Dict[str, int]) -> Dict[str, float]:
        """min(match / sqrt(N), 1.0) * peso categoria."""
        scores = {}
        for category, patterns in self._categories.items():
            size = len(patterns)
            raw = min(counts.get(category, 0) / math.sqrt(size), 1.0) if size else 0.0
            scores[category] = raw * self.config.category_weights[category]
        return scores

    def decide(self, scores: Dict[str, float]) -> Tuple[Strategy, str]:
        """
        Applica la decision table.

        Returns:
            (strategia, regola applicata)
        """
        cfg = self.config
        legal = scores["legal"]
        regional = scores["regional"]
        urban = scores["urban"]

        if legal >= cfg.legal_threshold and regional >= cfg.regional_threshold and urban > cfg.urban_threshold:
            return Strategy.COMPREHENSIVE, "aspetti legali, regionali e urbanistici"
        if legal >= cfg.legal_threshold and urban > cfg.urban_threshold:
            return Strategy.LEGAL_URBAN, "aspetti legali e urbanistici"
        if regional >= cfg.regional_threshold:
            return Strategy.REGIONAL_FOCUS, "focus sulla normativa regionale"
        if legal >= cfg.legal_threshold:
            return Strategy.LEGAL_ONLY, "query prevalentemente normativa"
        if urban > cfg.urban_light_threshold and legal > cfg.legal_light_threshold:
            return Strategy.URBAN_LEGAL_LIGHT, "urbanistica con cenni normativi"
        return Strategy.URBAN_ONLY, "fallback urbanistico"

    def confidence(self, strategy: Strategy, scores: Dict[str, float]) -> float:
        legal = scores["legal"]
        regional = scores["regional"]
        urban = scores["urban"]

        if strategy is Strategy.COMPREHENSIVE:
            return max(legal, regional, urban)
        if strategy is Strategy.LEGAL_URBAN:
            return max(legal, urban)
        if strategy is Strategy.REGIONAL_FOCUS:
            return regional
        if strategy is Strategy.LEGAL_ONLY:
            return legal
        if strategy is Strategy.URBAN_LEGAL_LIGHT:
            return urban
        return max(urban, self.config.urban_only_confidence_floor)

    def classify(self, query: str) -> QueryClassification:
        """
        Classifica una query.

        Args:
            query: Testo libero dell'utente

        Returns:
            QueryClassification con strategia, namespace, pesi e filtri
        """
        normalized = self.normalize(query)
        counts = self.count_matches(normalized)
        scores = self.score(counts)
        strategy, rule = self.decide(scores)
        plan = self.plans[strategy]
        region = find_region(normalized)

        filters = {}
        if region and plan.region_filtered and LAWS_REGIONAL in plan.weights:
            filters[LAWS_REGIONAL] = {"region": region}

        classification = QueryClassification(
            query=query,
            normalized_query=normalized,
            strategy=strategy,
            namespaces=list(plan.namespaces),
            weights=dict(plan.weights),
            filters=filters,
            needs_legal_disclaimer=strategy is not Strategy.URBAN_ONLY,
            confidence=self.confidence(strategy, scores),
            region=region,
            match_counts=counts,
            scores=scores,
            reasoning=(
                f"{rule} (legal={scores['legal']:.2f}, "
                f"regional={scores['regional']:.2f}, urban={scores['urban']:.2f})"
            ),
        )

        log.debug(
            "Query classified",
            strategy=strategy.value,
            legal=round(scores["legal"], 3),
            regional=round(scores["regional"], 3),
            urban=round(scores["urban"], 3),
            region=region,
        )
        return classification

    def expand_query(self, query: str) -> str:
        """
        Espande le abbreviazioni note prima dell'embedding.

        Example:
            >>> QueryClassifier().expand_query("Serve la SCIA?")
            'Serve la segnalazione certificata inizio attività?'
        """
        expanded = query
        for pattern, expansion in self._expansions:
            expanded = pattern.sub(expansion, expanded)
        return expanded

    def recommendations(self, classification: QueryClassification) -> List[RoutingRecommendation]:
        """Suggerimenti per ottimizzare il routing di una query."""
        recommendations = []
        if len(classification.namespaces) > 2:
            recommendations.append(RoutingRecommendation(
                type="performance",
                message="Interrogare i namespace in parallelo per ridurre la latenza",
                priority="medium",
            ))
        if classification.confidence < 0.6:
            recommendations.append(RoutingRecommendation(
                type="quality",
                message="Confidenza bassa: valutare l'espansione della query o chiedere chiarimenti",
                priority="high",
            ))
        if classification.match_counts.get("regional", 0) > 0 and not classification.region:
            recommendations.append(RoutingRecommendation(
                type="regional",
                message="Termini regionali senza una regione specifica: risultati generici",
                priority="low",
            ))
        return recommendations


_default_classifier: Optional[QueryClassifier] = None


def classify_query(query: str, config: Optional[ClassifierConfig] = None) -> QueryClassification:
    """
    Convenience function per classificare una query.

    Senza config riusa un classificatore condiviso (le regex sono compilate una volta).
    """
    global _default_classifier
    if config is not None:
        return QueryClassifier(config).classify(query)
    if _default_classifier is None:
        _default_classifier = QueryClassifier()
    return _default_classifier.classify(query)


__all__ = [
    "LEGAL_KEYWORDS",
    "REGIONAL_KEYWORDS",
    "URBAN_KEYWORDS",
    "QUERY_EXPANSIONS",
    "QueryClassifier",
    "classify_query",
]
