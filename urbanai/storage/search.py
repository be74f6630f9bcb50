"""
Multi-Corpus Search Coordinator
===============================

Fan-out della ricerca vettoriale sui namespace scelti dal QueryClassifier,
poi merge, boost, soglia, rerank e troncamento.

Algoritmo:
1. Candidati per namespace = min(top_k * 2, max_top_k)
2. Query concorrenti, timeout indipendente per namespace; un namespace
   lento o in errore contribuisce zero match e non blocca gli altri.
   Una deadline complessiva tratta i namespace ancora pendenti come vuoti.
3. Merge: score * peso del namespace (relativo al namespace più pesante)
4. Boost additivi: documento normativo (+0.15) e diversità per tipo di atto
5. Soglia di rilevanza (default 0.5)
6. Rerank: score decrescente; su quasi-parità (< 0.1) prima i documenti
   normativi, poi il quality score più alto
7. Troncamento a top_k (cap 100)

Gli score finali possono superare 1.0: conta solo l'ordinamento relativo
all'interno di una risposta.

Un fallimento totale restituisce un SearchResult vuoto con error valorizzato.

Esempio:
    >>> coordinator = MultiCorpusSearchCoordinator(store)
    >>> result = await coordinator.search(vector, classification, top_k=5)
    >>> [m.id for m in result.matches]
"""

import asyncio
import time
from collections import Counter
from functools import cmp_to_key
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog

from urbanai.config.environments import EnvironmentConfig
from urbanai.config.settings import SearchConfig
from urbanai.exceptions import MalformedRecordError
from urbanai.routing.models import QueryClassification
from urbanai.storage.interfaces import VectorStore, call_service
from urbanai.storage.models import NamespaceResult, SearchMatch, SearchResult, as_float, document_year

log = structlog.get_logger()


def relevance_category(score: float) -> str:
    """Fascia di rilevanza di uno score aggiustato."""
    if score >= 0.8:
        return "high"
    if score >= 0.6:
        return "medium"
    if score >= 0.4:
        return "low"
    return "very_low"


def _raw_matches(response: Any) -> List[Any]:
    if response is None:
        return []
    if isinstance(response, Mapping):
        return list(response.get("matches") or [])
    if isinstance(response, (list, tuple)):
        return list(response)
    return list(getattr(response, "matches", None) or [])


class MultiCorpusSearchCoordinator:
    """
    Coordina la ricerca su più namespace del vector store.

    Args:
        vector_store: Client del vector store (sync o async)
        config: SearchConfig
        environment: Se presente, mappa i namespace logici su quelli fisici
    """

    def __init__(
        self,
        vector_store: VectorStore,
        config: Optional[SearchConfig] = None,
        environment: Optional[EnvironmentConfig] = None,
    ):
        self.vector_store = vector_store
        self.config = config or SearchConfig()
        self.environment = environment
        self._legal_types = {t.lower() for t in self.config.legal_document_types}

        self._queries = 0
        self._total_failures = 0
        self._namespace_usage: Counter = Counter()
        self._namespace_failures: Counter = Counter()

    async def search(
        self,
        query_embedding: Sequence[float],
        classification: QueryClassification,
        top_k: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> SearchResult:
        """
        Esegue la ricerca multi-corpus.

        Args:
            query_embedding: Vettore della query
            classification: Strategia, namespace, pesi e filtri
            top_k: Risultati finali (default config, cap max_top_k)
            threshold: Soglia di rilevanza (default config)

        Returns:
            SearchResult; mai un'eccezione per fallimenti dei namespace
        """
        start = time.perf_counter()
        cfg = self.config
        final_k = max(1, min(top_k or cfg.default_top_k, cfg.max_top_k))
        candidates = min(final_k * cfg.candidate_multiplier, cfg.max_top_k)
        min_score = cfg.relevance_threshold if threshold is None else threshold

        self._queries += 1
        self._namespace_usage.update(classification.namespaces)

        namespace_results = await self._fan_out(query_embedding, classification, candidates)

        result = SearchResult(
            namespace_results=namespace_results,
            top_k=final_k,
            candidates_per_namespace=candidates,
        )

        failed = result.failed_namespaces
        self._namespace_failures.update(failed)
        if namespace_results and len(failed) == len(namespace_results):
            self._total_failures += 1
            result.error = "all namespaces failed"
            result.duration_seconds = time.perf_counter() - start
            log.error(
                "Search failed on every namespace",
                strategy=classification.strategy.value,
                errors={ns: r.error for ns, r in namespace_results.items()},
            )
            return result

        merged = self.merge(namespace_results, classification.weights)
        result.total_candidates = len(merged)

        kept = [m for m in merged if m.adjusted_score >= min_score]
        ranked = self.rerank(kept)[:final_k]
        for match in ranked:
            match.relevance = relevance_category(match.adjusted_score)
            match.relevance_indicators = self.relevance_indicators(match)

        result.matches = ranked
        result.duration_seconds = time.perf_counter() - start

        log.info(
            "Search completed",
            strategy=classification.strategy.value,
            namespaces=len(namespace_results),
            failed=failed,
            candidates=len(merged),
            above_threshold=len(kept),
            returned=len(ranked),
            duration_ms=round(result.duration_seconds * 1000, 1),
        )
        return result

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def _fan_out(
        self,
        query_embedding: Sequence[float],
        classification: QueryClassification,
        candidates: int,
    ) -> Dict[str, NamespaceResult]:
        tasks = {
            namespace: asyncio.create_task(
                self._query_namespace(
                    namespace,
                    query_embedding,
                    candidates,
                    classification.filters.get(namespace),
                )
            )
            for namespace in classification.namespaces
        }
        if not tasks:
            return {}

        try:
            done, pending = await asyncio.wait(
                tasks.values(), timeout=self.config.overall_timeout_seconds
            )
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            raise
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        results: Dict[str, NamespaceResult] = {}
        for namespace, task in tasks.items():
            if task in done:
                results[namespace] = task.result()
            else:
                log.warning("Namespace exceeded overall deadline", namespace=namespace)
                results[namespace] = NamespaceResult.failure(
                    namespace,
                    "overall deadline exceeded",
                    self.config.overall_timeout_seconds,
                )
        return results

    async def _query_namespace(
        self,
        namespace: str,
        query_embedding: Sequence[float],
        candidates: int,
        metadata_filter: Optional[Mapping[str, Any]],
    ) -> NamespaceResult:
        """Query su un namespace: il fallimento diventa un NamespaceResult, mai un'eccezione."""
        start = time.perf_counter()
        physical = self.environment.physical_namespace(namespace) if self.environment else namespace

        try:
            response = await asyncio.wait_for(
                call_service(
                    self.vector_store.query,
                    vector=list(query_embedding),
                    top_k=candidates,
                    namespace=physical,
                    filter=dict(metadata_filter) if metadata_filter else None,
                    include_metadata=True,
                ),
                timeout=self.config.namespace_timeout_seconds,
            )
        except asyncio.TimeoutError:
            elapsed = time.perf_counter() - start
            log.warning("Namespace query timed out", namespace=namespace, timeout=self.config.namespace_timeout_seconds)
            return NamespaceResult.failure(namespace, "timeout", elapsed)
        except Exception as e:
            elapsed = time.perf_counter() - start
            log.warning("Namespace query failed", namespace=namespace, error=str(e))
            return NamespaceResult.failure(namespace, f"{type(e).__name__}: {e}", elapsed)

        matches = []
        for raw in _raw_matches(response):
            try:
                matches.append(SearchMatch.from_raw(raw, namespace))
            except MalformedRecordError as e:
                log.warning("Skipping malformed match", namespace=namespace, reason=e.reason)

        return NamespaceResult(
            namespace=namespace,
            matches=matches,
            duration_seconds=time.perf_counter() - start,
        )

    # ------------------------------------------------------------------
    # Merge and ranking
    # ------------------------------------------------------------------

    def is_legal(self, match: SearchMatch) -> bool:
        return match.document_type in self._legal_types

    def source_type(self, namespace: str) -> str:
        return self.config.source_types.get(namespace, self.config.default_source_type)

    def merge(
        self,
        namespace_results: Mapping[str, NamespaceResult],
        weights: Mapping[str, float],
    ) -> List[SearchMatch]:
        """
        Applica pesi e boost e deduplica per id (vince lo score più alto).

        I pesi sono relativi al namespace più pesante: il corpus dominante
        mantiene la scala degli score grezzi.
        """
        cfg = self.config
        top_weight = max(weights.values(), default=0.0)
        by_id: Dict[str, SearchMatch] = {}

        for namespace, ns_result in namespace_results.items():
            if not ns_result.ok:
                continue
            weight = weights.get(namespace, 0.0) / top_weight if top_weight > 0 else 0.0
            for match in ns_result.matches:
                match.namespace_weight = weight
                match.source_type = self.source_type(namespace)
                match.legal_boost = cfg.legal_context_boost if cfg.enable_legal_boost and self.is_legal(match) else 0.0
                match.diversity_boost = cfg.diversity_map.get(match.document_type, 0.0) * cfg.diversity_boost
                match.adjusted_score = match.score * weight + match.legal_boost + match.diversity_boost

                existing = by_id.get(match.id)
                if existing is None or match.adjusted_score > existing.adjusted_score:
                    by_id[match.id] = match

        return list(by_id.values())

    def rerank(self, matches: Sequence[SearchMatch]) -> List[SearchMatch]:
        """Score decrescente; quasi-parità risolte con documento normativo, poi qualità."""
        margin = self.config.near_tie_margin

        def compare(a: SearchMatch, b: SearchMatch) -> int:
            diff = b.adjusted_score - a.adjusted_score
            if abs(diff) < margin:
                a_legal, b_legal = self.is_legal(a), self.is_legal(b)
                if a_legal != b_legal:
                    return -1 if a_legal else 1
                if a.quality_score != b.quality_score:
                    return -1 if a.quality_score > b.quality_score else 1
            if diff > 0:
                return 1
            if diff < 0:
                return -1
            return 0

        return sorted(matches, key=cmp_to_key(compare))

    def relevance_indicators(self, match: SearchMatch) -> List[str]:
        indicators = []
        if match.score > 0.85:
            indicators.append("high_similarity")
        if self.is_legal(match):
            indicators.append("legal_document")
        if as_float(match.metadata.get("urbanistic_relevance")) > 50:
            indicators.append("urban_planning")
        year = document_year(match.metadata)
        if year is not None and year > 2000:
            indicators.append("recent")
        if match.quality_score > 80:
            indicators.append("high_quality")
        return indicators

    def get_stats(self) -> Dict[str, Any]:
        """Statistiche d'uso del coordinatore."""
        return {
            "queries": self._queries,
            "total_failures": self._total_failures,
            "namespace_usage": dict(self._namespace_usage),
            "namespace_failures": dict(self._namespace_failures),
        }


async def search(
    vector_store: VectorStore,
    query_embedding: Sequence[float],
    classification: QueryClassification,
    top_k: Optional[int] = None,
    threshold: Optional[float] = None,
    config: Optional[SearchConfig] = None,
) -> SearchResult:
    """
    Convenience function per una ricerca multi-corpus.

    Example:
        >>> result = await search(store, vector, classify_query("distanze minime"))
        >>> result.matches[0].adjusted_score
    """
    coordinator = MultiCorpusSearchCoordinator(vector_store, config)
    return await coordinator.search(query_embedding, classification, top_k=top_k, threshold=threshold)


__all__ = [
    "relevance_category",
    "MultiCorpusSearchCoordinator",
    "search",
]
