"""
urban-ai Routing
================

Classificazione delle query e scelta della strategia di retrieval.

Esempio:
    from urbanai.routing import classify_query

    classification = classify_query("Normativa regionale Lombardia su piano regolatore")
    print(classification.strategy.value, classification.weights)
"""

from urbanai.routing.models import (
    STRATEGY_PLANS,
    QueryClassification,
    RoutingRecommendation,
    Strategy,
    StrategyPlan,
)
from urbanai.routing.classifier import QueryClassifier, classify_query

__all__ = [
    "Strategy",
    "StrategyPlan",
    "STRATEGY_PLANS",
    "QueryClassification",
    "RoutingRecommendation",
    "QueryClassifier",
    "classify_query",
]
