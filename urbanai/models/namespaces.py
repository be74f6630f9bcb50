"""
Namespace Mappings
==================

Nomi logici delle partizioni del vector store e tipi di atto associati.

I nomi fisici dipendono dall'ambiente (vedi urbanai.config.environments).
"""

from typing import Dict, FrozenSet, Tuple

LAWS_NATIONAL = "laws-national"
LAWS_REGIONAL = "laws-regional"
JURISPRUDENCE = "jurisprudence"
URBANISTICA_BASE = "urbanistica-base"

ALL_NAMESPACES: Tuple[str, ...] = (LAWS_NATIONAL, LAWS_REGIONAL, JURISPRUDENCE, URBANISTICA_BASE)

NAMESPACE_DESCRIPTIONS: Dict[str, str] = {
    LAWS_NATIONAL: "Normativa nazionale",
    LAWS_REGIONAL: "Normativa regionale",
    JURISPRUDENCE: "Giurisprudenza",
    URBANISTICA_BASE: "Documentazione urbanistica",
}

# document_type -> namespace di default in indicizzazione
NATIONAL_DOCUMENT_TYPES: FrozenSet[str] = frozenset(
    {"legge", "decreto", "decreto_legge", "decreto_legislativo", "decreto_presidente",
     "dpr", "dlgs", "regolamento"}
)
REGIONAL_DOCUMENT_TYPES: FrozenSet[str] = frozenset(
    {"legge_regionale", "lr", "dgr", "delibera_regionale", "regolamento_regionale"}
)
JURISPRUDENCE_DOCUMENT_TYPES: FrozenSet[str] = frozenset({"sentenza", "ordinanza", "parere"})

# namespace -> tipo di fonte usato nel raggruppamento delle risposte
NAMESPACE_SOURCE_TYPES: Dict[str, str] = {
    LAWS_NATIONAL: "legal",
    LAWS_REGIONAL: "regional",
    JURISPRUDENCE: "jurisprudence",
}
DEFAULT_SOURCE_TYPE = "urban"
