"""
urban-ai Shared Models
======================

Mappature condivise tra i moduli del package.

Centralizza i dati comuni per evitare dipendenze circolari tra
pipeline, routing, storage e response.
"""

from urbanai.models.namespaces import (
    ALL_NAMESPACES,
    JURISPRUDENCE,
    JURISPRUDENCE_DOCUMENT_TYPES,
    LAWS_NATIONAL,
    LAWS_REGIONAL,
    NAMESPACE_DESCRIPTIONS,
    NAMESPACE_SOURCE_TYPES,
    DEFAULT_SOURCE_TYPE,
    NATIONAL_DOCUMENT_TYPES,
    REGIONAL_DOCUMENT_TYPES,
    URBANISTICA_BASE,
)
from urbanai.models.regions import REGION_CODES, REGION_NAMES, find_region, region_name

__all__ = [
    # Namespaces
    "LAWS_NATIONAL",
    "LAWS_REGIONAL",
    "JURISPRUDENCE",
    "URBANISTICA_BASE",
    "ALL_NAMESPACES",
    "NAMESPACE_DESCRIPTIONS",
    "NAMESPACE_SOURCE_TYPES",
    "DEFAULT_SOURCE_TYPE",
    "NATIONAL_DOCUMENT_TYPES",
    "REGIONAL_DOCUMENT_TYPES",
    "JURISPRUDENCE_DOCUMENT_TYPES",
    # Regions
    "REGION_CODES",
    "REGION_NAMES",
    "find_region",
    "region_name",
]
