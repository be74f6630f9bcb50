"""
Region Mappings
===============

Regioni italiane: nome normalizzato -> codice a 3 lettere, e codice -> nome
ufficiale. Condiviso tra QueryClassifier (filtri di ricerca),
MetadataEnricher (ambito territoriale) e ResponseComposer (testo risposta).

I nomi sono nella forma prodotta dalla normalizzazione delle query:
minuscolo, "emilia-romagna" -> "emilia romagna", "valle d'aosta" -> "valle aosta".
"""

import re
from typing import Dict, Optional, Pattern

REGION_CODES: Dict[str, str] = {
    "lombardia": "LOM",
    "lazio": "LAZ",
    "veneto": "VEN",
    "piemonte": "PIE",
    "campania": "CAM",
    "sicilia": "SIC",
    "emilia romagna": "EMR",
    "toscana": "TOS",
    "puglia": "PUG",
    "calabria": "CAL",
    "sardegna": "SAR",
    "liguria": "LIG",
    "marche": "MAR",
    "abruzzo": "ABR",
    "umbria": "UMB",
    "basilicata": "BAS",
    "molise": "MOL",
    "friuli": "FRI",
    "trentino": "TRE",
    "valle aosta": "VDA",
}

REGION_NAMES: Dict[str, str] = {
    "LOM": "Lombardia",
    "LAZ": "Lazio",
    "VEN": "Veneto",
    "PIE": "Piemonte",
    "CAM": "Campania",
    "SIC": "Sicilia",
    "EMR": "Emilia-Romagna",
    "TOS": "Toscana",
    "PUG": "Puglia",
    "CAL": "Calabria",
    "SAR": "Sardegna",
    "LIG": "Liguria",
    "MAR": "Marche",
    "ABR": "Abruzzo",
    "UMB": "Umbria",
    "BAS": "Basilicata",
    "MOL": "Molise",
    "FRI": "Friuli-Venezia Giulia",
    "TRE": "Trentino-Alto Adige",
    "VDA": "Valle d'Aosta",
}

_REGION_PATTERNS: Dict[str, Pattern] = {
    name: re.compile(
        r"\b" + r"[\s\-']+".join(re.escape(part) for part in name.split()) + r"\b",
        re.IGNORECASE,
    )
    for name in REGION_CODES
}
# "valle d'aosta" in testo non normalizzato
_REGION_PATTERNS["valle aosta"] = re.compile(r"\bvalle\s+(?:d['\u2019]?\s*)?aosta\b", re.IGNORECASE)


def find_region(text: str) -> Optional[str]:
    """
    Codice della regione citata per prima nel testo.

    Args:
        text: Testo libero (query normalizzata o documento)

    Returns:
        Codice regione (es. "LOM") o None
    """
    best_pos: Optional[int] = None
    best_code: Optional[str] = None
    for name, pattern in _REGION_PATTERNS.items():
        match = pattern.search(text)
        if match and (best_pos is None or match.start() < best_pos):
            best_pos = match.start()
            best_code = REGION_CODES[name]
    return best_code


def region_name(code: str) -> str:
    """Nome ufficiale della regione, o il codice se sconosciuto."""
    return REGION_NAMES.get(code, code)
