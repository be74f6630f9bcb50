"""
urban-ai Test Configuration
===========================

Shared fixtures for all tests.

I servizi esterni (embedding e vector store) sono sostituiti da fake
deterministici in memoria: nessun test richiede rete o API key.
"""

import asyncio
import hashlib
from typing import Any, Dict, List, Optional

import pytest


# ============================================================================
# Sample documents
# ============================================================================

LEGGE_1150_ARTICLES = [
    (
        "1",
        "Disciplina dell'attività urbanistica e suoi scopi",
        [
            "L'assetto e l'incremento edilizio dei centri abitati e lo sviluppo urbanistico in genere "
            "nel territorio della Repubblica sono disciplinati dalla presente legge."
        ],
    ),
    (
        "2",
        "Contenuto del piano regolatore generale",
        [
            "Il piano regolatore generale del comune deve indicare:",
            "1. la rete delle principali vie di comunicazione stradali, ferroviarie e navigabili;",
            "2. la divisione in zone del territorio comunale con la precisazione delle zone destinate "
            "all'espansione dell'aggregato urbano;",
            "3. le aree destinate a formare spazi di uso pubblico o sottoposte a speciali servitù;",
            "4. le aree da riservare ad edifici pubblici o di uso pubblico nonché ad opere ed impianti "
            "di interesse collettivo;",
            "5. i vincoli da osservare nelle zone a carattere storico, ambientale e paesistico.",
        ],
    ),
    (
        "3",
        "Formazione del piano regolatore generale",
        [
            "I comuni compresi in appositi elenchi sono obbligati a formare il piano regolatore del "
            "proprio territorio entro il termine stabilito dal Ministero dei lavori pubblici."
        ],
    ),
    (
        "4",
        "Piani particolareggiati di esecuzione",
        [
            "L'attuazione del piano regolatore generale deve essere effettuata a mezzo di piani "
            "particolareggiati di esecuzione nei quali devono essere indicate le reti stradali e i "
            "singoli edifici."
        ],
    ),
    (
        "5",
        "Durata del piano regolatore generale",
        [
            "Il piano regolatore generale del comune ha vigore a tempo indeterminato e può essere "
            "variato con la stessa procedura seguita per la sua approvazione."
        ],
    ),
    (
        "6",
        "Regolamento edilizio",
        [
            "Ogni comune deve essere provvisto di un regolamento edilizio che disciplini le modalità "
            "di costruzione e la tutela dei valori tradizionali."
        ],
    ),
    (
        "7",
        "Licenza edilizia",
        [
            "Chiunque intenda eseguire nuove costruzioni edilizie nell'ambito del territorio comunale "
            "deve chiedere apposita licenza al sindaco del comune."
        ],
    ),
    (
        "8",
        "Vigilanza sulle costruzioni",
        [
            "Il sindaco esercita la vigilanza sulle costruzioni che si eseguono nel territorio del "
            "comune per assicurarne la rispondenza alle norme della presente legge."
        ],
    ),
    (
        "9",
        "Lottizzazione di aree",
        [
            "Prima dell'approvazione del piano regolatore generale è vietato procedere alla "
            "lottizzazione dei terreni a scopo edilizio senza autorizzazione comunale."
        ],
    ),
    (
        "10",
        "Comparti edificatori",
        [
            "Il comune può procedere, in sede di approvazione del piano particolareggiato, alla "
            "formazione di comparti costituenti unità fabbricabili."
        ],
    ),
    (
        "11",
        "Espropriazione per l'attuazione dei piani",
        [
            "Per l'attuazione dei piani particolareggiati il comune ha facoltà di procedere alla "
            "espropriazione delle aree inedificate e degli edifici in contrasto con le destinazioni "
            "di piano."
        ],
    ),
    (
        "12",
        "Norme transitorie",
        [
            "I comuni che alla data di entrata in vigore della presente legge siano provvisti di "
            "piano regolatore continuano ad applicarlo fino alla sua revisione."
        ],
    ),
]


def _legge_1150_html() -> str:
    blocks = []
    for number, title, paragraphs in LEGGE_1150_ARTICLES:
        body = "\n".join(f"    <p>{p}</p>" for p in paragraphs)
        blocks.append(
            f'<div class="articolo">\n    <h3>Art. {number} - {title}</h3>\n{body}\n</div>'
        )
    return (
        "<html>\n<head><title>Normattiva</title><style>p { margin: 0 }</style></head>\n<body>\n"
        "<nav>Home | Ricerca | Accedi</nav>\n"
        "<h1>Legge 17 agosto 1942, n. 1150</h1>\n"
        "<h2>Legge urbanistica</h2>\n"
        + "\n".join(blocks)
        + "\n<footer>Gazzetta Ufficiale della Repubblica Italiana</footer>\n</body>\n</html>"
    )


LEGGE_1150_HTML = _legge_1150_html()

LEGGE_1150_CONFIG = {
    "title": "Legge 17 agosto 1942, n. 1150 - Legge Urbanistica",
    "number": "1150/1942",
    "type": "legge",
    "source": "normattiva",
    "date": "1942-08-17",
    "authority": "Parlamento",
}


@pytest.fixture
def legge_1150_html():
    """HTML della legge urbanistica (12 articoli, art. 2 con 5 commi numerati)."""
    return LEGGE_1150_HTML


@pytest.fixture
def legge_1150_config():
    """Document-config record della legge urbanistica."""
    return dict(LEGGE_1150_CONFIG)


@pytest.fixture
def legge_1150_document():
    """Legge urbanistica già parsata."""
    from urbanai.pipeline.parsing import parse_document
    return parse_document(LEGGE_1150_HTML, LEGGE_1150_CONFIG, is_html=True)


# ============================================================================
# Configuration fixtures
# ============================================================================

@pytest.fixture
def fast_indexing_config():
    """IndexingConfig senza attese tra retry e documenti."""
    from urbanai.config import IndexingConfig
    return IndexingConfig(
        retry_attempts=3,
        retry_min_wait_seconds=0.0,
        retry_max_wait_seconds=0.0,
        processing_delay_seconds=0.0,
    )


@pytest.fixture
def test_config():
    """Get test environment configuration."""
    from urbanai.config import get_environment_config, TEST_ENV
    return get_environment_config(TEST_ENV)


# ============================================================================
# Fake external services
# ============================================================================

class FakeEmbedder:
    """Embedding deterministico: md5 del testo -> vettore in [0, 1]."""

    def __init__(self, dimension: int = 8, failures: int = 0, delay: float = 0.0):
        self.dimension = dimension
        self.failures = failures
        self.delay = delay
        self.embedded: List[str] = []
        self.batch_calls = 0

    def vector(self, text: str) -> List[float]:
        digest = hashlib.md5(text.encode("utf-8")).digest()
        return [digest[i] / 255 for i in range(self.dimension)]

    async def embed(self, text: str) -> List[float]:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("embedding service unavailable")
        self.embedded.append(text)
        return self.vector(text)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.batch_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("embedding service unavailable")
        self.embedded.extend(texts)
        return [self.vector(t) for t in texts]


class FakeVectorStore:
    """
    Vector store in memoria.

    Args:
        responses: namespace -> match grezzi restituiti da query()
        delays: namespace -> secondi di attesa prima di rispondere
        errors: namespace -> eccezione sollevata da query()
    """

    def __init__(
        self,
        responses: Optional[Dict[str, List[Any]]] = None,
        delays: Optional[Dict[str, float]] = None,
        errors: Optional[Dict[str, Exception]] = None,
        upsert_failures: int = 0,
    ):
        self.responses = responses or {}
        self.delays = delays or {}
        self.errors = errors or {}
        self.upsert_failures = upsert_failures
        self.upserts: List[tuple] = []
        self.queries: List[Dict[str, Any]] = []
        self.records: Dict[str, Dict[str, Dict[str, Any]]] = {}

    async def upsert(self, vectors: List[Dict[str, Any]], namespace: str) -> Dict[str, int]:
        if self.upsert_failures > 0:
            self.upsert_failures -= 1
            raise ConnectionError("vector store unavailable")
        self.upserts.append((namespace, list(vectors)))
        partition = self.records.setdefault(namespace, {})
        for record in vectors:
            partition[record["id"]] = record
        return {"upserted_count": len(vectors)}

    async def query(self, vector, top_k, namespace, filter=None, include_metadata=True):
        self.queries.append({
            "vector": vector,
            "top_k": top_k,
            "namespace": namespace,
            "filter": filter,
            "include_metadata": include_metadata,
        })
        if namespace in self.delays:
            await asyncio.sleep(self.delays[namespace])
        if namespace in self.errors:
            raise self.errors[namespace]
        if namespace in self.responses:
            return {"matches": list(self.responses[namespace])[:top_k]}

        # Record indicizzati: score decrescente in ordine di inserimento
        stored = list(self.records.get(namespace, {}).values())[:top_k]
        return {
            "matches": [
                {"id": r["id"], "score": round(0.95 - 0.01 * i, 4), "metadata": r["metadata"]}
                for i, r in enumerate(stored)
            ]
        }

    async def fetch(self, ids, namespace):
        partition = self.records.get(namespace, {})
        return {i: partition[i] for i in ids if i in partition}

    async def delete_namespace(self, namespace):
        self.records.pop(namespace, None)


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def fake_store():
    return FakeVectorStore()


def make_match(
    match_id: str,
    score: float,
    document_type: str = "legge",
    **metadata: Any,
) -> Dict[str, Any]:
    """Match grezzo nel formato del vector store."""
    meta = {"document_type": document_type, "text": f"Testo del chunk {match_id}."}
    meta.update(metadata)
    return {"id": match_id, "score": score, "metadata": meta}


@pytest.fixture
def store_factory():
    """FakeVectorStore configurabile: store_factory(responses=..., errors=...)."""
    return FakeVectorStore


@pytest.fixture
def embedder_factory():
    """FakeEmbedder configurabile: embedder_factory(failures=1)."""
    return FakeEmbedder


@pytest.fixture
def match_factory():
    """Costruttore di match grezzi: match_factory("id", 0.9, "legge", article_number="5")."""
    return make_match
