"""
Exceptions
==========

Gerarchia di errori di urban-ai.

Solo i difetti di programmazione e i record malformati vengono sollevati.
Le degradazioni previste a runtime (force split, namespace in errore,
fallimento totale della ricerca) sono registrate nei log e restituite
come campi dei risultati.
"""


class UrbanaiError(Exception):
    """Base class for every urban-ai error."""


class MalformedRecordError(UrbanaiError, ValueError):
    """
    A record rejected at a stage boundary.

    Attributes:
        record: Name of the record type (e.g. "Chunk")
        reason: What is wrong with it
    """

    def __init__(self, record: str, reason: str):
        self.record = record
        self.reason = reason
        super().__init__(f"Malformed {record}: {reason}")


class ClassificationInvariantError(UrbanaiError, AssertionError):
    """Namespace weights do not sum to 1.0 or a namespace has no weight."""


class ConfigurationError(UrbanaiError, ValueError):
    """Invalid configuration file or values."""


class IndexingError(UrbanaiError):
    """
    Embedding or upsert failed after all retries.

    Attributes:
        document_id: Document being indexed
        stage: "embedding" or "upsert"
    """

    def __init__(self, message: str, document_id: str = "", stage: str = ""):
        self.document_id = document_id
        self.stage = stage
        super().__init__(message)


__all__ = [
    "UrbanaiError",
    "MalformedRecordError",
    "ClassificationInvariantError",
    "ConfigurationError",
    "IndexingError",
]
