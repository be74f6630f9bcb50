"""
Component Configuration
=======================

Pydantic models per la configurazione di tutti i componenti urban-ai.

Le soglie (0.5 di rilevanza, 0.1/0.3 di classificazione, boost) sono
valori di default tarati empiricamente: restano sovrascrivibili via YAML.

Esempio YAML:
    chunker:
      preset: extended
      overlap_tokens: 150
    search:
      relevance_threshold: 0.4
    composer:
      last_update: "2024-06-01"

Usage:
    from urbanai.config import load_config

    config = load_config("config/urbanai.yaml")
    print(config.chunker.max_chunk_tokens)
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from urbanai.exceptions import ConfigurationError
from urbanai.models.namespaces import DEFAULT_SOURCE_TYPE, NAMESPACE_SOURCE_TYPES

log = structlog.get_logger()


# ============================================================================
# Chunker
# ============================================================================

class SeparatorRule(BaseModel):
    """
    Separatore per lo split generico, in ordine di priorità.

    Attributes:
        pattern: Regex del separatore (lookahead per i marcatori strutturali)
        priority: Priorità (più alta = preferita)
        label: Nome leggibile
        multiline: Compila con re.MULTILINE
        ignore_case: Compila con re.IGNORECASE
    """
    pattern: str
    priority: int
    label: str
    multiline: bool = False
    ignore_case: bool = False


DEFAULT_SEPARATORS: List[SeparatorRule] = [
    SeparatorRule(pattern=r"(?=Art\.|Articolo\s*\d+)", priority=10, label="article"),
    SeparatorRule(pattern=r"(?=Comma\s*\d+|^\d+\.\s)", priority=8, label="comma", multiline=True),
    SeparatorRule(
        pattern=r"(?=lett\.\s*[a-z]\)|lettera\s*[a-z]\))", priority=6, label="letter", ignore_case=True
    ),
    SeparatorRule(pattern=r"\n\s*\n", priority=4, label="paragraph"),
    SeparatorRule(pattern=r"\.\s+(?=[A-ZÀ-Ý])", priority=3, label="sentence"),
    SeparatorRule(pattern=r";\s+", priority=2, label="semicolon"),
    SeparatorRule(pattern=r",\s+", priority=1, label="comma_punct"),
]


CHUNKER_PRESETS: Dict[str, Dict[str, int]] = {
    "standard": {"min_chunk_tokens": 800, "max_chunk_tokens": 1200, "overlap_tokens": 200},
    "extended": {"min_chunk_tokens": 1200, "max_chunk_tokens": 2500, "overlap_tokens": 100},
}


class ChunkerConfig(BaseModel):
    """
    Budget di token del chunker.

    min/max/overlap sono obbligatori: usare ChunkerConfig.preset("standard") per
    i valori standard.
    """
    min_chunk_tokens: int = Field(..., gt=0)
    max_chunk_tokens: int = Field(..., gt=0)
    overlap_tokens: int = Field(..., ge=0)
    token_ratio: float = Field(default=4.0, gt=0.0, description="Caratteri per token")
    min_chunk_chars: int = Field(default=20, ge=0, description="Chunk <= soglia scartati")
    min_chunk_token_count: int = Field(default=10, ge=0, description="Chunk <= soglia scartati")
    separators: List[SeparatorRule] = Field(default_factory=lambda: list(DEFAULT_SEPARATORS))

    @model_validator(mode="after")
    def check_budget(self) -> "ChunkerConfig":
        if self.min_chunk_tokens > self.max_chunk_tokens:
            raise ValueError(
                f"min_chunk_tokens ({self.min_chunk_tokens}) must be <= "
                f"max_chunk_tokens ({self.max_chunk_tokens})"
            )
        if self.overlap_tokens >= self.max_chunk_tokens:
            raise ValueError("overlap_tokens must be smaller than max_chunk_tokens")
        return self

    @property
    def max_chunk_chars(self) -> int:
        return max(1, int(self.max_chunk_tokens * self.token_ratio))

    @classmethod
    def preset(cls, name: str, **overrides: Any) -> "ChunkerConfig":
        """
        Crea una config da un preset nominato.

        Args:
            name: "standard" (800/1200/200) o "extended" (1200/2500/100)
            **overrides: Campi da sovrascrivere

        Raises:
            ConfigurationError: Se il preset non esiste
        """
        if name not in CHUNKER_PRESETS:
            raise ConfigurationError(
                f"Unknown chunker preset '{name}'. Available: {sorted(CHUNKER_PRESETS)}"
            )
        values: Dict[str, Any] = dict(CHUNKER_PRESETS[name])
        values.update(overrides)
        return cls(**values)


# ============================================================================
# Query classification
# ============================================================================

class ClassifierConfig(BaseModel):
    """Soglie e pesi per categoria del QueryClassifier."""
    legal_threshold: float = Field(default=0.1, ge=0.0, le=1.0)
    regional_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    urban_threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    urban_light_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    legal_light_threshold: float = Field(default=0.1, ge=0.0, le=1.0)
    urban_only_confidence_floor: float = Field(default=0.5, ge=0.0, le=1.0)
    category_weights: Dict[str, float] = Field(
        default_factory=lambda: {"legal": 1.0, "regional": 0.8, "urban": 0.9}
    )
    weight_tolerance: float = Field(default=0.01, gt=0.0)

    @field_validator("category_weights")
    @classmethod
    def all_categories_present(cls, v: Dict[str, float]) -> Dict[str, float]:
        missing = {"legal", "regional", "urban"} - set(v)
        if missing:
            raise ValueError(f"category_weights missing: {sorted(missing)}")
        return v


# ============================================================================
# Multi-corpus search
# ============================================================================

class SearchConfig(BaseModel):
    """
    Configurazione del MultiCorpusSearchCoordinator.

    Attributes:
        default_top_k: Risultati finali di default
        max_top_k: Cap sia sui candidati per namespace sia sul top_k finale
        candidate_multiplier: Candidati per namespace = top_k * multiplier
        relevance_threshold: Score minimo dopo pesi e boost
        legal_context_boost: Boost additivo per documenti normativi
        diversity_boost: Fattore che scala diversity_map
        near_tie_margin: Sotto questa differenza il rerank preferisce i documenti normativi
        namespace_timeout_seconds: Timeout indipendente per namespace
        overall_timeout_seconds: Deadline complessiva della fan-out
    """
    default_top_k: int = Field(default=10, ge=1)
    max_top_k: int = Field(default=100, ge=1)
    candidate_multiplier: int = Field(default=2, ge=1)
    relevance_threshold: float = Field(default=0.5, ge=0.0)
    legal_context_boost: float = Field(default=0.15, ge=0.0)
    enable_legal_boost: bool = True
    diversity_boost: float = Field(default=0.1, ge=0.0)
    diversity_map: Dict[str, float] = Field(
        default_factory=lambda: {
            "legge": 0.05,
            "decreto": 0.04,
            "regolamento": 0.03,
            "sentenza": 0.06,
            "dpr": 0.04,
            "dlgs": 0.04,
        }
    )
    legal_document_types: List[str] = Field(
        default_factory=lambda: ["legge", "decreto", "regolamento", "dpr", "dlgs", "sentenza"]
    )
    near_tie_margin: float = Field(default=0.1, ge=0.0)
    namespace_timeout_seconds: float = Field(default=30.0, gt=0.0)
    overall_timeout_seconds: float = Field(default=45.0, gt=0.0)
    source_types: Dict[str, str] = Field(default_factory=lambda: dict(NAMESPACE_SOURCE_TYPES))
    default_source_type: str = DEFAULT_SOURCE_TYPE

    @model_validator(mode="after")
    def check_top_k(self) -> "SearchConfig":
        if self.default_top_k > self.max_top_k:
            raise ValueError("default_top_k must be <= max_top_k")
        return self


# ============================================================================
# Response composition
# ============================================================================

class ComposerConfig(BaseModel):
    """Limiti di formattazione del ResponseComposer."""
    max_answer_length: int = Field(default=2000, ge=100)
    max_excerpt_length: int = Field(default=200, ge=20)
    max_sources: int = Field(default=8, ge=1)
    max_follow_ups: int = Field(default=4, ge=0)
    enable_follow_ups: bool = True
    include_urls: bool = True
    enable_legal_disclaimer: bool = True
    disclaimer_version: str = "1.0"
    last_update: str = "n/d"


# ============================================================================
# Indexing, cache, assistant
# ============================================================================

class IndexingConfig(BaseModel):
    """Filtri qualità, batching e retry dell'indicizzazione."""
    default_namespace: Optional[str] = None
    batch_size: int = Field(default=100, ge=1)
    processing_delay_seconds: float = Field(default=0.5, ge=0.0)
    min_quality_score: float = Field(default=50.0, ge=0.0, le=100.0)
    min_tokens: int = Field(default=20, ge=0)
    max_tokens: int = Field(default=8000, ge=1)
    retry_attempts: int = Field(default=4, ge=1)
    retry_min_wait_seconds: float = Field(default=2.0, ge=0.0)
    retry_max_wait_seconds: float = Field(default=30.0, ge=0.0)


class CacheConfig(BaseModel):
    """Cache delle risposte."""
    enabled: bool = True
    ttl_seconds: float = Field(default=1800.0, gt=0.0)
    max_entries: int = Field(default=1000, ge=1)


class AssistantConfig(BaseModel):
    """Deadline del percorso di query."""
    embedding_timeout_seconds: float = Field(default=15.0, gt=0.0)
    query_timeout_seconds: float = Field(default=60.0, gt=0.0)


class UrbanaiConfig(BaseModel):
    """Configurazione completa."""
    chunker: ChunkerConfig = Field(default_factory=lambda: ChunkerConfig.preset("standard"))
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    composer: ComposerConfig = Field(default_factory=ComposerConfig)
    indexing: IndexingConfig = Field(default_factory=IndexingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    assistant: AssistantConfig = Field(default_factory=AssistantConfig)

    @field_validator("chunker", mode="before")
    @classmethod
    def expand_chunker_preset(cls, v: Any) -> Any:
        if isinstance(v, dict):
            data = dict(v)
            preset = data.pop("preset", None)
            if preset is not None:
                if preset not in CHUNKER_PRESETS:
                    raise ValueError(f"Unknown chunker preset '{preset}'")
                merged: Dict[str, Any] = dict(CHUNKER_PRESETS[preset])
                merged.update(data)
                return merged
        return v


class UrbanaiSettings(BaseSettings):
    """
    Settings da variabili d'ambiente (prefisso URBANAI_).

    Esempio:
        URBANAI_LOG_LEVEL=DEBUG URBANAI_LOG_JSON=true urbanai classify "..."
    """
    model_config = SettingsConfigDict(env_prefix="URBANAI_", extra="ignore")

    config_path: Optional[Path] = None
    log_level: str = "INFO"
    log_json: bool = False


def load_config(path: Optional[Union[str, Path]] = None) -> UrbanaiConfig:
    """
    Carica la configurazione da YAML, con fallback ai default.

    Args:
        path: File YAML opzionale

    Returns:
        UrbanaiConfig validata

    Raises:
        ConfigurationError: YAML non valido o valori fuori range
    """
    if path is None:
        return UrbanaiConfig()

    config_path = Path(path)
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        log.warning("Config file not found, using defaults", path=str(config_path))
        return UrbanaiConfig()
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping at top level")

    try:
        config = UrbanaiConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e

    log.info("Config loaded", path=str(config_path), sections=sorted(data))
    return config
