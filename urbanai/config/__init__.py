"""
Configuration module for urban-ai.
"""

from .environments import (
    EnvironmentConfig,
    Environment,
    get_environment_config,
    TEST_ENV,
    PROD_ENV,
)
from .logging import configure_logging
from .settings import (
    AssistantConfig,
    CacheConfig,
    ChunkerConfig,
    ClassifierConfig,
    ComposerConfig,
    IndexingConfig,
    SearchConfig,
    SeparatorRule,
    UrbanaiConfig,
    UrbanaiSettings,
    CHUNKER_PRESETS,
    DEFAULT_SEPARATORS,
    load_config,
)

__all__ = [
    "EnvironmentConfig",
    "Environment",
    "get_environment_config",
    "TEST_ENV",
    "PROD_ENV",
    "configure_logging",
    "AssistantConfig",
    "CacheConfig",
    "ChunkerConfig",
    "ClassifierConfig",
    "ComposerConfig",
    "IndexingConfig",
    "SearchConfig",
    "SeparatorRule",
    "UrbanaiConfig",
    "UrbanaiSettings",
    "CHUNKER_PRESETS",
    "DEFAULT_SEPARATORS",
    "load_config",
]
