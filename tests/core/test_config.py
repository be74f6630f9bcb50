"""
Test configurazione
===================

load_config da YAML, preset del chunker, settings da ambiente e
mappatura dei namespace per ambiente.
"""

import pytest

from urbanai.config import (
    PROD_ENV,
    TEST_ENV,
    UrbanaiConfig,
    UrbanaiSettings,
    get_environment_config,
    load_config,
)
from urbanai.exceptions import ConfigurationError


class TestLoadConfig:
    """Caricamento della configurazione YAML."""

    def test_defaults_without_path(self):
        config = load_config(None)

        assert config.chunker.max_chunk_tokens == 1200
        assert config.search.relevance_threshold == 0.5
        assert config.search.namespace_timeout_seconds == 30.0
        assert config.cache.ttl_seconds == 1800.0

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.yaml")
        assert config == UrbanaiConfig()

    def test_yaml_overrides(self, tmp_path):
        path = tmp_path / "urbanai.yaml"
        path.write_text(
            "chunker:\n"
            "  preset: extended\n"
            "  overlap_tokens: 150\n"
            "search:\n"
            "  relevance_threshold: 0.4\n"
            "composer:\n"
            "  last_update: '2024-06-01'\n",
            encoding="utf-8",
        )

        config = load_config(path)

        assert config.chunker.min_chunk_tokens == 1200
        assert config.chunker.max_chunk_tokens == 2500
        assert config.chunker.overlap_tokens == 150
        assert config.search.relevance_threshold == 0.4
        assert config.composer.last_update == "2024-06-01"
        assert config.classifier.legal_threshold == 0.1

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert load_config(path) == UrbanaiConfig()

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("search: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)

    def test_out_of_range_value(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("chunker:\n  min_chunk_tokens: 500\n  max_chunk_tokens: 100\n  overlap_tokens: 10\n")

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_config(path)

    def test_unknown_preset(self, tmp_path):
        path = tmp_path / "preset.yaml"
        path.write_text("chunker:\n  preset: huge\n")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_missing_category_weight(self):
        with pytest.raises(ValueError):
            UrbanaiConfig(classifier={"category_weights": {"legal": 1.0}})


class TestSettings:
    """Settings da variabili d'ambiente."""

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("URBANAI_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("URBANAI_LOG_JSON", "true")

        settings = UrbanaiSettings()

        assert settings.log_level == "DEBUG"
        assert settings.log_json is True
        assert settings.config_path is None


class TestEnvironments:
    """Namespace fisici per ambiente."""

    def test_test_namespaces_prefixed(self):
        assert get_environment_config(TEST_ENV).physical_namespace("laws-national") == "test-laws-national"

    def test_prod_namespaces_unchanged(self):
        assert get_environment_config(PROD_ENV).physical_namespace("laws-national") == "laws-national"

