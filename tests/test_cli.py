"""
Test CLI
========

Comandi offline chunk e classify tramite click.testing.CliRunner.
"""

import json

import pytest
import structlog
from click.testing import CliRunner

from urbanai.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def reset_logging():
    """configure_logging lega structlog allo stderr del runner: ripristina i default."""
    yield
    structlog.reset_defaults()


def invoke(runner, *args):
    return runner.invoke(cli, ["--log-level", "ERROR", *args])


class TestClassifyCommand:

    def test_regional_query(self, runner):
        result = invoke(runner, "classify", "Legge regionale della Lombardia")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["strategy"] == "regional-focus"
        assert data["filters"] == {"laws-regional": {"region": "LOM"}}
        assert data["expanded_query"] == "Legge regionale della Lombardia"
        assert [r["type"] for r in data["recommendations"]] == ["performance", "quality"]

    def test_expanded_query(self, runner):
        result = invoke(runner, "classify", "Serve la SCIA?")

        data = json.loads(result.stdout)
        assert data["expanded_query"] == "Serve la segnalazione certificata inizio attività?"


class TestChunkCommand:

    @pytest.fixture
    def html_file(self, tmp_path, legge_1150_html):
        path = tmp_path / "legge_1150.html"
        path.write_text(legge_1150_html, encoding="utf-8")
        return path

    def test_chunk_html(self, runner, html_file):
        result = invoke(
            runner,
            "chunk", str(html_file),
            "--html",
            "--type", "legge",
            "--number", "1150/1942",
            "--source", "normattiva",
            "--date", "1942-08-17",
            "--summary",
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["document_id"] == "normattiva_legge_1150_1942"
        assert len(data["chunks"]) == 12
        assert "text" not in data["chunks"][0]
        assert data["metadata"]["formal_citation"] == "L 1150"
        assert data["metadata"]["document_type"] == "legge"

    def test_chunk_keeps_texts_by_default(self, runner, html_file):
        result = invoke(runner, "chunk", str(html_file), "--html", "--preset", "extended")

        data = json.loads(result.stdout)
        assert data["chunks"][0]["text"].startswith("Art. 1")

    def test_missing_file(self, runner, tmp_path):
        result = invoke(runner, "chunk", str(tmp_path / "missing.html"))
        assert result.exit_code != 0


class TestGlobalOptions:

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_invalid_config(self, runner, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("search: [unclosed\n", encoding="utf-8")

        result = runner.invoke(cli, ["--log-level", "ERROR", "--config", str(path), "classify", "distanze"])

        assert result.exit_code == 1
        assert "Error:" in result.output
