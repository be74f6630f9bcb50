"""
urban-ai CLI

Comandi di diagnostica offline (nessun servizio esterno):
- chunk: parse + chunking + metadati di un documento locale
- classify: classificazione di una query
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict

import click

from urbanai.config import ChunkerConfig, UrbanaiSettings, configure_logging, load_config
from urbanai.exceptions import UrbanaiError
from urbanai.pipeline.chunking import LegalChunker
from urbanai.pipeline.metadata import MetadataEnricher
from urbanai.pipeline.parsing import parse_document
from urbanai.routing.classifier import QueryClassifier


def _echo_json(data: Dict[str, Any]) -> None:
    click.echo(json.dumps(data, ensure_ascii=False, indent=2))


@click.group()
@click.version_option(version="0.1.0", prog_name="urbanai")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="YAML configuration file")
@click.option("--log-level", default=None, help="Log level (default: URBANAI_LOG_LEVEL or INFO)")
@click.option("--json-logs", is_flag=True, help="Render logs as JSON lines")
@click.pass_context
def cli(ctx, config_path, log_level, json_logs):
    """urban-ai - Assistente urbanistico-legale, strumenti da linea di comando."""
    settings = UrbanaiSettings()
    configure_logging(
        level=log_level or settings.log_level,
        json_output=json_logs or settings.log_json,
    )
    try:
        ctx.obj = load_config(config_path or settings.config_path)
    except UrbanaiError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command("chunk")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--html", "is_html", is_flag=True, help="Input is HTML")
@click.option("--title", default="", help="Document title")
@click.option("--number", default="", help="Document number (e.g. 1150/1942)")
@click.option("--type", "doc_type", default="", help="Document type (e.g. legge)")
@click.option("--source", default="", help="Document source (e.g. normattiva)")
@click.option("--date", default="", help="Publication date (YYYY-MM-DD)")
@click.option("--authority", default="", help="Issuing authority")
@click.option("--preset", type=click.Choice(["standard", "extended"]), default=None, help="Chunker preset")
@click.option("--summary", is_flag=True, help="Omit chunk texts from the output")
@click.pass_obj
def chunk_command(config, path, is_html, title, number, doc_type, source, date, authority, preset, summary):
    """Chunk a local document and print the result as JSON.

    Example:
        urbanai chunk legge_1150.html --html --type legge --number 1150/1942 --source normattiva
    """
    document_config = {
        "title": title,
        "number": number,
        "type": doc_type,
        "source": source,
        "date": date,
        "authority": authority,
    }
    chunker_config: ChunkerConfig = ChunkerConfig.preset(preset) if preset else config.chunker

    try:
        raw = Path(path).read_text(encoding="utf-8")
        document = parse_document(raw, document_config, is_html=is_html)
        result = LegalChunker(chunker_config).chunk_document(document)
        metadata = MetadataEnricher().extract_metadata(document, document_config)
    except UrbanaiError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    output = result.to_dict()
    if summary:
        output["chunks"] = [
            {k: v for k, v in c.items() if k != "text"} for c in output["chunks"]
        ]
    output["metadata"] = {
        "document_type": metadata.document_type,
        "classification": metadata.classification.primary_type,
        "formal_citation": metadata.classification.formal_citation,
        "status": metadata.status.current_status,
        "primary_topics": [t.topic for t in metadata.topics.primary_topics],
        "urbanistic_relevance": metadata.topics.urbanistic_relevance,
        "territorial_scope": metadata.authority_analysis.territorial_scope,
        "overall_quality": metadata.quality.overall_quality,
        "confidence_score": metadata.confidence_score,
    }
    _echo_json(output)


@cli.command("classify")
@click.argument("query")
@click.pass_obj
def classify_command(config, query):
    """Classify a query and print strategy, namespaces and weights as JSON.

    Example:
        urbanai classify "Normativa regionale Lombardia sul piano regolatore"
    """
    classifier = QueryClassifier(config.classifier)
    classification = classifier.classify(query)

    output = classification.to_dict()
    output["expanded_query"] = classifier.expand_query(query)
    output["recommendations"] = [
        {"type": r.type, "message": r.message, "priority": r.priority}
        for r in classifier.recommendations(classification)
    ]
    _echo_json(output)


if __name__ == "__main__":
    cli()
