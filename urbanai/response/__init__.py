"""
urban-ai Response
=================

Composizione delle risposte: testo da template, citazioni, disclaimer.

Esempio:
    from urbanai.response import compose_response

    response = compose_response(query, result.matches, classification)
    print(response.answer)
"""

from urbanai.response.composer import (
    DISCLAIMER_TEMPLATES,
    ERROR_ANSWER,
    ComposedResponse,
    ResponseComposer,
    SourceCitation,
    compose_response,
)

__all__ = [
    "DISCLAIMER_TEMPLATES",
    "ERROR_ANSWER",
    "ComposedResponse",
    "ResponseComposer",
    "SourceCitation",
    "compose_response",
]
