"""
urban-ai Core
=============

Facade UrbanLegalAssistant: ingestion dei documenti e risposta alle query.
"""

from urbanai.core.assistant import UrbanLegalAssistant

__all__ = ["UrbanLegalAssistant"]
