"""Analysis Engine adapters."""

from propertylens.providers.engine.http_engine_provider import HTTPAnalysisEngine

__all__ = ["HTTPAnalysisEngine"]
