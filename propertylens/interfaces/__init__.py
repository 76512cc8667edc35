"""Public interface definitions for every external collaborator.

The coordinator services only ever talk to these abstract base classes.
Concrete adapters live in ``propertylens/providers/`` and are wired
together in ``propertylens/main.py``; tests inject in-memory fakes.

    Interface          →  Concrete implementation
    ─────────────────────────────────────────────────────────────
    ICacheProvider     →  MemoryCacheProvider
    IAnalysisEngine    →  HTTPAnalysisEngine
    ISessionArchive    →  SQLiteSessionArchive
    IFeedbackProvider  →  SQLiteFeedbackProvider
"""

from propertylens.interfaces.analysis_engine import IAnalysisEngine
from propertylens.interfaces.cache_provider import ICacheProvider
from propertylens.interfaces.feedback_provider import IFeedbackProvider
from propertylens.interfaces.session_archive import ISessionArchive

__all__ = [
    "IAnalysisEngine",
    "ICacheProvider",
    "IFeedbackProvider",
    "ISessionArchive",
]
