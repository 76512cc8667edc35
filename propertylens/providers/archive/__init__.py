"""Last-resort session snapshot archives."""

from propertylens.providers.archive.sqlite_session_archive import SQLiteSessionArchive

__all__ = ["SQLiteSessionArchive"]
