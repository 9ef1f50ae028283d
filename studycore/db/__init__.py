"""Database package for studycore.

DuckDB implementation of the session store. Only StudyDatabase is exported
as the public API.
"""

from .database import StudyDatabase

__all__ = ["StudyDatabase"]
