"""Ritual persistence layer.

SQLite-backed storage for final ritual payloads, with JSON and Markdown
export.
"""

from trinity.persistence.database import close_db, init_db
from trinity.persistence.export import export_json, export_markdown
from trinity.persistence.store import RitualStore

__all__ = [
    "RitualStore",
    "close_db",
    "export_json",
    "export_markdown",
    "init_db",
]
