"""SQLite-backed authority via SQLAlchemy Core."""

from worldvar.infrastructure.database.authority import SqlAuthority
from worldvar.infrastructure.database.engine import create_db_engine, init_database
from worldvar.infrastructure.database.schema import metadata, variable_trees

__all__ = [
    "SqlAuthority",
    "create_db_engine",
    "init_database",
    "metadata",
    "variable_trees",
]
