"""SQLAlchemy Core table definitions for the worldvar store."""

from __future__ import annotations

from sqlalchemy import Column, Integer, MetaData, Table, Text

metadata = MetaData()

# One row per selector key ("chat", "message:latest", ...). The payload is the
# whole tree as JSON; revision increases by one on every write.
variable_trees = Table(
    "variable_trees",
    metadata,
    Column("selector", Text, primary_key=True),
    Column("payload", Text, nullable=False),
    Column("revision", Integer, nullable=False, default=0, server_default="0"),
    Column("updated", Text, nullable=False),
)
