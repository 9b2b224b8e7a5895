"""SqlAuthority — a state authority persisted in SQLite.

Each selector key maps to one ``variable_trees`` row holding the tree as
JSON. Writes bump the row's revision and then emit the usual update event
sequence, so the reconciliation engine cannot tell it from a live one.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime

from sqlalchemy import insert, select, text, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from worldvar.domain.errors import AuthorityError
from worldvar.domain.state import Selector
from worldvar.domain.values import VariableTree
from worldvar.infrastructure.authority import BaseAuthority
from worldvar.infrastructure.database.schema import variable_trees

logger = logging.getLogger(__name__)


class SqlAuthority(BaseAuthority):
    """Authority backed by a SQLAlchemy engine."""

    def __init__(self, engine: Engine, *, event_delay: float = 0.0) -> None:
        super().__init__(event_delay=event_delay)
        self._engine = engine

    def is_available(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.debug("Store not reachable", exc_info=True)
            return False
        return True

    def revision(self, selector: Selector) -> int:
        """Current revision for *selector* (0 when nothing was written)."""
        with self._engine.connect() as conn:
            value = conn.execute(
                select(variable_trees.c.revision).where(
                    variable_trees.c.selector == selector.key
                )
            ).scalar_one_or_none()
        return value or 0

    def _read(self, conn: Connection, selector: Selector) -> VariableTree | None:
        payload = conn.execute(
            select(variable_trees.c.payload).where(variable_trees.c.selector == selector.key)
        ).scalar_one_or_none()
        if payload is None:
            return None
        tree = json.loads(payload)
        if not isinstance(tree, dict):
            msg = f"Stored payload for {selector.key!r} is not an object"
            raise AuthorityError(msg, selector=selector.key)
        return tree

    def _load(self, selector: Selector) -> VariableTree | None:
        with self._engine.connect() as conn:
            return self._read(conn, selector)

    def _store(self, tree: VariableTree, selector: Selector) -> VariableTree | None:
        """Write *tree* and return the tree it replaced, in one transaction."""
        now = datetime.now(UTC).isoformat()
        payload = json.dumps(tree, ensure_ascii=False)
        with self._engine.begin() as conn:
            old = self._read(conn, selector)
            if old is None:
                conn.execute(
                    insert(variable_trees).values(
                        selector=selector.key, payload=payload, revision=1, updated=now
                    )
                )
            else:
                conn.execute(
                    update(variable_trees)
                    .where(variable_trees.c.selector == selector.key)
                    .values(
                        payload=payload,
                        revision=variable_trees.c.revision + 1,
                        updated=now,
                    )
                )
        return old

    async def pull(self, selector: Selector) -> VariableTree | None:
        try:
            return await asyncio.to_thread(self._load, selector)
        except (SQLAlchemyError, ValueError) as exc:
            raise AuthorityError(f"Read failed: {exc}", selector=selector.key) from exc

    async def push(self, tree: VariableTree, selector: Selector) -> None:
        try:
            stored = json.loads(json.dumps(tree, ensure_ascii=False))
            old = await asyncio.to_thread(self._store, stored, selector)
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            raise AuthorityError(f"Write failed: {exc}", selector=selector.key) from exc
        logger.debug("Stored %d top-level key(s) for %s", len(stored), selector.key)
        self.emit_update(old or {}, stored)
