"""
Relational tier (SQLAlchemy Core).

replace_all runs delete-then-insert inside a single transaction: readers see
either the old rows or the new rows, and any failing row rolls the whole
write back.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable

from sqlalchemy import Column, Integer, MetaData, Table, Text, create_engine, delete, insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..errors import StoreUnavailable, WriteFailed
from ..models import Entry, EntrySet
from .base import dedupe, validate_batch

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "faq_entries"


def normalize_db_url(url: str) -> str:
    # SQLAlchemy requires "postgresql://", not the legacy Heroku-style "postgres://".
    if url and url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://") :]
    return url


class SqlStore:
    name = "sql"

    def __init__(self, engine: Engine, *, table_name: str = DEFAULT_TABLE) -> None:
        self.engine = engine
        self.metadata = MetaData()
        self.table = Table(
            table_name,
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("question", Text, nullable=False),
            Column("answer", Text, nullable=False),
        )
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    @classmethod
    def from_url(cls, url: str, *, table_name: str = DEFAULT_TABLE, **engine_kwargs: Any) -> "SqlStore":
        engine = create_engine(normalize_db_url(url), pool_pre_ping=True, **engine_kwargs)
        return cls(engine, table_name=table_name)

    def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        with self._schema_lock:
            if self._schema_ready:
                return
            try:
                self.metadata.create_all(self.engine, checkfirst=True)
            except SQLAlchemyError as e:
                raise StoreUnavailable(f"cannot prepare table {self.table.name}: {e}") from e
            self._schema_ready = True

    def load(self) -> EntrySet:
        self._ensure_schema()
        stmt = select(self.table.c.question, self.table.c.answer).order_by(self.table.c.id)
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"select from {self.table.name} failed: {e}") from e

        entries, rejected = validate_batch(dict(r) for r in rows)
        if rejected:
            logger.warning("%s: skipped %d malformed rows", self.table.name, len(rejected))
        return EntrySet.of(entries)

    def replace_all(self, entries: Iterable[Entry]) -> EntrySet:
        self._ensure_schema()
        snapshot = EntrySet.of(dedupe(entries))
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(self.table))
                if snapshot.entries:
                    conn.execute(insert(self.table), snapshot.wire())
        except SQLAlchemyError as e:
            raise WriteFailed(f"replace of {self.table.name} rolled back: {e}") from e
        return snapshot

    def append_one(self, entry: Entry) -> EntrySet:
        self._ensure_schema()
        stmt = select(self.table.c.question, self.table.c.answer).order_by(self.table.c.id)
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(self.table), entry.wire())
                rows = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            raise WriteFailed(f"insert into {self.table.name} failed: {e}") from e
        entries, _ = validate_batch(dict(r) for r in rows)
        return EntrySet.of(entries)

    def invalidate(self) -> None:
        # The database is the source of truth; there is no copy to drop.
        return None

    def dispose(self) -> None:
        self.engine.dispose()
