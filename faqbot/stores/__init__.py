"""Entry store tiers: one read/write contract, several backends."""

from .base import EntryStore, coerce_entry, dedupe, validate_batch
from .file_store import FileStore
from .redis_store import RedisStore
from .sql_store import SqlStore

__all__ = [
    "EntryStore",
    "FileStore",
    "RedisStore",
    "SqlStore",
    "coerce_entry",
    "dedupe",
    "validate_batch",
]
