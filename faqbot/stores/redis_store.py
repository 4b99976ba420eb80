"""Distributed cache tier: the whole entry set as one JSON string in Redis."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

import redis
from redis.exceptions import RedisError

from ..errors import CacheMiss, StoreUnavailable, WriteFailed
from ..models import Entry, EntrySet
from .base import decode_entries, dedupe, encode_entries

logger = logging.getLogger(__name__)

DEFAULT_KEY = "faqbot:faq"
DEFAULT_TIMEOUT = 5.0


class RedisStore:
    name = "redis"

    def __init__(self, client: Any, *, key: str = DEFAULT_KEY, ttl: Optional[int] = None) -> None:
        self.client = client
        self.key = key
        self.ttl = ttl or None

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        key: str = DEFAULT_KEY,
        ttl: Optional[int] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> "RedisStore":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client, key=key, ttl=ttl)

    def load(self) -> EntrySet:
        try:
            raw = self.client.get(self.key)
        except RedisError as e:
            raise StoreUnavailable(f"redis get {self.key} failed: {e}") from e
        if raw is None:
            raise CacheMiss(f"redis key {self.key} not set")
        return EntrySet.of(decode_entries(raw, source=f"redis:{self.key}"))

    def replace_all(self, entries: Iterable[Entry]) -> EntrySet:
        snapshot = EntrySet.of(dedupe(entries))
        try:
            self.client.set(self.key, encode_entries(snapshot.entries), ex=self.ttl)
        except RedisError as e:
            raise WriteFailed(f"redis set {self.key} failed: {e}") from e
        return snapshot

    def append_one(self, entry: Entry) -> EntrySet:
        result: dict = {}

        def _append(pipe: Any) -> None:
            raw = pipe.get(self.key)
            if raw is None:
                raise CacheMiss(f"redis key {self.key} not set")
            entries = decode_entries(raw, source=f"redis:{self.key}")
            snapshot = EntrySet.of([*entries, entry])
            pipe.multi()
            pipe.set(self.key, encode_entries(snapshot.entries), ex=self.ttl)
            result["snapshot"] = snapshot

        try:
            self.client.transaction(_append, self.key)
        except RedisError as e:
            raise WriteFailed(f"redis append to {self.key} failed: {e}") from e
        return result["snapshot"]

    def invalidate(self) -> None:
        try:
            self.client.delete(self.key)
        except RedisError as e:
            logger.warning("redis invalidate of %s failed (ignored): %s", self.key, e)
