"""
Cache coordinator: which tier to read, where to write, what to invalidate.

Reads walk the tiers in priority order (cache, authority, empty set) and
never raise. Writes go to the authority first; cache propagation is best
effort and runs in the background.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from .errors import CacheMiss, DataCorrupt, InvalidEntry, StoreError
from .index import IndexHolder
from .models import EntrySet, Health, WriteResult
from .stores.base import EntryStore, coerce_entry, validate_batch

logger = logging.getLogger(__name__)

NO_VALID_ENTRIES = "no valid entries"


class CacheCoordinator:
    def __init__(
        self,
        authority: EntryStore,
        cache: Optional[EntryStore] = None,
        *,
        holder: Optional[IndexHolder] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self.authority = authority
        self.cache = cache
        self.holder = holder or IndexHolder()
        self._owns_executor = executor is None
        self._executor: Executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="faqbot-cache")
        # Serializes authority writes and the synchronous cache invalidation.
        self._write_lock = threading.Lock()
        # Serializes background refills; never held together with _write_lock.
        self._refill_lock = threading.Lock()
        # Bumped on every write; background repopulation for an older generation is dropped.
        self._generation = 0

    @property
    def tiers(self) -> List[str]:
        names = [self.cache.name] if self.cache is not None else []
        return names + [self.authority.name]

    # -- reads -------------------------------------------------------------

    def get_entries(self) -> EntrySet:
        """Freshest available snapshot; an empty set as last resort."""
        generation = self._generation

        if self.cache is not None:
            try:
                return self.cache.load()
            except CacheMiss:
                logger.debug("cache miss on %s tier", self.cache.name)
            except DataCorrupt as e:
                logger.warning("cache payload corrupt, falling back to %s: %s", self.authority.name, e)
            except StoreError as e:
                logger.warning("cache tier unavailable, falling back to %s: %s", self.authority.name, e)
            except Exception:
                logger.exception("unexpected cache tier failure, falling back to %s", self.authority.name)

        try:
            snapshot = self.authority.load()
        except DataCorrupt as e:
            logger.warning("authoritative payload corrupt, serving empty set: %s", e)
            return EntrySet.empty()
        except StoreError as e:
            logger.error("authoritative tier unavailable, serving empty set: %s", e)
            return EntrySet.empty()
        except Exception:
            logger.exception("unexpected authoritative tier failure, serving empty set")
            return EntrySet.empty()

        if self.cache is not None:
            self._submit(self._repopulate, snapshot, generation)
        return snapshot

    def health(self) -> Health:
        entry_set = self.get_entries()
        return Health(
            status="ok" if entry_set.size else "warning",
            entryCount=entry_set.size,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def etag(self) -> str:
        return self.get_entries().etag

    # -- writes ------------------------------------------------------------

    def save_entries(self, raw_entries: Iterable[Any]) -> WriteResult:
        """
        Replace the whole knowledge base. Invalid items are rejected
        individually; the write fails only if the authority write fails (or
        every submitted item was invalid).
        """
        valid, rejected = validate_batch(raw_entries)
        if rejected and not valid:
            return WriteResult(success=False, rejected=rejected, error=NO_VALID_ENTRIES)

        with self._write_lock:
            try:
                snapshot = self.authority.replace_all(valid)
            except StoreError as e:
                logger.error("replace_all on %s failed: %s", self.authority.name, e)
                return WriteResult(success=False, rejected=rejected, error=str(e))
            generation = self._bump_and_invalidate()

        if self.cache is not None:
            self._submit(self._repopulate, snapshot, generation)
        return WriteResult(success=True, written=snapshot.size, rejected=rejected)

    def append_single(self, raw_entry: Any) -> WriteResult:
        try:
            entry = coerce_entry(raw_entry)
        except InvalidEntry as e:
            return WriteResult(success=False, rejected=[str(e)], error=str(e))

        with self._write_lock:
            try:
                self.authority.append_one(entry)
            except StoreError as e:
                logger.error("append_one on %s failed: %s", self.authority.name, e)
                return WriteResult(success=False, error=str(e))
            # Cache is dropped, not rewritten: the next read repopulates it.
            self._bump_and_invalidate()
        return WriteResult(success=True, written=1)

    def clear_cache(self) -> WriteResult:
        with self._write_lock:
            self._bump_and_invalidate()
            self._safe_invalidate(self.authority)
        return WriteResult(success=True)

    # -- internals ---------------------------------------------------------

    def _bump_and_invalidate(self) -> int:
        # caller holds _write_lock
        self._generation += 1
        if self.cache is not None:
            self._safe_invalidate(self.cache)
        self.holder.mark_stale()
        return self._generation

    @staticmethod
    def _safe_invalidate(store: EntryStore) -> None:
        try:
            store.invalidate()
        except Exception as e:
            logger.warning("invalidate on %s tier failed (ignored): %s", store.name, e)

    def _repopulate(self, snapshot: EntrySet, generation: int) -> None:
        if self.cache is None:
            return
        with self._refill_lock:
            if generation != self._generation:
                logger.debug("skipping cache repopulation for stale generation %d", generation)
                return
            try:
                self.cache.replace_all(snapshot.entries)
            except StoreError as e:
                logger.warning("cache repopulation on %s failed (ignored): %s", self.cache.name, e)
                return
            # A write that landed during the SET may have invalidated before it.
            if generation != self._generation:
                logger.debug("write overtook cache repopulation for generation %d; dropping copy", generation)
                self._safe_invalidate(self.cache)

    def _submit(self, fn, *args: Any) -> None:
        try:
            future: Future = self._executor.submit(fn, *args)
        except RuntimeError as e:
            # executor already shut down
            logger.warning("background cache task not scheduled: %s", e)
            return
        future.add_done_callback(_log_background_failure)

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)


def _log_background_failure(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.warning("background cache task failed: %s", exc)
