"""
Durable JSON-file tier.

The file holds one JSON array of {question, answer} objects. Every write goes
to a sibling temp file which is then renamed over the target, so a reader
observes either the old or the new file, never a truncated one.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Iterable, Optional, Tuple

from ..errors import DataCorrupt, StoreUnavailable, WriteFailed
from ..models import Entry, EntrySet
from .base import decode_entries, dedupe, encode_entries

logger = logging.getLogger(__name__)


class FileStore:
    name = "file"

    def __init__(self, path: str | os.PathLike, *, seed_path: str | os.PathLike | None = None) -> None:
        self.path = Path(path)
        self.seed_path = Path(seed_path) if seed_path else None
        self._write_lock = threading.Lock()
        # (st_size, st_mtime_ns) -> decoded snapshot; avoids re-parsing an unchanged file
        self._stamp: Optional[Tuple[int, int]] = None
        self._snapshot: Optional[EntrySet] = None

    def _tmp_path(self) -> Path:
        return self.path.with_name(self.path.name + ".tmp")

    def seed_if_missing(self) -> bool:
        """
        First-start migration: copy the seed file into place when the target
        does not exist yet. Returns True if a copy happened.
        """
        if self.path.exists() or not self.seed_path or not self.seed_path.exists():
            return False
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(self.seed_path, self.path)
        except OSError as e:
            logger.warning("FAQ seed copy skipped: %s", e)
            return False
        logger.info("FAQ seeded from %s -> %s", self.seed_path, self.path)
        return True

    def load(self) -> EntrySet:
        try:
            st = self.path.stat()
        except FileNotFoundError:
            # No file yet is a valid, empty knowledge base.
            return EntrySet.empty()
        except OSError as e:
            raise StoreUnavailable(f"cannot stat {self.path}: {e}") from e

        stamp = (st.st_size, st.st_mtime_ns)
        if self._snapshot is not None and self._stamp == stamp:
            return self._snapshot

        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return EntrySet.empty()
        except OSError as e:
            raise StoreUnavailable(f"cannot read {self.path}: {e}") from e

        entries = decode_entries(raw, source=str(self.path))
        snapshot = EntrySet.of(entries)
        self._stamp, self._snapshot = stamp, snapshot
        return snapshot

    def _write(self, entries: Iterable[Entry]) -> EntrySet:
        snapshot = EntrySet.of(entries)
        tmp = self._tmp_path()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(encode_entries(snapshot.entries, indent=2) + "\n", encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            try:
                tmp.unlink()
            except OSError:
                pass
            raise WriteFailed(f"cannot write {self.path}: {e}") from e
        self._stamp, self._snapshot = None, None
        return snapshot

    def replace_all(self, entries: Iterable[Entry]) -> EntrySet:
        with self._write_lock:
            return self._write(dedupe(entries))

    def append_one(self, entry: Entry) -> EntrySet:
        with self._write_lock:
            try:
                current = self.load()
            except (StoreUnavailable, DataCorrupt) as e:
                # Appending onto an unreadable file would silently drop its contents.
                raise WriteFailed(f"cannot append to {self.path}: {e}") from e
            return self._write(current.entries + (entry,))

    def invalidate(self) -> None:
        self._stamp, self._snapshot = None, None
