from concurrent.futures import Future
from typing import Iterable, List

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from faqbot.config import Settings
from faqbot.errors import CacheMiss, StoreUnavailable, WriteFailed
from faqbot.models import Entry, EntrySet
from faqbot.stores.base import dedupe


class ImmediateExecutor:
    """Runs background tasks inline so tests are deterministic."""

    def submit(self, fn, *args, **kwargs):
        fut = Future()
        try:
            fut.set_result(fn(*args, **kwargs))
        except Exception as e:
            fut.set_exception(e)
        return fut

    def shutdown(self, wait=True):
        pass


class DeferredExecutor:
    """Collects background tasks; run them later with run_all()."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args, **kwargs):
        fut = Future()
        self.pending.append((fut, fn, args, kwargs))
        return fut

    def run_all(self):
        while self.pending:
            fut, fn, args, kwargs = self.pending.pop(0)
            fut.set_result(fn(*args, **kwargs))

    def shutdown(self, wait=True):
        pass


class MemoryStore:
    """In-memory tier honouring the EntryStore contract, with failure switches."""

    def __init__(self, name="memory", entries: Iterable[Entry] = (), *, cache=False):
        self.name = name
        self.cache = cache
        self.snapshot = None if cache else EntrySet.of(entries)
        self.fail_load = False
        self.fail_write = False
        self.fail_invalidate = False
        self.loads = 0
        self.invalidations = 0

    def load(self):
        self.loads += 1
        if self.fail_load:
            raise StoreUnavailable(f"{self.name} down")
        if self.snapshot is None:
            raise CacheMiss(f"{self.name} empty")
        return self.snapshot

    def replace_all(self, entries):
        if self.fail_write:
            raise WriteFailed(f"{self.name} write failed")
        self.snapshot = EntrySet.of(dedupe(entries))
        return self.snapshot

    def append_one(self, entry):
        if self.fail_write:
            raise WriteFailed(f"{self.name} write failed")
        current = self.snapshot.entries if self.snapshot is not None else ()
        self.snapshot = EntrySet.of(current + (entry,))
        return self.snapshot

    def invalidate(self):
        self.invalidations += 1
        if self.fail_invalidate:
            raise StoreUnavailable(f"{self.name} unreachable")
        if self.cache:
            self.snapshot = None


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.buffered = []

    def get(self, key):
        return self.client.get(key)

    def multi(self):
        pass

    def set(self, key, value, ex=None):
        self.buffered.append((key, value, ex))

    def execute(self):
        for key, value, ex in self.buffered:
            self.client.set(key, value, ex=ex)


class FakeRedis:
    """Just enough of redis.Redis for the cache tier."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.down = False

    def _check(self):
        if self.down:
            raise RedisConnectionError("connection refused")

    def get(self, key):
        self._check()
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self._check()
        self.data[key] = value
        self.ttls[key] = ex
        return True

    def delete(self, key):
        self._check()
        return 1 if self.data.pop(key, None) is not None else 0

    def transaction(self, func, *watches):
        self._check()
        pipe = FakePipeline(self)
        func(pipe)
        pipe.execute()
        return []


def make_entries(*pairs) -> List[Entry]:
    return [Entry(question=q, answer=a) for q, a in pairs]


@pytest.fixture
def settings():
    return Settings(openai_api_key="test-key", faq_seed_file=None)


@pytest.fixture
def company_entries():
    return make_entries(("Wo befindet sich die Firma?", "Musterstraße 1"))
