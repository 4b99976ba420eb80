import pytest
from conftest import make_entries

from faqbot.errors import StoreUnavailable, WriteFailed
from faqbot.models import Entry
from faqbot.stores import SqlStore
from faqbot.stores.sql_store import normalize_db_url


@pytest.fixture
def store(tmp_path):
    s = SqlStore.from_url(f"sqlite:///{tmp_path / 'faq.db'}")
    yield s
    s.dispose()


def test_empty_table_loads_as_empty(store):
    assert store.load().size == 0


def test_replace_all_then_load_preserves_order(store):
    entries = make_entries(("B?", "b"), ("A?", "a"), ("C?", "c"))
    written = store.replace_all(entries)
    loaded = store.load()
    assert [e.question for e in loaded.entries] == ["B?", "A?", "C?"]
    assert loaded.version == written.version


def test_replace_all_is_idempotent(store):
    entries = make_entries(("A?", "a"), ("B?", "b"))
    store.replace_all(entries)
    first = store.load()
    store.replace_all(entries)
    second = store.load()
    assert first.entries == second.entries


def test_replace_all_dedupes(store):
    store.replace_all(make_entries(("Versand?", "first"), ("  versand? ", "second")))
    es = store.load()
    assert es.size == 1
    assert es.entries[0].answer == "first"


def test_failing_row_rolls_back_whole_replace(store):
    store.replace_all(make_entries(("A?", "a"), ("B?", "b")))

    # model_construct skips validation, so the NULL reaches the database
    bad = Entry.model_construct(question="C?", answer=None)
    with pytest.raises(WriteFailed):
        store.replace_all([Entry(question="X?", answer="x"), bad])

    assert [e.question for e in store.load().entries] == ["A?", "B?"]


def test_replace_with_empty_set_clears_table(store):
    store.replace_all(make_entries(("A?", "a")))
    store.replace_all([])
    assert store.load().size == 0


def test_append_one(store):
    store.replace_all(make_entries(("A?", "a")))
    es = store.append_one(Entry(question="B?", answer="b"))
    assert [e.question for e in es.entries] == ["A?", "B?"]
    assert store.load().size == 2


def test_unreachable_database_raises_unavailable(tmp_path):
    missing_dir = tmp_path / "does" / "not" / "exist"
    s = SqlStore.from_url(f"sqlite:///{missing_dir / 'faq.db'}")
    with pytest.raises(StoreUnavailable):
        s.load()
    s.dispose()


def test_invalidate_is_noop(store):
    store.replace_all(make_entries(("A?", "a")))
    store.invalidate()
    assert store.load().size == 1


def test_normalize_db_url():
    assert normalize_db_url("postgres://u:p@h/db") == "postgresql://u:p@h/db"
    assert normalize_db_url("postgresql://u:p@h/db") == "postgresql://u:p@h/db"
    assert normalize_db_url("sqlite:///x.db") == "sqlite:///x.db"
