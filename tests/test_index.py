import threading

from conftest import make_entries

from faqbot.index import (
    ACCEPT_THRESHOLD,
    LOOSE_MATCH_THRESHOLD,
    IndexHolder,
    build_index,
    content_ratio,
    search,
)
from faqbot.models import Entry, EntrySet


def _shop_set():
    return EntrySet.of(
        make_entries(
            ("Wo befindet sich die Firma?", "Musterstraße 1"),
            ("Wie funktioniert die Rückgabe?", "Innerhalb von 14 Tagen."),
            ("Was kostet der Versand?", "4,90 € innerhalb Deutschlands."),
            ("Wie lange ist die Lieferzeit?", "2–4 Werktage."),
            ("Wie erreiche ich den Kundenservice?", "Per E-Mail oder Telefon."),
            ("Kann ich meine Bestellung stornieren?", "Solange sie nicht versendet wurde."),
        )
    )


def test_build_index_size_matches_entry_set():
    es = _shop_set()
    idx = build_index(es)
    assert idx.size == es.size
    assert idx.version == es.version
    assert "was kostet der versand" in idx.questions_by_norm


def test_exact_question_is_top_candidate_with_zero_score():
    es = _shop_set()
    idx = build_index(es)
    for entry in es.entries:
        res = search(idx, entry.question)
        assert res, entry.question
        assert res[0].entry == entry
        assert res[0].score == 0.0


def test_results_sorted_by_non_decreasing_score():
    idx = build_index(_shop_set())
    for q in ["wie lange dauert die lieferung", "versand kosten", "firma", "bestellung stornieren bitte", "rückgabe"]:
        res = search(idx, q, threshold=LOOSE_MATCH_THRESHOLD, top_k=10)
        scores = [c.score for c in res]
        assert scores == sorted(scores)
        assert all(0.0 <= s <= 1.0 for s in scores)


def test_variant_query_matches_within_accept_threshold():
    idx = build_index(EntrySet.of(make_entries(("Wo befindet sich die Firma?", "Musterstraße 1"))))
    res = search(idx, "wo ist die firma")
    assert res
    assert res[0].score <= ACCEPT_THRESHOLD
    assert res[0].entry.answer == "Musterstraße 1"


def test_unrelated_query_has_no_candidates():
    idx = build_index(EntrySet.of(make_entries(("Wo befindet sich die Firma?", "Musterstraße 1"))))
    assert search(idx, "Rückgaberecht") == []


def test_shared_function_words_are_not_a_match():
    idx = build_index(_shop_set())
    for q in ["Wie ist das Wetter?", "Wer ist der Chef?", "Wo ist die Toilette?", "Was kostet ein Bagger?"]:
        assert search(idx, q) == [], q


def test_content_words_match_regardless_of_position_and_phrasing():
    idx = build_index(_shop_set())
    assert search(idx, "Versand Kosten?")[0].entry.answer == "4,90 € innerhalb Deutschlands."
    assert search(idx, "wie lange dauert die lieferzeit")[0].entry.answer == "2–4 Werktage."
    assert search(idx, "kundenservice")[0].entry.answer == "Per E-Mail oder Telefon."


def test_content_ratio_scores():
    assert content_ratio("versand", "was kostet der versand") > 65
    assert content_ratio("bagger kostet", "was kostet der versand") < 65
    assert content_ratio("lieferzet", "lieferzeit") > 80
    assert content_ratio("", "lieferzeit") == 0.0
    assert content_ratio("wetter", "wie lange ist die lieferzeit", score_cutoff=50) == 0.0


def test_verbatim_question_wins_tie_over_earlier_position():
    es = EntrySet.of(
        [
            Entry(question="Preis?", answer="question mark"),
            Entry(question="Preis!", answer="exclamation mark"),
        ]
    )
    idx = build_index(es)
    assert search(idx, "Preis!")[0].entry.answer == "exclamation mark"
    assert search(idx, "Preis?")[0].entry.answer == "question mark"
    # neither typed verbatim: position decides
    assert search(idx, "preis")[0].entry.answer == "question mark"


def test_empty_and_single_char_queries_return_nothing():
    idx = build_index(_shop_set())
    assert search(idx, "") == []
    assert search(idx, "   ") == []
    assert search(idx, "a") == []
    assert search(idx, "?") == []


def test_empty_index_returns_nothing():
    idx = build_index(EntrySet.empty())
    assert search(idx, "Was kostet der Versand?") == []


def test_ties_are_broken_by_position():
    es = EntrySet.of(
        [
            Entry(question="Öffnungszeiten?", answer="first"),
            Entry(question="Offnungszeiten", answer="second"),
        ]
    )
    idx = build_index(es)
    res = search(idx, "öffnungszeiten")
    assert [c.entry.answer for c in res] == ["first", "second"]
    assert res[0].score == res[1].score == 0.0


def test_loose_threshold_admits_more_candidates():
    idx = build_index(_shop_set())
    strict = search(idx, "lieferung dauer", top_k=10)
    loose = search(idx, "lieferung dauer", threshold=LOOSE_MATCH_THRESHOLD, top_k=10)
    assert len(loose) >= len(strict)


def test_search_is_deterministic():
    idx = build_index(_shop_set())
    first = search(idx, "wie lang ist lieferzeit", top_k=10)
    second = search(idx, "wie lang ist lieferzeit", top_k=10)
    assert first == second


def test_holder_reuses_index_for_same_snapshot():
    holder = IndexHolder()
    es = _shop_set()
    a = holder.get(es)
    b = holder.get(es)
    assert a is b
    assert holder.builds == 1


def test_holder_rebuilds_when_entry_set_changes():
    holder = IndexHolder()
    es = _shop_set()
    a = holder.get(es)
    grown = EntrySet.of(es.entries + (Entry(question="Gibt es Gutscheine?", answer="Ja."),))
    b = holder.get(grown)
    assert b is not a
    assert b.size == grown.size
    assert holder.builds == 2


def test_holder_mark_stale_forces_rebuild():
    holder = IndexHolder()
    es = _shop_set()
    a = holder.get(es)
    holder.mark_stale()
    b = holder.get(es)
    assert b is not a
    assert holder.builds == 2
    assert holder.get(es) is b


def test_holder_builds_once_under_concurrency():
    holder = IndexHolder()
    es = _shop_set()
    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(holder.get(es))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert holder.builds == 1
    assert all(r is results[0] for r in results)
    assert holder.current() is results[0]
