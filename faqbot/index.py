from __future__ import annotations

import threading
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from rapidfuzz import fuzz, process

from .models import Candidate, Entry, EntrySet
from .utils import _trace, normalize_text, question_key


# Scores are distances: 0.0 = perfect match, 1.0 = nothing in common.
STRICT_MATCH_THRESHOLD = 0.35
LOOSE_MATCH_THRESHOLD = 0.5
ACCEPT_THRESHOLD = 0.4
MIN_MATCH_CHARS = 2
DEFAULT_TOP_K = 5

# Two tokens count as the same word at or above this fuzz.ratio (typos, inflection).
TOKEN_MATCH_CUTOFF = 80.0
# Share of the similarity that comes from covering the query's words; the rest
# rewards questions that carry little beyond what was asked.
QUERY_COVERAGE_WEIGHT = 0.75

# Function words carry no topic. Spelled as normalize_text emits them (no umlauts).
STOPWORDS = frozenset(
    {
        # articles / pronouns
        "der", "die", "das", "den", "dem", "des", "ein", "eine", "einen", "einem", "einer", "eines",
        "ich", "du", "er", "sie", "es", "wir", "ihr", "man", "mir", "mich", "uns", "euch", "ihnen", "sich",
        "mein", "meine", "meinen", "meinem", "meiner", "dein", "deine", "ihre", "ihren", "unser", "unsere",
        # auxiliaries / modals
        "ist", "sind", "bin", "bist", "seid", "war", "waren", "hat", "habe", "haben", "hast", "habt",
        "wird", "werden", "wurde", "kann", "kannst", "konnen", "konnt", "muss", "mussen", "soll", "sollen",
        "darf", "durfen", "mochte", "mochten", "gibt",
        # question words
        "wo", "wie", "was", "wer", "wen", "wem", "wann", "warum", "wieso", "weshalb", "woher", "wohin",
        "welche", "welcher", "welches", "welchen", "wieviel", "wieviele",
        # particles / conjunctions / prepositions
        "und", "oder", "aber", "auch", "noch", "denn", "doch", "ja", "bitte", "mal", "so", "dass", "ob",
        "in", "im", "an", "am", "auf", "aus", "bei", "mit", "nach", "von", "vom", "zu", "zum", "zur",
        "fur", "uber", "um", "bis",
    }
)


def _content_tokens(norm: str) -> List[str]:
    return list(dict.fromkeys(t for t in norm.split() if t not in STOPWORDS))


def _coverage(tokens: List[str], others: List[str]) -> float:
    # length-weighted share of `tokens` with a close counterpart in `others`, 0..100
    total = sum(len(t) for t in tokens)
    if not total or not others:
        return 0.0
    covered = 0.0
    for tok in tokens:
        hit = process.extractOne(tok, others, scorer=fuzz.ratio, score_cutoff=TOKEN_MATCH_CUTOFF)
        if hit is not None:
            covered += len(tok) * hit[1]
    return covered / total


def content_ratio(query: str, question: str, *, score_cutoff: Optional[float] = None, **kwargs) -> float:
    """
    rapidfuzz-compatible scorer (0..100) over two normalized strings.

    Word order and position do not matter, but every content word of the
    query has to find a close match in the question: sharing "wie ist" with
    a stored question is worth nothing. Messages made only of function words
    are compared on all their words.
    """
    a, b = _content_tokens(query), _content_tokens(question)
    if not a or not b:
        a, b = list(dict.fromkeys(query.split())), list(dict.fromkeys(question.split()))
    if not a or not b:
        return 0.0
    score = QUERY_COVERAGE_WEIGHT * _coverage(a, b) + (1.0 - QUERY_COVERAGE_WEIGHT) * _coverage(b, a)
    if score_cutoff is not None and score < score_cutoff:
        return 0.0
    return score


class FaqIndex(BaseModel):
    entries: List[Entry] = Field(default_factory=list)
    version: str = ""

    # normalized question -> positions in `entries` (collisions stored as list)
    questions_by_norm: Dict[str, List[int]] = Field(default_factory=dict)

    # position -> normalized question, the choice map handed to rapidfuzz
    choice_map: Dict[int, str] = Field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.entries)


def build_index(entry_set: EntrySet) -> FaqIndex:
    """
    Build the question index for one EntrySet snapshot.
    Only the question field is indexed; answers are never matched against.
    """
    idx = FaqIndex(entries=list(entry_set.entries), version=entry_set.version)
    for pos, entry in enumerate(entry_set.entries):
        norm = normalize_text(entry.question)
        if not norm:
            continue
        idx.questions_by_norm.setdefault(norm, []).append(pos)
        idx.choice_map[pos] = norm
    return idx


def _distance(similarity: float) -> float:
    # rapidfuzz similarity is 0..100, higher is better
    return round(min(1.0, max(0.0, 1.0 - similarity / 100.0)), 4)


def search(
    index: FaqIndex,
    query: str,
    *,
    threshold: float = STRICT_MATCH_THRESHOLD,
    top_k: int = DEFAULT_TOP_K,
    debug: bool = False,
) -> List[Candidate]:
    """
    Return candidates sorted by ascending score. Among equal scores the
    question matching the raw query verbatim comes first, then entry position.
    Candidates scoring above `threshold` are dropped.
    """
    norm_q = normalize_text(query)
    if len(norm_q) < MIN_MATCH_CHARS or not index.choice_map:
        return []

    best: Dict[int, float] = {pos: 0.0 for pos in index.questions_by_norm.get(norm_q, [])}

    raw_matches = process.extract(
        norm_q,
        index.choice_map,
        scorer=content_ratio,
        score_cutoff=(1.0 - threshold) * 100.0,
        limit=None,
    )
    for _choice, similarity, pos in raw_matches:
        score = _distance(similarity)
        prev = best.get(pos)
        if prev is None or score < prev:
            best[pos] = score

    # Equal scores: the question typed verbatim (punctuation included) first, then position.
    raw_q = question_key(query)
    ordered = sorted(
        best.items(),
        key=lambda kv: (kv[1], question_key(index.entries[kv[0]].question) != raw_q, kv[0]),
    )[:top_k]
    out = [Candidate(entry=index.entries[pos], score=score, position=pos) for pos, score in ordered]

    _trace(
        debug,
        "index.search",
        {
            "query": query,
            "normalized_query": norm_q,
            "threshold": threshold,
            "candidates": [{"question": c.entry.question, "score": c.score} for c in out[:3]],
        },
    )
    return out


class IndexHolder:
    """
    Owns the process-wide FaqIndex.

    Rebuilds are serialized by `_build_lock` (single writer); the published
    reference is swapped under `_state_lock`, which is held only for the swap,
    so readers with a fresh index never wait on a rebuild.
    """

    def __init__(self) -> None:
        self._index: Optional[FaqIndex] = None
        self._stale = False
        self._generation = 0
        self._state_lock = threading.Lock()
        self._build_lock = threading.Lock()
        self.builds = 0

    def current(self) -> Optional[FaqIndex]:
        with self._state_lock:
            return self._index

    def _fresh(self, entry_set: EntrySet) -> Optional[FaqIndex]:
        idx = self._index
        if idx is None or self._stale:
            return None
        if idx.version != entry_set.version or idx.size != entry_set.size:
            return None
        return idx

    def get(self, entry_set: EntrySet) -> FaqIndex:
        with self._state_lock:
            idx = self._fresh(entry_set)
        if idx is not None:
            return idx

        with self._build_lock:
            with self._state_lock:
                idx = self._fresh(entry_set)
                if idx is not None:
                    return idx
                generation = self._generation

            built = build_index(entry_set)

            with self._state_lock:
                self._index = built
                # A mark_stale() that landed mid-build keeps the flag set.
                if self._generation == generation:
                    self._stale = False
                self.builds += 1
            return built

    def mark_stale(self) -> None:
        with self._state_lock:
            self._stale = True
            self._generation += 1
