from __future__ import annotations

import json
import logging
from typing import Any, Iterable, List, Protocol, Tuple, Union, runtime_checkable

from pydantic import ValidationError

from ..errors import DataCorrupt, InvalidEntry
from ..models import Entry, EntrySet
from ..utils import question_key

logger = logging.getLogger(__name__)


@runtime_checkable
class EntryStore(Protocol):
    """Read/write contract shared by every tier (file, redis, sql)."""

    name: str

    def load(self) -> EntrySet: ...

    def replace_all(self, entries: Iterable[Entry]) -> EntrySet: ...

    def append_one(self, entry: Entry) -> EntrySet: ...

    def invalidate(self) -> None: ...


def coerce_entry(raw: Union[Entry, dict, Any]) -> Entry:
    """
    Turn a raw mapping (wire or legacy field names) into an Entry.
    Raises InvalidEntry with a readable reason.
    """
    if isinstance(raw, Entry):
        return raw
    if not isinstance(raw, dict):
        raise InvalidEntry(f"entry must be an object, got {type(raw).__name__}")
    try:
        return Entry.model_validate(raw)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise InvalidEntry(f"question and answer are required (invalid: {', '.join(fields) or 'entry'})") from e


def validate_batch(raw_entries: Iterable[Any]) -> Tuple[List[Entry], List[str]]:
    """
    Validate a bulk payload. Invalid items are reported, never fatal:
    returns (valid entries in input order, rejection reasons).
    """
    valid: List[Entry] = []
    rejected: List[str] = []
    for i, raw in enumerate(raw_entries):
        try:
            valid.append(coerce_entry(raw))
        except InvalidEntry as e:
            rejected.append(f"#{i}: {e}")
    return valid, rejected


def dedupe(entries: Iterable[Entry]) -> List[Entry]:
    """Drop entries whose question repeats an earlier one (case/whitespace-insensitive)."""
    seen = set()
    out: List[Entry] = []
    for e in entries:
        key = question_key(e.question)
        if key in seen:
            continue
        seen.add(key)
        out.append(e)
    return out


def encode_entries(entries: Iterable[Entry], *, indent: int | None = None) -> str:
    return json.dumps([e.wire() for e in entries], ensure_ascii=False, indent=indent)


def decode_entries(payload: Union[str, bytes], *, source: str) -> List[Entry]:
    """
    Decode a JSON array of {question, answer}. A payload that is not a JSON
    array raises DataCorrupt; individual malformed items are skipped.
    """
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DataCorrupt(f"{source}: invalid JSON ({e})") from e
    if not isinstance(data, list):
        raise DataCorrupt(f"{source}: expected a JSON array, got {type(data).__name__}")

    entries, rejected = validate_batch(data)
    if rejected:
        logger.warning("%s: skipped %d malformed entries (%s)", source, len(rejected), "; ".join(rejected[:3]))
    return entries
