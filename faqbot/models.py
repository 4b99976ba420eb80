from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class Entry(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # Legacy data files use the German field names "frage"/"antwort".
    question: str = Field(validation_alias=AliasChoices("question", "frage"))
    answer: str = Field(validation_alias=AliasChoices("answer", "antwort"))

    @field_validator("question", "answer")
    @classmethod
    def _non_blank(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("must be a non-empty string")
        return v

    def wire(self) -> Dict[str, str]:
        return {"question": self.question, "answer": self.answer}


def fingerprint(entries: Iterable[Entry]) -> str:
    payload = json.dumps([e.wire() for e in entries], ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()[:16]


class EntrySet(BaseModel):
    """Immutable snapshot of the knowledge base plus its content fingerprint."""

    model_config = ConfigDict(frozen=True)

    entries: Tuple[Entry, ...] = ()
    version: str = ""

    @classmethod
    def of(cls, entries: Iterable[Entry]) -> "EntrySet":
        items = tuple(entries)
        return cls(entries=items, version=fingerprint(items))

    @classmethod
    def empty(cls) -> "EntrySet":
        return cls.of(())

    @property
    def size(self) -> int:
        return len(self.entries)

    @property
    def etag(self) -> str:
        """Quoted entity tag for conditional GETs."""
        return f'"{self.version}"'

    def wire(self) -> List[Dict[str, str]]:
        return [e.wire() for e in self.entries]


class Candidate(BaseModel):
    entry: Entry
    score: float  # 0.0 = perfect, 1.0 = worst
    position: int  # index of the entry in the source EntrySet


Source = Literal["ping", "greeting", "faq", "keyword", "llm", "contact"]


class Resolution(BaseModel):
    reply: str
    source: Source
    matched_question: Optional[str] = None
    score: Optional[float] = None
    meta: Dict[str, Any] = Field(default_factory=dict)


class WriteResult(BaseModel):
    success: bool
    written: int = 0
    rejected: List[str] = Field(default_factory=list)  # validation reasons, one per dropped entry
    error: Optional[str] = None


class Health(BaseModel):
    status: Literal["ok", "warning"]
    entryCount: int
    timestamp: str
