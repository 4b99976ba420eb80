from __future__ import annotations

import logging
import os
from functools import partial
from typing import Callable, Dict, List, Optional, Sequence

from .config import Settings
from .coordinator import CacheCoordinator
from .errors import UpstreamUnavailable
from .index import IndexHolder, search
from .llm import generate_reply
from .models import Resolution
from .utils import _trace, normalize_message

logger = logging.getLogger(__name__)

History = Optional[Sequence[Dict[str, str]]]
GenerateFn = Callable[[str, History], str]


def _truncate(s: str, max_len: int = 200) -> str:
    s = s or ""
    if len(s) <= max_len:
        return s
    return s[: max_len - 1] + "…"


def _classify_llm_error(exc: BaseException) -> str:
    # Best-effort classification without depending tightly on OpenAI exception types.
    cause = exc.__cause__ or exc
    name = cause.__class__.__name__.lower()
    msg = str(exc).lower()

    if "api_key" in msg and "not set" in msg:
        return "llm_missing_api_key"

    if "empty" in msg:
        return "llm_empty_completion"

    if "timeout" in name or "timed out" in msg:
        return "llm_timeout"

    if "rate" in msg and "limit" in msg:
        return "llm_rate_limited"

    if "auth" in name or "authentication" in msg or "unauthorized" in msg:
        return "llm_auth_error"

    if "connection" in name:
        return "llm_connection_error"

    return "llm_exception"


class AnswerResolver:
    """
    Resolves one chat message. Stages run in order and the first hit wins:
    ping, greeting, FAQ match, domain keyword, language model.
    """

    def __init__(
        self,
        coordinator: CacheCoordinator,
        settings: Settings,
        *,
        generate: Optional[GenerateFn] = None,
        holder: Optional[IndexHolder] = None,
    ) -> None:
        self.coordinator = coordinator
        self.settings = settings
        self.holder = holder or coordinator.holder
        self._generate: GenerateFn = generate or partial(generate_reply, settings=settings)
        self._greetings = {normalize_message(g) for g in settings.greetings}
        self._keywords: List[str] = [k for k in (normalize_message(k) for k in settings.keywords) if k]

    def _contact(self, **meta) -> Resolution:
        return Resolution(reply=self.settings.contact_reply(), source="contact", meta=meta)

    def _resolve(self, message: str, history: History, trace: bool) -> Resolution:
        normalized = normalize_message(message)

        if normalized == normalize_message(self.settings.ping_token):
            return Resolution(reply=self.settings.ping_reply, source="ping")

        # An empty message gets the greeting rather than an LLM round-trip.
        if not normalized or normalized in self._greetings:
            return Resolution(reply=self.settings.greeting_reply, source="greeting")

        entry_set = self.coordinator.get_entries()
        if entry_set.size:
            index = self.holder.get(entry_set)
            candidates = search(index, message, threshold=self.settings.match_threshold, debug=trace)
            if candidates and candidates[0].score <= self.settings.accept_threshold:
                best = candidates[0]
                return Resolution(
                    reply=best.entry.answer,
                    source="faq",
                    matched_question=best.entry.question,
                    score=best.score,
                )

        for keyword in self._keywords:
            if keyword in normalized:
                return Resolution(reply=self.settings.keyword_reply(), source="keyword", meta={"keyword": keyword})

        try:
            text = self._generate(message, history)
        except UpstreamUnavailable as e:
            reason = _classify_llm_error(e)
            logger.warning("language model unavailable (%s): %s", reason, _truncate(str(e)))
            return self._contact(reason=reason)

        if not isinstance(text, str) or not text.strip():
            return self._contact(reason="llm_empty_completion")
        return Resolution(reply=text, source="llm")

    def resolve(self, message: Optional[str], history: History = None, *, debug: bool = False) -> Resolution:
        """
        Structured answer (reply + source + match details).
        Never raises for user input; the worst case is the contact template.
        """
        trace_enabled = bool(debug or self.settings.debug_trace or os.getenv("DEBUG_TRACE") == "1")
        try:
            result = self._resolve(message or "", history, trace_enabled)
        except Exception as e:
            logger.exception("answer resolution failed; replying with contact template")
            result = self._contact(reason="internal_error", error_type=e.__class__.__name__)

        if result.source in {"faq", "llm"}:
            _trace(
                trace_enabled,
                "answer.logged",
                {
                    "question_asked": message,
                    "matched_question": result.matched_question,
                    "answer": _truncate(result.reply),
                    "source": result.source,
                    "score": result.score,
                },
            )
        else:
            _trace(trace_enabled, "answer.result", {"source": result.source, "meta": result.meta})
        return result

    def answer(self, message: Optional[str], history: History = None, *, debug: bool = False) -> str:
        """Main entrypoint used by the HTTP layer and the CLI."""
        return self.resolve(message, history, debug=debug).reply
