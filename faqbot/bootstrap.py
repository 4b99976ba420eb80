from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .config import Settings, load_settings
from .coordinator import CacheCoordinator
from .index import IndexHolder
from .resolver import AnswerResolver, GenerateFn
from .stores import FileStore, RedisStore, SqlStore
from .stores.base import EntryStore

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    settings: Settings
    coordinator: CacheCoordinator
    holder: IndexHolder
    resolver: AnswerResolver

    def close(self) -> None:
        self.coordinator.close()


def build_stores(settings: Settings) -> Tuple[EntryStore, Optional[EntryStore]]:
    """
    Return (authority, cache) for the configured backends.
    Must raise clear, actionable errors for an incomplete configuration.
    """
    if settings.store == "sql":
        if not settings.database_url:
            raise ValueError("FAQBOT_STORE=sql requires DATABASE_URL to be set.")
        authority: EntryStore = SqlStore.from_url(settings.database_url)
    else:
        file_store = FileStore(settings.faq_path, seed_path=settings.faq_seed_file)
        file_store.seed_if_missing()
        authority = file_store

    cache: Optional[EntryStore] = None
    if settings.redis_url:
        cache = RedisStore.from_url(
            settings.redis_url,
            key=settings.redis_key,
            ttl=settings.redis_ttl,
            timeout=settings.redis_timeout,
        )
    return authority, cache


def load_engine(settings: Optional[Settings] = None, *, generate: Optional[GenerateFn] = None) -> Engine:
    """Wire stores, coordinator, index holder and resolver from settings."""
    settings = settings or load_settings()
    authority, cache = build_stores(settings)
    holder = IndexHolder()
    coordinator = CacheCoordinator(authority, cache, holder=holder)
    resolver = AnswerResolver(coordinator, settings, generate=generate, holder=holder)
    logger.info("faqbot engine ready (tiers: %s)", " -> ".join(coordinator.tiers))
    return Engine(settings=settings, coordinator=coordinator, holder=holder, resolver=resolver)


def load_engine_with_summary(settings: Optional[Settings] = None) -> Tuple[Engine, Dict[str, Any]]:
    """
    Same as load_engine, but also returns a small summary dict for debug / demo:
      - entry_count
      - tiers (read priority order)
      - llm_enabled
      - notes about degraded configuration
    """
    engine = load_engine(settings)
    entry_set = engine.coordinator.get_entries()

    notes = []
    if not entry_set.size:
        notes.append("Knowledge base is empty; every question falls through to keywords / LLM")
    if not engine.settings.openai_api_key:
        notes.append("OPENAI_API_KEY not set; LLM fallback answers with the contact template")
    if not engine.settings.admin_token:
        notes.append("ADMIN_TOKEN not set; write endpoints are disabled")

    summary = {
        "entry_count": entry_set.size,
        "version": entry_set.version,
        "tiers": engine.coordinator.tiers,
        "llm_enabled": bool(engine.settings.openai_api_key),
        "notes": notes,
    }
    return engine, summary
