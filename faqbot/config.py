from __future__ import annotations

import os
from pathlib import Path
from typing import List, Literal, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .index import ACCEPT_THRESHOLD, STRICT_MATCH_THRESHOLD

DEFAULT_LLM_MODEL = "gpt-4o-mini"

DEFAULT_GREETINGS = ["hi", "hallo", "hey", "guten tag", "moin", "servus", "danke", "vielen dank"]

DEFAULT_KEYWORDS = [
    "bagger",
    "minibagger",
    "radlader",
    "maschine",
    "maschinen",
    "lader",
    "komatsu",
    "caterpillar",
    "volvo",
    "jcb",
    "kubota",
    "motor",
]


class Settings(BaseModel):
    # Storage
    store: Literal["file", "sql"] = "file"
    data_dir: str = "./data"
    faq_file: Optional[str] = None  # defaults to <data_dir>/faq.json
    faq_seed_file: Optional[str] = "./faq.json"
    database_url: Optional[str] = None
    redis_url: Optional[str] = None
    redis_key: str = "faqbot:faq"
    redis_ttl: Optional[int] = None
    redis_timeout: float = 5.0

    # Language model
    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_LLM_MODEL
    llm_timeout: float = 20.0
    llm_temperature: float = 0.6
    llm_max_tokens: int = 500

    # Matching
    match_threshold: float = STRICT_MATCH_THRESHOLD
    accept_threshold: float = ACCEPT_THRESHOLD

    # Conversation
    ping_token: str = "ping"
    ping_reply: str = "pong"
    greetings: List[str] = Field(default_factory=lambda: list(DEFAULT_GREETINGS))
    greeting_reply: str = "👋 Hallo! Wie kann ich Ihnen helfen?"
    keywords: List[str] = Field(default_factory=lambda: list(DEFAULT_KEYWORDS))
    company_name: str = "Uwe Müller GmbH (Baumaschinen Müller)"
    contact_email: str = "info@baumaschinen-mueller.de"
    contact_phone: str = "+49 2403 997312"

    # Admin / diagnostics
    admin_token: Optional[str] = None
    debug_trace: bool = False

    @property
    def faq_path(self) -> Path:
        if self.faq_file:
            return Path(self.faq_file)
        return Path(self.data_dir) / "faq.json"

    def contact_reply(self) -> str:
        return f"Bitte kontaktieren Sie uns direkt 📧 {self.contact_email} 📞 {self.contact_phone}"

    def keyword_reply(self) -> str:
        return (
            "🚜 Wir haben viele Maschinen im Angebot. Bitte melden Sie sich direkt:\n"
            f"📧 {self.contact_email}\n📞 {self.contact_phone}"
        )


def _split_csv(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    parts = [p.strip().lower() for p in value.split(",")]
    return [p for p in parts if p]


def load_settings(env: Optional[Mapping[str, str]] = None, *, dotenv: bool = True) -> Settings:
    """
    Build Settings from environment variables (a `.env` file is read first
    when `dotenv` is true). Unset variables keep their defaults.
    """
    if env is None:
        if dotenv:
            load_dotenv()
        env = os.environ

    mapping = {
        "store": "FAQBOT_STORE",
        "data_dir": "DATA_DIR",
        "faq_file": "FAQ_FILE",
        "faq_seed_file": "FAQ_SEED_FILE",
        "database_url": "DATABASE_URL",
        "redis_url": "REDIS_URL",
        "redis_key": "REDIS_KEY",
        "redis_ttl": "REDIS_TTL",
        "redis_timeout": "REDIS_TIMEOUT",
        "openai_api_key": "OPENAI_API_KEY",
        "openai_model": "OPENAI_MODEL",
        "llm_timeout": "LLM_TIMEOUT",
        "match_threshold": "FAQ_MATCH_THRESHOLD",
        "accept_threshold": "FAQ_ACCEPT_THRESHOLD",
        "contact_email": "CONTACT_EMAIL",
        "contact_phone": "CONTACT_PHONE",
        "admin_token": "ADMIN_TOKEN",
    }
    values = {}
    for field, var in mapping.items():
        raw = (env.get(var) or "").strip()
        if raw:
            values[field] = raw

    # Heroku/Railway style fallback
    if "database_url" not in values and (env.get("DB_URL") or "").strip():
        values["database_url"] = env["DB_URL"].strip()

    keywords = _split_csv(env.get("FAQ_KEYWORDS"))
    if keywords is not None:
        values["keywords"] = keywords
    greetings = _split_csv(env.get("FAQ_GREETINGS"))
    if greetings is not None:
        values["greetings"] = greetings

    values["debug_trace"] = env.get("DEBUG_TRACE") == "1"
    return Settings.model_validate(values)
