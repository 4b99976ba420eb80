from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional, Sequence

from .config import Settings
from .errors import UpstreamUnavailable

SYSTEM_PROMPT_TEMPLATE = """Du bist der digitale Assistent der {company}.
Antworten: professionell, freundlich, kurz und informativ.
Wenn es um Maschinen geht, verweise IMMER auf den direkten Kontakt:
📧 {email}
📞 {phone}
Wenn du keine Infos hast, ebenfalls Kontakt angeben."""

_ALLOWED_HISTORY_ROLES = {"user", "assistant"}


def system_prompt(settings: Settings) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(
        company=settings.company_name,
        email=settings.contact_email,
        phone=settings.contact_phone,
    )


def _debug_log(payload: Dict[str, Any]) -> None:
    if os.getenv("DEBUG_LLM") == "1":
        # Never log API keys.
        safe = dict(payload)
        safe.pop("api_key", None)
        print(json.dumps(safe, indent=2, sort_keys=True, ensure_ascii=False))


def build_messages(prompt: str, history: Optional[Sequence[Dict[str, str]]], settings: Settings) -> List[Dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt(settings)}]
    for turn in history or []:
        role = turn.get("role")
        content = (turn.get("content") or "").strip()
        # Callers cannot inject extra system prompts through history.
        if role in _ALLOWED_HISTORY_ROLES and content:
            messages.append({"role": role, "content": content})
    messages.append({"role": "user", "content": prompt or ""})
    return messages


def _call_openai(*, settings: Settings, messages: List[Dict[str, str]]) -> Optional[str]:
    """
    Isolated OpenAI call so unit tests can monkeypatch this.
    Returns raw text content from the model.
    """
    # OpenAI Python SDK v1+
    from openai import OpenAI

    client = OpenAI(api_key=settings.openai_api_key, timeout=settings.llm_timeout, max_retries=0)
    resp = client.chat.completions.create(
        model=settings.openai_model,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        messages=messages,
    )
    if not resp.choices:
        return None
    return resp.choices[0].message.content


def generate_reply(
    prompt: str,
    history: Optional[Sequence[Dict[str, str]]] = None,
    *,
    settings: Settings,
) -> str:
    """
    Ask the language model for a reply with the fixed persona prompt.
    Raises UpstreamUnavailable on missing key, provider error, timeout or an
    empty completion.
    """
    if not settings.openai_api_key:
        raise UpstreamUnavailable("OPENAI_API_KEY not set")

    messages = build_messages(prompt, history, settings)
    try:
        text = _call_openai(settings=settings, messages=messages)
    except Exception as e:
        raise UpstreamUnavailable(f"{e.__class__.__name__}: {e}") from e

    _debug_log({"model": settings.openai_model, "raw_response": text})

    if not text or not text.strip():
        raise UpstreamUnavailable("language model returned empty content")
    return text.strip()
